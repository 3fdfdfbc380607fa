"""Tests for the scoring service client against an in-process aiohttp server."""

import asyncio

import pytest
from aiohttp import web
from aiohttp import test_utils

from motion_service.models import (
    BackendError,
    ErrorCode,
    ScoringClient,
    Submission,
    calculate_metrics,
)

from motion_builders import make_frames


ENDPOINT = "/api/ai-analysis"


def make_submission():
    frames = make_frames(3)
    return Submission(video_id="v-1", exercise_id="ex-7", frames=frames, metrics=calculate_metrics(frames))


def submit_to(handler, token="secret"):
    """Run one submission against a test server answering with `handler`."""
    async def scenario():
        app = web.Application()
        app.router.add_post(ENDPOINT, handler)
        server = test_utils.TestServer(app)
        await server.start_server()
        try:
            client = ScoringClient(str(server.make_url(ENDPOINT)), api_token=token, timeout=5)
            return await client.submit(make_submission())
        finally:
            await server.close()

    return asyncio.run(scenario())


def json_handler(status, body):
    async def handler(request):
        return web.json_response(body, status=status)
    return handler


# ============================================================================
# Test: success
# ============================================================================

class TestSuccess:

    def test_payload_and_feedback(self):
        received = {}

        async def handler(request):
            received["auth"] = request.headers.get("Authorization")
            received["body"] = await request.json()
            return web.json_response({
                "success": True,
                "analysis": {"id": "a-42", "ai_feedback": "Keep the shoulder down.", "analysis_status": "completed"},
                "remaining_analyses": 2,
            })

        result = submit_to(handler)

        assert result.feedback == "Keep the shoulder down."
        assert result.analysis_id == "a-42"
        assert result.remaining_analyses == 2

        assert received["auth"] == "Bearer secret"
        body = received["body"]
        assert set(body) == {"video_id", "exercise_id", "joint_data", "analysis_metrics"}
        assert body["video_id"] == "v-1"
        assert len(body["joint_data"]) == 3
        assert len(body["joint_data"][0]["landmarks"]) == 33
        assert body["analysis_metrics"]["frames_analyzed"] == 3

    def test_no_token_no_auth_header(self):
        seen = {}

        async def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            return web.json_response({"success": True, "analysis": {"id": "a-1", "ai_feedback": "ok"}})

        submit_to(handler, token="")
        assert seen["auth"] is None

    def test_missing_feedback_is_server_error(self):
        with pytest.raises(BackendError) as exc:
            submit_to(json_handler(200, {"success": True, "analysis": {}}))
        assert exc.value.code == ErrorCode.SERVER_ERROR


# ============================================================================
# Test: error mapping
# ============================================================================

class TestErrorMapping:

    def test_weekly_limit(self):
        body = {"error": "weekly limit used", "code": "WEEKLY_LIMIT_EXCEEDED", "reset_at": "2026-10-19T00:00:00Z"}
        with pytest.raises(BackendError) as exc:
            submit_to(json_handler(429, body))

        error = exc.value
        assert error.code == ErrorCode.WEEKLY_LIMIT_EXCEEDED
        assert error.status == 429
        assert error.details["reset_at"] == "2026-10-19T00:00:00Z"
        assert not error.retryable

    def test_exercise_not_supported(self):
        with pytest.raises(BackendError) as exc:
            submit_to(json_handler(400, {"error": "not eligible", "code": "NOT_SUPPORTED"}))
        assert exc.value.code == ErrorCode.EXERCISE_NOT_SUPPORTED
        assert not exc.value.retryable

    def test_ai_error_is_retryable_server_error(self):
        with pytest.raises(BackendError) as exc:
            submit_to(json_handler(503, {"error": "analysis server not responding", "code": "AI_ERROR"}))
        assert exc.value.code == ErrorCode.SERVER_ERROR
        assert exc.value.status == 503
        assert exc.value.retryable
        assert exc.value.message == "analysis server not responding"

    def test_non_json_error_body(self):
        async def handler(request):
            return web.Response(status=500, text="upstream exploded")

        with pytest.raises(BackendError) as exc:
            submit_to(handler)
        assert exc.value.code == ErrorCode.SERVER_ERROR
        assert exc.value.status == 500

    def test_unreachable_service(self):
        client = ScoringClient("http://127.0.0.1:1/api/ai-analysis", api_token="", timeout=2)
        with pytest.raises(BackendError) as exc:
            asyncio.run(client.submit(make_submission()))
        assert exc.value.code == ErrorCode.SERVER_ERROR
        assert exc.value.retryable
        assert exc.value.status is None
