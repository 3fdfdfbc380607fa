"""
REHABCOACH Motion Service - Scoring Service Client

Submits computed metrics plus raw joint data to the remote scoring/feedback
service and maps its answers onto the error taxonomy.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from core.config import settings
from .errors import BackendError, ErrorCode
from .landmarks import Frame
from .motion_metrics import AnalysisMetrics

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# DATA CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class Submission:
    """Everything needed to (re)submit one analysis."""
    video_id: str
    exercise_id: str
    frames: Sequence[Frame]
    metrics: AnalysisMetrics

    def to_payload(self) -> Dict[str, Any]:
        return {
            "video_id": self.video_id,
            "exercise_id": self.exercise_id,
            "joint_data": [f.to_dict() for f in self.frames],
            "analysis_metrics": self.metrics.to_dict(),
        }


@dataclass
class SubmissionResult:
    """Feedback returned by the scoring service."""
    feedback: str
    analysis_id: Optional[str] = None
    remaining_analyses: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feedback": self.feedback,
            "analysis_id": self.analysis_id,
            "remaining_analyses": self.remaining_analyses,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# CLIENT
# ═══════════════════════════════════════════════════════════════════════════════

class ScoringClient:
    """
    Client for the remote analysis/feedback endpoint.

    Response mapping:
    - 200                          -> SubmissionResult
    - 429                          -> WEEKLY_LIMIT_EXCEEDED (reset_at in details)
    - 400 code=NOT_SUPPORTED       -> EXERCISE_NOT_SUPPORTED
    - anything else, network error -> SERVER_ERROR (retryable)
    """

    DEFAULT_TIMEOUT = 60.0  # seconds; feedback generation is slow

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            base_url: Endpoint URL (settings.SCORING_SERVICE_URL if not provided)
            api_token: Bearer token (settings.SCORING_API_TOKEN if not provided)
            timeout: Total request timeout in seconds
        """
        self.base_url = base_url or settings.SCORING_SERVICE_URL
        self.api_token = api_token if api_token is not None else settings.SCORING_API_TOKEN
        self.timeout = aiohttp.ClientTimeout(total=timeout or self.DEFAULT_TIMEOUT)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    async def submit(self, submission: Submission) -> SubmissionResult:
        """
        Send one submission.

        Raises:
            BackendError: quota exhausted, exercise not eligible, or server fault
        """
        payload = submission.to_payload()
        logger.info(
            f"📤 Submitting analysis video={submission.video_id} "
            f"exercise={submission.exercise_id} ({len(payload['joint_data'])} frames)"
        )

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.base_url, json=payload, headers=self._headers()) as response:
                    body = await self._read_json(response)
                    return self._handle_response(response.status, body)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"❌ Scoring service unreachable: {e}")
            raise BackendError(
                ErrorCode.SERVER_ERROR,
                "scoring service unreachable",
                details={"reason": str(e) or type(e).__name__},
            ) from e

    @staticmethod
    async def _read_json(response: aiohttp.ClientResponse) -> Dict[str, Any]:
        try:
            body = await response.json(content_type=None)
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    def _handle_response(self, status: int, body: Dict[str, Any]) -> SubmissionResult:
        code = body.get("code")
        message = body.get("error") or f"scoring service returned {status}"

        if status == 200:
            analysis = body.get("analysis") or {}
            feedback = analysis.get("ai_feedback")
            if not body.get("success", True) or feedback is None:
                raise BackendError(
                    ErrorCode.SERVER_ERROR,
                    "scoring service returned no feedback",
                    status=status,
                )
            result = SubmissionResult(
                feedback=feedback,
                analysis_id=analysis.get("id"),
                remaining_analyses=body.get("remaining_analyses"),
                raw=body,
            )
            logger.info(f"✅ Feedback received (remaining analyses: {result.remaining_analyses})")
            return result

        if status == 429:
            logger.warning("Weekly analysis limit reached")
            details = {"reset_at": body["reset_at"]} if body.get("reset_at") else {}
            raise BackendError(ErrorCode.WEEKLY_LIMIT_EXCEEDED, message, status=status, details=details)

        if status == 400 and code == "NOT_SUPPORTED":
            raise BackendError(ErrorCode.EXERCISE_NOT_SUPPORTED, message, status=status)

        logger.error(f"❌ Scoring service error {status} ({code}): {message}")
        raise BackendError(
            ErrorCode.SERVER_ERROR,
            message,
            status=status,
            details={"upstream_code": code} if code else {},
        )


# Singleton instance
_scoring_client: Optional[ScoringClient] = None


def get_scoring_client() -> ScoringClient:
    """Get or create the scoring client singleton."""
    global _scoring_client
    if _scoring_client is None:
        _scoring_client = ScoringClient()
    return _scoring_client
