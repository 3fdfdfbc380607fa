"""
REHABCOACH Motion Service Router

Endpoints for recorded-exercise analysis, shoulder ROM assessment and the
live ROM capture stream. Pipeline failures surface as HTTP errors carrying
the error code in an error_response envelope.
"""

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import cv2
import numpy as np
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from core.config import settings
from core.threading import get_live_pool
from shared.utils import error_response, success_response
from .models import (
    AcquisitionError,
    AnalysisMetrics,
    AnalysisPipeline,
    BackendError,
    CaptureStep,
    DetectorMode,
    ErrorCode,
    Frame,
    LandmarkSet,
    LiveCaptureController,
    ModelLoadError,
    MotionServiceError,
    PoseDetector,
    ROMResult,
    STEP_INSTRUCTIONS,
    ScoringClient,
    Submission,
    TrackedSide,
    calculate_metrics,
    check_coverage,
    get_scoring_client,
    grade_rom,
)
from .models.capture_session import (
    AUTO_CAPTURE_MIN_ANGLE,
    HOLD_SECONDS,
    MANUAL_CAPTURE_MIN_ANGLE,
    MEASUREMENT_STEPS,
)

logger = logging.getLogger(__name__)

router = APIRouter()


HTTP_STATUS_BY_CODE: Dict[ErrorCode, int] = {
    ErrorCode.CAMERA_DENIED: 403,
    ErrorCode.MODEL_LOAD_FAILED: 503,
    ErrorCode.DETECTION_COVERAGE_LOW: 422,
    ErrorCode.DETECTION_FAILED: 422,
    ErrorCode.SAMPLING_FAILED: 422,
    ErrorCode.WEEKLY_LIMIT_EXCEEDED: 429,
    ErrorCode.EXERCISE_NOT_SUPPORTED: 400,
    ErrorCode.SERVER_ERROR: 502,
}


# ============= Dependencies =============

def get_detector_factory() -> Callable[[], PoseDetector]:
    """Detector for still frames sampled from uploaded clips."""
    return PoseDetector


def get_live_detector_factory() -> Callable[[], PoseDetector]:
    """Detector for continuous camera frames."""
    return lambda: PoseDetector(mode=DetectorMode.VIDEO)


def get_scoring() -> ScoringClient:
    return get_scoring_client()


def _http_error(error: MotionServiceError) -> HTTPException:
    details = dict(error.details)
    details["retryable"] = error.retryable

    # Server faults keep the computed submission so the client can resubmit it
    submission = getattr(error, "submission", None)
    if error.retryable and submission is not None:
        details["resubmit"] = submission.to_payload()

    return HTTPException(
        status_code=HTTP_STATUS_BY_CODE.get(error.code, 500),
        detail=error_response(error.message, error.code.value, details),
    )


# ============= Pydantic Models =============

class LandmarkModel(BaseModel):
    x: float
    y: float
    z: float = 0.0
    visibility: Optional[float] = 0.0


class FrameModel(BaseModel):
    timestamp: int = 0
    landmarks: List[LandmarkModel] = Field(default_factory=list)


class MetricsRequest(BaseModel):
    frames: List[FrameModel]


class ResubmitRequest(BaseModel):
    video_id: str
    exercise_id: str
    joint_data: List[FrameModel]
    analysis_metrics: Dict[str, Any]


class RomAssessRequest(BaseModel):
    flexion: Optional[float] = Field(default=None, ge=0, le=180)
    abduction: Optional[float] = Field(default=None, ge=0, le=180)
    external_rotation: Optional[float] = Field(default=None, ge=0, le=90)


def _to_frames(models: List[FrameModel]) -> List[Frame]:
    try:
        return [Frame.from_dict(m.model_dump()) for m in models]
    except ValueError as e:
        raise HTTPException(status_code=400, detail=error_response(str(e)))


# ============= REST Endpoints =============

@router.post("/analysis")
async def analyze_video(
    video: UploadFile = File(...),
    video_id: str = Form(...),
    exercise_id: str = Form(...),
    detector_factory: Callable[[], PoseDetector] = Depends(get_detector_factory),
    scoring_client: ScoringClient = Depends(get_scoring),
):
    """
    Analyze a recorded exercise clip.

    Samples frames, detects landmarks, checks body visibility, computes
    motion metrics and requests narrative feedback.
    """
    tmp_dir = Path(settings.UPLOAD_TMP_DIR)
    tmp_dir.mkdir(parents=True, exist_ok=True)
    suffix = Path(video.filename or "").suffix or ".mp4"

    # Save uploaded video temporarily
    with tempfile.NamedTemporaryFile(suffix=suffix, dir=tmp_dir, delete=False) as tmp:
        content = await video.read()
        tmp.write(content)
        tmp_path = tmp.name

    logger.info(f"🎬 Analysis requested: video={video_id}, exercise={exercise_id}, {len(content)} bytes")

    try:
        pipeline = AnalysisPipeline(detector_factory, scoring_client)
        outcome = await pipeline.run(tmp_path, video_id, exercise_id)
    except MotionServiceError as e:
        logger.warning(f"Analysis failed for video {video_id}: {e.code.value} - {e.message}")
        raise _http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=error_response(str(e)))
    finally:
        os.unlink(tmp_path)

    return success_response(outcome.to_dict(), "Analysis complete")


@router.post("/analysis/metrics")
async def compute_metrics(request: MetricsRequest):
    """
    Compute motion metrics from frames detected on the client.

    Applies the same body-visibility gate as the full analysis.
    """
    frames = _to_frames(request.frames)
    try:
        avg_visible = check_coverage(frames)
    except MotionServiceError as e:
        raise _http_error(e)

    metrics = calculate_metrics(frames)
    return success_response(
        {"metrics": metrics.to_dict(), "avg_visible_landmarks": round(avg_visible, 2)},
        "Metrics computed",
    )


@router.post("/analysis/resubmit")
async def resubmit_analysis(
    request: ResubmitRequest,
    detector_factory: Callable[[], PoseDetector] = Depends(get_detector_factory),
    scoring_client: ScoringClient = Depends(get_scoring),
):
    """Resubmit already computed metrics after a scoring server fault."""
    try:
        metrics = AnalysisMetrics.from_dict(request.analysis_metrics)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=error_response(str(e)))

    submission = Submission(
        video_id=request.video_id,
        exercise_id=request.exercise_id,
        frames=_to_frames(request.joint_data),
        metrics=metrics,
    )

    try:
        pipeline = AnalysisPipeline(detector_factory, scoring_client)
        result = await pipeline.resubmit(submission)
    except BackendError as e:
        raise _http_error(e)

    return success_response({"submission": result.to_dict()}, "Feedback received")


@router.post("/rom/assess")
async def assess_rom(request: RomAssessRequest):
    """Grade shoulder ROM against reference ranges."""
    rom = ROMResult(
        flexion=request.flexion,
        abduction=request.abduction,
        external_rotation=request.external_rotation,
    )
    return success_response(grade_rom(rom).to_dict())


@router.get("/rom/steps")
async def get_rom_steps():
    """Live capture steps with their instructions and capture thresholds."""
    return {
        "steps": [
            {"step": step.value, **STEP_INSTRUCTIONS[step]}
            for step in MEASUREMENT_STEPS
        ],
        "hold_seconds": HOLD_SECONDS,
        "auto_capture_min_angle": AUTO_CAPTURE_MIN_ANGLE,
        "manual_capture_min_angle": MANUAL_CAPTURE_MIN_ANGLE,
        "first_step": CaptureStep.FLEXION.value,
    }


# ============= WebSocket Endpoints =============

def _open_detector(factory: Callable[[], PoseDetector]) -> PoseDetector:
    detector = factory()
    detector.open()
    return detector


def _now_ms() -> int:
    return int(time.monotonic() * 1000)


@router.websocket("/ws/rom-capture")
async def rom_capture_stream(
    websocket: WebSocket,
    side: TrackedSide = TrackedSide.RIGHT,
    detector_factory: Callable[[], PoseDetector] = Depends(get_live_detector_factory),
):
    """
    Live shoulder ROM capture.

    Accepts:
    - binary messages: encoded camera frames (JPEG/PNG), detected server-side
    - {"type": "landmarks", "timestamp": ms, "landmarks": [...]}
    - {"type": "command", "action": "next" | "capture" | "skip"}
    - {"type": "camera_error", "reason": "..."}

    Replies with one JSON snapshot per message. The stream ends after the
    session finishes or is skipped.
    """
    await websocket.accept()
    controller = LiveCaptureController(side=side)
    live_pool = get_live_pool()

    async def send_error(error: MotionServiceError):
        await websocket.send_json({"type": "error", **error.to_dict()})

    try:
        await websocket.send_json({
            "type": "connected",
            "session": controller.session.to_dict(),
            "steps": [step.value for step in MEASUREMENT_STEPS],
        })

        while not controller.is_finished:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))

            try:
                if message.get("bytes") is not None:
                    image = cv2.imdecode(np.frombuffer(message["bytes"], np.uint8), cv2.IMREAD_COLOR)
                    if image is None:
                        await websocket.send_json({"type": "error", "error": "Invalid frame data"})
                        continue
                    if controller.detector is None:
                        controller.detector = await live_pool.submit_async(_open_detector, detector_factory)
                    snapshot = await live_pool.submit_async(controller.process_image, image, _now_ms())
                else:
                    snapshot = _handle_text(controller, message.get("text") or "")

                await websocket.send_json(snapshot)

            except (AcquisitionError, ModelLoadError) as e:
                logger.warning(f"Live capture ended: {e.code.value} - {e.message}")
                await send_error(e)
                break
            except MotionServiceError as e:
                await send_error(e)
            except ValueError as e:
                await websocket.send_json({"type": "error", "error": str(e)})

        await websocket.close()

    except WebSocketDisconnect:
        logger.info(f"ROM capture client disconnected at step '{controller.session.step.value}'")
    finally:
        controller.close()


def _parse_timestamp(value: Any) -> int:
    """Client frame timestamp in ms; server clock when absent."""
    if value is None:
        return _now_ms()
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Malformed timestamp: {value!r}") from e


def _handle_text(controller: LiveCaptureController, text: str) -> Dict[str, Any]:
    """Dispatch one JSON text message to the controller."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON message: {e.msg}") from e
    if not isinstance(data, dict):
        raise ValueError("Message must be a JSON object")

    kind = data.get("type")
    if kind == "landmarks":
        try:
            landmarks = LandmarkSet.from_list(data.get("landmarks") or [])
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed landmarks: {e}") from e
        return controller.process_landmarks(landmarks, _parse_timestamp(data.get("timestamp")))
    if kind == "command":
        return controller.command(str(data.get("action")))
    if kind == "camera_error":
        raise AcquisitionError(
            "camera unavailable or permission denied",
            details={"reason": data.get("reason", "unknown")},
        )
    raise ValueError(f"Unknown message type '{kind}'")
