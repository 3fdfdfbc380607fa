"""
REHABCOACH Motion Service Models

Pose detection, live ROM capture, batch motion metrics and the analysis pipeline.
"""

from .landmarks import (
    TOPOLOGY_SIZE,
    JointType,
    Landmark,
    LandmarkSet,
    Frame
)

from .errors import (
    ErrorCode,
    MotionServiceError,
    AcquisitionError,
    ModelLoadError,
    DetectionCoverageError,
    DetectionFailure,
    PipelineError,
    BackendError
)

from .geometry import angle_2d, angle_3d

from .media_source import MediaMetadata, VideoSource, CameraStream
from .frame_sampler import FrameSampler, sample_times
from .pose_detector import PoseDetector, DetectorMode

from .capture_session import (
    CaptureStep,
    CaptureEvent,
    CaptureSession,
    TrackedSide,
    ROMResult,
    STEP_INSTRUCTIONS,
    start_session,
    advance,
    advance_angle,
    manual_capture,
    next_step,
    skip
)

from .rom_grading import LimitationLevel, RomAssessment, grade_rom

from .motion_metrics import (
    AnalysisMetrics,
    MovementSpeed,
    calculate_metrics,
    check_coverage
)

from .scoring_client import ScoringClient, Submission, SubmissionResult, get_scoring_client
from .pipeline import AnalysisPipeline, AnalysisOutcome, PipelineStage
from .live_capture import LiveCaptureController

__all__ = [
    # Landmarks
    "TOPOLOGY_SIZE",
    "JointType",
    "Landmark",
    "LandmarkSet",
    "Frame",
    # Errors
    "ErrorCode",
    "MotionServiceError",
    "AcquisitionError",
    "ModelLoadError",
    "DetectionCoverageError",
    "DetectionFailure",
    "PipelineError",
    "BackendError",
    # Geometry
    "angle_2d",
    "angle_3d",
    # Media and detection
    "MediaMetadata",
    "VideoSource",
    "CameraStream",
    "FrameSampler",
    "sample_times",
    "PoseDetector",
    "DetectorMode",
    # Live capture
    "CaptureStep",
    "CaptureEvent",
    "CaptureSession",
    "TrackedSide",
    "ROMResult",
    "STEP_INSTRUCTIONS",
    "start_session",
    "advance",
    "advance_angle",
    "manual_capture",
    "next_step",
    "skip",
    "LiveCaptureController",
    # ROM grading
    "LimitationLevel",
    "RomAssessment",
    "grade_rom",
    # Batch metrics
    "AnalysisMetrics",
    "MovementSpeed",
    "calculate_metrics",
    "check_coverage",
    # Scoring and pipeline
    "ScoringClient",
    "Submission",
    "SubmissionResult",
    "get_scoring_client",
    "AnalysisPipeline",
    "AnalysisOutcome",
    "PipelineStage",
]
