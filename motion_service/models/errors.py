"""
REHABCOACH Motion Service - Error Taxonomy

Typed failures of the capture and analysis pipeline. Each carries an
ErrorCode that callers surface verbatim.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    CAMERA_DENIED = "CAMERA_DENIED"
    MODEL_LOAD_FAILED = "MODEL_LOAD_FAILED"
    DETECTION_COVERAGE_LOW = "DETECTION_COVERAGE_LOW"
    DETECTION_FAILED = "DETECTION_FAILED"
    SAMPLING_FAILED = "SAMPLING_FAILED"
    WEEKLY_LIMIT_EXCEEDED = "WEEKLY_LIMIT_EXCEEDED"
    EXERCISE_NOT_SUPPORTED = "EXERCISE_NOT_SUPPORTED"
    SERVER_ERROR = "SERVER_ERROR"


class MotionServiceError(Exception):
    """Base class for all motion pipeline failures."""

    code: ErrorCode = ErrorCode.SERVER_ERROR
    retryable: bool = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "error_code": self.code.value,
            "retryable": self.retryable,
            "details": self.details,
        }


class AcquisitionError(MotionServiceError):
    """Camera or media unavailable, or permission denied."""
    code = ErrorCode.CAMERA_DENIED


class ModelLoadError(MotionServiceError):
    """Pose model failed to initialize."""
    code = ErrorCode.MODEL_LOAD_FAILED


class DetectionCoverageError(MotionServiceError):
    """Landmarks too sparse or low-confidence to trust."""
    code = ErrorCode.DETECTION_COVERAGE_LOW


class DetectionFailure(MotionServiceError):
    """The pose detector faulted while processing a frame."""
    code = ErrorCode.DETECTION_FAILED


class PipelineError(MotionServiceError):
    """Media source could not be loaded, seeked or decoded."""
    code = ErrorCode.SAMPLING_FAILED


class BackendError(MotionServiceError):
    """Quota, eligibility or server fault reported by the scoring service."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.code = code
        self.status = status
        # Only server faults may be retried, and only by resubmitting
        # the same computed metrics.
        self.retryable = code == ErrorCode.SERVER_ERROR
        # Set by the pipeline so a caller can resubmit without recomputing
        self.submission = None
