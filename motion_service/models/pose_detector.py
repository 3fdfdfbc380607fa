"""
REHABCOACH Motion Service - Pose Detector

MediaPipe PoseLandmarker wrapper with an explicit open/close lifecycle.
Each capture session or analysis run constructs and owns its own detector.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Optional

import cv2
import numpy as np
import mediapipe as mp
from mediapipe.tasks import python as mp_python
from mediapipe.tasks.python import vision

from core.config import settings
from .errors import ModelLoadError
from .landmarks import Landmark, LandmarkSet

logger = logging.getLogger(__name__)


class DetectorMode(str, Enum):
    """IMAGE for independent stills, VIDEO for a live stream with timestamps."""
    IMAGE = "image"
    VIDEO = "video"


class PoseDetector:
    """
    Single-person pose landmark detector.

    Usage:
        with PoseDetector() as detector:
            landmarks = detector.detect(bgr_image)
    """

    def __init__(
        self,
        model_path: Optional[str] = None,
        mode: DetectorMode = DetectorMode.IMAGE,
        min_detection_confidence: Optional[float] = None,
    ):
        """
        Args:
            model_path: Path to a PoseLandmarker .task bundle (settings default if None)
            mode: Running mode
            min_detection_confidence: Minimum pose detection confidence
        """
        self.model_path = model_path or settings.POSE_MODEL_PATH
        self.mode = mode
        self.min_detection_confidence = (
            min_detection_confidence
            if min_detection_confidence is not None
            else settings.POSE_MIN_DETECTION_CONFIDENCE
        )
        self._landmarker = None
        self._last_timestamp_ms = -1

    @property
    def is_open(self) -> bool:
        return self._landmarker is not None

    def open(self):
        """Load the pose model. Raises ModelLoadError on any failure."""
        if self._landmarker is not None:
            return

        model_file = Path(self.model_path)
        if not model_file.is_file():
            raise ModelLoadError(
                "pose model not found",
                details={"model_path": str(model_file)},
            )

        running_mode = (
            vision.RunningMode.VIDEO if self.mode == DetectorMode.VIDEO
            else vision.RunningMode.IMAGE
        )
        options = vision.PoseLandmarkerOptions(
            base_options=mp_python.BaseOptions(model_asset_path=str(model_file)),
            running_mode=running_mode,
            num_poses=1,
            min_pose_detection_confidence=self.min_detection_confidence,
        )

        try:
            self._landmarker = vision.PoseLandmarker.create_from_options(options)
        except (RuntimeError, ValueError) as e:
            raise ModelLoadError(
                f"failed to initialize pose model: {e}",
                details={"model_path": str(model_file)},
            ) from e

        logger.info(f"✅ Pose detector initialized ({self.mode.value} mode)")

    def detect(self, image: np.ndarray, timestamp_ms: int = 0) -> Optional[LandmarkSet]:
        """
        Detect pose landmarks in a BGR image.

        Args:
            image: BGR image as numpy array (H, W, 3)
            timestamp_ms: Frame timestamp, required to increase in VIDEO mode

        Returns:
            LandmarkSet of the single tracked person, or None if nobody was found
        """
        if self._landmarker is None:
            raise RuntimeError("pose detector used before open()")

        rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=np.ascontiguousarray(rgb))

        if self.mode == DetectorMode.VIDEO:
            # MediaPipe rejects non-increasing timestamps
            timestamp_ms = max(int(timestamp_ms), self._last_timestamp_ms + 1)
            self._last_timestamp_ms = timestamp_ms
            result = self._landmarker.detect_for_video(mp_image, timestamp_ms)
        else:
            result = self._landmarker.detect(mp_image)

        if not result.pose_landmarks:
            return None

        return LandmarkSet(
            Landmark(
                x=float(lm.x),
                y=float(lm.y),
                z=float(lm.z),
                visibility=float(lm.visibility or 0.0),
            )
            for lm in result.pose_landmarks[0]
        )

    def close(self):
        """Release the model."""
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None
            logger.debug("Pose detector closed")

    def __enter__(self) -> "PoseDetector":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
