"""
REHABCOACH Motion Service - Live Capture Controller

Owns one CaptureSession and one detector for the lifetime of a live ROM
capture. Transports (WebSocket route, local camera script) feed frames and
commands in and send the returned snapshots out.

Cancelling a capture is just dropping the controller after `close()`;
nothing is flushed because every frame's computation is frame-local.
"""

import logging
from typing import Any, Dict, Optional

import numpy as np

from .capture_session import (
    CaptureEvent,
    CaptureSession,
    STEP_INSTRUCTIONS,
    TrackedSide,
    advance,
    manual_capture,
    next_step,
    skip,
    start_session,
)
from .errors import DetectionFailure
from .landmarks import Frame, LandmarkSet
from .pose_detector import PoseDetector
from .rom_grading import grade_rom

logger = logging.getLogger(__name__)


class LiveCaptureController:
    """
    Drives the ROM capture flow from frames and user commands.

    Usage:
        controller = LiveCaptureController(detector)
        controller.command("next")                 # intro -> flexion
        snapshot = controller.process_image(image, timestamp_ms)
    """

    COMMANDS = ("next", "capture", "skip")

    def __init__(self, detector: Optional[PoseDetector] = None, side: TrackedSide = TrackedSide.RIGHT):
        """
        Args:
            detector: Opened detector for `process_image`; may be None when the
                client sends its own landmarks
            side: Arm being measured
        """
        self.detector = detector
        self.session: CaptureSession = start_session(side)

    @property
    def is_finished(self) -> bool:
        return self.session.is_finished

    def process_landmarks(self, landmarks: LandmarkSet, timestamp_ms: int) -> Dict[str, Any]:
        """Apply one frame of landmarks detected elsewhere."""
        self.session, event = advance(self.session, Frame(timestamp=int(timestamp_ms), landmarks=landmarks))
        return self.snapshot(event)

    def process_image(self, image: np.ndarray, timestamp_ms: int) -> Dict[str, Any]:
        """
        Detect on a camera image, then apply the result.

        Raises:
            DetectionFailure: the detector faulted on this image
        """
        if self.detector is None:
            raise RuntimeError("no detector attached to this capture")

        if not self.session.is_measuring or self.session.captured:
            return self.snapshot(CaptureEvent.IGNORED)

        try:
            landmarks = self.detector.detect(image, timestamp_ms)
        except Exception as e:
            raise DetectionFailure(f"pose detection failed: {e}") from e

        if landmarks is None:
            return self.snapshot(CaptureEvent.NO_POSE)
        return self.process_landmarks(landmarks, timestamp_ms)

    def command(self, action: str) -> Dict[str, Any]:
        """Handle a user command: next, capture or skip."""
        if action == "next":
            self.session, event = next_step(self.session)
        elif action == "capture":
            self.session, event = manual_capture(self.session)
        elif action == "skip":
            self.session, event = skip(self.session)
        else:
            raise ValueError(f"Unknown command '{action}'. Valid commands: {list(self.COMMANDS)}")

        logger.info(f"🎯 Capture command '{action}' -> {event.value} (step: {self.session.step.value})")
        return self.snapshot(event)

    def snapshot(self, event: CaptureEvent) -> Dict[str, Any]:
        """JSON message describing the session after `event`."""
        message = {
            "type": event.value,
            "session": self.session.to_dict(),
            "instruction": STEP_INSTRUCTIONS.get(self.session.step),
        }
        if self.session.is_finished:
            message["assessment"] = grade_rom(self.session.rom).to_dict()
        return message

    def close(self):
        if self.detector is not None:
            self.detector.close()
