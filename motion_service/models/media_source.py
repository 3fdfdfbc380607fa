"""
REHABCOACH Motion Service - Media Sources

OpenCV-backed media access:
- VideoSource: a finite, seekable recorded clip (batch analysis)
- CameraStream: a continuous live camera feed (local ROM capture)

A clip's playback position is a single mutable resource. All seeks go
through VideoSource.grab_at, which refuses to overlap with another seek.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

import cv2
import numpy as np

from core.threading import run_media_io
from .errors import AcquisitionError, PipelineError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MediaMetadata:
    """Clip properties read when the source is opened."""
    duration: float  # seconds
    width: int
    height: int
    fps: float
    frame_count: int

    def to_dict(self) -> dict:
        return {
            "duration": round(self.duration, 3),
            "width": self.width,
            "height": self.height,
            "fps": self.fps,
            "frame_count": self.frame_count,
        }


class VideoSource:
    """
    Seekable recorded clip.

    Usage:
        async with VideoSource(path) as source:
            meta = await source.load_metadata()
            image = await source.grab_at(2.5)
    """

    def __init__(self, path: str):
        self.path = path
        self.metadata: Optional[MediaMetadata] = None
        self._capture: Optional[cv2.VideoCapture] = None
        self._position_lock = asyncio.Lock()

    async def load_metadata(self) -> MediaMetadata:
        """Open the clip and read duration and dimensions."""
        try:
            capture = await run_media_io(cv2.VideoCapture, self.path)
        except cv2.error as e:
            raise PipelineError("cannot load source", details={"source": self.path}) from e

        if not capture.isOpened():
            capture.release()
            raise PipelineError("cannot load source", details={"source": self.path})

        fps = capture.get(cv2.CAP_PROP_FPS) or 0.0
        frame_count = int(capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
        width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
        height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
        duration = frame_count / fps if fps > 0 else 0.0

        if duration <= 0:
            capture.release()
            raise PipelineError(
                "cannot load source: clip has no measurable duration",
                details={"source": self.path, "fps": fps, "frame_count": frame_count},
            )

        self._capture = capture
        self.metadata = MediaMetadata(
            duration=duration,
            width=width,
            height=height,
            fps=fps,
            frame_count=frame_count,
        )
        logger.debug(f"Opened {self.path}: {frame_count} frames, {fps:.1f} fps, {duration:.2f}s")
        return self.metadata

    async def grab_at(self, time_sec: float) -> np.ndarray:
        """
        Seek to time_sec, wait for the seek to settle, then decode the frame.

        Raises:
            RuntimeError: if another seek on this source is still in flight
            PipelineError: if the seek or decode fails
        """
        if self._capture is None:
            raise PipelineError("source not loaded", details={"source": self.path})
        if self._position_lock.locked():
            raise RuntimeError("concurrent seek on a single media source")

        async with self._position_lock:
            try:
                sought = await run_media_io(self._capture.set, cv2.CAP_PROP_POS_MSEC, time_sec * 1000.0)
                if sought:
                    ok, image = await run_media_io(self._capture.read)
            except cv2.error as e:
                raise PipelineError(
                    f"media error at {time_sec:.2f}s: {e}",
                    details={"source": self.path, "time": time_sec},
                ) from e

            if not sought:
                raise PipelineError(
                    f"seek to {time_sec:.2f}s failed",
                    details={"source": self.path, "time": time_sec},
                )
            if not ok or image is None:
                raise PipelineError(
                    f"decode at {time_sec:.2f}s failed",
                    details={"source": self.path, "time": time_sec},
                )
            return image

    def close(self):
        if self._capture is not None:
            self._capture.release()
            self._capture = None

    async def __aenter__(self) -> "VideoSource":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.close()


class CameraStream:
    """
    Live camera feed for local ROM capture.

    Usage:
        with CameraStream(0) as camera:
            for timestamp_ms, image in camera.frames():
                ...
    """

    def __init__(self, device_index: int = 0, width: int = 640, height: int = 480):
        self.device_index = device_index
        self.width = width
        self.height = height
        self._capture: Optional[cv2.VideoCapture] = None

    def open(self):
        capture = cv2.VideoCapture(self.device_index)
        if not capture.isOpened():
            capture.release()
            raise AcquisitionError(
                "camera unavailable or permission denied",
                details={"device": self.device_index},
            )
        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self._capture = capture
        logger.info(f"📷 Camera {self.device_index} opened")

    def frames(self) -> Iterator[Tuple[int, np.ndarray]]:
        """Yield (timestamp_ms, BGR image) until the camera stops delivering."""
        if self._capture is None:
            self.open()

        while self._capture is not None:
            ok, image = self._capture.read()
            if not ok or image is None:
                logger.warning("Camera stopped delivering frames")
                return
            yield int(time.monotonic() * 1000), image

    def close(self):
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info(f"📷 Camera {self.device_index} released")

    def __enter__(self) -> "CameraStream":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
