"""
REHABCOACH Motion Service - Frame Sampler

Extracts a fixed number of evenly spaced stills from a recorded clip,
excluding its very start and end.
"""

import logging
from typing import List

import numpy as np

from core.config import settings
from .errors import PipelineError

logger = logging.getLogger(__name__)


def sample_times(duration: float, count: int) -> List[float]:
    """
    Sample timestamps (seconds) for `count` frames over `duration`.

    interval = duration / (count + 1); times are interval * i for i = 1..count.
    """
    if count <= 0 or duration <= 0:
        return []
    interval = duration / (count + 1)
    return [interval * i for i in range(1, count + 1)]


class FrameSampler:
    """
    Sequential seek-and-capture sampler.

    Each sample waits for its seek to settle before the next seek starts.
    Any failure aborts the whole sampling run; partial frame lists are never
    returned.
    """

    def __init__(self, count: int = None):
        self.count = count if count is not None else settings.SAMPLE_FRAME_COUNT

    async def sample(self, source) -> List[np.ndarray]:
        """
        Args:
            source: an opened media source exposing `metadata` and `grab_at`

        Returns:
            List of raster buffers, one per sample time
        """
        if source.metadata is None:
            raise PipelineError("cannot sample: source metadata not loaded")

        times = sample_times(source.metadata.duration, self.count)
        if not times:
            raise PipelineError(
                "cannot sample: nothing to extract",
                details={"duration": source.metadata.duration, "count": self.count},
            )

        frames: List[np.ndarray] = []
        for t in times:
            try:
                image = await source.grab_at(t)
            except PipelineError:
                logger.warning(f"Sampling aborted at {t:.2f}s after {len(frames)} frames")
                raise
            frames.append(image)
            logger.debug(f"Sampled frame {len(frames)}/{len(times)} at {t:.2f}s")

        return frames
