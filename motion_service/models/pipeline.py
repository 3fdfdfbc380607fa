"""
REHABCOACH Motion Service - Analysis Pipeline

Recorded clip -> sampled frames -> pose landmarks -> coverage gate ->
metrics -> scoring service.

Every stage runs strictly after the previous one; there is no internal
parallelism and no automatic retry. A failed run is restarted from the
beginning, except for scoring-service faults, which are retried by
resubmitting the already computed metrics (see `resubmit`).
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from core.threading import run_ml_inference
from shared.utils import log_execution_time
from .errors import BackendError, DetectionFailure, MotionServiceError
from .frame_sampler import FrameSampler
from .landmarks import Frame
from .media_source import VideoSource
from .motion_metrics import AnalysisMetrics, calculate_metrics, check_coverage
from .pose_detector import PoseDetector
from .scoring_client import ScoringClient, Submission, SubmissionResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


class PipelineStage(str, Enum):
    VALIDATING = "validating"
    LOADING = "loading"
    SAMPLING = "sampling"
    DETECTING = "detecting"
    CHECKING_COVERAGE = "checking_coverage"
    COMPUTING_METRICS = "computing_metrics"
    SUBMITTING = "submitting"
    DONE = "done"


STAGE_LABELS: Dict[PipelineStage, str] = {
    PipelineStage.VALIDATING: "Checking request",
    PipelineStage.LOADING: "Loading video",
    PipelineStage.SAMPLING: "Extracting frames",
    PipelineStage.DETECTING: "Detecting body landmarks",
    PipelineStage.CHECKING_COVERAGE: "Checking body visibility",
    PipelineStage.COMPUTING_METRICS: "Calculating motion metrics",
    PipelineStage.SUBMITTING: "Requesting feedback",
    PipelineStage.DONE: "Analysis complete",
}


@dataclass
class AnalysisOutcome:
    """Result of a successful pipeline run."""
    metrics: AnalysisMetrics
    frames: List[Frame]
    result: SubmissionResult
    progress: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metrics": self.metrics.to_dict(),
            "frames_detected": len(self.frames),
            "submission": self.result.to_dict(),
            "progress": list(self.progress),
        }


def _open_detector(detector: PoseDetector) -> PoseDetector:
    detector.open()
    return detector


class AnalysisPipeline:
    """
    Batch analysis of one recorded exercise clip.

    Usage:
        pipeline = AnalysisPipeline(PoseDetector, get_scoring_client())
        outcome = await pipeline.run("clip.mp4", video_id, exercise_id)
    """

    def __init__(
        self,
        detector_factory: Callable[[], PoseDetector],
        scoring_client: ScoringClient,
        source_factory: Callable[[str], VideoSource] = VideoSource,
        sample_count: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        """
        Args:
            detector_factory: Builds a fresh, unopened detector for each run
            scoring_client: Client for the remote scoring service
            source_factory: Builds a media source from a video reference
            sample_count: Frames to sample (settings default if None)
            on_progress: Called with a stage label at every stage transition
        """
        self.detector_factory = detector_factory
        self.scoring_client = scoring_client
        self.source_factory = source_factory
        self.sampler = FrameSampler(sample_count)
        self.on_progress = on_progress
        self.progress: List[str] = []

    def _report(self, stage: PipelineStage):
        label = STAGE_LABELS[stage]
        self.progress.append(label)
        logger.info(f"▶️ {label}")
        if self.on_progress is None:
            return
        try:
            self.on_progress(label)
        except Exception as e:
            # Progress is fire-and-forget; a broken listener must not fail the run
            logger.warning(f"Progress listener failed at '{stage.value}': {e}")

    @log_execution_time
    async def run(self, video_ref: str, video_id: str, exercise_id: str) -> AnalysisOutcome:
        """
        Run all stages for one clip.

        Raises:
            ValueError: a required input is missing
            PipelineError: the clip cannot be loaded or sampled
            ModelLoadError: the pose model cannot be initialized
            DetectionFailure: the detector faulted on a frame
            DetectionCoverageError: too few landmarks were visible
            BackendError: the scoring service rejected or failed the submission
        """
        self.progress = []

        # 1. Inputs
        self._report(PipelineStage.VALIDATING)
        missing = [
            name for name, value in
            (("video", video_ref), ("video_id", video_id), ("exercise_id", exercise_id))
            if not value
        ]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")

        async with self.source_factory(video_ref) as source:
            # 2. Metadata
            self._report(PipelineStage.LOADING)
            await source.load_metadata()

            # 3. Sampling
            self._report(PipelineStage.SAMPLING)
            images = await self.sampler.sample(source)

        # 4. Detection
        self._report(PipelineStage.DETECTING)
        frames = await self._detect(images)

        # 5. Coverage gate
        self._report(PipelineStage.CHECKING_COVERAGE)
        check_coverage(frames)

        # 6. Metrics
        self._report(PipelineStage.COMPUTING_METRICS)
        metrics = calculate_metrics(frames)

        # 7. Submission
        submission = Submission(
            video_id=video_id,
            exercise_id=exercise_id,
            frames=frames,
            metrics=metrics,
        )
        result = await self._submit(submission)

        self._report(PipelineStage.DONE)
        return AnalysisOutcome(metrics=metrics, frames=frames, result=result, progress=list(self.progress))

    async def resubmit(self, submission: Submission) -> SubmissionResult:
        """Send already computed metrics again after a server fault."""
        self.progress = []
        logger.info(f"🔁 Resubmitting analysis for video {submission.video_id}")
        result = await self._submit(submission)
        self._report(PipelineStage.DONE)
        return result

    async def _submit(self, submission: Submission) -> SubmissionResult:
        self._report(PipelineStage.SUBMITTING)
        try:
            return await self.scoring_client.submit(submission)
        except BackendError as e:
            e.submission = submission
            raise

    async def _detect(self, images) -> List[Frame]:
        """One detection call per image, in order. Images without a person are dropped."""
        detector = self.detector_factory()
        await run_ml_inference(_open_detector, detector)

        frames: List[Frame] = []
        try:
            for index, image in enumerate(images):
                try:
                    landmarks = await run_ml_inference(detector.detect, image)
                except MotionServiceError:
                    raise
                except Exception as e:
                    raise DetectionFailure(
                        f"pose detection failed on frame {index}: {e}",
                        details={"frame": index},
                    ) from e

                if landmarks is None:
                    logger.debug(f"No person detected in frame {index}")
                    continue
                frames.append(Frame(timestamp=index, landmarks=landmarks))
        finally:
            detector.close()

        logger.info(f"🧍 Detected a person in {len(frames)}/{len(images)} frames")
        return frames
