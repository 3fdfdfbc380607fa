"""
REHABCOACH Motion Service - Batch Motion Metrics

Turns a list of detected frames into joint-angle statistics, compensation
flags, movement-speed class, repetition count and a 0-100 quality score.
All angles here are planar (image x/y), which is stable for recorded,
mostly front-facing movement.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from core.config import settings
from shared.utils import log_execution_time
from .errors import DetectionCoverageError
from .geometry import angle_2d
from .landmarks import Frame, JointType as J, TOPOLOGY_SIZE

logger = logging.getLogger(__name__)

# Named per-frame series, in frame order
AngleSeries = Dict[str, List[float]]


# Compensation heuristics
SHRUG_DISTANCE_RATIO = 0.7    # shoulder-nose distance below 70% of its mean
SHRUG_FRAME_RATIO = 0.3       # in more than 30% of frames
ASYMMETRY_THRESHOLD = 0.05    # mean shoulder height gap, normalized image units

# Movement speed (mean absolute frame-to-frame change, degrees)
FAST_DELTA_DEGREES = 30
SLOW_DELTA_DEGREES = 5

# Quality score
BASE_QUALITY_SCORE = 100
COMPENSATION_PENALTY = 15
FAST_SPEED_PENALTY = 10


class MovementSpeed(str, Enum):
    SLOW = "slow"
    MODERATE = "moderate"
    FAST = "fast"


@dataclass(frozen=True)
class AnalysisMetrics:
    """Aggregate result of one batch analysis run."""
    frames_analyzed: int
    avg_angles: Dict[str, float]
    max_angles: Dict[str, float]
    min_angles: Dict[str, float]
    movement_speed: MovementSpeed
    compensations: List[str]
    reps_detected: int
    quality_score: int
    raw_angle_series: AngleSeries = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "frames_analyzed": self.frames_analyzed,
            "avg_angles": dict(self.avg_angles),
            "max_angles": dict(self.max_angles),
            "min_angles": dict(self.min_angles),
            "movement_speed": self.movement_speed.value,
            "compensations": list(self.compensations),
            "reps_detected": self.reps_detected,
            "quality_score": self.quality_score,
            "raw_angle_series": {k: list(v) for k, v in self.raw_angle_series.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisMetrics":
        """Rebuild metrics a caller kept from an earlier run."""
        try:
            return cls(
                frames_analyzed=int(data["frames_analyzed"]),
                avg_angles=dict(data.get("avg_angles") or {}),
                max_angles=dict(data.get("max_angles") or {}),
                min_angles=dict(data.get("min_angles") or {}),
                movement_speed=MovementSpeed(data.get("movement_speed", MovementSpeed.MODERATE.value)),
                compensations=list(data.get("compensations") or []),
                reps_detected=int(data.get("reps_detected", 0)),
                quality_score=int(data["quality_score"]),
                raw_angle_series={k: list(v) for k, v in (data.get("raw_angle_series") or {}).items()},
            )
        except KeyError as e:
            raise ValueError(f"analysis metrics missing field {e}") from e


def _average(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return float(np.mean(values))


def _round1(value: float) -> float:
    return float(np.floor(value * 10 + 0.5) / 10)


# ═══════════════════════════════════════════════════════════════════════════════
# PER-FRAME SERIES
# ═══════════════════════════════════════════════════════════════════════════════

def compute_angle_series(frames: Sequence[Frame]) -> AngleSeries:
    """
    Build every named series from frames with a complete landmark set.

    Incomplete frames are skipped entirely, never zero-filled.
    """
    series: AngleSeries = {}

    def push(key: str, value: float):
        series.setdefault(key, []).append(value)

    for frame in frames:
        lm = frame.landmarks
        if not lm.is_complete:
            logger.debug(f"Skipping frame {frame.timestamp}: {len(lm)}/{TOPOLOGY_SIZE} landmarks")
            continue

        # Shoulder abduction (hip-shoulder-elbow)
        push("left_abduction", angle_2d(lm[J.LEFT_HIP], lm[J.LEFT_SHOULDER], lm[J.LEFT_ELBOW]))
        push("right_abduction", angle_2d(lm[J.RIGHT_HIP], lm[J.RIGHT_SHOULDER], lm[J.RIGHT_ELBOW]))

        # Shoulder flexion (hip-shoulder-wrist)
        push("left_flexion", angle_2d(lm[J.LEFT_HIP], lm[J.LEFT_SHOULDER], lm[J.LEFT_WRIST]))
        push("right_flexion", angle_2d(lm[J.RIGHT_HIP], lm[J.RIGHT_SHOULDER], lm[J.RIGHT_WRIST]))

        # Elbow (shoulder-elbow-wrist)
        push("left_elbow", angle_2d(lm[J.LEFT_SHOULDER], lm[J.LEFT_ELBOW], lm[J.LEFT_WRIST]))
        push("right_elbow", angle_2d(lm[J.RIGHT_SHOULDER], lm[J.RIGHT_ELBOW], lm[J.RIGHT_WRIST]))

        # Shrug proxy: vertical shoulder-to-nose distance, not an angle
        nose_y = lm[J.NOSE].y
        push("shoulder_to_nose_left", lm[J.LEFT_SHOULDER].y - nose_y)
        push("shoulder_to_nose_right", lm[J.RIGHT_SHOULDER].y - nose_y)

        # Trunk (shoulder-hip-knee), left side
        push("trunk_angle", angle_2d(lm[J.LEFT_SHOULDER], lm[J.LEFT_HIP], lm[J.LEFT_KNEE]))

        # Left/right shoulder height gap
        push("shoulder_symmetry", abs(lm[J.LEFT_SHOULDER].y - lm[J.RIGHT_SHOULDER].y))

    return series


# ═══════════════════════════════════════════════════════════════════════════════
# HEURISTICS
# ═══════════════════════════════════════════════════════════════════════════════

def summarize_series(series: AngleSeries) -> Dict[str, Dict[str, float]]:
    """avg/max/min per series, rounded to one decimal."""
    avg_angles, max_angles, min_angles = {}, {}, {}
    for key, values in series.items():
        if not values:
            continue
        avg_angles[key] = _round1(_average(values))
        max_angles[key] = _round1(max(values))
        min_angles[key] = _round1(min(values))
    return {"avg": avg_angles, "max": max_angles, "min": min_angles}


def detect_compensations(series: AngleSeries, total_frames: int) -> List[str]:
    """
    Shoulder-shrug and left/right asymmetry checks, evaluated independently.

    Args:
        series: Per-frame series from compute_angle_series
        total_frames: Number of frames handed to the analysis
    """
    compensations: List[str] = []

    shoulder_to_nose = series.get("shoulder_to_nose_left")
    if shoulder_to_nose:
        mean_distance = _average(shoulder_to_nose)
        shrug_frames = sum(1 for d in shoulder_to_nose if d < mean_distance * SHRUG_DISTANCE_RATIO)
        if shrug_frames > total_frames * SHRUG_FRAME_RATIO:
            compensations.append(
                f"Shoulder shrug compensation detected ({shrug_frames}/{total_frames} frames)"
            )

    symmetry = series.get("shoulder_symmetry")
    if symmetry and _average(symmetry) > ASYMMETRY_THRESHOLD:
        compensations.append("Left-right shoulder height asymmetry detected")

    return compensations


def primary_series(series: AngleSeries) -> List[float]:
    """The movement signal used for speed and reps: left abduction, else left flexion."""
    return series.get("left_abduction") or series.get("left_flexion") or []


def classify_speed(values: Sequence[float]) -> MovementSpeed:
    """Classify by mean absolute frame-to-frame change."""
    if len(values) < 3:
        return MovementSpeed.MODERATE

    mean_delta = float(np.mean(np.abs(np.diff(values))))
    if mean_delta > FAST_DELTA_DEGREES:
        return MovementSpeed.FAST
    if mean_delta < SLOW_DELTA_DEGREES:
        return MovementSpeed.SLOW
    return MovementSpeed.MODERATE


def count_repetitions(values: Sequence[float]) -> int:
    """Count strict local maxima, excluding the first and last sample."""
    if len(values) < 3:
        return 0
    return sum(
        1 for i in range(1, len(values) - 1)
        if values[i] > values[i - 1] and values[i] > values[i + 1]
    )


def quality_score(compensations: Sequence[str], speed: MovementSpeed) -> int:
    """100, minus 15 per distinct compensation, minus 10 if fast; clamped to 0-100."""
    score = BASE_QUALITY_SCORE
    score -= len(set(compensations)) * COMPENSATION_PENALTY
    if speed == MovementSpeed.FAST:
        score -= FAST_SPEED_PENALTY
    return max(0, min(100, score))


# ═══════════════════════════════════════════════════════════════════════════════
# COVERAGE GATE
# ═══════════════════════════════════════════════════════════════════════════════

def average_visible_landmarks(frames: Sequence[Frame], threshold: Optional[float] = None) -> float:
    """Mean number of landmarks per frame with visibility above threshold."""
    if not frames:
        return 0.0
    threshold = settings.VISIBILITY_THRESHOLD if threshold is None else threshold
    return sum(f.landmarks.visible_count(threshold) for f in frames) / len(frames)


def check_coverage(frames: Sequence[Frame], minimum: Optional[int] = None) -> float:
    """
    Reject a batch whose landmarks are too sparse to score.

    Returns:
        The average visible landmark count
    Raises:
        DetectionCoverageError: no frames, or average below minimum
    """
    minimum = settings.COVERAGE_MIN_VISIBLE_LANDMARKS if minimum is None else minimum

    if not frames:
        raise DetectionCoverageError(
            "no body detected in any sampled frame",
            details={"frames": 0, "required_visible": minimum},
        )

    average = average_visible_landmarks(frames)
    if average < minimum:
        raise DetectionCoverageError(
            "only part of the body was detected; record again with the whole body in view",
            details={
                "frames": len(frames),
                "avg_visible_landmarks": round(average, 2),
                "required_visible": minimum,
            },
        )
    return average


# ═══════════════════════════════════════════════════════════════════════════════
# ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════════

@log_execution_time
def calculate_metrics(frames: Sequence[Frame]) -> AnalysisMetrics:
    """
    Compute the full AnalysisMetrics for a batch of frames.

    Args:
        frames: Detected frames in capture order

    Returns:
        AnalysisMetrics
    """
    series = compute_angle_series(frames)
    summary = summarize_series(series)
    compensations = detect_compensations(series, len(frames))

    primary = primary_series(series)
    speed = classify_speed(primary)
    reps = count_repetitions(primary)
    score = quality_score(compensations, speed)

    logger.info(
        f"📐 Metrics: {len(frames)} frames, speed={speed.value}, reps={reps}, "
        f"compensations={len(compensations)}, quality={score}"
    )

    return AnalysisMetrics(
        frames_analyzed=len(frames),
        avg_angles=summary["avg"],
        max_angles=summary["max"],
        min_angles=summary["min"],
        movement_speed=speed,
        compensations=compensations,
        reps_detected=reps,
        quality_score=score,
        raw_angle_series=series,
    )
