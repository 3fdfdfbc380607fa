"""Tests for the batch motion metrics engine and the coverage gate."""

import pytest

from motion_service.models import (
    AnalysisMetrics,
    DetectionCoverageError,
    ErrorCode,
    Frame,
    LandmarkSet,
    MovementSpeed,
    calculate_metrics,
    check_coverage,
)
from motion_service.models.landmarks import JointType as J
from motion_service.models.motion_metrics import (
    average_visible_landmarks,
    classify_speed,
    compute_angle_series,
    count_repetitions,
    detect_compensations,
    primary_series,
    quality_score,
    summarize_series,
)

from motion_builders import make_frames, make_landmarks


EXPECTED_SERIES = {
    "left_abduction",
    "right_abduction",
    "left_flexion",
    "right_flexion",
    "left_elbow",
    "right_elbow",
    "shoulder_to_nose_left",
    "shoulder_to_nose_right",
    "trunk_angle",
    "shoulder_symmetry",
}


# ============================================================================
# Test: per-frame series
# ============================================================================

class TestAngleSeries:

    def test_all_series_present(self):
        series = compute_angle_series(make_frames(3))
        assert set(series) == EXPECTED_SERIES
        assert all(len(values) == 3 for values in series.values())

    def test_incomplete_frames_are_skipped(self):
        complete = Frame(0, make_landmarks())
        partial = Frame(1, LandmarkSet(list(make_landmarks())[:20]))
        series = compute_angle_series([complete, partial, complete])
        assert all(len(values) == 2 for values in series.values())

    def test_shrug_proxy_and_symmetry(self):
        series = compute_angle_series(make_frames(1))
        assert series["shoulder_to_nose_left"][0] == pytest.approx(0.15)
        assert series["shoulder_symmetry"][0] == pytest.approx(0.0)

    def test_abduction_uses_hip_shoulder_elbow(self):
        # Left arm straight out to the side at shoulder height
        landmarks = make_landmarks({
            J.LEFT_SHOULDER: (0.6, 0.35, 0.0),
            J.LEFT_HIP: (0.6, 0.65, 0.0),
            J.LEFT_ELBOW: (0.75, 0.35, 0.0),
        })
        series = compute_angle_series([Frame(0, landmarks)])
        assert series["left_abduction"] == [90.0]

    def test_primary_series_falls_back_to_flexion(self):
        assert primary_series({"left_flexion": [1.0, 2.0]}) == [1.0, 2.0]
        assert primary_series({"left_abduction": [3.0], "left_flexion": [1.0]}) == [3.0]
        assert primary_series({}) == []

    def test_summary_rounds_to_one_decimal(self):
        summary = summarize_series({"x": [1.2, 1.44]})
        assert summary["avg"]["x"] == 1.3
        assert summary["max"]["x"] == 1.4
        assert summary["min"]["x"] == 1.2


# ============================================================================
# Test: heuristics
# ============================================================================

class TestHeuristics:

    def test_peak_counting(self):
        assert count_repetitions([10, 30, 20, 5, 25, 15]) == 2

    def test_endpoints_and_plateaus_are_not_peaks(self):
        assert count_repetitions([50, 10, 60]) == 0
        assert count_repetitions([10, 20, 20, 10]) == 0

    def test_short_series_has_no_reps(self):
        assert count_repetitions([10, 30]) == 0

    @pytest.mark.parametrize("values, expected", [
        ([0, 40, 80], MovementSpeed.FAST),
        ([10, 12, 14], MovementSpeed.SLOW),
        ([10, 20, 30], MovementSpeed.MODERATE),
        ([10, 100], MovementSpeed.MODERATE),
    ])
    def test_speed_classification(self, values, expected):
        assert classify_speed(values) == expected

    def test_quality_score_penalties(self):
        flags = ["a", "b", "c"]
        assert quality_score(flags, MovementSpeed.FAST) == 45
        assert quality_score(flags, MovementSpeed.SLOW) == 55
        assert quality_score([], MovementSpeed.MODERATE) == 100

    def test_quality_score_clamped(self):
        flags = [f"flag {i}" for i in range(10)]
        assert quality_score(flags, MovementSpeed.FAST) == 0

    def test_duplicate_flags_count_once(self):
        assert quality_score(["same", "same"], MovementSpeed.MODERATE) == 85

    def test_shrug_detected_with_frame_count(self):
        series = {"shoulder_to_nose_left": [0.15, 0.15, 0.05, 0.05, 0.15]}
        compensations = detect_compensations(series, total_frames=5)
        assert len(compensations) == 1
        assert "shrug" in compensations[0].lower()
        assert "(2/5 frames)" in compensations[0]

    def test_single_shrug_frame_not_flagged(self):
        series = {"shoulder_to_nose_left": [0.15, 0.15, 0.15, 0.15, 0.05]}
        assert detect_compensations(series, total_frames=5) == []

    def test_asymmetry(self):
        assert len(detect_compensations({"shoulder_symmetry": [0.06, 0.07]}, 2)) == 1
        assert detect_compensations({"shoulder_symmetry": [0.04, 0.05]}, 2) == []

    def test_both_compensations_independent(self):
        series = {
            "shoulder_to_nose_left": [0.15, 0.05, 0.05],
            "shoulder_symmetry": [0.1, 0.1, 0.1],
        }
        assert len(detect_compensations(series, 3)) == 2


# ============================================================================
# Test: coverage gate
# ============================================================================

class TestCoverageGate:

    def test_sixteen_visible_passes(self):
        assert check_coverage(make_frames(5, visible=16)) == 16.0

    def test_fifteen_visible_fails(self):
        with pytest.raises(DetectionCoverageError) as exc:
            check_coverage(make_frames(5, visible=15))
        assert exc.value.code == ErrorCode.DETECTION_COVERAGE_LOW
        assert not exc.value.retryable

    def test_average_across_frames(self):
        frames = make_frames(2, visible=17) + make_frames(2, visible=15)
        assert average_visible_landmarks(frames) == 16.0
        check_coverage(frames)

    def test_visibility_must_exceed_threshold(self):
        frames = make_frames(1, visibility=0.5)
        assert average_visible_landmarks(frames) == 0.0

    def test_no_frames_fails(self):
        with pytest.raises(DetectionCoverageError):
            check_coverage([])


# ============================================================================
# Test: full metrics
# ============================================================================

class TestCalculateMetrics:

    def test_steady_pose(self):
        metrics = calculate_metrics(make_frames(5))
        assert metrics.frames_analyzed == 5
        assert metrics.movement_speed == MovementSpeed.SLOW
        assert metrics.reps_detected == 0
        assert metrics.compensations == []
        assert metrics.quality_score == 100
        assert set(metrics.avg_angles) == EXPECTED_SERIES

    def test_to_dict_is_json_ready(self):
        data = calculate_metrics(make_frames(3)).to_dict()
        assert data["movement_speed"] == "slow"
        assert data["quality_score"] == 100
        assert len(data["raw_angle_series"]["left_elbow"]) == 3

    def test_rebuilt_from_dict(self):
        metrics = calculate_metrics(make_frames(3))
        assert AnalysisMetrics.from_dict(metrics.to_dict()) == metrics

    def test_from_dict_requires_score(self):
        with pytest.raises(ValueError):
            AnalysisMetrics.from_dict({"frames_analyzed": 3})
