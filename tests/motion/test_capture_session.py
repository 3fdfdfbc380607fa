"""Tests for the live ROM capture state machine."""

import pytest

from motion_service.models import (
    CaptureEvent,
    CaptureStep,
    Frame,
    LandmarkSet,
    ROMResult,
    TrackedSide,
    advance,
    advance_angle,
    manual_capture,
    next_step,
    skip,
    start_session,
)
from motion_service.models.capture_session import measure_angle, step_joints
from motion_service.models.landmarks import JointType as J

from motion_builders import make_landmarks, right_arm_raised, right_forearm


def at_step(step: CaptureStep):
    session = start_session()
    while session.step != step:
        session, _ = next_step(session)
    return session


def feed(session, samples):
    """Apply (angle, timestamp_ms) pairs; return the session and the event list."""
    events = []
    for angle, ts in samples:
        session, event = advance_angle(session, angle, ts)
        events.append(event)
    return session, events


# ============================================================================
# Test: step flow
# ============================================================================

class TestStepFlow:

    def test_starts_in_intro(self):
        session = start_session()
        assert session.step == CaptureStep.INTRO
        assert session.side == TrackedSide.RIGHT
        assert session.rom == ROMResult()

    def test_intro_ignores_frames(self):
        session = start_session()
        new_session, event = advance(session, Frame(0, right_arm_raised(100)))
        assert event == CaptureEvent.IGNORED
        assert new_session is session

    def test_linear_sequence(self):
        session = start_session()
        seen = []
        for _ in range(4):
            session, event = next_step(session)
            seen.append((session.step, event))

        assert seen == [
            (CaptureStep.FLEXION, CaptureEvent.STEP_STARTED),
            (CaptureStep.ABDUCTION, CaptureEvent.STEP_STARTED),
            (CaptureStep.EXTERNAL_ROTATION, CaptureEvent.STEP_STARTED),
            (CaptureStep.DONE, CaptureEvent.SESSION_DONE),
        ]
        assert next_step(session) == (session, CaptureEvent.IGNORED)

    def test_transition_resets_step_state_but_keeps_rom(self):
        session, _ = feed(at_step(CaptureStep.FLEXION), [(100, 0), (100, 2000)])
        assert session.captured

        session, _ = next_step(session)
        assert session.step == CaptureStep.ABDUCTION
        assert session.current_angle == 0
        assert session.max_angle == 0
        assert session.hold_elapsed == 0.0
        assert session.hold_started_ms is None
        assert not session.captured
        assert session.rom.flexion == 100

    def test_uncaptured_step_stays_absent(self):
        session, _ = feed(at_step(CaptureStep.ABDUCTION), [(60, 0), (70, 500)])
        session, _ = next_step(session)
        session, _ = next_step(session)
        assert session.step == CaptureStep.DONE
        assert session.rom.abduction is None

    def test_transitions_do_not_mutate(self):
        session = at_step(CaptureStep.FLEXION)
        feed(session, [(100, 0), (100, 2500)])
        assert session.max_angle == 0
        assert not session.captured


# ============================================================================
# Test: hold-to-capture
# ============================================================================

class TestHoldToCapture:

    def test_hold_for_two_seconds_captures_peak(self):
        session, events = feed(at_step(CaptureStep.FLEXION), [(100, 0), (100, 1000), (100, 2000)])
        assert events == [CaptureEvent.HOLD_PROGRESS, CaptureEvent.HOLD_PROGRESS, CaptureEvent.CAPTURED]
        assert session.captured
        assert session.rom.flexion == 100

    def test_hold_inside_band_captures_max_not_current(self):
        session, events = feed(at_step(CaptureStep.FLEXION), [(100, 0), (97, 1000), (96, 2000)])
        assert events[-1] == CaptureEvent.CAPTURED
        assert session.rom.flexion == 100

    def test_drop_at_1_9s_resets_hold(self):
        session, events = feed(at_step(CaptureStep.FLEXION), [(100, 0), (100, 1900), (85, 1900)])
        assert events == [CaptureEvent.HOLD_PROGRESS, CaptureEvent.HOLD_PROGRESS, CaptureEvent.HOLD_RESET]
        assert session.hold_elapsed == 0.0
        assert session.hold_started_ms is None
        assert not session.captured
        assert session.rom.flexion is None

        # The hold must be re-achieved from scratch
        session, events = feed(session, [(100, 2100), (100, 4000)])
        assert events == [CaptureEvent.HOLD_PROGRESS, CaptureEvent.HOLD_PROGRESS]
        assert not session.captured
        session, event = advance_angle(session, 100, 4100)
        assert event == CaptureEvent.CAPTURED

    def test_between_bands_keeps_running_hold(self):
        # 92 is 8 below the peak: outside the hold band, inside the reset band
        session, events = feed(at_step(CaptureStep.FLEXION), [(100, 0), (92, 1000), (100, 2000)])
        assert events == [CaptureEvent.HOLD_PROGRESS, CaptureEvent.TRACKING, CaptureEvent.CAPTURED]
        assert session.rom.flexion == 100

    def test_max_angle_never_decreases(self):
        session, _ = feed(at_step(CaptureStep.FLEXION), [(40, 0), (120, 100), (30, 200), (60, 300)])
        assert session.max_angle == 120
        assert session.current_angle == 60

    def test_small_motion_never_auto_captures(self):
        session, events = feed(at_step(CaptureStep.FLEXION), [(20, 0), (20, 3000), (20, 6000)])
        assert CaptureEvent.CAPTURED not in events
        assert not session.captured

    def test_frames_after_capture_are_ignored(self):
        session, _ = feed(at_step(CaptureStep.FLEXION), [(100, 0), (100, 2000)])
        new_session, event = advance_angle(session, 150, 2500)
        assert event == CaptureEvent.IGNORED
        assert new_session.rom.flexion == 100
        assert new_session.max_angle == 100


# ============================================================================
# Test: manual capture and skip
# ============================================================================

class TestManualCaptureAndSkip:

    def test_manual_capture_above_floor(self):
        session, _ = feed(at_step(CaptureStep.FLEXION), [(11, 0)])
        session, event = manual_capture(session)
        assert event == CaptureEvent.CAPTURED
        assert session.rom.flexion == 11

    def test_manual_capture_below_floor_is_noop(self):
        session, _ = feed(at_step(CaptureStep.FLEXION), [(9, 0)])
        new_session, event = manual_capture(session)
        assert event == CaptureEvent.MANUAL_CAPTURE_REJECTED
        assert new_session is session
        assert new_session.rom.flexion is None

    def test_manual_capture_only_once(self):
        session, _ = feed(at_step(CaptureStep.ABDUCTION), [(50, 0)])
        session, _ = manual_capture(session)
        session, _ = feed(session, [(80, 100)])
        session, event = manual_capture(session)
        assert event == CaptureEvent.MANUAL_CAPTURE_REJECTED
        assert session.rom.abduction == 50

    def test_manual_capture_outside_measurement(self):
        _, event = manual_capture(start_session())
        assert event == CaptureEvent.MANUAL_CAPTURE_REJECTED

    @pytest.mark.parametrize("step", [
        CaptureStep.INTRO,
        CaptureStep.FLEXION,
        CaptureStep.ABDUCTION,
        CaptureStep.EXTERNAL_ROTATION,
    ])
    def test_skip_clears_everything(self, step):
        session = at_step(step)
        if session.step == CaptureStep.FLEXION:
            session, _ = feed(session, [(100, 0), (100, 2000)])
        session, event = skip(session)
        assert event == CaptureEvent.SESSION_SKIPPED
        assert session.step == CaptureStep.DONE
        assert session.skipped
        assert session.rom == ROMResult(flexion=None, abduction=None, external_rotation=None)

    def test_skip_after_captures(self):
        session, _ = feed(at_step(CaptureStep.FLEXION), [(100, 0), (100, 2000)])
        session, _ = next_step(session)
        session, _ = feed(session, [(90, 0), (90, 2000)])
        assert session.rom.abduction == 90

        session, _ = skip(session)
        assert session.rom.to_dict() == {"flexion": None, "abduction": None, "external_rotation": None}


# ============================================================================
# Test: angle per step
# ============================================================================

class TestStepAngles:

    def test_flexion_and_abduction_share_joints(self):
        expected = (J.RIGHT_ELBOW, J.RIGHT_SHOULDER, J.RIGHT_HIP)
        assert step_joints(CaptureStep.FLEXION, TrackedSide.RIGHT) == expected
        assert step_joints(CaptureStep.ABDUCTION, TrackedSide.RIGHT) == expected

    def test_left_side_joints(self):
        assert step_joints(CaptureStep.EXTERNAL_ROTATION, TrackedSide.LEFT) == (
            J.LEFT_SHOULDER, J.LEFT_ELBOW, J.LEFT_WRIST,
        )

    def test_no_angle_outside_measurement(self):
        with pytest.raises(ValueError):
            step_joints(CaptureStep.DONE, TrackedSide.RIGHT)

    def test_flexion_angle_from_landmarks(self):
        assert measure_angle(CaptureStep.FLEXION, right_arm_raised(120), TrackedSide.RIGHT) == 120

    @pytest.mark.parametrize("wrist, expected", [
        ((0.4, 0.6, 0.0), 90),    # forearm straight down, raw 180
        ((0.3, 0.5, 0.0), 0),     # elbow bent to 90
        ((0.35, 0.5 - 0.1 * (3 ** 0.5 / 2), 0.0), 60),  # raw 30
    ])
    def test_external_rotation_transform(self, wrist, expected):
        assert measure_angle(CaptureStep.EXTERNAL_ROTATION, right_forearm(wrist), TrackedSide.RIGHT) == expected

    def test_advance_uses_landmarks(self):
        session, event = advance(at_step(CaptureStep.FLEXION), Frame(0, right_arm_raised(100)))
        assert event == CaptureEvent.HOLD_PROGRESS
        assert session.current_angle == 100

    def test_missing_joints_are_ignored(self):
        partial = LandmarkSet(list(make_landmarks())[:14])
        session = at_step(CaptureStep.FLEXION)
        new_session, event = advance(session, Frame(0, partial))
        assert event == CaptureEvent.NO_POSE
        assert new_session is session


# ============================================================================
# Test: ROM result
# ============================================================================

class TestROMResult:

    def test_each_field_set_once(self):
        rom = ROMResult().with_value(CaptureStep.FLEXION, 120)
        assert rom.with_value(CaptureStep.FLEXION, 150).flexion == 120

    def test_non_measurement_step_is_ignored(self):
        rom = ROMResult()
        assert rom.with_value(CaptureStep.DONE, 50) is rom
