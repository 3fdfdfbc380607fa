"""
REHABCOACH Motion Service - Live ROM Capture

Guided three-step shoulder range-of-motion capture driven frame by frame:

    intro -> flexion -> abduction -> external_rotation -> done

All session state lives in an immutable CaptureSession value. Every
operation is a pure transition returning (new_session, event), so the
flow is testable without a camera or rendering surface.

Hold-to-capture: once the peak exceeds AUTO_CAPTURE_MIN_ANGLE and the
current angle stays within HOLD_BAND_DEGREES of it for HOLD_SECONDS,
the step finalizes with the peak. Dropping more than RESET_BAND_DEGREES
below the peak resets the hold timer.

Known accuracy gap: flexion and abduction use the same joint triple and
the same 3D angle. Only the instruction text tells the user which plane to
move in; three-point geometry cannot tell the two apart.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .geometry import angle_3d
from .landmarks import Frame, JointType, LandmarkSet


# Hold-to-capture thresholds (degrees / seconds)
HOLD_SECONDS = 2.0
HOLD_BAND_DEGREES = 5
RESET_BAND_DEGREES = 10
AUTO_CAPTURE_MIN_ANGLE = 20
MANUAL_CAPTURE_MIN_ANGLE = 10


class CaptureStep(str, Enum):
    INTRO = "intro"
    FLEXION = "flexion"
    ABDUCTION = "abduction"
    EXTERNAL_ROTATION = "external_rotation"
    DONE = "done"


MEASUREMENT_STEPS = (CaptureStep.FLEXION, CaptureStep.ABDUCTION, CaptureStep.EXTERNAL_ROTATION)

_NEXT_STEP = {
    CaptureStep.INTRO: CaptureStep.FLEXION,
    CaptureStep.FLEXION: CaptureStep.ABDUCTION,
    CaptureStep.ABDUCTION: CaptureStep.EXTERNAL_ROTATION,
    CaptureStep.EXTERNAL_ROTATION: CaptureStep.DONE,
}


class TrackedSide(str, Enum):
    LEFT = "left"
    RIGHT = "right"


class CaptureEvent(str, Enum):
    """Outcome of a single transition."""
    STEP_STARTED = "step_started"
    TRACKING = "tracking"
    HOLD_PROGRESS = "hold_progress"
    HOLD_RESET = "hold_reset"
    CAPTURED = "captured"
    MANUAL_CAPTURE_REJECTED = "manual_capture_rejected"
    IGNORED = "ignored"
    NO_POSE = "no_pose"
    SESSION_DONE = "session_done"
    SESSION_SKIPPED = "session_skipped"


STEP_INSTRUCTIONS: Dict[CaptureStep, Dict[str, str]] = {
    CaptureStep.FLEXION: {
        "title": "Flexion",
        "instruction": "Slowly raise the affected arm forward, in front of your body",
    },
    CaptureStep.ABDUCTION: {
        "title": "Abduction",
        "instruction": "Slowly raise the affected arm out to the side",
    },
    CaptureStep.EXTERNAL_ROTATION: {
        "title": "External Rotation",
        "instruction": "Bend the elbow to 90° against your side and rotate the forearm outward",
    },
}


# ═══════════════════════════════════════════════════════════════════════════════
# SESSION VALUES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ROMResult:
    """Finalized range of motion per movement. None means not measured."""
    flexion: Optional[float] = None
    abduction: Optional[float] = None
    external_rotation: Optional[float] = None

    def get(self, step: CaptureStep) -> Optional[float]:
        return getattr(self, step.value)

    def with_value(self, step: CaptureStep, value: float) -> "ROMResult":
        """Set a field once; later writes to the same field are ignored."""
        if step not in MEASUREMENT_STEPS or self.get(step) is not None:
            return self
        return replace(self, **{step.value: value})

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {
            "flexion": self.flexion,
            "abduction": self.abduction,
            "external_rotation": self.external_rotation,
        }


@dataclass(frozen=True)
class CaptureSession:
    """Complete live capture state for one session."""
    side: TrackedSide = TrackedSide.RIGHT
    step: CaptureStep = CaptureStep.INTRO

    # Per-step tracking, reset at every step transition
    current_angle: float = 0
    max_angle: float = 0
    hold_elapsed: float = 0.0
    hold_started_ms: Optional[int] = None
    captured: bool = False

    rom: ROMResult = field(default_factory=ROMResult)
    skipped: bool = False

    @property
    def is_measuring(self) -> bool:
        return self.step in MEASUREMENT_STEPS

    @property
    def is_finished(self) -> bool:
        return self.step == CaptureStep.DONE

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "side": self.side.value,
            "step": self.step.value,
            "current_angle": self.current_angle,
            "max_angle": self.max_angle,
            "hold_elapsed": round(self.hold_elapsed, 2),
            "hold_target": HOLD_SECONDS,
            "captured": self.captured,
            "rom": self.rom.to_dict(),
            "skipped": self.skipped,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# ANGLE PER STEP
# ═══════════════════════════════════════════════════════════════════════════════

def step_joints(step: CaptureStep, side: TrackedSide) -> Tuple[JointType, JointType, JointType]:
    """Joint triple (a, vertex, c) measured for a step on the tracked side."""
    prefix = side.value.upper()
    shoulder = JointType[f"{prefix}_SHOULDER"]
    elbow = JointType[f"{prefix}_ELBOW"]

    if step in (CaptureStep.FLEXION, CaptureStep.ABDUCTION):
        return elbow, shoulder, JointType[f"{prefix}_HIP"]
    if step == CaptureStep.EXTERNAL_ROTATION:
        return shoulder, elbow, JointType[f"{prefix}_WRIST"]
    raise ValueError(f"No angle is measured during step '{step.value}'")


def measure_angle(step: CaptureStep, landmarks: LandmarkSet, side: TrackedSide) -> Optional[int]:
    """
    Step angle from one frame's landmarks, or None if the joints are missing.

    External rotation approximates forearm rotation about a 90° flexed
    elbow: clamp(|raw - 90|, 0, 90).
    """
    a, b, c = step_joints(step, side)
    if not landmarks.has(a, b, c):
        return None

    raw = angle_3d(landmarks[a], landmarks[b], landmarks[c])
    if step == CaptureStep.EXTERNAL_ROTATION:
        return max(0, min(90, abs(raw - 90)))
    return raw


# ═══════════════════════════════════════════════════════════════════════════════
# TRANSITIONS
# ═══════════════════════════════════════════════════════════════════════════════

def _reset_step(session: CaptureSession, step: CaptureStep) -> CaptureSession:
    return replace(
        session,
        step=step,
        current_angle=0,
        max_angle=0,
        hold_elapsed=0.0,
        hold_started_ms=None,
        captured=False,
    )


def start_session(side: TrackedSide = TrackedSide.RIGHT) -> CaptureSession:
    """New session waiting in the intro step."""
    return CaptureSession(side=side)


def advance(session: CaptureSession, frame: Frame) -> Tuple[CaptureSession, CaptureEvent]:
    """Apply one live frame (timestamp in ms) to the session."""
    if not session.is_measuring or session.captured:
        return session, CaptureEvent.IGNORED

    angle = measure_angle(session.step, frame.landmarks, session.side)
    if angle is None:
        return session, CaptureEvent.NO_POSE

    return advance_angle(session, angle, frame.timestamp)


def advance_angle(
    session: CaptureSession,
    angle: float,
    timestamp_ms: int,
) -> Tuple[CaptureSession, CaptureEvent]:
    """
    Apply an already-measured step angle to the session.

    Args:
        session: Current session
        angle: Step angle in degrees for this frame
        timestamp_ms: Frame timestamp in milliseconds

    Returns:
        Tuple of (updated session, event)
    """
    if not session.is_measuring or session.captured:
        return session, CaptureEvent.IGNORED

    max_angle = max(session.max_angle, angle)

    if angle >= max_angle - HOLD_BAND_DEGREES and max_angle > AUTO_CAPTURE_MIN_ANGLE:
        started = session.hold_started_ms if session.hold_started_ms is not None else timestamp_ms
        elapsed = max(0.0, (timestamp_ms - started) / 1000.0)

        if elapsed >= HOLD_SECONDS:
            return replace(
                session,
                current_angle=angle,
                max_angle=max_angle,
                hold_started_ms=started,
                hold_elapsed=HOLD_SECONDS,
                captured=True,
                rom=session.rom.with_value(session.step, max_angle),
            ), CaptureEvent.CAPTURED

        return replace(
            session,
            current_angle=angle,
            max_angle=max_angle,
            hold_started_ms=started,
            hold_elapsed=elapsed,
        ), CaptureEvent.HOLD_PROGRESS

    if angle < max_angle - RESET_BAND_DEGREES:
        event = CaptureEvent.HOLD_RESET if session.hold_started_ms is not None else CaptureEvent.TRACKING
        return replace(
            session,
            current_angle=angle,
            max_angle=max_angle,
            hold_started_ms=None,
            hold_elapsed=0.0,
        ), event

    # Between the hold band and the reset band the running hold is kept
    return replace(session, current_angle=angle, max_angle=max_angle), CaptureEvent.TRACKING


def manual_capture(session: CaptureSession) -> Tuple[CaptureSession, CaptureEvent]:
    """Finalize the current step with its peak, without the hold requirement."""
    if (
        not session.is_measuring
        or session.captured
        or session.max_angle <= MANUAL_CAPTURE_MIN_ANGLE
    ):
        return session, CaptureEvent.MANUAL_CAPTURE_REJECTED

    return replace(
        session,
        captured=True,
        rom=session.rom.with_value(session.step, session.max_angle),
    ), CaptureEvent.CAPTURED


def next_step(session: CaptureSession) -> Tuple[CaptureSession, CaptureEvent]:
    """Move to the next step. Uncaptured steps stay absent in the result."""
    if session.is_finished:
        return session, CaptureEvent.IGNORED

    step = _NEXT_STEP[session.step]
    new_session = _reset_step(session, step)
    if step == CaptureStep.DONE:
        return new_session, CaptureEvent.SESSION_DONE
    return new_session, CaptureEvent.STEP_STARTED


def skip(session: CaptureSession) -> Tuple[CaptureSession, CaptureEvent]:
    """End the whole session immediately with every ROM field absent."""
    return replace(
        _reset_step(session, CaptureStep.DONE),
        rom=ROMResult(),
        skipped=True,
    ), CaptureEvent.SESSION_SKIPPED
