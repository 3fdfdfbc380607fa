#!/usr/bin/env python3
"""
Live Shoulder ROM Capture
=========================
Runs the guided flexion / abduction / external rotation capture against a
local camera and prints the graded result.

Hold the arm at its highest point for two seconds to capture a step, or use
the keyboard:

    n   next step (also starts the first step)
    c   capture the current peak now
    s   skip the whole assessment
    q   quit without a result

Usage Examples:
---------------
python -m scripts.live_rom_capture --side right
python -m scripts.live_rom_capture --camera 1 --model ml_models/pose_landmarker_full.task
"""

import argparse
import logging
import sys
from typing import Any, Dict

import cv2
import numpy as np

from core.config import settings
from motion_service.models import (
    CameraStream,
    DetectionFailure,
    DetectorMode,
    LiveCaptureController,
    MotionServiceError,
    PoseDetector,
    TrackedSide,
)
from shared.utils import setup_logger

logger = setup_logger("rehabcoach.live_capture")

WINDOW_NAME = "REHABCOACH - ROM capture"

KEY_COMMANDS = {
    ord("n"): "next",
    ord("c"): "capture",
    ord("s"): "skip",
}


def draw_overlay(image: np.ndarray, snapshot: Dict[str, Any]):
    """Draw step, angles and hold progress onto the camera image."""
    session = snapshot["session"]
    instruction = snapshot.get("instruction") or {}

    lines = [
        f"{instruction.get('title', session['step'])}",
        f"angle {session['current_angle']}  max {session['max_angle']}",
        f"hold {session['hold_elapsed']:.1f}/{session['hold_target']:.0f}s",
    ]
    if session["captured"]:
        lines.append("captured - press n")

    for i, text in enumerate(lines):
        cv2.putText(image, text, (16, 32 + i * 28), cv2.FONT_HERSHEY_SIMPLEX, 0.8, (0, 255, 0), 2)

    hint = instruction.get("instruction")
    if hint:
        cv2.putText(image, hint, (16, image.shape[0] - 16), cv2.FONT_HERSHEY_SIMPLEX, 0.5, (255, 255, 255), 1)


def print_summary(snapshot: Dict[str, Any]):
    """Print the graded ROM result."""
    assessment = snapshot.get("assessment") or {}

    print("\n" + "=" * 60)
    print("📊 SHOULDER ROM RESULT")
    print("=" * 60)

    if snapshot["session"]["skipped"]:
        print("   Assessment skipped - nothing was measured")

    for movement, grade in assessment.get("grades", {}).items():
        value = "-" if grade["value"] is None else f"{grade['value']}°"
        low, high = grade["normal_range"]
        print(f"   {movement:20s}: {value:>6s}  {grade['level']:20s} (normal {low}-{high}°)")

    if assessment.get("see_doctor"):
        print("\n⚠️  Please consult a specialist:")
        for reason in assessment["see_doctor_reasons"]:
            print(f"   - {reason}")

    print("=" * 60)


def run_capture(args: argparse.Namespace) -> int:
    camera = CameraStream(args.camera)
    detector = PoseDetector(args.model, mode=DetectorMode.VIDEO)

    try:
        camera.open()
        detector.open()
    except MotionServiceError as e:
        logger.error(f"❌ {e.code.value}: {e.message}")
        camera.close()
        return 1

    controller = LiveCaptureController(detector, TrackedSide(args.side))
    snapshot = controller.command("next")

    try:
        for timestamp_ms, image in camera.frames():
            try:
                snapshot = controller.process_image(image, timestamp_ms)
            except DetectionFailure as e:
                logger.warning(f"Frame dropped: {e.message}")

            if snapshot["type"] == "captured":
                step = snapshot["session"]["step"]
                logger.info(f"✅ {step} captured at {snapshot['session']['max_angle']}°")

            draw_overlay(image, snapshot)
            cv2.imshow(WINDOW_NAME, image)

            key = cv2.waitKey(1) & 0xFF
            if key == ord("q"):
                logger.info("Capture cancelled")
                return 1
            if key in KEY_COMMANDS:
                snapshot = controller.command(KEY_COMMANDS[key])

            if controller.is_finished:
                print_summary(snapshot)
                return 0

        logger.error("❌ Camera stream ended before the assessment finished")
        return 1
    finally:
        controller.close()
        camera.close()
        cv2.destroyAllWindows()


def parse_arguments() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description='Guided shoulder range-of-motion capture from a local camera',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        '--camera',
        type=int,
        default=0,
        help='Camera device index (default: 0)'
    )
    parser.add_argument(
        '--side',
        choices=[side.value for side in TrackedSide],
        default=TrackedSide.RIGHT.value,
        help='Arm to measure (default: right)'
    )
    parser.add_argument(
        '--model',
        type=str,
        default=settings.POSE_MODEL_PATH,
        help=f'PoseLandmarker .task bundle (default: {settings.POSE_MODEL_PATH})'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose/debug logging'
    )
    return parser.parse_args()


def main():
    args = parse_arguments()
    if args.verbose:
        logger.setLevel(logging.DEBUG)
        logging.getLogger("motion_service").setLevel(logging.DEBUG)
    sys.exit(run_capture(args))


if __name__ == '__main__':
    main()
