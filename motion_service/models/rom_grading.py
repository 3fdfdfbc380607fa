"""
REHABCOACH Motion Service - ROM Grading

Grades captured shoulder ROM against reference ranges. Unmeasured
movements are reported as not measured, never estimated.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .capture_session import ROMResult


class LimitationLevel(str, Enum):
    NORMAL = "normal"
    MODERATE = "moderate_limitation"
    SEVERE = "severe_limitation"
    NOT_MEASURED = "not_measured"


@dataclass(frozen=True)
class RomReference:
    """Reference range for one movement (degrees)."""
    normal_min: float
    normal_max: float
    moderate_min: float  # below this is a severe limitation


ROM_REFERENCE: Dict[str, RomReference] = {
    "flexion": RomReference(normal_min=150, normal_max=180, moderate_min=120),
    "abduction": RomReference(normal_min=150, normal_max=180, moderate_min=120),
    "external_rotation": RomReference(normal_min=60, normal_max=90, moderate_min=40),
}

# Arm elevation below this warrants a specialist visit
SEE_DOCTOR_ELEVATION_ANGLE = 90


@dataclass
class MovementGrade:
    movement: str
    value: Optional[float]
    level: LimitationLevel
    percent_of_normal: Optional[float] = None


@dataclass
class RomAssessment:
    grades: List[MovementGrade]
    see_doctor: bool = False
    see_doctor_reasons: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "grades": {
                g.movement: {
                    "value": g.value,
                    "level": g.level.value,
                    "normal_range": [
                        ROM_REFERENCE[g.movement].normal_min,
                        ROM_REFERENCE[g.movement].normal_max,
                    ],
                    "percent_of_normal": g.percent_of_normal,
                }
                for g in self.grades
            },
            "see_doctor": self.see_doctor,
            "see_doctor_reasons": self.see_doctor_reasons,
        }


def grade_movement(movement: str, value: Optional[float]) -> MovementGrade:
    """Grade a single movement value against its reference range."""
    reference = ROM_REFERENCE[movement]

    if value is None:
        return MovementGrade(movement=movement, value=None, level=LimitationLevel.NOT_MEASURED)

    if value >= reference.normal_min:
        level = LimitationLevel.NORMAL
    elif value >= reference.moderate_min:
        level = LimitationLevel.MODERATE
    else:
        level = LimitationLevel.SEVERE

    percent = min(100.0, round(value / reference.normal_min * 100, 1))
    return MovementGrade(movement=movement, value=value, level=level, percent_of_normal=percent)


def grade_rom(rom: ROMResult) -> RomAssessment:
    """Grade all three movements and raise the see-doctor flag if needed."""
    values = rom.to_dict()
    grades = [grade_movement(movement, values[movement]) for movement in ROM_REFERENCE]

    reasons = []
    for movement in ("flexion", "abduction"):
        value = values[movement]
        if value is not None and value < SEE_DOCTOR_ELEVATION_ANGLE:
            reasons.append(f"{movement} below {SEE_DOCTOR_ELEVATION_ANGLE}° ({value}°)")

    return RomAssessment(grades=grades, see_doctor=bool(reasons), see_doctor_reasons=reasons)
