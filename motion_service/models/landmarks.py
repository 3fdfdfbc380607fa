"""
REHABCOACH Motion Service - Landmark Model

Shared data types for pose landmarks: the fixed 33-point body topology,
single landmarks, per-frame landmark sets and frames.
"""

import numpy as np
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence
from enum import Enum


# Number of landmarks in the pose topology
TOPOLOGY_SIZE = 33


class JointType(Enum):
    """Body joint indices of the pose topology. Positions are fixed."""
    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_PINKY = 17
    RIGHT_PINKY = 18
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_THUMB = 21
    RIGHT_THUMB = 22
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32


@dataclass(frozen=True)
class Landmark:
    """A single pose landmark with 3D coordinates and visibility."""
    x: float
    y: float
    z: float
    visibility: float = 0.0

    def to_numpy(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=float)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z, "visibility": self.visibility}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Landmark":
        return cls(
            x=float(data["x"]),
            y=float(data["y"]),
            z=float(data.get("z", 0.0)),
            visibility=float(data.get("visibility") or 0.0),
        )


class LandmarkSet:
    """
    Ordered landmark collection indexed by JointType.

    A complete set holds exactly TOPOLOGY_SIZE landmarks in topology order.
    Detectors may hand back fewer points; such sets are kept as-is and
    reported through `is_complete` so consumers can skip them.
    """

    __slots__ = ("_points",)

    def __init__(self, points: Iterable[Landmark]):
        points = tuple(points)
        if len(points) > TOPOLOGY_SIZE:
            raise ValueError(f"Landmark set holds at most {TOPOLOGY_SIZE} points, got {len(points)}")
        self._points = points

    def __getitem__(self, joint: JointType) -> Landmark:
        return self._points[joint.value]

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self):
        return iter(self._points)

    def __eq__(self, other) -> bool:
        return isinstance(other, LandmarkSet) and self._points == other._points

    def __repr__(self) -> str:
        return f"LandmarkSet({len(self._points)} points)"

    @property
    def is_complete(self) -> bool:
        return len(self._points) == TOPOLOGY_SIZE

    def has(self, *joints: JointType) -> bool:
        """True if every given joint is present in this set."""
        return all(joint.value < len(self._points) for joint in joints)

    def get(self, joint: JointType) -> Optional[Landmark]:
        if joint.value < len(self._points):
            return self._points[joint.value]
        return None

    def visible_count(self, threshold: float = 0.5) -> int:
        """Number of landmarks with visibility strictly above threshold."""
        return sum(1 for lm in self._points if lm.visibility > threshold)

    def to_list(self) -> List[Dict[str, float]]:
        return [lm.to_dict() for lm in self._points]

    @classmethod
    def from_list(cls, data: Sequence[Dict[str, Any]]) -> "LandmarkSet":
        return cls(Landmark.from_dict(item) for item in data)


@dataclass(frozen=True)
class Frame:
    """One sampled or live frame: ordinal/ms timestamp plus its landmarks."""
    timestamp: int
    landmarks: LandmarkSet

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON shape sent as raw joint data."""
        return {
            "timestamp": self.timestamp,
            "landmarks": self.landmarks.to_list(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Frame":
        return cls(
            timestamp=int(data.get("timestamp", 0)),
            landmarks=LandmarkSet.from_list(data.get("landmarks") or []),
        )
