"""
REHABCOACH Motion Service - Angle Geometry

Closed-form joint angles at a vertex b formed by landmarks a-b-c.

- angle_3d: depth-aware vector angle, used by live ROM capture
- angle_2d: planar image-space angle, used by batch motion metrics
"""

import numpy as np

from .landmarks import Landmark


def _round_half_up(value: float, digits: int = 0) -> float:
    scale = 10 ** digits
    return float(np.floor(value * scale + 0.5) / scale)


def angle_3d(a: Landmark, b: Landmark, c: Landmark) -> int:
    """
    Calculate angle at b from vectors BA and BC in 3D.

    Args:
        a, b, c: Landmarks (b is the vertex)

    Returns:
        Angle in whole degrees (0-180). Returns 0 when either vector has
        zero length (occluded or collapsed landmarks).
    """
    ba = a.to_numpy() - b.to_numpy()
    bc = c.to_numpy() - b.to_numpy()

    mag_ba = np.linalg.norm(ba)
    mag_bc = np.linalg.norm(bc)
    if mag_ba == 0 or mag_bc == 0:
        return 0

    cosine_angle = np.clip(np.dot(ba, bc) / (mag_ba * mag_bc), -1.0, 1.0)
    degrees = np.degrees(np.arccos(cosine_angle))

    return int(_round_half_up(degrees))


def angle_2d(a: Landmark, b: Landmark, c: Landmark) -> float:
    """
    Calculate planar angle at b using image x/y only.

    Returns:
        Angle in degrees folded into 0-180, rounded to one decimal.
    """
    radians = np.arctan2(c.y - b.y, c.x - b.x) - np.arctan2(a.y - b.y, a.x - b.x)
    angle = abs(np.degrees(radians))

    if angle > 180.0:
        angle = 360.0 - angle

    return _round_half_up(angle, 1)
