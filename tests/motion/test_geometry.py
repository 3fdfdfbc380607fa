"""Tests for the 3D and planar joint-angle functions."""

import pytest

from motion_service.models import Landmark, angle_2d, angle_3d


def lm(x, y, z=0.0):
    return Landmark(x=x, y=y, z=z, visibility=1.0)


# ============================================================================
# Test: 3D angle
# ============================================================================

class TestAngle3D:

    def test_right_angle(self):
        assert angle_3d(lm(1, 0), lm(0, 0), lm(0, 1)) == 90

    def test_straight_line(self):
        assert angle_3d(lm(-1, 0), lm(0, 0), lm(1, 0)) == 180

    def test_same_direction(self):
        assert angle_3d(lm(1, 0), lm(0, 0), lm(2, 0)) == 0

    def test_uses_depth(self):
        # In the image plane these points are collinear; depth opens the angle
        assert angle_3d(lm(1, 0, 0), lm(0, 0, 0), lm(0, 0, 1)) == 90

    def test_rounds_to_whole_degrees(self):
        result = angle_3d(lm(1, 0), lm(0, 0), lm(1, 1))
        assert result == 45
        assert isinstance(result, int)

    @pytest.mark.parametrize("a, b, c", [
        (lm(0.3, 0.3), lm(0.3, 0.3), lm(0.5, 0.1)),
        (lm(0.5, 0.1), lm(0.3, 0.3), lm(0.3, 0.3)),
        (lm(0, 0), lm(0, 0), lm(0, 0)),
    ])
    def test_degenerate_vector_returns_zero(self, a, b, c):
        assert angle_3d(a, b, c) == 0

    def test_deterministic_and_in_range(self):
        points = (lm(0.12, 0.81, -0.3), lm(0.44, 0.52, 0.1), lm(0.93, 0.07, 0.25))
        first = angle_3d(*points)
        assert first == angle_3d(*points)
        assert 0 <= first <= 180


# ============================================================================
# Test: planar angle
# ============================================================================

class TestAngle2D:

    def test_right_angle(self):
        assert angle_2d(lm(1, 0), lm(0, 0), lm(0, 1)) == 90.0

    def test_order_of_arms_does_not_matter(self):
        assert angle_2d(lm(0, 1), lm(0, 0), lm(1, 0)) == 90.0

    def test_folds_reflex_angles(self):
        # atan2 difference is 270 degrees here; folded to 90
        assert angle_2d(lm(0, -1), lm(0, 0), lm(-1, 0)) == 90.0

    def test_ignores_depth(self):
        assert angle_2d(lm(1, 0, 5.0), lm(0, 0, -2.0), lm(0, 1, 3.0)) == 90.0

    def test_one_decimal(self):
        # 30 degrees exactly from a 1:sqrt(3) triangle
        assert angle_2d(lm(1, 0), lm(0, 0), lm(3 ** 0.5, 1)) == 30.0
        assert angle_2d(lm(1, 0), lm(0, 0), lm(1, 0.3)) == 16.7

    def test_in_range(self):
        for c in (lm(-1, -0.01), lm(-1, 0.01), lm(0.2, -3), lm(-5, 2)):
            assert 0.0 <= angle_2d(lm(1, 0), lm(0, 0), c) <= 180.0
