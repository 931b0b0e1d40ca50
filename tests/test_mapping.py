"""Tests for coordinate mapping.

Verifies that:
- The deterministic transform follows insets and content rect
- dispatch→capture→dispatch round-trips
- Invalid geometry yields None instead of raising
- A calibrated affine replaces the deterministic transform
"""

import pytest

from tapmacro.core.mapping import (
    CoordinateMapper,
    affine_capture_to_dispatch,
    affine_dispatch_to_capture,
    build_spaces,
    capture_to_dispatch,
    compute_map_params,
    dispatch_to_capture,
)
from tapmacro.core.model import Affine, DisplayInfo, Insets, PhysSize, Point, Rect, Spaces


@pytest.fixture
def phone_spaces() -> Spaces:
    """Tall phone with status and navigation bars."""
    return Spaces(
        phys=PhysSize(1080, 2220),
        insets=Insets(left=0, top=80, right=0, bottom=60),
        content=Rect(0, 0, 1080, 2000),
    )


class TestDeterministicMapping:
    """Test the Spaces-derived transform."""

    def test_gesture_area(self, phone_spaces: Spaces) -> None:
        assert phone_spaces.gesture_area_w == 1080
        assert phone_spaces.gesture_area_h == 2080

    def test_phone_scenario(self, phone_spaces: Spaces) -> None:
        """(540, 1040) maps to captureY = (1040 - 80) * 2000 / 2080."""
        point = dispatch_to_capture(540, 1040, phone_spaces)
        assert point is not None
        assert point.x == pytest.approx(540.0)
        assert point.y == pytest.approx(923.0769, abs=1e-3)

    def test_params(self, phone_spaces: Spaces) -> None:
        params = compute_map_params(phone_spaces)
        assert params is not None
        assert params.scale_x == pytest.approx(1.0)
        assert params.scale_y == pytest.approx(2000 / 2080)
        assert params.offset_x == pytest.approx(0.0)
        assert params.offset_y == pytest.approx(-80 * 2000 / 2080)

    def test_content_offset_and_left_inset(self) -> None:
        """Pillarboxed content and a left inset shift the offset."""
        spaces = Spaces(
            phys=PhysSize(1000, 500),
            insets=Insets(left=100),
            content=Rect(50, 0, 500, 250),
        )
        # scale 450/900 = 0.5, offsetX = 50 - 100*0.5 = 0
        point = dispatch_to_capture(100, 0, spaces)
        assert point == Point(50.0, 0.0)
        point = dispatch_to_capture(1000, 500, spaces)
        assert point == Point(500.0, 250.0)

    @pytest.mark.parametrize(
        "x,y",
        [(0, 0), (540, 1040), (1079.5, 2219.25), (-10, 3000), (333.3, 77.7)],
    )
    def test_round_trip(self, phone_spaces: Spaces, x: float, y: float) -> None:
        """capture_to_dispatch(dispatch_to_capture(p)) == p."""
        captured = dispatch_to_capture(x, y, phone_spaces)
        back = capture_to_dispatch(captured.x, captured.y, phone_spaces)
        assert back.x == pytest.approx(x, abs=1e-3)
        assert back.y == pytest.approx(y, abs=1e-3)

    @pytest.mark.parametrize(
        "spaces",
        [
            None,
            Spaces(PhysSize(100, 100), Insets(left=60, right=40), Rect(0, 0, 100, 100)),
            Spaces(PhysSize(100, 100), Insets(top=100), Rect(0, 0, 100, 100)),
            Spaces(PhysSize(100, 100), Insets(), Rect(0, 0, 0, 100)),
            Spaces(PhysSize(100, 100), Insets(), Rect(10, 10, 5, 50)),
        ],
    )
    def test_invalid_geometry_returns_none(self, spaces) -> None:
        assert compute_map_params(spaces) is None
        assert dispatch_to_capture(1, 1, spaces) is None
        assert capture_to_dispatch(1, 1, spaces) is None


class TestBuildSpaces:
    def test_combines_both_sides(self) -> None:
        info = DisplayInfo(PhysSize(800, 600), Insets(top=20))
        spaces = build_spaces(info, Rect(0, 0, 400, 290))
        assert spaces == Spaces(PhysSize(800, 600), Insets(top=20), Rect(0, 0, 400, 290))

    def test_missing_side(self) -> None:
        assert build_spaces(None, Rect(0, 0, 1, 1)) is None
        assert build_spaces(DisplayInfo(PhysSize(1, 1)), None) is None


class TestAffine:
    """Test the calibrated transform path."""

    def test_map_and_inverse(self) -> None:
        affine = Affine(a=1.5, b=0.1, c=-0.2, d=0.9, tx=12.0, ty=-7.0)
        p = affine_dispatch_to_capture(100, 200, affine)
        assert p.x == pytest.approx(1.5 * 100 + 0.1 * 200 + 12)
        assert p.y == pytest.approx(-0.2 * 100 + 0.9 * 200 - 7)

        back = affine_capture_to_dispatch(p.x, p.y, affine)
        assert back.x == pytest.approx(100)
        assert back.y == pytest.approx(200)

    def test_singular_inverse(self) -> None:
        singular = Affine(a=1, b=2, c=2, d=4, tx=0, ty=0)
        assert affine_capture_to_dispatch(1, 1, singular) is None
        with pytest.raises(ValueError):
            singular.inverse()


class TestCoordinateMapper:
    def test_deterministic_without_affine(self, phone_spaces: Spaces) -> None:
        mapper = CoordinateMapper()
        assert mapper.affine is None
        assert mapper.to_capture(540, 1040, phone_spaces) == dispatch_to_capture(540, 1040, phone_spaces)
        assert mapper.to_dispatch(540, 923, phone_spaces) == capture_to_dispatch(540, 923, phone_spaces)

    def test_affine_replaces_deterministic(self, phone_spaces: Spaces) -> None:
        """With an affine installed, Spaces are not consulted."""
        mapper = CoordinateMapper()
        mapper.set_affine(Affine(a=2, b=0, c=0, d=2, tx=10, ty=20))

        assert mapper.to_capture(5, 5, None) == Point(20.0, 30.0)
        back = mapper.to_dispatch(20, 30, None)
        assert back.x == pytest.approx(5)
        assert back.y == pytest.approx(5)

        mapper.set_affine(None)
        assert mapper.to_dispatch(20, 30, None) is None

    def test_singular_affine_rejected(self) -> None:
        mapper = CoordinateMapper()
        with pytest.raises(ValueError):
            mapper.set_affine(Affine(a=0, b=0, c=0, d=0, tx=1, ty=1))
        assert mapper.affine is None
