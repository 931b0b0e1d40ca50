"""Tests for content-rect detection and the refresh tracker.

Verifies that:
- Uniform letterbox/pillarbox borders are trimmed
- A uniform frame keeps its full extent (over-trim safeguard)
- The tracker re-detects only when stale, degenerate or resized
"""

import numpy as np
import pytest

from tapmacro.core.content_rect import (
    ContentRectTracker,
    border_columns,
    detect_content_rect,
)
from tapmacro.core.model import Frame, Rect


def _bordered_frame(
    width: int,
    height: int,
    left: int,
    top: int,
    right: int,
    bottom: int,
    seed: int = 1,
) -> Frame:
    """Black frame with random content inside [left, right) x [top, bottom)."""
    rng = np.random.default_rng(seed)
    pixels = np.zeros((height, width, 3), dtype=np.uint8)
    pixels[top:bottom, left:right] = rng.integers(
        50, 250, size=(bottom - top, right - left, 3), dtype=np.uint8
    )
    return Frame.from_array(pixels, timestamp=0.0)


class TestDetectContentRect:
    """Test border trimming."""

    def test_black_border_all_sides(self) -> None:
        """200x200 frame with a 20px black border should give (20,20,180,180)."""
        frame = _bordered_frame(200, 200, 20, 20, 180, 180)
        assert detect_content_rect(frame) == Rect(20, 20, 180, 180)

    def test_letterbox_top_bottom(self) -> None:
        """Horizontal bars only trim rows."""
        frame = _bordered_frame(320, 240, 0, 30, 320, 210)
        assert detect_content_rect(frame) == Rect(0, 30, 320, 210)

    def test_pillarbox_left_right(self) -> None:
        """Vertical bars only trim columns."""
        frame = _bordered_frame(400, 200, 40, 0, 360, 200)
        assert detect_content_rect(frame) == Rect(40, 0, 360, 200)

    @pytest.mark.parametrize("size", [(1, 1), (37, 53), (640, 360)])
    def test_uniform_frame_keeps_full_extent(self, size: tuple[int, int]) -> None:
        """A uniform frame would trim to nothing, so it falls back to full."""
        width, height = size
        pixels = np.full((height, width, 3), 90, dtype=np.uint8)
        frame = Frame.from_array(pixels)
        assert detect_content_rect(frame) == Rect(0, 0, width, height)

    def test_excessive_trim_falls_back_per_axis(self) -> None:
        """Content narrower than 60% keeps full width but still trims rows."""
        # 50% wide content, 80% tall
        frame = _bordered_frame(200, 200, 50, 20, 150, 180)
        assert detect_content_rect(frame) == Rect(0, 20, 200, 180)

    def test_uses_buffer_dimensions(self) -> None:
        """Declared size is ignored in favour of the buffer's actual shape."""
        frame = _bordered_frame(200, 200, 20, 20, 180, 180)
        stale = Frame(pixels=frame.pixels, width=100, height=50)
        assert detect_content_rect(stale) == Rect(20, 20, 180, 180)

    def test_low_variance_column_is_border(self) -> None:
        """Small noise below the threshold still counts as border."""
        luma = np.zeros((96, 2), dtype=np.int32)
        luma[::2, 0] = 3  # variance 2.25
        luma[::2, 1] = 200
        assert border_columns(luma).tolist() == [True, False]


class TestContentRectTracker:
    """Test the caller-side refresh policy."""

    def _tracker(self, clock: list[float]) -> ContentRectTracker:
        return ContentRectTracker(refresh_sec=1.5, clock=lambda: clock[0])

    def test_current_is_full_frame_before_detection(self) -> None:
        """No detection yet means an empty estimate."""
        tracker = self._tracker([0.0])
        assert tracker.current() == Rect(0, 0, 0, 0)

    def test_cached_until_stale(self) -> None:
        """Within the refresh interval the previous rect is reused."""
        clock = [0.0]
        tracker = self._tracker(clock)
        first = _bordered_frame(200, 200, 20, 20, 180, 180)
        assert tracker.update(first) == Rect(20, 20, 180, 180)

        # Same size, different borders
        second = _bordered_frame(200, 200, 10, 10, 190, 190)
        clock[0] = 1.0
        assert tracker.update(second) == Rect(20, 20, 180, 180)

        clock[0] = 2.0
        assert tracker.update(second) == Rect(10, 10, 190, 190)
        assert tracker.current() == Rect(10, 10, 190, 190)

    def test_size_change_forces_detection(self) -> None:
        """A resized frame is re-detected immediately."""
        clock = [0.0]
        tracker = self._tracker(clock)
        tracker.update(_bordered_frame(200, 200, 20, 20, 180, 180))

        clock[0] = 0.1
        rotated = _bordered_frame(300, 200, 30, 0, 270, 200)
        assert tracker.update(rotated) == Rect(30, 0, 270, 200)

    def test_reset_forces_detection(self) -> None:
        """reset() makes the next update re-detect."""
        clock = [0.0]
        tracker = self._tracker(clock)
        tracker.update(_bordered_frame(200, 200, 20, 20, 180, 180))
        tracker.reset()
        assert tracker.current() == Rect(0, 0, 200, 200)

        clock[0] = 0.1
        assert tracker.update(_bordered_frame(200, 200, 10, 10, 190, 190)) == Rect(10, 10, 190, 190)
