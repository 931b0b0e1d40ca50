"""Tests for the last-match debug store."""

import numpy as np

from tapmacro.core.debug_store import DebugStore, annotate, crop_around, to_png
from tapmacro.core.model import Frame

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


def _frame(width: int = 200, height: int = 200) -> Frame:
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[..., 1] = 50
    return Frame.from_array(pixels)


class TestCrop:
    def test_centred(self) -> None:
        crop = crop_around(_frame().pixels, 110, 70)
        assert crop.shape == (100, 100, 3)

    def test_clipped_at_corner(self) -> None:
        """Crops near the edge shrink rather than wrap."""
        assert crop_around(_frame().pixels, 5, 5).shape == (55, 55, 3)
        assert crop_around(_frame().pixels, 199, 199).shape == (51, 51, 3)

    def test_point_outside_frame_keeps_one_pixel(self) -> None:
        crop = crop_around(_frame().pixels, -500, 900)
        assert crop.shape[0] >= 1 and crop.shape[1] >= 1


class TestAnnotate:
    def test_box_and_cross(self) -> None:
        pixels = _frame().pixels
        out = annotate(pixels, 100, 100)
        assert tuple(out[70, 70]) == (255, 0, 0)
        assert tuple(out[130, 130]) == (255, 0, 0)
        assert tuple(out[100, 100]) == (255, 255, 0)
        assert tuple(out[100, 136]) == (255, 255, 0)
        assert tuple(out[50, 50]) == (0, 50, 0)
        # Source untouched
        assert tuple(pixels[70, 70]) == (0, 50, 0, 0)

    def test_near_edge(self) -> None:
        out = annotate(_frame(40, 40).pixels, 2, 2)
        assert out.shape == (40, 40, 3)
        assert tuple(out[20, 32]) == (255, 0, 0)


class TestDebugStore:
    def test_empty(self) -> None:
        store = DebugStore()
        assert store.snapshot() is None
        assert store.crop_png() is None
        assert store.overlay_png() is None

    def test_record_with_frame(self) -> None:
        store = DebugStore()
        snapshot = store.record("ok", 110, 70, 934, _frame())
        assert store.snapshot() == snapshot
        assert snapshot.score == 934
        assert store.crop().shape == (100, 100, 3)
        assert store.overlay().shape == (200, 200, 3)
        assert store.crop_png().startswith(PNG_MAGIC)

    def test_record_without_frame(self) -> None:
        store = DebugStore()
        store.record("ok", 1, 2, 800)
        assert store.snapshot().template_id == "ok"
        assert store.crop() is None

    def test_png_to_file(self, tmp_path) -> None:
        store = DebugStore()
        store.record("ok", 50, 50, 1000, _frame())
        path = tmp_path / "overlay.png"
        assert store.overlay_png(path) is None
        assert path.read_bytes().startswith(PNG_MAGIC)

    def test_clear(self) -> None:
        store = DebugStore()
        store.record("ok", 1, 2, 800, _frame())
        store.clear()
        assert store.snapshot() is None
        assert store.overlay() is None


def test_to_png_bytes() -> None:
    data = to_png(np.zeros((3, 4, 3), dtype=np.uint8))
    assert data.startswith(PNG_MAGIC)
