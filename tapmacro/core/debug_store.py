"""Last successful match, kept for inspection.

Stores the snapshot (template id, capture-space point, score, time), a
crop of the frame around the point and an annotated copy of the frame.
"""

import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import mss.tools
import numpy as np

from .constants import DEBUG_CROP_SIZE
from .model import Frame

_BOX_HALF = 30
_CROSS_HALF = 36
_RED = (255, 0, 0)
_YELLOW = (255, 255, 0)


@dataclass(frozen=True)
class MatchSnapshot:
    template_id: str
    x: int
    y: int
    score: int
    timestamp: float


def crop_around(pixels: np.ndarray, x: int, y: int, size: int = DEBUG_CROP_SIZE) -> np.ndarray:
    """Copy of the size×size region centred on (x, y), clipped to the image."""
    height, width = pixels.shape[:2]
    half = size // 2
    left = min(max(x - half, 0), max(width - 1, 0))
    top = min(max(y - half, 0), max(height - 1, 0))
    right = min(max(x - half + size, 1), width)
    bottom = min(max(y - half + size, 1), height)
    return pixels[top:bottom, left:right, :3].copy()


def annotate(pixels: np.ndarray, x: int, y: int) -> np.ndarray:
    """RGB copy of pixels with a red box and yellow cross at (x, y)."""
    out = np.ascontiguousarray(pixels[..., :3]).copy()
    height, width = out.shape[:2]

    def hline(row: int, x0: int, x1: int, color: tuple[int, int, int]) -> None:
        if 0 <= row < height:
            out[row, max(x0, 0):min(x1, width)] = color

    def vline(col: int, y0: int, y1: int, color: tuple[int, int, int]) -> None:
        if 0 <= col < width:
            out[max(y0, 0):min(y1, height), col] = color

    left, right = x - _BOX_HALF, x + _BOX_HALF
    top, bottom = y - _BOX_HALF, y + _BOX_HALF
    hline(top, left, right + 1, _RED)
    hline(bottom, left, right + 1, _RED)
    vline(left, top, bottom + 1, _RED)
    vline(right, top, bottom + 1, _RED)
    hline(y, x - _CROSS_HALF, x + _CROSS_HALF + 1, _YELLOW)
    vline(x, y - _CROSS_HALF, y + _CROSS_HALF + 1, _YELLOW)
    return out


def to_png(rgb: np.ndarray, output: Optional[Union[str, Path]] = None) -> Optional[bytes]:
    """Encode an RGB array as PNG (bytes, or written to output)."""
    rgb = np.ascontiguousarray(rgb[..., :3], dtype=np.uint8)
    size = (rgb.shape[1], rgb.shape[0])
    return mss.tools.to_png(rgb.tobytes(), size, output=str(output) if output else None)


class DebugStore:
    """Holds the most recent match record. Thread-safe."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot: Optional[MatchSnapshot] = None
        self._crop: Optional[np.ndarray] = None
        self._overlay: Optional[np.ndarray] = None

    def record(self, template_id: str, x: int, y: int, score: int,
               frame: Optional[Frame] = None) -> MatchSnapshot:
        """Record a match at capture-space (x, y)."""
        snapshot = MatchSnapshot(template_id, x, y, score, time.time())
        crop = overlay = None
        if frame is not None:
            crop = crop_around(frame.pixels, x, y)
            overlay = annotate(frame.pixels, x, y)
        with self._lock:
            self._snapshot = snapshot
            self._crop = crop
            self._overlay = overlay
        return snapshot

    def snapshot(self) -> Optional[MatchSnapshot]:
        with self._lock:
            return self._snapshot

    def crop(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._crop

    def overlay(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._overlay

    def crop_png(self, output: Optional[Union[str, Path]] = None) -> Optional[bytes]:
        crop = self.crop()
        if crop is None or crop.size == 0:
            return None
        return to_png(crop, output)

    def overlay_png(self, output: Optional[Union[str, Path]] = None) -> Optional[bytes]:
        overlay = self.overlay()
        if overlay is None:
            return None
        return to_png(overlay, output)

    def clear(self) -> None:
        with self._lock:
            self._snapshot = None
            self._crop = None
            self._overlay = None
