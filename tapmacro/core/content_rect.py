"""Content-rect (letterbox/pillarbox) detection.

Finds the sub-rectangle of a frame holding real content by trimming
uniform border columns and rows. A column (row) is border when the
luminance variance of a sparse sample along it is below a fixed threshold.
"""

import threading
import time
from typing import Callable, Optional

import numpy as np

from .constants import (
    BORDER_SAMPLE_COUNT,
    BORDER_VARIANCE_THRESHOLD,
    CONTENT_RECT_REFRESH_SEC,
    MIN_CONTENT_FRACTION,
)
from .logging import Logger, get_logger
from .model import Frame, Rect
from .pixels import to_luminance


def border_columns(luma: np.ndarray, threshold: float = BORDER_VARIANCE_THRESHOLD) -> np.ndarray:
    """Classify every column of a luminance buffer as border or not.

    Samples each column with stride max(1, height // 96).
    """
    height = luma.shape[0]
    step = max(1, height // BORDER_SAMPLE_COUNT)
    samples = luma[::step, :].astype(np.float64)
    return samples.var(axis=0) < threshold


def border_rows(luma: np.ndarray, threshold: float = BORDER_VARIANCE_THRESHOLD) -> np.ndarray:
    """Classify every row of a luminance buffer as border or not."""
    width = luma.shape[1]
    step = max(1, width // BORDER_SAMPLE_COUNT)
    samples = luma[:, ::step].astype(np.float64)
    return samples.var(axis=1) < threshold


def _trim(is_border: np.ndarray, size: int) -> tuple[int, int]:
    """Advance inward from both ends while border; returns inclusive bounds."""
    low = 0
    while low < size - 1 and is_border[low]:
        low += 1
    high = size - 1
    while high > low and is_border[high]:
        high -= 1

    # Over-trimmed (e.g. a uniform frame): keep the full extent
    if high - low + 1 < int(size * MIN_CONTENT_FRACTION):
        return 0, size - 1
    return low, high


def detect_content_rect(frame: Frame) -> Rect:
    """Detect the active content area of a frame.

    Dimensions are taken from the pixel buffer on every call.

    Args:
        frame: Captured frame

    Returns:
        Rect with exclusive right/bottom; full frame when nothing is trimmed
        or the trim would leave less than 60% of an axis
    """
    height, width = frame.pixels.shape[:2]
    if width <= 0 or height <= 0:
        return Rect(0, 0, 0, 0)

    luma = to_luminance(frame.pixels)
    left, right = _trim(border_columns(luma), width)
    top, bottom = _trim(border_rows(luma), height)

    return Rect(left, top, right + 1, bottom + 1)


class ContentRectTracker:
    """Caller-side throttle around detect_content_rect.

    Re-detects only when the current rect is degenerate, the frame size
    changed, or the last detection is older than the refresh interval.
    """

    def __init__(
        self,
        refresh_sec: float = CONTENT_RECT_REFRESH_SEC,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[Logger] = None,
    ) -> None:
        self._refresh_sec = refresh_sec
        self._clock = clock
        self._logger = logger or get_logger()
        self._lock = threading.Lock()
        self._rect = Rect(0, 0, 0, 0)
        self._frame_size = (0, 0)
        self._last_detect: Optional[float] = None

    def update(self, frame: Frame) -> Rect:
        """Feed a frame; re-detect if due. Returns the current rect."""
        height, width = frame.pixels.shape[:2]
        now = self._clock()
        with self._lock:
            if (width, height) != self._frame_size:
                self._frame_size = (width, height)
                self._rect = Rect.from_size(width, height)
                self._last_detect = None

            stale = self._last_detect is None or now - self._last_detect > self._refresh_sec
            if not stale and self._rect.is_valid():
                return self._rect

        rect = detect_content_rect(frame)
        with self._lock:
            if (width, height) == self._frame_size:
                self._rect = rect
                self._last_detect = now
        self._logger.debug(f"contentRect={rect} frame={width}x{height}")
        return rect

    def current(self) -> Rect:
        """Best current estimate; full frame if nothing detected yet."""
        with self._lock:
            if self._rect.is_valid():
                return self._rect
            return Rect.from_size(*self._frame_size)

    def reset(self) -> None:
        """Forget the last detection (next update re-detects)."""
        with self._lock:
            self._rect = Rect.from_size(*self._frame_size)
            self._last_detect = None
