"""Screen capture frame source using mss.

Grabs one monitor, converts BGRA to an RGBA Frame and keeps the content
rect estimate current. See ScreenFrameSource.
"""

import threading
import time
from typing import Optional

import mss
import numpy as np

from .constants import CAPTURE_RETRY_INTERVAL_MS, CAPTURE_RETRY_N
from .content_rect import ContentRectTracker
from .logging import Logger, get_logger
from .model import Frame, Rect
from .pixels import bgra_to_rgba

# mss keeps per-thread OS handles (GDI on Windows), so each thread needs
# its own instance
_thread_local = threading.local()


def _get_mss() -> "mss.mss":
    """Get or create the thread-local mss instance."""
    if getattr(_thread_local, "mss_instance", None) is None:
        _thread_local.mss_instance = mss.mss()
    return _thread_local.mss_instance


def _reset_mss() -> None:
    """Drop the thread-local mss instance (call on error recovery)."""
    instance = getattr(_thread_local, "mss_instance", None)
    _thread_local.mss_instance = None
    if instance is not None:
        try:
            instance.close()
        except Exception:
            pass


class CaptureError(Exception):
    """Exception raised when screen capture fails after retries."""

    pass


def grab_monitor(
    monitor: int = 1,
    retry_count: int = CAPTURE_RETRY_N,
    retry_interval_ms: int = CAPTURE_RETRY_INTERVAL_MS,
) -> Frame:
    """Capture one monitor as an RGBA frame.

    Args:
        monitor: mss monitor index (1 = primary, 0 = all monitors)
        retry_count: Number of attempts before giving up
        retry_interval_ms: Milliseconds between attempts

    Returns:
        Frame in RGBA channel order

    Raises:
        CaptureError: If capture fails after all retries
    """
    last_error: Optional[Exception] = None

    for attempt in range(retry_count):
        try:
            sct = _get_mss()
            screenshot = sct.grab(sct.monitors[monitor])
            # (height, width, 4) BGRA
            image = np.array(screenshot)
            return Frame.from_array(np.ascontiguousarray(bgra_to_rgba(image)))
        except Exception as e:
            last_error = e
            # The instance may be in a bad state
            _reset_mss()
            if attempt < retry_count - 1:
                time.sleep(retry_interval_ms / 1000.0)

    raise CaptureError(
        f"截图失败,已重试{retry_count}次。最后错误: {last_error}"
    )


class ScreenFrameSource:
    """Frame source backed by live screen grabs.

    Each latest_frame() call grabs the monitor and feeds the content-rect
    tracker; capture failures are logged and reported as None.
    """

    def __init__(
        self,
        monitor: int = 1,
        tracker: Optional[ContentRectTracker] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self._monitor = monitor
        self._logger = logger or get_logger()
        self._tracker = tracker or ContentRectTracker(logger=self._logger)
        self._lock = threading.Lock()
        self._last: Optional[Frame] = None

    @property
    def monitor(self) -> int:
        return self._monitor

    @property
    def last_frame(self) -> Optional[Frame]:
        """Most recent successful grab without capturing again."""
        with self._lock:
            return self._last

    def latest_frame(self) -> Optional[Frame]:
        try:
            frame = grab_monitor(self._monitor)
        except CaptureError as e:
            self._logger.warning(str(e))
            return None
        self._tracker.update(frame)
        with self._lock:
            self._last = frame
        return frame

    def frame_size(self) -> tuple[int, int]:
        frame = self.last_frame
        if frame is None:
            frame = self.latest_frame()
        if frame is None:
            return (0, 0)
        return (frame.width, frame.height)

    def content_rect(self) -> Rect:
        if self.last_frame is None:
            self.latest_frame()
        return self._tracker.current()
