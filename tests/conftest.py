"""Shared fakes for engine, calibrator and controller tests.

Nothing here touches a real screen or input device.
"""

import threading
import time
from typing import Callable, Optional

import numpy as np
import pytest

from tapmacro.core.logging import Logger
from tapmacro.core.model import DisplayInfo, Frame, Insets, PhysSize, Rect, Template


class StaticFrameSource:
    """Frame source returning whatever frame was last set."""

    def __init__(self, frame: Optional[Frame] = None, content: Optional[Rect] = None) -> None:
        self._frame = frame
        self._content = content
        self.calls = 0

    def set_frame(self, frame: Optional[Frame]) -> None:
        self._frame = frame

    def latest_frame(self) -> Optional[Frame]:
        self.calls += 1
        return self._frame

    def frame_size(self) -> tuple[int, int]:
        if self._frame is None:
            return (0, 0)
        return (self._frame.width, self._frame.height)

    def content_rect(self) -> Rect:
        if self._content is not None:
            return self._content
        return Rect.from_size(*self.frame_size())


class RecordingGestureSink:
    """Gesture sink that records every call."""

    def __init__(self, scheduled: bool = True) -> None:
        self.calls: list[tuple] = []
        self._scheduled = scheduled
        self._lock = threading.Lock()

    def _record(self, *call) -> None:
        with self._lock:
            self.calls.append(call)

    def tap(self, x: float, y: float, duration_ms: int) -> bool:
        self._record("tap", x, y, duration_ms)
        return self._scheduled

    def swipe(self, x1: float, y1: float, x2: float, y2: float, duration_ms: int) -> bool:
        self._record("swipe", x1, y1, x2, y2, duration_ms)
        return self._scheduled

    def back(self) -> None:
        self._record("back")

    def home(self) -> None:
        self._record("home")

    def recent(self) -> None:
        self._record("recent")


class StaticDisplayInfo:
    def __init__(self, info: Optional[DisplayInfo]) -> None:
        self.info = info

    def display_info(self) -> Optional[DisplayInfo]:
        return self.info


class DictTemplates:
    def __init__(self, *templates: Template) -> None:
        self._templates = {t.id: t for t in templates}

    def get(self, template_id: str) -> Optional[Template]:
        return self._templates.get(template_id)


def wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
    """Poll predicate until true or timeout; returns the final result."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def random_rgb(height: int, width: int, seed: int = 0, low: int = 0, high: int = 256) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.integers(low, high, size=(height, width, 3), dtype=np.uint8)


@pytest.fixture
def logger() -> Logger:
    """Fresh logger so tests can inspect their own entries."""
    return Logger()


@pytest.fixture(scope="session")
def qt_app():
    """Core application for signal delivery and QThread workers."""
    QtCore = pytest.importorskip("PySide6.QtCore")
    return QtCore.QCoreApplication.instance() or QtCore.QCoreApplication([])


@pytest.fixture
def display_1000() -> DisplayInfo:
    return DisplayInfo(phys=PhysSize(1000, 1000), insets=Insets())


@pytest.fixture
def fakes():
    """Access to the fake collaborator classes and helpers."""

    class Fakes:
        FrameSource = StaticFrameSource
        GestureSink = RecordingGestureSink
        DisplayInfo = StaticDisplayInfo
        Templates = DictTemplates

    Fakes.wait_until = staticmethod(wait_until)
    Fakes.random_rgb = staticmethod(random_rgb)
    return Fakes
