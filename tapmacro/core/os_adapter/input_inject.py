"""Desktop gesture sink using pynput.

Taps and swipes become mouse press/move/release sequences; the system
actions Back/Home/Recent become platform keyboard shortcuts. Gestures run
on a single background worker so the engine never blocks on them.
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional, Sequence, Union

from pynput.keyboard import Controller as KeyboardController
from pynput.keyboard import Key
from pynput.mouse import Button
from pynput.mouse import Controller as MouseController

from ..logging import Logger, get_logger
from . import IS_MACOS

# Pointer update period while swiping
SWIPE_STEP_SEC = 0.01

HotKey = Sequence[Union[Key, str]]

if IS_MACOS:
    BACK_KEYS: HotKey = (Key.cmd, "[")
    HOME_KEYS: HotKey = (Key.cmd, Key.f3)
    RECENT_KEYS: HotKey = (Key.ctrl, Key.up)
else:
    # Key.cmd is the Windows/Super key
    BACK_KEYS = (Key.alt, Key.left)
    HOME_KEYS = (Key.cmd, "d")
    RECENT_KEYS = (Key.cmd, Key.tab)


def swipe_path(
    x1: float, y1: float, x2: float, y2: float, duration_ms: int,
    step_sec: float = SWIPE_STEP_SEC,
) -> list[tuple[int, int]]:
    """Intermediate pointer positions for a swipe, end point included."""
    steps = max(1, int(duration_ms / 1000.0 / step_sec))
    return [
        (round(x1 + (x2 - x1) * i / steps), round(y1 + (y2 - y1) * i / steps))
        for i in range(1, steps + 1)
    ]


class DesktopGestureSink:
    """Gesture sink driving the real mouse and keyboard.

    Args:
        origin: Virtual-desktop position of dispatch-space (0, 0), i.e. the
            top-left of the monitor being automated
        logger: Logger instance (uses global if None)
        sleep: Sleep function (injectable for tests)
    """

    def __init__(
        self,
        origin: tuple[int, int] = (0, 0),
        logger: Optional[Logger] = None,
        sleep: Callable[[float], None] = time.sleep,
        mouse: Optional[MouseController] = None,
        keyboard: Optional[KeyboardController] = None,
    ) -> None:
        self._origin = origin
        self._logger = logger or get_logger()
        self._sleep = sleep
        self._mouse = mouse or MouseController()
        self._keyboard = keyboard or KeyboardController()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="gesture")
        self._closed = False
        # Makes the closed check and submit atomic with respect to close()
        self._lock = threading.Lock()

    def _desktop(self, x: float, y: float) -> tuple[int, int]:
        return (round(x) + self._origin[0], round(y) + self._origin[1])

    def _submit(self, name: str, fn: Callable[[], None]) -> Optional[Future]:
        with self._lock:
            if self._closed:
                self._logger.warning(f"手势通道已关闭, 丢弃 {name}")
                return None
            try:
                future = self._executor.submit(fn)
            except RuntimeError as e:
                # Executor shut down underneath us (interpreter exit)
                self._logger.warning(f"手势通道不可用, 丢弃 {name}: {e}")
                return None
        future.add_done_callback(lambda f: self._report(name, f))
        return future

    def _report(self, name: str, future: Future) -> None:
        error = future.exception()
        if error is not None:
            self._logger.exception(f"{name} 执行失败", error)

    def tap(self, x: float, y: float, duration_ms: int) -> bool:
        target = self._desktop(x, y)

        def press() -> None:
            self._mouse.position = target
            self._mouse.press(Button.left)
            self._sleep(duration_ms / 1000.0)
            self._mouse.release(Button.left)

        return self._submit("tap", press) is not None

    def swipe(self, x1: float, y1: float, x2: float, y2: float, duration_ms: int) -> bool:
        start = self._desktop(x1, y1)
        path = [self._desktop(px, py) for px, py in swipe_path(x1, y1, x2, y2, duration_ms)]
        step_sec = duration_ms / 1000.0 / len(path)

        def drag() -> None:
            self._mouse.position = start
            self._mouse.press(Button.left)
            try:
                for position in path:
                    self._sleep(step_sec)
                    self._mouse.position = position
            finally:
                self._mouse.release(Button.left)

        return self._submit("swipe", drag) is not None

    def _hotkey(self, name: str, keys: HotKey) -> None:
        *modifiers, key = keys

        def send() -> None:
            with self._keyboard.pressed(*modifiers):
                self._keyboard.press(key)
                self._keyboard.release(key)

        self._submit(name, send)

    def back(self) -> None:
        self._hotkey("back", BACK_KEYS)

    def home(self) -> None:
        self._hotkey("home", HOME_KEYS)

    def recent(self) -> None:
        self._hotkey("recent", RECENT_KEYS)

    def close(self, wait: bool = True) -> None:
        """Stop accepting gestures and shut the worker down.

        Gestures already accepted still run.
        """
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)
