"""Platform-specific adapters for Windows, macOS and Linux.

This module provides cross-platform abstractions for:
- DPI awareness (Windows)
- Input injection (tap/swipe/system actions)
- Physical display information (dispatch-space size)
"""

import sys
from typing import TYPE_CHECKING, Optional

# Platform detection
IS_WINDOWS: bool = sys.platform == "win32"
IS_MACOS: bool = sys.platform == "darwin"
IS_LINUX: bool = sys.platform.startswith("linux")

if TYPE_CHECKING:
    from ..model import DisplayInfo


def get_display_info(monitor: int = 1) -> Optional["DisplayInfo"]:
    """Get the physical size of a monitor as dispatch-space display info.

    Desktop monitors have no system bars reserved for gestures, so insets
    are zero.

    Args:
        monitor: mss monitor index (1 = primary, 0 = all monitors combined)

    Returns:
        DisplayInfo, or None if the monitor cannot be queried
    """
    from ..logging import get_logger
    from ..model import DisplayInfo, Insets, PhysSize

    try:
        import mss

        with mss.mss() as sct:
            mon = sct.monitors[monitor]
            return DisplayInfo(
                phys=PhysSize(width=mon["width"], height=mon["height"]),
                insets=Insets(),
            )
    except Exception as e:
        get_logger().warning(f"无法获取显示器 {monitor} 信息: {type(e).__name__}: {e}")
        return None


def get_monitor_origin(monitor: int = 1) -> tuple[int, int]:
    """Virtual-desktop position of a monitor's top-left corner.

    Returns:
        (left, top), or (0, 0) if the monitor cannot be queried
    """
    try:
        import mss

        with mss.mss() as sct:
            mon = sct.monitors[monitor]
            return (mon["left"], mon["top"])
    except Exception:
        return (0, 0)


def get_screen_count() -> int:
    """Get the number of connected displays.

    Returns:
        Number of displays, or 1 if detection fails.
    """
    try:
        import mss

        with mss.mss() as sct:
            # monitors[0] is virtual desktop, rest are individual monitors
            return len(sct.monitors) - 1
    except Exception:
        return 1


class DesktopDisplayInfo:
    """Display info source bound to one mss monitor index."""

    def __init__(self, monitor: int = 1) -> None:
        self._monitor = monitor

    @property
    def monitor(self) -> int:
        return self._monitor

    def display_info(self) -> Optional["DisplayInfo"]:
        return get_display_info(self._monitor)


# Convenience re-exports
__all__ = [
    "IS_WINDOWS",
    "IS_MACOS",
    "IS_LINUX",
    "get_display_info",
    "get_monitor_origin",
    "get_screen_count",
    "DesktopDisplayInfo",
]
