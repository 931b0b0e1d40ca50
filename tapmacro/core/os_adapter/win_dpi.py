"""Windows DPI awareness setup.

MUST be called BEFORE Qt/QApplication initialization and before the
first capture, so that mss pixels and pynput coordinates share the same
physical scale on high-DPI displays.
"""

import ctypes
from typing import Final

# Windows API constants
DPI_AWARENESS_CONTEXT_PER_MONITOR_AWARE_V2: Final[int] = -4
PROCESS_PER_MONITOR_DPI_AWARE: Final[int] = 2
ERROR_ACCESS_DENIED: Final[int] = 5

_FAILED_WARNING: Final[str] = (
    "⚠️ DPI感知设置失败,坐标可能偏移。建议在100%缩放下运行"
)


def setup_dpi_awareness() -> tuple[bool, str]:
    """Set Per-Monitor DPI awareness for the current process.

    Returns:
        Tuple of (success, warning_message).
        - (True, "") if setup succeeded or was already set
        - (False, warning_message) if setup failed
    """
    try:
        user32 = ctypes.windll.user32
        # DPI_AWARENESS_CONTEXT is a HANDLE (pointer-sized)
        user32.SetProcessDpiAwarenessContext.argtypes = [ctypes.c_void_p]
        user32.SetProcessDpiAwarenessContext.restype = ctypes.c_bool

        if user32.SetProcessDpiAwarenessContext(
            ctypes.c_void_p(DPI_AWARENESS_CONTEXT_PER_MONITOR_AWARE_V2)
        ):
            return True, ""

        # Already set by manifest or an earlier call
        if ctypes.windll.kernel32.GetLastError() == ERROR_ACCESS_DENIED:
            return True, ""
        return False, _FAILED_WARNING

    except AttributeError:
        # Pre-1703 Windows: fall back to the shcore API (Windows 8.1+)
        try:
            ctypes.windll.shcore.SetProcessDpiAwareness(PROCESS_PER_MONITOR_DPI_AWARE)
            return True, ""
        except (AttributeError, OSError):
            return False, _FAILED_WARNING

    except OSError as e:
        return False, f"⚠️ DPI设置异常: {e}"


def get_dpi_scale_factor() -> float:
    """Get the DPI scale factor for the primary monitor.

    Returns:
        Scale factor (1.0 = 100%, 1.25 = 125%, 1.5 = 150%, etc.)
    """
    try:
        return ctypes.windll.user32.GetDpiForSystem() / 96.0
    except (AttributeError, OSError):
        return 1.0
