"""UI components for tapmacro.

This package provides PySide6-based UI components:
- MarkerOverlay: Magenta calibration markers drawn over the target monitor
"""

from .marker_overlay import MarkerOverlay

__all__ = [
    "MarkerOverlay",
]
