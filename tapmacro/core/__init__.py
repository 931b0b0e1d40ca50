"""Core matching, mapping and macro engine.

This package provides the core functionality for tapmacro:
- Data models (Frame, Template, Spaces, Affine, ExecutionStatus, etc.)
- Content-rect detection and template matching
- Coordinate mapping and 3-point calibration
- Macro parsing and the execution engine
- Logging with circular buffer
- Platform-specific adapters
"""

from .constants import (
    ALPHA_THRESHOLD,
    CALIB_SEARCH_RADIUS_PX,
    DEFAULT_MIN_SCORE,
    IMAGE_GESTURE_TIMEOUT_MS,
    LOG_BUFFER_SIZE,
    POLL_INTERVAL_MS,
    SCORE_MAX,
)
from .model import (
    Affine,
    DisplayInfo,
    EngineConfig,
    ExecutionStatus,
    Frame,
    Insets,
    MapParams,
    MatchResult,
    PhysSize,
    Point,
    Rect,
    Spaces,
    State,
    Template,
)

__all__ = [
    # Constants
    "ALPHA_THRESHOLD",
    "SCORE_MAX",
    "DEFAULT_MIN_SCORE",
    "POLL_INTERVAL_MS",
    "IMAGE_GESTURE_TIMEOUT_MS",
    "CALIB_SEARCH_RADIUS_PX",
    "LOG_BUFFER_SIZE",
    # Models
    "State",
    "Point",
    "Rect",
    "Insets",
    "PhysSize",
    "DisplayInfo",
    "Spaces",
    "MapParams",
    "Affine",
    "Frame",
    "Template",
    "MatchResult",
    "ExecutionStatus",
    "EngineConfig",
]
