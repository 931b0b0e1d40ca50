"""Coordinate mapping between capture space and dispatch space.

Two interchangeable transforms are exposed:
- Deterministic: derived per call from a Spaces snapshot (physical size,
  insets, content rect)
- Calibrated: an Affine produced by the 3-point calibrator

Spaces are never cached here; callers pass a fresh snapshot every call so
rotation or resize is picked up immediately.
"""

import threading
from typing import Optional

from .logging import Logger, get_logger
from .model import Affine, DisplayInfo, MapParams, Point, Rect, Spaces
from .os_adapter.validation import validate_spaces


def build_spaces(info: Optional[DisplayInfo], content: Optional[Rect]) -> Optional[Spaces]:
    """Assemble a Spaces snapshot from both sides of the mapping.

    Returns:
        Spaces, or None if either side is unavailable
    """
    if info is None or content is None:
        return None
    return Spaces(phys=info.phys, insets=info.insets, content=content)


def compute_map_params(spaces: Optional[Spaces]) -> Optional[MapParams]:
    """Derive dispatch→capture scale and offset from a Spaces snapshot.

    Returns:
        MapParams, or None if the gesture area or content rect is empty
    """
    if not validate_spaces(spaces):
        return None
    scale_x = spaces.content.width / spaces.gesture_area_w
    scale_y = spaces.content.height / spaces.gesture_area_h
    return MapParams(
        scale_x=scale_x,
        scale_y=scale_y,
        offset_x=spaces.content.left - spaces.insets.left * scale_x,
        offset_y=spaces.content.top - spaces.insets.top * scale_y,
    )


def dispatch_to_capture(x: float, y: float, spaces: Optional[Spaces]) -> Optional[Point]:
    """Map a dispatch-space point into capture space."""
    params = compute_map_params(spaces)
    if params is None:
        return None
    return Point(params.offset_x + x * params.scale_x,
                 params.offset_y + y * params.scale_y)


def capture_to_dispatch(x: float, y: float, spaces: Optional[Spaces]) -> Optional[Point]:
    """Map a capture-space point into dispatch space (inverse transform)."""
    params = compute_map_params(spaces)
    if params is None:
        return None
    return Point((x - params.offset_x) / params.scale_x,
                 (y - params.offset_y) / params.scale_y)


def affine_dispatch_to_capture(x: float, y: float, affine: Affine) -> Point:
    """Map a dispatch-space point into capture space via a calibrated affine."""
    return affine.map(x, y)


def affine_capture_to_dispatch(x: float, y: float, affine: Affine) -> Optional[Point]:
    """Map a capture-space point into dispatch space via a calibrated affine.

    Returns:
        Point, or None if the affine is singular
    """
    try:
        inverse = affine.inverse()
    except ValueError:
        return None
    return inverse.map(x, y)


class CoordinateMapper:
    """Mapper with an optional calibrated affine.

    When an affine is installed it replaces the deterministic transform in
    both directions; otherwise the Spaces snapshot passed per call is used.
    """

    def __init__(self, logger: Optional[Logger] = None) -> None:
        self._logger = logger or get_logger()
        self._lock = threading.Lock()
        self._affine: Optional[Affine] = None
        self._inverse: Optional[Affine] = None

    @property
    def affine(self) -> Optional[Affine]:
        with self._lock:
            return self._affine

    def set_affine(self, affine: Optional[Affine]) -> None:
        """Install or clear the calibrated transform.

        Raises:
            ValueError: If the affine is singular
        """
        inverse = affine.inverse() if affine is not None else None
        with self._lock:
            self._affine = affine
            self._inverse = inverse
        if affine is None:
            self._logger.info("已清除校准变换, 使用确定性映射")
        else:
            self._logger.info(f"已启用校准变换 {affine}")

    def to_capture(self, x: float, y: float, spaces: Optional[Spaces]) -> Optional[Point]:
        """Dispatch space → capture space."""
        with self._lock:
            affine = self._affine
        if affine is not None:
            return affine.map(x, y)
        return dispatch_to_capture(x, y, spaces)

    def to_dispatch(self, x: float, y: float, spaces: Optional[Spaces]) -> Optional[Point]:
        """Capture space → dispatch space."""
        with self._lock:
            inverse = self._inverse
        if inverse is not None:
            return inverse.map(x, y)
        return capture_to_dispatch(x, y, spaces)
