"""3-point affine calibration between dispatch space and capture space.

Markers are drawn at three known dispatch-space points; each is located
in a captured frame near the position predicted by the deterministic
mapping, and the exact affine through the three pairs is solved in
closed form (Cramer's rule).
"""

import math
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import numpy as np

from .constants import (
    CALIB_POINT_FRACTIONS,
    CALIB_SEARCH_RADIUS_PX,
    CALIB_SETTLE_MS,
    MARKER_MAX_GREEN,
    MARKER_MIN_BLUE,
    MARKER_MIN_RED,
)
from .interfaces import DisplayInfoSource, FrameSource
from .logging import Logger, get_logger
from .mapping import build_spaces, dispatch_to_capture
from .model import Affine, DisplayInfo, Frame, Point, Spaces

# Below this the three points are treated as collinear
_DET_EPSILON = 1e-9


@dataclass
class CalibrationResult:
    """Outcome of a calibration run.

    Attributes:
        ok: True if an affine was fitted
        affine: Fitted dispatch→capture transform (None on failure)
        rmse: Root-mean-square residual of the fit in capture pixels
        reason: Failure reason, empty on success
    """

    ok: bool
    affine: Optional[Affine] = None
    rmse: float = 0.0
    reason: str = ""

    @classmethod
    def success(cls, affine: Affine, rmse: float) -> "CalibrationResult":
        return cls(ok=True, affine=affine, rmse=rmse)

    @classmethod
    def failure(cls, reason: str) -> "CalibrationResult":
        return cls(ok=False, reason=reason)

    def __bool__(self) -> bool:
        return self.ok


def marker_points(spaces: Spaces) -> list[Point]:
    """Dispatch-space marker positions inside the gesture area."""
    return [
        Point(spaces.insets.left + fx * spaces.gesture_area_w,
              spaces.insets.top + fy * spaces.gesture_area_h)
        for fx, fy in CALIB_POINT_FRACTIONS
    ]


def find_marker(
    frame: Frame,
    expected: Point,
    radius: int = CALIB_SEARCH_RADIUS_PX,
) -> Optional[Point]:
    """Locate the most magenta pixel within radius of expected.

    A pixel qualifies when R > 200, B > 200 and G < 80; among qualifying
    pixels the highest R + B - G wins, first found in row-major order.

    Returns:
        Pixel position in capture space, or None if nothing qualifies
    """
    pixels = frame.pixels
    height, width = pixels.shape[:2]
    cx, cy = int(round(expected.x)), int(round(expected.y))
    left, right = max(0, cx - radius), min(width, cx + radius + 1)
    top, bottom = max(0, cy - radius), min(height, cy + radius + 1)
    if left >= right or top >= bottom:
        return None

    window = pixels[top:bottom, left:right, :3].astype(np.int32)
    r, g, b = window[..., 0], window[..., 1], window[..., 2]
    qualifies = (r > MARKER_MIN_RED) & (b > MARKER_MIN_BLUE) & (g < MARKER_MAX_GREEN)
    if not qualifies.any():
        return None

    score = np.where(qualifies, r + b - g, -1)
    row, col = np.unravel_index(int(np.argmax(score)), score.shape)
    return Point(float(left + col), float(top + row))


def solve3(points: Sequence[Point], values: Sequence[float]) -> Optional[tuple[float, float, float]]:
    """Solve p·x_i + q·y_i + t = v_i for three points by Cramer's rule.

    Returns:
        (p, q, t), or None if the points are collinear
    """
    (x1, y1), (x2, y2), (x3, y3) = (pt.as_tuple() for pt in points)
    v1, v2, v3 = values

    det = x1 * (y2 - y3) - y1 * (x2 - x3) + (x2 * y3 - x3 * y2)
    if abs(det) < _DET_EPSILON:
        return None

    det_p = v1 * (y2 - y3) - y1 * (v2 - v3) + (v2 * y3 - v3 * y2)
    det_q = x1 * (v2 - v3) - v1 * (x2 - x3) + (x2 * v3 - x3 * v2)
    det_t = (x1 * (y2 * v3 - y3 * v2)
             - y1 * (x2 * v3 - x3 * v2)
             + v1 * (x2 * y3 - x3 * y2))
    return det_p / det, det_q / det, det_t / det


def fit_affine3(src: Sequence[Point], dst: Sequence[Point]) -> Optional[Affine]:
    """Exact affine mapping three src points onto three dst points."""
    row_x = solve3(src, [p.x for p in dst])
    row_y = solve3(src, [p.y for p in dst])
    if row_x is None or row_y is None:
        return None
    a, b, tx = row_x
    c, d, ty = row_y
    return Affine(a=a, b=b, c=c, d=d, tx=tx, ty=ty)


def rmse(affine: Affine, src: Sequence[Point], dst: Sequence[Point]) -> float:
    """Root-mean-square distance between affine(src) and dst."""
    if not src:
        return 0.0
    total = 0.0
    for s, d in zip(src, dst):
        mapped = affine.map(s.x, s.y)
        total += (mapped.x - d.x) ** 2 + (mapped.y - d.y) ** 2
    return math.sqrt(total / len(src))


class Calibrator:
    """Runs the 3-point calibration procedure.

    Example:
        calibrator = Calibrator(display_source, frame_source)
        result = calibrator.run3pt(overlay.show_points, overlay.hide_points)
        if result:
            engine.set_affine(result.affine)
    """

    def __init__(
        self,
        display_source: DisplayInfoSource,
        frame_source: FrameSource,
        logger: Optional[Logger] = None,
        search_radius: int = CALIB_SEARCH_RADIUS_PX,
    ) -> None:
        self._display_source = display_source
        self._frame_source = frame_source
        self._logger = logger or get_logger()
        self._search_radius = search_radius

    def display_info(self) -> Optional[DisplayInfo]:
        return self._display_source.display_info()

    def current_spaces(self) -> Optional[Spaces]:
        """Snapshot of the current geometry, None if the display is unknown."""
        return build_spaces(
            self.display_info(),
            self._frame_source.content_rect(),
        )

    def solve(self, frame: Frame, spaces: Spaces, points: Sequence[Point]) -> CalibrationResult:
        """Locate markers for points in frame and fit the affine.

        Args:
            frame: Frame captured while markers were displayed
            spaces: Geometry used to predict marker positions
            points: Dispatch-space marker positions

        Returns:
            CalibrationResult with the fitted affine or a failure reason
        """
        found: list[Point] = []
        for k, point in enumerate(points, start=1):
            expected = dispatch_to_capture(point.x, point.y, spaces)
            if expected is None:
                return self._fail("no display info")
            marker = find_marker(frame, expected, self._search_radius)
            if marker is None:
                return self._fail(f"marker #{k} not found")
            self._logger.debug(
                f"标记 #{k}: 派发 ({point.x:.1f}, {point.y:.1f}) -> "
                f"预期 ({expected.x:.1f}, {expected.y:.1f}) 实际 ({marker.x:.0f}, {marker.y:.0f})"
            )
            found.append(marker)

        affine = fit_affine3(points, found)
        if affine is None:
            return self._fail("markers are collinear")

        error = rmse(affine, points, found)
        self._logger.calibration_result(True, str(affine), rmse=error)
        return CalibrationResult.success(affine, error)

    def run3pt(
        self,
        show_markers: Callable[[list[Point]], None],
        hide_markers: Optional[Callable[[], None]] = None,
        settle_ms: int = CALIB_SETTLE_MS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> CalibrationResult:
        """Blocking calibration: show markers, wait, capture, fit.

        Args:
            show_markers: Draws markers at the given dispatch-space points
            hide_markers: Removes the markers again (always called)
            settle_ms: Delay between drawing and capturing
            sleep: Sleep function (injectable for tests)
        """
        spaces = self.current_spaces()
        if spaces is None or spaces.gesture_area_w <= 0 or spaces.gesture_area_h <= 0:
            return self._fail("no display info")

        points = marker_points(spaces)
        try:
            show_markers(points)
            sleep(settle_ms / 1000.0)
            frame = self._frame_source.latest_frame()
        finally:
            if hide_markers is not None:
                hide_markers()

        if frame is None:
            return self._fail("no capture")
        return self.solve(frame, spaces, points)

    def solve_latest(self, spaces: Spaces, points: Sequence[Point]) -> CalibrationResult:
        """Capture now and solve; for callers that display markers themselves."""
        frame = self._frame_source.latest_frame()
        if frame is None:
            return self._fail("no capture")
        return self.solve(frame, spaces, points)

    def _fail(self, reason: str) -> CalibrationResult:
        self._logger.calibration_result(False, reason)
        return CalibrationResult.failure(reason)
