"""Application controller that wires the engine, calibrator and overlay.

Handles macro submission (rejecting malformed input), calibration with
on-screen markers, and forwarding engine status to observers.
"""

from typing import Optional, Union

from PySide6.QtCore import QObject, QTimer, Signal, Slot

from tapmacro.core.calibration import CalibrationResult, Calibrator, marker_points
from tapmacro.core.constants import CALIB_SETTLE_MS
from tapmacro.core.engine import MacroEngine
from tapmacro.core.logging import Logger, get_logger
from tapmacro.core.macro import IMAGE_STEPS, Macro, MacroParseError, Swipe, Tap, parse_macro
from tapmacro.core.model import ExecutionStatus, Point
from tapmacro.core.os_adapter.validation import (
    ValidationResult,
    validate_display_info,
    validate_point_in_bounds,
)
from tapmacro.ui.marker_overlay import MarkerOverlay


class ApplicationController(QObject):
    """Controller that connects the UI thread to the macro engine.

    Responsibilities:
    - Parse and submit macros, surfacing InvalidInput as macro_rejected
    - Run calibration without blocking the Qt event loop
    - Re-emit engine status changes in the controller thread
    """

    macro_rejected = Signal(str)
    macro_started = Signal(str)
    calibration_finished = Signal(object)  # CalibrationResult
    status_changed = Signal(object)  # ExecutionStatus

    def __init__(
        self,
        engine: MacroEngine,
        calibrator: Calibrator,
        overlay: Optional[MarkerOverlay] = None,
        logger: Optional[Logger] = None,
        parent: Optional[QObject] = None,
    ) -> None:
        """Initialize the controller.

        Args:
            engine: Macro engine to drive
            calibrator: Calibrator bound to the same frame/display sources
            overlay: Marker overlay (created on demand if None)
            logger: Logger instance (uses global if None)
            parent: Parent QObject
        """
        super().__init__(parent)

        self._engine = engine
        self._calibrator = calibrator
        self._overlay = overlay
        self._logger = logger or get_logger()
        self._last_status: ExecutionStatus = engine.status
        self._calibrating = False

        # Queued into this thread when emitted by a worker
        engine.status_changed.connect(self._on_engine_status)

    @property
    def engine(self) -> MacroEngine:
        return self._engine

    @property
    def is_calibrating(self) -> bool:
        return self._calibrating

    # Macro submission

    def submit_macro(self, data: Union[str, bytes, dict]) -> bool:
        """Parse and run a macro.

        Args:
            data: Macro JSON text or decoded object

        Returns:
            True if the macro was accepted and started
        """
        try:
            macro = parse_macro(data)
        except MacroParseError as e:
            self._logger.error(f"宏格式错误: {e}")
            self.macro_rejected.emit(str(e))
            return False

        check = self.check_macro(macro)
        for warning in check.errors:
            self._logger.warning(warning)

        if not self._engine.run(macro):
            self.macro_rejected.emit(f"macro {macro.id} has no steps")
            return False
        self.macro_started.emit(macro.id)
        return True

    def check_macro(self, macro: Macro) -> ValidationResult:
        """Non-fatal checks: coordinates on screen, templates present."""
        errors: list[str] = []

        info = self._calibrator.display_info()
        if validate_display_info(info):
            for index, step in enumerate(macro.steps):
                points: list[Point] = []
                if isinstance(step, Tap):
                    points = [Point(step.x, step.y)]
                elif isinstance(step, Swipe):
                    points = [Point(step.x1, step.y1), Point(step.x2, step.y2)]
                for point in points:
                    result = validate_point_in_bounds(point, f"步骤{index}", info)
                    errors.extend(result.errors)

        templates = self._engine.templates
        for index, step in enumerate(macro.steps):
            if isinstance(step, IMAGE_STEPS) and templates.get(step.template_id) is None:
                errors.append(f"步骤{index}: 模板不存在 {step.template_id}")

        if errors:
            return ValidationResult.failure(*errors)
        return ValidationResult.success()

    @Slot()
    def stop(self) -> None:
        """Stop the running macro."""
        self._engine.stop()

    # Calibration

    @Slot()
    def start_calibration(self) -> bool:
        """Show markers, then capture and fit after the settle delay.

        Returns:
            True if calibration started; failures are still reported via
            calibration_finished
        """
        if self._calibrating:
            self._logger.warning("校准已在进行中")
            return False

        spaces = self._calibrator.current_spaces()
        if spaces is None or spaces.gesture_area_w <= 0 or spaces.gesture_area_h <= 0:
            self._finish_calibration(CalibrationResult.failure("no display info"))
            return False

        points = marker_points(spaces)
        if self._overlay is None:
            self._overlay = MarkerOverlay()
        self._overlay.show_points(points)
        self._calibrating = True
        self._logger.info("开始三点校准")

        QTimer.singleShot(CALIB_SETTLE_MS, lambda: self._solve_calibration(spaces, points))
        return True

    def _solve_calibration(self, spaces, points: list[Point]) -> None:
        try:
            result = self._calibrator.solve_latest(spaces, points)
        finally:
            if self._overlay is not None:
                self._overlay.hide_points()
            self._calibrating = False
        self._finish_calibration(result)

    def _finish_calibration(self, result: CalibrationResult) -> None:
        if result.ok:
            self._engine.set_affine(result.affine)
        self.calibration_finished.emit(result)

    # Status

    @Slot(object)
    def _on_engine_status(self, _status: ExecutionStatus) -> None:
        # Queued notifications can be stale; report what the engine holds now
        status = self._engine.status
        if status != self._last_status:
            self._last_status = status
            self.status_changed.emit(status)

    def shutdown(self) -> None:
        """Cancel any run and stop forwarding status."""
        self._engine.status_changed.disconnect(self._on_engine_status)
        self._engine.stop()
        if self._overlay is not None:
            self._overlay.hide_points()
