"""Tests for the application controller.

Verifies that:
- Malformed macros are rejected without starting the engine
- Accepted macros report a running status immediately
- Engine status changes reach observers through signals, never stale
- Calibration through the overlay installs the fitted affine
"""

import time

import numpy as np
import pytest

pytest.importorskip("PySide6.QtCore")

from tapmacro.controller import ApplicationController
from tapmacro.core.calibration import Calibrator
from tapmacro.core.engine import MacroEngine
from tapmacro.core.macro import parse_macro
from tapmacro.core.model import ExecutionStatus, Frame, Point, Rect


class FakeOverlay:
    """Stands in for MarkerOverlay; paints markers into the fake capture."""

    def __init__(self, frames) -> None:
        self._frames = frames
        self.visible = False

    def show_points(self, points: list[Point]) -> None:
        pixels = np.zeros((1000, 1000, 3), dtype=np.uint8)
        for p in points:
            pixels[int(p.y), int(p.x)] = (255, 0, 255)
        self._frames.set_frame(Frame.from_array(pixels))
        self.visible = True

    def hide_points(self) -> None:
        self.visible = False


@pytest.fixture
def wiring(qt_app, fakes, logger, display_1000):
    frames = fakes.FrameSource(content=Rect(0, 0, 1000, 1000))
    sink = fakes.GestureSink()
    display = fakes.DisplayInfo(display_1000)
    engine = MacroEngine(frames, sink, display, fakes.Templates(), logger=logger)
    calibrator = Calibrator(display, frames, logger=logger)
    overlay = FakeOverlay(frames)
    controller = ApplicationController(engine, calibrator, overlay=overlay, logger=logger)
    yield controller, engine, sink, overlay
    controller.shutdown()
    engine.join(2.0)


def _process_until(app, predicate, timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        app.processEvents()
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class TestSubmitMacro:
    def test_rejects_malformed(self, wiring) -> None:
        controller, engine, sink, _ = wiring
        rejected: list[str] = []
        controller.macro_rejected.connect(rejected.append)

        assert not controller.submit_macro('{"id": "m", "steps": [{"type": "fly"}]}')
        assert len(rejected) == 1
        assert "steps[0]" in rejected[0]
        assert engine.status == ExecutionStatus()

    def test_rejects_empty(self, wiring) -> None:
        controller, _, _, _ = wiring
        rejected: list[str] = []
        controller.macro_rejected.connect(rejected.append)
        assert not controller.submit_macro({"id": "m", "steps": []})
        assert rejected

    def test_running_status_emitted_at_once(self, qt_app, wiring) -> None:
        """Observers see the run even if it ends before they process events."""
        controller, engine, sink, _ = wiring
        started: list[str] = []
        statuses: list[ExecutionStatus] = []
        controller.macro_started.connect(started.append)
        controller.status_changed.connect(statuses.append)

        assert controller.submit_macro({"id": "m", "steps": [{"type": "back"}]})
        assert started == ["m"]
        assert statuses[0] == ExecutionStatus(True, "m", 0)
        assert engine.join(2.0)
        assert sink.calls == [("back",)]

        assert _process_until(qt_app, lambda: statuses[-1] == ExecutionStatus())

    def test_stale_notification_reports_current_status(self, qt_app, wiring) -> None:
        """Late events from a finished run never repeat its running status."""
        controller, engine, _, _ = wiring
        statuses: list[ExecutionStatus] = []
        controller.status_changed.connect(statuses.append)

        assert controller.submit_macro({"id": "m", "steps": [{"type": "back"}]})
        assert engine.join(2.0)
        assert _process_until(qt_app, lambda: statuses[-1] == ExecutionStatus())
        engine.status_changed.emit(ExecutionStatus(True, "m", 0))
        qt_app.processEvents()
        assert statuses == [ExecutionStatus(True, "m", 0), ExecutionStatus()]


class TestCheckMacro:
    def test_warns_about_offscreen_points_and_missing_templates(self, wiring) -> None:
        controller, _, _, _ = wiring
        macro = parse_macro({"id": "m", "steps": [
            {"type": "tap", "x": 10, "y": 10},
            {"type": "swipe", "x": 10, "y": 10, "x2": 1500, "y2": 10},
            {"type": "wait", "id": "ghost"},
        ]})
        result = controller.check_macro(macro)
        assert not result
        assert len(result.errors) == 2
        assert "ghost" in result.errors[1]


class TestCalibration:
    def test_calibration_installs_affine(self, qt_app, wiring) -> None:
        controller, engine, _, overlay = wiring
        results = []
        controller.calibration_finished.connect(results.append)

        assert controller.start_calibration()
        assert overlay.visible
        assert controller.is_calibrating
        assert not controller.start_calibration()

        assert _process_until(qt_app, lambda: bool(results))
        result = results[0]
        assert result.ok, result.reason
        assert result.rmse == pytest.approx(0.0, abs=1e-6)
        assert engine.mapper.affine is result.affine
        assert not overlay.visible
        assert not controller.is_calibrating

    def test_calibration_without_display(self, qt_app, wiring) -> None:
        controller, engine, _, overlay = wiring
        controller._calibrator._display_source.info = None
        results = []
        controller.calibration_finished.connect(results.append)

        assert not controller.start_calibration()
        assert results[0].reason == "no display info"
        assert not overlay.visible
        assert engine.mapper.affine is None
