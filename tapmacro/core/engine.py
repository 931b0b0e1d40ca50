"""Macro execution engine.

Implements the macro interpreter:
- State machine (Idle → Running → Idle)
- One worker per run on its own QThread, at most one run active
- Cooperative cancellation via a per-run event; every sleep and every
  match is interruptible by it
- Image steps: match in capture space, map to dispatch space, dispatch

Status is an immutable ExecutionStatus replaced atomically, so observers
read it without locking; changes are also pushed through status_changed.
"""

import threading
import time
from typing import Optional

from PySide6.QtCore import QObject, Qt, QThread, Signal, Slot

from .constants import DIRECT_MAP_TOLERANCE_PX, MATCH_MIN_BUDGET_MS
from .debug_store import DebugStore
from .interfaces import DisplayInfoSource, FrameSource, GestureSink, TemplateProvider
from .logging import Logger, get_logger
from .macro import (
    Back,
    FindImage,
    Home,
    Macro,
    Recent,
    Step,
    Swipe,
    SwipeImage,
    Tap,
    TapImage,
    WaitImage,
)
from .mapping import CoordinateMapper, build_spaces
from .matcher import TemplateMatcher
from .model import (
    IDLE_STATUS,
    Affine,
    DisplayInfo,
    EngineConfig,
    ExecutionStatus,
    Frame,
    Insets,
    MatchResult,
    Point,
    Spaces,
)


class MacroWorker(QObject):
    """Executes one macro run in the worker thread.

    Created by MacroEngine per run; the engine owns status publication.
    """

    finished = Signal()

    def __init__(
        self,
        engine: "MacroEngine",
        macro: Macro,
        token: int,
        cancel: threading.Event,
    ) -> None:
        super().__init__()
        self._engine = engine
        self._macro = macro
        self._token = token
        self._cancel = cancel
        self._logger = engine.logger

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @Slot()
    def run(self) -> None:
        """Run all steps, then hand control back to the engine.

        Exceptions never escape; the engine is reset to Idle whatever
        happens.
        """
        try:
            self._run_steps()
        except Exception as e:
            self._logger.exception("宏执行错误", e)
        finally:
            self._engine._finish(self._token, self._macro.id)
            self.finished.emit()

    def _run_steps(self) -> None:
        macro = self._macro
        total = len(macro.steps)
        if not self.cancelled:
            self._logger.info(f"开始执行宏: {total}个步骤")

        for index, step in enumerate(macro.steps):
            if self.cancelled or not self._engine._begin_step(self._token, macro.id, index, step, total):
                self._logger.info(f"宏已取消: {macro.id}")
                return
            self._execute(step)

        if self.cancelled:
            self._logger.info(f"宏已取消: {macro.id}")
        else:
            self._logger.info("宏执行完成")

    def _execute(self, step: Step) -> None:
        engine = self._engine
        sink = engine.gesture_sink
        config = engine.config

        if isinstance(step, (WaitImage, FindImage)):
            hit = engine.locate(step.template_id, step.min_score, step.timeout_ms, self._cancel)
            if hit is None and not self.cancelled:
                self._logger.warning(f"未找到 {step.template_id} (超时 {step.timeout_ms}ms)")
            return

        if isinstance(step, TapImage):
            located = self._locate_for_gesture(step.template_id, step.min_score)
            if located is None:
                return
            start = located.offset(step.dx, step.dy)
            target = self._to_dispatch(start)
            if target is None or self.cancelled:
                return
            scheduled = sink.tap(target.x, target.y, config.image_tap_duration_ms)
            self._logger.info(
                f"TapImage {step.template_id} cap=({start.x:.0f},{start.y:.0f}) -> "
                f"disp=({target.x:.0f},{target.y:.0f}) scheduled={scheduled}"
            )
            return

        if isinstance(step, SwipeImage):
            located = self._locate_for_gesture(step.template_id, step.min_score)
            if located is None:
                return
            end = located.offset(step.dx, step.dy)
            start_d = self._to_dispatch(located)
            end_d = self._to_dispatch(end)
            if start_d is None or end_d is None or self.cancelled:
                return
            scheduled = sink.swipe(start_d.x, start_d.y, end_d.x, end_d.y, step.duration_ms)
            self._logger.info(
                f"SwipeImage {step.template_id} disp=({start_d.x:.0f},{start_d.y:.0f}) -> "
                f"({end_d.x:.0f},{end_d.y:.0f}) scheduled={scheduled}"
            )
            return

        if not isinstance(step, (Tap, Swipe, Back, Home, Recent)):
            raise TypeError(f"Unsupported step: {step!r}")
        if self.cancelled:
            return

        if isinstance(step, Tap):
            scheduled = sink.tap(step.x, step.y, step.duration_ms)
            self._logger.info(f"Tap ({step.x:.0f},{step.y:.0f}) scheduled={scheduled}")
        elif isinstance(step, Swipe):
            scheduled = sink.swipe(step.x1, step.y1, step.x2, step.y2, step.duration_ms)
            self._logger.info(
                f"Swipe ({step.x1:.0f},{step.y1:.0f}) -> ({step.x2:.0f},{step.y2:.0f}) "
                f"scheduled={scheduled}"
            )
        elif isinstance(step, Back):
            sink.back()
        elif isinstance(step, Home):
            sink.home()
        else:
            sink.recent()

    def _locate_for_gesture(self, template_id: str, min_score: int) -> Optional[Point]:
        """Locate with the image-gesture timeout; None (logged) if not found."""
        timeout_ms = self._engine.config.image_gesture_timeout_ms
        hit = self._engine.locate(template_id, min_score, timeout_ms, self._cancel)
        if hit is None:
            if not self.cancelled:
                self._logger.warning(f"未找到 {template_id}, 跳过手势")
            return None
        return hit[0].point

    def _to_dispatch(self, point: Point) -> Optional[Point]:
        mapped = self._engine.to_dispatch(point)
        if mapped is None:
            self._logger.warning("几何信息不可用, 跳过手势")
        return mapped


class MacroEngine(QObject):
    """Runs macros against injected capture and input collaborators.

    Starting a run while another is active cancels the old run without
    waiting for it to unwind. Callers wanting completion connect to
    run_finished or poll status.

    Example:
        engine = MacroEngine(frames, sink, display, templates)
        engine.run_finished.connect(on_done)
        engine.run(parse_macro(text))
    """

    # Emitted from the thread that changed the status
    status_changed = Signal(object)  # ExecutionStatus
    step_started = Signal(str, int)  # macro id, step index (0-based)
    run_finished = Signal(str)  # macro id

    def __init__(
        self,
        frame_source: FrameSource,
        gesture_sink: GestureSink,
        display_source: DisplayInfoSource,
        templates: TemplateProvider,
        matcher: Optional[TemplateMatcher] = None,
        logger: Optional[Logger] = None,
        debug_store: Optional[DebugStore] = None,
        config: Optional[EngineConfig] = None,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)

        self._frame_source = frame_source
        self._gesture_sink = gesture_sink
        self._display_source = display_source
        self._templates = templates
        self._logger = logger or get_logger()
        self._matcher = matcher or TemplateMatcher(logger=self._logger)
        self._mapper = CoordinateMapper(self._logger)
        self._debug_store = debug_store
        self._config = config or EngineConfig()

        self._status: ExecutionStatus = IDLE_STATUS
        self._lock = threading.Lock()
        self._token = 0
        self._cancel: Optional[threading.Event] = None
        # Threads are kept referenced until they have fully finished
        self._runs: list[tuple[QThread, MacroWorker]] = []

    @property
    def status(self) -> ExecutionStatus:
        """Current status snapshot (lock-free read)."""
        return self._status

    @property
    def is_running(self) -> bool:
        return self._status.running

    @property
    def logger(self) -> Logger:
        return self._logger

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def gesture_sink(self) -> GestureSink:
        return self._gesture_sink

    @property
    def templates(self) -> TemplateProvider:
        return self._templates

    @property
    def matcher(self) -> TemplateMatcher:
        return self._matcher

    @property
    def mapper(self) -> CoordinateMapper:
        return self._mapper

    def set_affine(self, affine: Optional[Affine]) -> None:
        """Use a calibrated transform for capture→dispatch (None to clear).

        Raises:
            ValueError: If the affine is singular
        """
        self._mapper.set_affine(affine)

    def run(self, macro: Macro) -> bool:
        """Start macro on a new worker thread, cancelling any active run.

        Returns:
            True if a run was started, False for an empty macro
        """
        if not macro.steps:
            self._logger.warning(f"宏 {macro.id} 没有步骤, 忽略")
            return False

        with self._lock:
            if self._cancel is not None:
                self._cancel.set()
                self._logger.info(f"取消正在运行的宏 {self._status.macro_id}")
            self._token += 1
            token = self._token
            cancel = threading.Event()
            self._cancel = cancel
            previous = self._status
            status = ExecutionStatus(True, macro.id, 0)
            self._status = status
            self._logger.set_macro(macro.id)

            worker = MacroWorker(self, macro, token, cancel)
            thread = QThread()
            thread.setObjectName(f"macro-{macro.id}-{token}")
            worker.moveToThread(thread)
            thread.started.connect(worker.run)
            # The engine's thread may have no running event loop
            worker.finished.connect(thread.quit, Qt.ConnectionType.DirectConnection)
            self._runs = [(t, w) for t, w in self._runs if not t.isFinished()]
            self._runs.append((thread, worker))

        if not previous.running:
            self._logger.state_change("Idle", "Running")
        self.status_changed.emit(status)
        thread.start()
        return True

    def stop(self) -> None:
        """Request cancellation of the active run (non-blocking)."""
        with self._lock:
            if self._cancel is not None:
                self._cancel.set()
                self._logger.info("请求停止")

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for every worker thread started so far to end.

        Returns:
            True if no run is active afterwards
        """
        with self._lock:
            runs = list(self._runs)
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread, _ in runs:
            if deadline is None:
                thread.wait()
            else:
                remaining = max(0.0, deadline - time.monotonic())
                thread.wait(int(remaining * 1000))
        return not self._status.running

    def current_spaces(self) -> Optional[Spaces]:
        """Fresh geometry snapshot, None if the display is unknown."""
        return build_spaces(
            self._display_source.display_info(),
            self._frame_source.content_rect(),
        )

    def to_dispatch(self, point: Point) -> Optional[Point]:
        """Map a capture-space point to dispatch space with current geometry.

        A capture the size of the physical surface with no insets maps 1:1.
        Results are kept on the physical surface.
        """
        info = self._display_source.display_info()
        if self._mapper.affine is None and self._is_direct(info):
            mapped: Optional[Point] = point
        else:
            spaces = build_spaces(info, self._frame_source.content_rect())
            mapped = self._mapper.to_dispatch(point.x, point.y, spaces)
        if mapped is None or info is None:
            return mapped
        return Point(
            min(max(mapped.x, 0.0), float(info.phys.width - 1)),
            min(max(mapped.y, 0.0), float(info.phys.height - 1)),
        )

    def _is_direct(self, info: Optional[DisplayInfo]) -> bool:
        if info is None:
            return False
        cap_w, cap_h = self._frame_source.frame_size()
        if cap_w <= 0 or cap_h <= 0:
            return False
        return (
            abs(cap_w - info.phys.width) <= DIRECT_MAP_TOLERANCE_PX
            and abs(cap_h - info.phys.height) <= DIRECT_MAP_TOLERANCE_PX
            and info.insets == Insets()
        )

    def locate(
        self,
        template_id: str,
        min_score: int,
        timeout_ms: int,
        cancel: Optional[threading.Event] = None,
    ) -> Optional[tuple[MatchResult, Frame]]:
        """Poll the latest frame until the template is found.

        At least one attempt is made; later attempts follow every poll
        interval until timeout_ms elapses or cancel is set. A match in
        progress is abandoned on cancel or shortly after the timeout.

        Returns:
            (match, frame it was found in), or None
        """
        template = self._templates.get(template_id)
        if template is None:
            self._logger.warning(f"模板不存在: {template_id}")
            return None

        cancel = cancel or threading.Event()
        poll = self._config.poll_interval_ms / 1000.0
        deadline = time.monotonic() + timeout_ms / 1000.0

        while not cancel.is_set():
            frame = self._frame_source.latest_frame()
            if frame is not None:
                match_deadline = max(deadline, time.monotonic() + MATCH_MIN_BUDGET_MS / 1000.0)
                hit = self._matcher.match(
                    frame, template, min_score, cancel=cancel, deadline=match_deadline
                )
                if cancel.is_set():
                    return None
                if hit is not None:
                    self._logger.match_result(template_id, hit.x, hit.y, hit.score)
                    if self._debug_store is not None:
                        self._debug_store.record(template_id, hit.x, hit.y, hit.score, frame)
                    return hit, frame

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            cancel.wait(min(poll, remaining))
        return None

    def _begin_step(self, token: int, macro_id: str, index: int, step: Step, total: int) -> bool:
        """Publish the step as current; False if the run was superseded."""
        status = ExecutionStatus(True, macro_id, index)
        with self._lock:
            if token != self._token or self._cancel is None or self._cancel.is_set():
                return False
            self._status = status
            self._logger.step_started(index, total, repr(step))
        self.status_changed.emit(status)
        self.step_started.emit(macro_id, index)
        return True

    def _finish(self, token: int, macro_id: str) -> None:
        with self._lock:
            if token != self._token:
                return
            self._status = IDLE_STATUS
            self._cancel = None
            self._logger.state_change("Running", "Idle")
            self._logger.clear_context()
        self.status_changed.emit(IDLE_STATUS)
        self.run_finished.emit(macro_id)
