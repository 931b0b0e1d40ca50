"""tapmacro application entry point.

This module initializes the application with proper DPI awareness
(on Windows) before any capture or Qt initialization, builds the desktop
collaborators and runs a macro, optionally after a 3-point calibration.

IMPORTANT: DPI awareness must be set BEFORE QApplication is created.
"""

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from tapmacro import __version__
from tapmacro.core.logging import LogEntry, Logger, LogLevel, set_logger
from tapmacro.core.os_adapter import IS_WINDOWS, get_screen_count


def setup_platform() -> tuple[bool, str]:
    """Perform platform-specific setup before Qt initialization.

    Returns:
        Tuple of (success, warning_message).
        If success is False, warning_message contains details.
    """
    if IS_WINDOWS:
        from tapmacro.core.os_adapter.win_dpi import setup_dpi_awareness
        return setup_dpi_awareness()
    return True, ""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tapmacro",
        description="Find templates on screen and run tap/swipe macros.",
    )
    parser.add_argument("macro", nargs="?", type=Path, help="macro JSON file")
    parser.add_argument(
        "-t", "--templates", type=Path, default=Path("templates"),
        help="directory of template PNGs (file stem = template id)",
    )
    parser.add_argument("-m", "--monitor", type=int, default=1, help="mss monitor index (1 = primary)")
    parser.add_argument("--calibrate", action="store_true", help="run 3-point calibration first")
    parser.add_argument(
        "--log-level", default="INFO", choices=[level.name for level in LogLevel],
        help="minimum log level printed",
    )
    parser.add_argument("--debug-crop", type=Path, help="write the last match crop PNG here on exit")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _print_entry(entry: LogEntry) -> None:
    print(entry.format(), file=sys.stderr, flush=True)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Application entry point.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    args = build_parser().parse_args(argv)
    if args.macro is None and not args.calibrate:
        build_parser().error("nothing to do: give a macro file and/or --calibrate")

    logger = Logger(min_level=LogLevel[args.log_level])
    logger.buffer.add_listener(_print_entry)
    set_logger(logger)

    # Platform setup MUST happen before QApplication
    dpi_success, dpi_warning = setup_platform()
    if not dpi_success:
        logger.warning(dpi_warning)
    elif IS_WINDOWS:
        from tapmacro.core.os_adapter.win_dpi import get_dpi_scale_factor
        logger.info(f"DPI缩放: {get_dpi_scale_factor():.2f}")

    screen_count = get_screen_count()
    if not 1 <= args.monitor <= screen_count:
        logger.error(f"显示器编号无效: {args.monitor} (共 {screen_count} 个)")
        return 2

    macro_text: Optional[str] = None
    if args.macro is not None:
        try:
            macro_text = args.macro.read_text(encoding="utf-8")
        except OSError as e:
            logger.error(f"无法读取宏文件 {args.macro}: {e}")
            return 2

    # Now we can import Qt
    from PySide6.QtWidgets import QApplication

    from tapmacro.controller import ApplicationController
    from tapmacro.core.calibration import Calibrator
    from tapmacro.core.capture import ScreenFrameSource
    from tapmacro.core.debug_store import DebugStore
    from tapmacro.core.engine import MacroEngine
    from tapmacro.core.matcher import TemplateMatcher
    from tapmacro.core.os_adapter import DesktopDisplayInfo, get_monitor_origin
    from tapmacro.core.os_adapter.input_inject import DesktopGestureSink
    from tapmacro.core.templates import TemplateRegistry
    from tapmacro.ui.marker_overlay import MarkerOverlay

    app = QApplication(sys.argv[:1])
    app.setApplicationName("tapmacro")
    app.setApplicationVersion(__version__)

    matcher = TemplateMatcher(logger=logger)
    templates = TemplateRegistry(cache=matcher.cache, logger=logger)
    if args.templates.is_dir():
        templates.load_dir(args.templates)
    else:
        logger.warning(f"模板目录不存在: {args.templates}")

    frames = ScreenFrameSource(monitor=args.monitor, logger=logger)
    display = DesktopDisplayInfo(monitor=args.monitor)
    sink = DesktopGestureSink(origin=get_monitor_origin(args.monitor), logger=logger)
    debug_store = DebugStore()
    engine = MacroEngine(
        frames, sink, display, templates,
        matcher=matcher, logger=logger, debug_store=debug_store,
    )
    overlay = MarkerOverlay(screen_index=max(0, args.monitor - 1))
    controller = ApplicationController(engine, Calibrator(display, frames, logger), overlay, logger)

    exit_code = 0

    def run_macro() -> None:
        nonlocal exit_code
        if macro_text is None:
            app.quit()
        elif not controller.submit_macro(macro_text):
            exit_code = 1
            app.quit()

    def on_calibrated(result) -> None:
        nonlocal exit_code
        if not result.ok:
            exit_code = 1
            app.quit()
            return
        run_macro()

    def on_status(status) -> None:
        if not status.running:
            app.quit()

    controller.calibration_finished.connect(on_calibrated)
    controller.status_changed.connect(on_status)

    if args.calibrate:
        controller.start_calibration()
    else:
        run_macro()

    if exit_code == 0:
        app.exec()

    controller.shutdown()
    engine.join(2.0)
    sink.close()
    if args.debug_crop is not None:
        if debug_store.snapshot() is None:
            logger.info("没有匹配记录, 未写出调试图")
        else:
            debug_store.crop_png(args.debug_crop)
            logger.info(f"调试图已写出: {args.debug_crop}")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
