"""Tests for the logging buffer and logger context."""

from datetime import datetime

from tapmacro.core.logging import LogBuffer, LogEntry, Logger, LogLevel


class TestLogEntry:
    def test_format_with_context(self) -> None:
        entry = LogEntry(
            timestamp=datetime(2024, 1, 1, 12, 30, 5, 123000),
            level=LogLevel.INFO,
            message="找到 ok -> (10,20)",
            macro_id="daily",
            step=(2, 5),
            score=934,
        )
        assert entry.format() == "[12:30:05.123] [INFO] [daily] [2/5] 找到 ok -> (10,20) score=934"

    def test_format_plain(self) -> None:
        entry = LogEntry(datetime(2024, 1, 1), LogLevel.WARNING, "hello")
        assert entry.format() == "[00:00:00.000] [WARNING] hello"


class TestLogBuffer:
    def test_bounded(self) -> None:
        buffer = LogBuffer(max_size=3)
        for i in range(5):
            buffer.add(LogEntry(datetime.now(), LogLevel.INFO, str(i)))
        assert [e.message for e in buffer.get_all()] == ["2", "3", "4"]
        assert [e.message for e in buffer.get_recent(2)] == ["3", "4"]
        assert len(buffer) == 3

    def test_listener_errors_ignored(self) -> None:
        buffer = LogBuffer()
        seen = []

        def broken(entry: LogEntry) -> None:
            raise RuntimeError("listener")

        buffer.add_listener(broken)
        buffer.add_listener(seen.append)
        buffer.add(LogEntry(datetime.now(), LogLevel.INFO, "x"))
        assert len(seen) == 1

        buffer.remove_listener(seen.append)
        buffer.add(LogEntry(datetime.now(), LogLevel.INFO, "y"))
        assert len(seen) == 1


class TestLogger:
    """Test level filtering and context helpers."""

    def test_min_level(self) -> None:
        logger = Logger(min_level=LogLevel.WARNING)
        assert logger.info("dropped") is None
        assert logger.warning("kept") is not None
        assert len(logger.buffer) == 1

    def test_fields_appended(self) -> None:
        entry = Logger().info("capture", width=10, height=20)
        assert entry.message == "capture (width=10 height=20)"

    def test_step_context(self) -> None:
        logger = Logger()
        logger.set_macro("m")
        logger.step_started(0, 3, "Tap")
        entry = logger.info("x")
        assert entry.macro_id == "m"
        assert entry.step == (1, 3)

        logger.clear_context()
        entry = logger.info("y")
        assert entry.macro_id is None
        assert entry.step is None

    def test_exception(self) -> None:
        entry = Logger().exception("宏执行错误", ValueError("bad"))
        assert entry.level == LogLevel.ERROR
        assert entry.message == "宏执行错误: ValueError: bad"

    def test_calibration_result(self) -> None:
        logger = Logger()
        assert logger.calibration_result(True, "affine", rmse=0.25).message.endswith("rmse=0.250")
        failed = logger.calibration_result(False, "marker #1 not found")
        assert failed.level == LogLevel.WARNING
        assert "marker #1 not found" in failed.message

    def test_match_result_carries_score(self) -> None:
        entry = Logger().match_result("ok", 3, 4, 912)
        assert entry.score == 912
        assert "ok" in entry.message
