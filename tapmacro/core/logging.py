"""Thread-safe logging system with circular buffer.

Provides a logging interface for the engine, matcher and calibrator that:
- Uses a circular buffer (max 200 entries) to prevent memory growth
- Is thread-safe for worker thread -> UI thread communication
- Formats log entries with timestamps and macro/step context
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from threading import Lock
from typing import Any, Callable, Optional

from .constants import LOG_BUFFER_SIZE


class LogLevel(IntEnum):
    """Log entry severity levels (ordered)."""

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40


@dataclass
class LogEntry:
    """A single log entry.

    Attributes:
        timestamp: When the entry was created
        level: Severity level
        message: Log message content
        macro_id: Running macro id (if applicable)
        step: Current step position as (i, N) tuple, 1-based (if applicable)
        score: Match score (if applicable)
    """

    timestamp: datetime
    level: LogLevel
    message: str
    macro_id: Optional[str] = None
    step: Optional[tuple[int, int]] = None
    score: Optional[int] = None

    def format(self) -> str:
        """Format the log entry as a string."""
        time_str = self.timestamp.strftime("%H:%M:%S.%f")[:-3]
        parts = [f"[{time_str}]", f"[{self.level.name}]"]

        if self.macro_id:
            parts.append(f"[{self.macro_id}]")

        if self.step:
            i, n = self.step
            parts.append(f"[{i}/{n}]")

        parts.append(self.message)

        if self.score is not None:
            parts.append(f"score={self.score}")

        return " ".join(parts)


@dataclass
class LogBuffer:
    """Thread-safe circular buffer for log entries.

    Uses a deque with maxlen to automatically discard old entries.
    Thread-safe for multiple writers and readers.
    """

    max_size: int = LOG_BUFFER_SIZE
    _buffer: deque[LogEntry] = field(default_factory=lambda: deque(maxlen=LOG_BUFFER_SIZE))
    _lock: Lock = field(default_factory=Lock)
    _listeners: list[Callable[[LogEntry], None]] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Reinitialize buffer with correct maxlen if max_size differs."""
        if self._buffer.maxlen != self.max_size:
            self._buffer = deque(maxlen=self.max_size)

    def add(self, entry: LogEntry) -> None:
        """Add a log entry to the buffer (thread-safe)."""
        with self._lock:
            self._buffer.append(entry)
            listeners = list(self._listeners)

        # Notify listeners outside the lock
        for listener in listeners:
            try:
                listener(entry)
            except Exception:
                pass  # Don't let listener errors affect logging

    def get_all(self) -> list[LogEntry]:
        """Get all entries in the buffer (thread-safe)."""
        with self._lock:
            return list(self._buffer)

    def get_recent(self, count: int) -> list[LogEntry]:
        """Get the most recent N entries (thread-safe)."""
        with self._lock:
            if count >= len(self._buffer):
                return list(self._buffer)
            return list(self._buffer)[-count:]

    def clear(self) -> None:
        """Clear all entries (thread-safe)."""
        with self._lock:
            self._buffer.clear()

    def add_listener(self, callback: Callable[[LogEntry], None]) -> None:
        """Add a listener to be notified of new entries."""
        with self._lock:
            self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[LogEntry], None]) -> None:
        """Remove a listener."""
        with self._lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    def __len__(self) -> int:
        """Return current buffer size."""
        with self._lock:
            return len(self._buffer)


class Logger:
    """Main logging interface.

    Provides convenience methods for logging at different levels
    with optional context (macro id, step position, score).
    """

    def __init__(
        self,
        buffer: Optional[LogBuffer] = None,
        min_level: LogLevel = LogLevel.DEBUG,
    ) -> None:
        """Initialize logger with optional existing buffer."""
        self._buffer = buffer or LogBuffer()
        self._min_level = min_level
        self._current_macro: Optional[str] = None
        self._current_step: Optional[tuple[int, int]] = None

    @property
    def buffer(self) -> LogBuffer:
        """Access the underlying log buffer."""
        return self._buffer

    @property
    def min_level(self) -> LogLevel:
        return self._min_level

    @min_level.setter
    def min_level(self, level: LogLevel) -> None:
        self._min_level = level

    def set_macro(self, macro_id: Optional[str]) -> None:
        """Set the running macro id for subsequent log entries."""
        self._current_macro = macro_id

    def set_step(self, current: int, total: int) -> None:
        """Set the current step position for subsequent log entries.

        Args:
            current: Current step index (1-based for display)
            total: Total step count
        """
        self._current_step = (current, total)

    def clear_context(self) -> None:
        """Clear current macro and step context."""
        self._current_macro = None
        self._current_step = None

    def _log(
        self,
        level: LogLevel,
        message: str,
        score: Optional[int] = None,
        **fields: Any,
    ) -> Optional[LogEntry]:
        """Internal logging method."""
        if level < self._min_level:
            return None
        if fields:
            extra = " ".join(f"{k}={v}" for k, v in fields.items())
            message = f"{message} ({extra})"
        entry = LogEntry(
            timestamp=datetime.now(),
            level=level,
            message=message,
            macro_id=self._current_macro,
            step=self._current_step,
            score=score,
        )
        self._buffer.add(entry)
        return entry

    def debug(self, message: str, **kwargs: Any) -> Optional[LogEntry]:
        """Log a debug message."""
        return self._log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> Optional[LogEntry]:
        """Log an info message."""
        return self._log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> Optional[LogEntry]:
        """Log a warning message."""
        return self._log(LogLevel.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> Optional[LogEntry]:
        """Log an error message."""
        return self._log(LogLevel.ERROR, message, **kwargs)

    def exception(self, message: str, exc: BaseException, **kwargs: Any) -> Optional[LogEntry]:
        """Log an error message with the exception type and text."""
        return self._log(
            LogLevel.ERROR, f"{message}: {type(exc).__name__}: {exc}", **kwargs
        )

    def state_change(self, old_state: str, new_state: str) -> Optional[LogEntry]:
        """Log a state transition."""
        return self.info(f"状态变化: {old_state} → {new_state}")

    def step_started(self, index: int, total: int, description: str) -> Optional[LogEntry]:
        """Log the start of a macro step (index is 0-based)."""
        self.set_step(index + 1, total)
        return self.debug(f"执行步骤: {description}")

    def match_result(
        self,
        template_id: str,
        x: int,
        y: int,
        score: int,
    ) -> Optional[LogEntry]:
        """Log a successful template match."""
        return self.info(f"找到 {template_id} -> ({x},{y})", score=score)

    def calibration_result(
        self,
        ok: bool,
        detail: str,
        rmse: Optional[float] = None,
    ) -> Optional[LogEntry]:
        """Log calibration results."""
        if ok:
            return self.info(f"校准完成: affine={detail}, rmse={rmse:.3f}")
        return self.warning(f"校准失败: {detail}")


# Global logger instance for convenience
_global_logger: Optional[Logger] = None


def get_logger() -> Logger:
    """Get the global logger instance, creating one if needed."""
    global _global_logger
    if _global_logger is None:
        _global_logger = Logger()
    return _global_logger


def set_logger(logger: Logger) -> None:
    """Set the global logger instance."""
    global _global_logger
    _global_logger = logger
