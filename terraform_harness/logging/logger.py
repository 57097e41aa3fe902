"""Structured event logging for harness runs.

Events are short dotted names (``terraform.apply``, ``retry.scheduled``)
with a human message and an optional data dict. Library code defaults to
NullLogger; the CLI wires up console and file loggers.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
from enum import Enum
from datetime import datetime
import json
import sys
import threading


class LogLevel(str, Enum):
    """Event severity."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


LEVEL_ORDER = {level: rank for rank, level in enumerate(LogLevel)}

EventData = Optional[Dict[str, Any]]


class Logger(ABC):
    """Base for event loggers; subclasses implement ``emit``."""

    min_level: LogLevel = LogLevel.DEBUG

    def enabled(self, level: LogLevel) -> bool:
        return LEVEL_ORDER[level] >= LEVEL_ORDER[self.min_level]

    def log(self, level: LogLevel, event: str, message: str = "", data: EventData = None) -> None:
        """
        Record an event if its level passes ``min_level``.

        Args:
            level: Severity
            event: Dotted event name, e.g. ``teardown.completed``
            message: Text shown to humans
            data: Extra fields (module name, attempt counts, ...)
        """
        if self.enabled(level):
            self.emit(level, event, message, data)

    @abstractmethod
    def emit(self, level: LogLevel, event: str, message: str, data: EventData) -> None:
        """Write one event that already passed the level filter."""

    def debug(self, event: str, message: str = "", data: EventData = None) -> None:
        self.log(LogLevel.DEBUG, event, message, data)

    def info(self, event: str, message: str = "", data: EventData = None) -> None:
        self.log(LogLevel.INFO, event, message, data)

    def warning(self, event: str, message: str = "", data: EventData = None) -> None:
        self.log(LogLevel.WARNING, event, message, data)

    def error(self, event: str, message: str = "", data: EventData = None) -> None:
        self.log(LogLevel.ERROR, event, message, data)

    def critical(self, event: str, message: str = "", data: EventData = None) -> None:
        self.log(LogLevel.CRITICAL, event, message, data)


class ConsoleLogger(Logger):
    """Human-readable event lines with an icon per event."""

    LEVEL_COLORS = {
        LogLevel.DEBUG: "\033[36m",
        LogLevel.INFO: "\033[32m",
        LogLevel.WARNING: "\033[33m",
        LogLevel.ERROR: "\033[31m",
        LogLevel.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RULE = "─" * 70

    ICONS = {
        "cases.loaded": "📂",
        "run.started": "🚀",
        "run.completed": "🏁",
        "terraform.init": "📦",
        "terraform.apply": "🏗️",
        "terraform.destroy": "🧹",
        "terraform.output": "📤",
        "retry.scheduled": "🔄",
        "retry.exhausted": "❌",
        "assertion.passed": "✅",
        "assertion.failed": "❌",
        "teardown.skipped": "⏸️",
        "teardown.completed": "🧹",
        "teardown.failed": "⚠️",
        "timeout.unknown_state": "⏰",
    }

    # Keys worth showing inline, in display order
    SUMMARY_KEYS = ("attempt", "attempts", "delay", "count", "passed", "failed")

    def __init__(
        self,
        min_level: LogLevel = LogLevel.INFO,
        colored: bool = True,
        show_timestamp: bool = False,
        show_data: bool = True,
        stream=None,
    ):
        """
        Args:
            min_level: Events below this level are dropped
            colored: Use ANSI colours (only honoured when the stream is a tty)
            show_timestamp: Prefix lines with HH:MM:SS
            show_data: Append selected data fields to each line
            stream: Where to write (stdout by default)
        """
        self.stream = stream or sys.stdout
        self.min_level = min_level
        self.colored = colored and getattr(self.stream, "isatty", lambda: False)()
        self.show_timestamp = show_timestamp
        self.show_data = show_data
        # Parallel runs share one console
        self._lock = threading.Lock()

    def emit(self, level: LogLevel, event: str, message: str, data: EventData) -> None:
        if event == "test.started":
            line = self._test_header(data or {})
        elif event == "test.completed":
            line = self._test_footer(message, data or {})
        else:
            line = self._event_line(level, event, message, data or {})

        with self._lock:
            print(line, file=self.stream)

    def _event_line(self, level: LogLevel, event: str, message: str, data: Dict[str, Any]) -> str:
        text = message or event
        if data.get("module"):
            text = f"[{data['module']}] {text}"

        parts = []
        if self.show_timestamp:
            parts.append(self._style(datetime.now().strftime("%H:%M:%S"), self.DIM))
        parts.append(self.ICONS.get(event, "•"))
        parts.append(self._style(text, self.LEVEL_COLORS[level]))

        if event.startswith("terraform.") and data.get("success") is not None:
            parts.append("✓" if data["success"] else "✗")
        elif self.show_data:
            summary = ", ".join(f"{key}={data[key]}" for key in self.SUMMARY_KEYS if key in data)
            if summary:
                parts.append(self._style(f"({summary})", self.DIM))

        return "  " + " ".join(parts)

    def _test_header(self, data: Dict[str, Any]) -> str:
        name = self._style(data.get("module", "unknown"), self.BOLD)
        return f"{self.RULE}\n🔨 {name}\n{self.RULE}"

    def _test_footer(self, message: str, data: Dict[str, Any]) -> str:
        name = data.get("module", "unknown")
        outcome = data.get("outcome") or "failed"
        if outcome == "passed":
            label = self._style("✅ PASSED", self.LEVEL_COLORS[LogLevel.INFO])
        else:
            label = self._style(f"❌ {outcome.replace('_', ' ').upper()}", self.LEVEL_COLORS[LogLevel.ERROR])
        line = f"{label} {name}"
        return f"{line}: {message}" if message else line

    def _style(self, text: str, code: str) -> str:
        return f"{code}{text}{self.RESET}" if self.colored else text


class NullLogger(Logger):
    """Discards every event."""

    def emit(self, level: LogLevel, event: str, message: str, data: EventData) -> None:
        pass


class FileLogger(Logger):
    """Appends events to a file, one JSON object per line."""

    def __init__(self, file_path: str, min_level: LogLevel = LogLevel.INFO):
        self.file_path = file_path
        self.min_level = min_level
        self._lock = threading.Lock()

    def emit(self, level: LogLevel, event: str, message: str, data: EventData) -> None:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now().isoformat(),
            "level": level.value,
            "event": event,
            "message": message,
        }
        if data:
            entry["data"] = data

        line = json.dumps(entry, default=str)
        with self._lock, open(self.file_path, "a") as f:
            f.write(line + "\n")


class MultiLogger(Logger):
    """Fans events out to several loggers, each applying its own level."""

    def __init__(self, *loggers: Logger):
        self.loggers = list(loggers)

    def log(self, level: LogLevel, event: str, message: str = "", data: EventData = None) -> None:
        for logger in self.loggers:
            logger.log(level, event, message, data)

    def emit(self, level: LogLevel, event: str, message: str, data: EventData) -> None:
        for logger in self.loggers:
            logger.emit(level, event, message, data)
