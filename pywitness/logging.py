"""Logging for pywitness.

Category-tagged records with a verbosity threshold, plus named counters
(``states.unsat``, ``synthesis.attempts``, ...) and timers that report
what a search spent its effort on.
"""

from __future__ import annotations

import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any, TextIO


class LogLevel(IntEnum):
    QUIET = 0
    NORMAL = 1
    VERBOSE = 2
    DEBUG = 3
    TRACE = 4


RESET = "\033[0m"
GRAY = "\033[90m"
CYAN = "\033[36m"
YELLOW = "\033[33m"

INDICATORS = {
    LogLevel.NORMAL: ("•", "\033[37m"),
    LogLevel.VERBOSE: ("→", "\033[34m"),
    LogLevel.DEBUG: ("⚙", "\033[35m"),
    LogLevel.TRACE: ("⋯", GRAY),
}


@dataclass
class LogEntry:
    """One record; ``context`` holds the keyword details passed with it."""

    level: LogLevel
    message: str
    category: str = "general"
    timestamp: float = field(default_factory=time.time)
    context: dict[str, Any] = field(default_factory=dict)

    def format(self, color: bool = True, show_time: bool = True) -> str:
        parts = []
        if show_time:
            stamp = time.strftime("%H:%M:%S", time.localtime(self.timestamp))
            parts.append(f"{GRAY}{stamp}{RESET}" if color else stamp)
        char, code = INDICATORS.get(self.level, ("", ""))
        if char:
            parts.append(f"{code}{char}{RESET}" if color else char)
        if self.category != "general":
            tag = f"[{self.category}]"
            parts.append(f"{CYAN}{tag}{RESET}" if color else tag)
        parts.append(self.message)
        if self.context:
            details = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"({details})")
        return " ".join(parts)


class WitnessLogger:
    """Logger shared by the explorer, the resolver and the synthesizer.

    Every record is retained, up to ``max_entries``, so tests and callers can
    inspect what the search did; only records at or below ``level`` are
    written to the stream and to ``file_path``.
    """

    def __init__(
        self,
        level: LogLevel = LogLevel.NORMAL,
        color: bool = True,
        stream: TextIO | None = None,
        file_path: Path | None = None,
        max_entries: int = 10000,
    ):
        self.level = level
        self._stream = stream or sys.stderr
        self._color = color and self._stream.isatty() and sys.platform != "win32"
        self._file_handle: TextIO | None = None
        if file_path is not None:
            self._file_handle = open(file_path, "w", encoding="utf-8")
        self._entries: list[LogEntry] = []
        self._max_entries = max_entries
        self._counters: dict[str, int] = {}

    def _keep(self, entry: LogEntry) -> None:
        self._entries.append(entry)
        if len(self._entries) > self._max_entries:
            del self._entries[: len(self._entries) - self._max_entries]

    def log(self, level: LogLevel, message: str, category: str = "general", **context: Any) -> None:
        entry = LogEntry(level=level, message=message, category=category, context=context)
        self._keep(entry)
        if level <= self.level:
            self._stream.write(entry.format(color=self._color) + "\n")
            self._stream.flush()
            if self._file_handle:
                self._file_handle.write(entry.format(color=False) + "\n")
                self._file_handle.flush()

    def verbose(self, message: str, **context: Any) -> None:
        self.log(LogLevel.VERBOSE, message, **context)

    def debug(self, message: str, **context: Any) -> None:
        self.log(LogLevel.DEBUG, message, **context)

    def trace(self, message: str, **context: Any) -> None:
        self.log(LogLevel.TRACE, message, **context)

    def warning(self, message: str, category: str = "general") -> None:
        """Recoverable problem; written unless the logger is quiet."""
        self._keep(LogEntry(LogLevel.NORMAL, message, category))
        if self.level > LogLevel.QUIET:
            prefix = f"{YELLOW}⚠{RESET}" if self._color else "⚠"
            self._stream.write(f"{prefix} {message}\n")
            self._stream.flush()

    @contextmanager
    def timer(self, name: str, category: str = "timing"):
        start = time.perf_counter()
        try:
            yield
        finally:
            self.verbose(f"{name}: {time.perf_counter() - start:.3f}s", category=category)

    def count(self, name: str, increment: int = 1) -> int:
        """Increment a counter and return its new value."""
        self._counters[name] = self._counters.get(name, 0) + increment
        return self._counters[name]

    def get_count(self, name: str) -> int:
        return self._counters.get(name, 0)

    def counters(self, prefix: str = "") -> dict[str, int]:
        return {k: v for k, v in self._counters.items() if k.startswith(prefix)}

    def get_entries(self, level: LogLevel | None = None, category: str | None = None) -> list[LogEntry]:
        entries = self._entries
        if level is not None:
            entries = [e for e in entries if e.level == level]
        if category is not None:
            entries = [e for e in entries if e.category == category]
        return entries

    def close(self) -> None:
        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None


_logger: WitnessLogger | None = None


def get_logger() -> WitnessLogger:
    global _logger
    if _logger is None:
        _logger = WitnessLogger()
    return _logger


def set_logger(logger: WitnessLogger) -> None:
    global _logger
    _logger = logger


def configure_logging(
    level: LogLevel = LogLevel.NORMAL,
    color: bool = True,
    file_path: Path | None = None,
) -> WitnessLogger:
    """Replace the global logger and return the new one."""
    global _logger
    _logger = WitnessLogger(level=level, color=color, file_path=file_path)
    return _logger


__all__ = [
    "LogLevel",
    "LogEntry",
    "WitnessLogger",
    "get_logger",
    "set_logger",
    "configure_logging",
]
