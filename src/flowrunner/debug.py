"""Structured trace collector for step execution and condition evaluation."""

from __future__ import annotations

import json
import logging
import threading
from collections import Counter, deque
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

logger = logging.getLogger("flowrunner.debug")

DebugLevel = Literal["debug", "info", "warn", "error"]

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class DebugEntry(BaseModel):
    """A single trace message."""

    level: DebugLevel
    category: str
    message: str
    data: dict[str, Any] | None = None
    duration_ms: float | None = None
    timestamp: datetime = Field(default_factory=datetime.now)


class DebugLog:
    """Bounded in-memory ring of trace entries, mirrored to the ``flowrunner.debug`` logger."""

    def __init__(self, capacity: int = 1000):
        self._entries: deque[DebugEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def debug(self, category: str, message: str, data: dict[str, Any] | None = None) -> None:
        self._record("debug", category, message, data)

    def info(self, category: str, message: str, data: dict[str, Any] | None = None) -> None:
        self._record("info", category, message, data)

    def warn(self, category: str, message: str, data: dict[str, Any] | None = None) -> None:
        self._record("warn", category, message, data)

    def error(self, category: str, message: str, data: dict[str, Any] | None = None) -> None:
        self._record("error", category, message, data)

    def log_operation(self, category: str, message: str, duration_ms: float) -> None:
        """Record a completed operation together with how long it took."""
        self._record("info", category, f"{message} ({duration_ms:.2f}ms)", None, duration_ms)

    def get_logs(self, level: DebugLevel | None = None) -> list[DebugEntry]:
        with self._lock:
            entries = list(self._entries)
        if level is not None:
            entries = [e for e in entries if e.level == level]
        return entries

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def statistics(self) -> dict[str, int]:
        """Entry counts per level, plus the total."""
        with self._lock:
            counts = Counter(e.level for e in self._entries)
            total = len(self._entries)
        stats = {level: counts.get(level, 0) for level in _LOG_LEVELS}
        stats["total"] = total
        return stats

    def export(self) -> str:
        return json.dumps([e.model_dump(mode="json") for e in self.get_logs()], indent=2)

    def _record(
        self,
        level: DebugLevel,
        category: str,
        message: str,
        data: dict[str, Any] | None,
        duration_ms: float | None = None,
    ) -> None:
        entry = DebugEntry(
            level=level,
            category=category,
            message=message,
            data=data,
            duration_ms=duration_ms,
        )
        with self._lock:
            self._entries.append(entry)
        if data:
            logger.log(_LOG_LEVELS[level], "[%s] %s %s", category, message, data)
        else:
            logger.log(_LOG_LEVELS[level], "[%s] %s", category, message)
