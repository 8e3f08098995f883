"""Injected error reporter.

One ``ErrorReporter`` is built at startup and handed to every component
that reports failures. It logs each report, keeps a bounded history for
the API, and fans reports out to subscribers (UI toasts, metrics, tests).
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, Field

from .clock import Clock, SystemClock

logger = logging.getLogger("vision-orchestrator")


class ErrorRecord(BaseModel):
    code: str
    message: str
    component: str = ""
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: str


ReportHandler = Callable[[ErrorRecord], None]


class ErrorReporter:
    def __init__(self, clock: Clock | None = None, max_records: int = 200) -> None:
        self._clock = clock or SystemClock()
        self._records: deque[ErrorRecord] = deque(maxlen=max_records)
        self._subs: dict[int, ReportHandler] = {}
        self._id_gen = itertools.count(1)
        self._lock = threading.RLock()

    def report(
        self,
        code: str,
        message: str,
        *,
        component: str = "",
        details: dict[str, Any] | None = None,
        level: int = logging.WARNING,
    ) -> ErrorRecord:
        record = ErrorRecord(
            code=code,
            message=message,
            component=component,
            details=details or {},
            timestamp=self._clock.now().isoformat(),
        )
        logger.log(level, "[%s] %s: %s", component or "core", code, message)
        with self._lock:
            self._records.append(record)
            handlers = list(self._subs.values())
        for handler in handlers:
            try:
                handler(record)
            except Exception:
                logger.exception("Error report subscriber failed for '%s'", code)
        return record

    def subscribe(self, handler: ReportHandler) -> int:
        """Register a handler. Returns subscription id."""
        sub_id = next(self._id_gen)
        with self._lock:
            self._subs[sub_id] = handler
        return sub_id

    def unsubscribe(self, sub_id: int) -> bool:
        with self._lock:
            return self._subs.pop(sub_id, None) is not None

    def recent(self, limit: int = 50) -> list[ErrorRecord]:
        with self._lock:
            records = list(self._records)
        return records[-limit:] if limit > 0 else []

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
