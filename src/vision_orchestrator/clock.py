"""Time sources and a tick-driven task scheduler.

Every component that sleeps or reads the time takes a ``Clock``. Production
code uses ``SystemClock``; tests pass a ``ManualClock`` and fast-forward it,
so backoff delays and the midnight reset run without real waiting.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

logger = logging.getLogger("vision-orchestrator")


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Local wall-clock time (naive)."""

    @abstractmethod
    def monotonic(self) -> float: ...

    @abstractmethod
    async def sleep(self, seconds: float) -> None: ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now()

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))


class ManualClock(Clock):
    """Deterministic clock: time only moves when advanced or slept on.

    ``sleep`` returns immediately after advancing the clock, and every
    requested duration is kept in ``sleeps`` for assertions.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2024, 1, 15, 9, 0, 0)
        self._mono = 0.0
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self._now

    def monotonic(self) -> float:
        return self._mono

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)
        self._mono += seconds

    def set(self, when: datetime) -> None:
        delta = (when - self._now).total_seconds()
        if delta < 0:
            raise ValueError("ManualClock cannot move backwards")
        self.advance(delta)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(max(0.0, seconds))
        await asyncio.sleep(0)


def next_midnight(now: datetime) -> datetime:
    """Start of the day after ``now``."""
    return datetime.combine(now.date() + timedelta(days=1), datetime.min.time())


@dataclass
class ScheduledTask:
    name: str
    callback: Callable[[], None]
    next_run: datetime
    interval: timedelta | None = None


class Scheduler:
    """Scheduled-task list driven by an injected clock.

    ``run_pending`` fires every task whose time has come; recurring tasks
    are moved to their next slot after the current time, so a long pause
    results in one catch-up run rather than a burst.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._tasks: dict[str, ScheduledTask] = {}

    def schedule(
        self,
        name: str,
        callback: Callable[[], None],
        first_run: datetime,
        interval: timedelta | None = None,
    ) -> ScheduledTask:
        task = ScheduledTask(name, callback, first_run, interval)
        self._tasks[name] = task
        return task

    def cancel(self, name: str) -> bool:
        return self._tasks.pop(name, None) is not None

    def get(self, name: str) -> ScheduledTask | None:
        return self._tasks.get(name)

    def run_pending(self) -> int:
        """Run all due tasks. Returns how many ran."""
        now = self._clock.now()
        due = [t for t in self._tasks.values() if t.next_run <= now]
        for task in sorted(due, key=lambda t: t.next_run):
            # Reschedule before running so a failing callback cannot spin
            if task.interval is None:
                self._tasks.pop(task.name, None)
            else:
                while task.next_run <= now:
                    task.next_run += task.interval
            logger.debug("Running scheduled task '%s'", task.name)
            try:
                task.callback()
            except Exception:
                logger.exception("Scheduled task '%s' failed", task.name)
        return len(due)

    def seconds_until_next(self) -> float | None:
        if not self._tasks:
            return None
        earliest = min(t.next_run for t in self._tasks.values())
        return max(0.0, (earliest - self._clock.now()).total_seconds())

    async def run(self, poll_interval: float = 60.0) -> None:
        """Tick forever; cancel the surrounding task to stop."""
        while True:
            self.run_pending()
            wait = self.seconds_until_next()
            await self._clock.sleep(
                poll_interval if wait is None else min(wait, poll_interval)
            )
