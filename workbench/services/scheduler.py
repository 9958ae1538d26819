"""scheduler.py

Single-threaded periodic timers for the quote countdown and the transfer
status poll.

Nothing here spawns threads.  A :class:`Scheduler` only *remembers* when
each :class:`PeriodicTask` is due; the owner of the event loop (the
Streamlit rerun triggered by ``streamlit-autorefresh``, or a test that
advances a :class:`ManualClock`) calls :meth:`Scheduler.run_due` to fire
whatever has elapsed.  Every live task is listed in
:attr:`Scheduler.active`, so a timer that outlives its view is visible.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Hashable, Optional, Protocol

from workbench.logger import setup_logger, log_extra

logger = setup_logger(__name__)


# -----------------------------------------------------------------------------
# Clocks
# -----------------------------------------------------------------------------

class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """Clock that only moves when told to – for deterministic tests."""

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> datetime:
        self._now += timedelta(seconds=seconds)
        return self._now


# -----------------------------------------------------------------------------
# Tasks
# -----------------------------------------------------------------------------

class PeriodicTask:
    """Handle returned by :meth:`Scheduler.start`; call :meth:`stop` to release."""

    def __init__(
        self,
        scheduler: "Scheduler",
        interval_ms: int,
        callback: Callable[[], None],
        owner: Optional[Hashable],
        next_due: datetime,
    ):
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        self._scheduler = scheduler
        self.interval_ms = interval_ms
        self.callback = callback
        self.owner = owner
        self.next_due = next_due
        self.runs = 0

    @property
    def running(self) -> bool:
        return self in self._scheduler.active

    def stop(self) -> None:
        self._scheduler._remove(self)

    def __repr__(self) -> str:
        return f"PeriodicTask(owner={self.owner!r}, interval_ms={self.interval_ms}, runs={self.runs})"


class Scheduler:
    """Registry of periodic tasks driven by :meth:`run_due`."""

    def __init__(self, clock: Clock | None = None):
        self.clock = clock or SystemClock()
        self.active: list[PeriodicTask] = []

    def start(
        self,
        interval_ms: int,
        callback: Callable[[], None],
        owner: Optional[Hashable] = None,
    ) -> PeriodicTask:
        """Schedule *callback* every *interval_ms*; first run one interval from now."""
        due = self.clock.now() + timedelta(milliseconds=interval_ms)
        task = PeriodicTask(self, interval_ms, callback, owner, due)
        self.active.append(task)
        logger.debug("timer started", extra=log_extra(owner=str(owner), interval_ms=interval_ms))
        return task

    def _remove(self, task: PeriodicTask) -> None:
        if task in self.active:
            self.active.remove(task)
            logger.debug("timer stopped", extra=log_extra(owner=str(task.owner), runs=task.runs))

    def run_due(self) -> int:
        """Fire every task whose deadline has passed; return how many ran.

        Each task runs at most once per call – ticks missed while nobody
        pumped the scheduler are coalesced – and is rescheduled one
        interval after *now*.  A callback may stop its own task (or any
        other); stopped tasks are skipped even if they were due.
        """
        now = self.clock.now()
        fired = 0
        for task in list(self.active):
            if task not in self.active or task.next_due > now:
                continue
            task.next_due = now + timedelta(milliseconds=task.interval_ms)
            task.runs += 1
            fired += 1
            try:
                task.callback()
            except Exception:
                logger.exception("timer callback failed", extra=log_extra(owner=str(task.owner)))
        return fired

    def next_due(self) -> datetime | None:
        """Earliest pending deadline (``None`` when idle)."""
        return min((t.next_due for t in self.active), default=None)

    def stop_owner(self, owner: Hashable) -> int:
        """Stop every task registered by *owner*; return how many were stopped."""
        doomed = [t for t in self.active if t.owner == owner]
        for task in doomed:
            task.stop()
        return len(doomed)

    def stop_all(self) -> None:
        for task in list(self.active):
            task.stop()
