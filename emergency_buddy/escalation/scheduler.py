"""Deadline scheduling for the escalation engine.

The engine never sleeps or polls. Every phase arms exactly one deadline at
entry, and all work happens inside :meth:`DeadlineScheduler.dispatch`, which
applies external signals (trigger/cancel) before any due deadline.
"""

import heapq
import itertools
import time
from collections import deque
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Deque, Iterator, List, Optional, Tuple

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from emergency_buddy.utils.logging import get_logger

logger = get_logger(__name__)

# Deadlines within this margin of the clock are treated as due.
DUE_TOLERANCE_SECONDS = 0.001


class ManualClock:
    """Simulated time source that only moves when told to."""

    def __init__(self, start: float = 0.0):
        self._now = float(start)

    def __call__(self) -> float:
        return self._now

    def set(self, value: float) -> None:
        if value < self._now:
            raise ValueError(f"Clock cannot move backwards ({value} < {self._now})")
        self._now = float(value)

    def advance(self, seconds: float) -> None:
        self.set(self._now + seconds)


class Deadline:
    """A cancellable one-shot timer entry."""

    __slots__ = ("due", "callback", "name", "cancelled", "fired")

    def __init__(self, due: float, callback: Callable[[], None], name: str):
        self.due = due
        self.callback = callback
        self.name = name
        self.cancelled = False
        self.fired = False

    def __repr__(self) -> str:
        return f"<Deadline(name='{self.name}', due={self.due:.3f}, active={self.active})>"

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self) -> None:
        self.cancelled = True


class DeadlineScheduler:
    """Deadline queue with a single cooperative dispatch loop."""

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self.clock = clock or time.time
        self._deadlines: List[Tuple[float, int, Deadline]] = []
        self._signals: Deque[Callable[[], None]] = deque()
        self._sequence = itertools.count()
        self._dispatching = False

    def now(self) -> float:
        return self.clock()

    def call_later(
        self,
        delay: float,
        callback: Callable[[], None],
        name: str = "deadline"
    ) -> Deadline:
        """Arm a deadline ``delay`` seconds from now."""
        if delay < 0:
            raise ValueError(f"Deadline delay must not be negative: {delay}")

        deadline = Deadline(self.now() + delay, callback, name)
        heapq.heappush(self._deadlines, (deadline.due, next(self._sequence), deadline))
        logger.debug("Deadline armed", deadline=name, due=deadline.due)
        self._rearm()
        return deadline

    def cancel(self, deadline: Optional[Deadline]) -> None:
        if deadline is None or not deadline.active:
            return
        deadline.cancel()
        self._prune()
        self._rearm()

    @contextmanager
    def transition(self) -> Iterator[None]:
        """Apply the enclosed block as one transition.

        Signals posted inside the block are held until it finishes, then
        drained. Nested use inside a running dispatch is a no-op.
        """
        if self._dispatching:
            yield
            return

        self._dispatching = True
        try:
            yield
        finally:
            self._dispatching = False
        self.dispatch()

    def post(self, signal: Callable[[], None]) -> None:
        """Queue an external signal and process it as soon as possible.

        Signals posted while a transition is being applied run right after
        it, so transitions never interleave.
        """
        self._signals.append(signal)
        if not self._dispatching:
            self.dispatch()

    def next_deadline(self) -> Optional[Deadline]:
        self._prune()
        return self._deadlines[0][2] if self._deadlines else None

    @property
    def pending_count(self) -> int:
        return sum(1 for _, _, deadline in self._deadlines if deadline.active)

    def dispatch(self) -> int:
        """Apply pending signals and due deadlines, signals first.

        Returns the number of callbacks run.
        """
        if self._dispatching:
            return 0

        self._dispatching = True
        applied = 0
        try:
            while True:
                if self._signals:
                    signal = self._signals.popleft()
                    signal()
                    applied += 1
                    continue

                deadline = self._pop_due()
                if deadline is None:
                    break

                deadline.fired = True
                logger.debug("Deadline fired", deadline=deadline.name, due=deadline.due)
                deadline.callback()
                applied += 1
        finally:
            self._dispatching = False
            self._rearm()

        return applied

    def advance(self, seconds: float) -> None:
        """Move a :class:`ManualClock` forward, firing deadlines in order."""
        if not isinstance(self.clock, ManualClock):
            raise TypeError("advance() requires a ManualClock")
        if seconds < 0:
            raise ValueError("Cannot advance by a negative amount")

        target = self.clock() + seconds
        while True:
            upcoming = self.next_deadline()
            if upcoming is None or upcoming.due > target:
                break
            self.clock.set(max(upcoming.due, self.clock()))
            self.dispatch()

        self.clock.set(target)
        self.dispatch()

    def _pop_due(self) -> Optional[Deadline]:
        self._prune()
        if self._deadlines and self._deadlines[0][0] <= self.now() + DUE_TOLERANCE_SECONDS:
            return heapq.heappop(self._deadlines)[2]
        return None

    def _prune(self) -> None:
        while self._deadlines and not self._deadlines[0][2].active:
            heapq.heappop(self._deadlines)

    def _rearm(self) -> None:
        """Hook for real-time drivers; called whenever the earliest deadline may change."""


class EscalationScheduler(DeadlineScheduler):
    """Real-time driver backed by an APScheduler ``AsyncIOScheduler``.

    A single one-shot job is kept pointed at the earliest deadline, so at
    most one timer is live at any instant.
    """

    JOB_ID = "escalation_dispatch"

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None):
        super().__init__(clock=time.time)
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self.is_running = False

    async def start(self) -> None:
        """Start the escalation scheduler."""
        if self.is_running:
            logger.warning("Escalation scheduler already running")
            return

        try:
            self.scheduler.start()
            self.is_running = True
            self._rearm()
            logger.info("Escalation scheduler started")

        except Exception as e:
            logger.error("Error starting escalation scheduler", error=str(e))
            raise

    async def stop(self) -> None:
        """Stop the escalation scheduler."""
        if not self.is_running:
            return

        try:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Escalation scheduler stopped")

        except Exception as e:
            logger.error("Error stopping escalation scheduler", error=str(e))

    def get_job_status(self) -> dict:
        """Get status of the scheduled wake-up."""
        if not self.is_running:
            return {"status": "stopped", "jobs": []}

        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger)
            })

        return {
            "status": "running",
            "jobs": jobs
        }

    def _rearm(self) -> None:
        upcoming = self.next_deadline()
        if upcoming is None:
            try:
                self.scheduler.remove_job(self.JOB_ID)
            except JobLookupError:
                pass
            return

        self.scheduler.add_job(
            self._wake_up,
            trigger=DateTrigger(run_date=datetime.fromtimestamp(upcoming.due, tz=timezone.utc)),
            id=self.JOB_ID,
            name=f"Escalation deadline: {upcoming.name}",
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=None
        )

    async def _wake_up(self) -> None:
        # Coroutine so AsyncIOExecutor runs it on the event loop thread.
        self.dispatch()
