"""Single running timer per task and user."""

import asyncio
import logging
import math
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from task_tracker.errors import ConflictError, StoreError
from task_tracker.models import TimeLogEntry
from task_tracker.store.remote_store import RemoteTaskStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time in UTC."""
    return datetime.now(UTC)


def format_duration(seconds: int) -> str:
    """Format seconds as HH:MM:SS."""
    seconds = max(0, int(seconds))
    h, rem = divmod(seconds, 3600)
    m, s = divmod(rem, 60)
    return f"{h:02d}:{m:02d}:{s:02d}"


class TimerOutcome(str, Enum):
    """Result kinds of timer operations."""

    STARTED = "started"
    STOPPED = "stopped"
    ALREADY_RUNNING = "already_running"
    NOT_RUNNING = "not_running"
    FAILED = "failed"


@dataclass
class ActiveTimer:
    """Locally tracked running entry."""

    entry_id: str
    subtask_name: str
    start_time: datetime


@dataclass
class TimerResult:
    """Outcome of a start/stop call."""

    outcome: TimerOutcome
    active: ActiveTimer | None = None
    error: StoreError | None = None
    duration_seconds: int | None = None

    @property
    def ok(self) -> bool:
        """True when the requested transition happened."""
        return self.outcome in (TimerOutcome.STARTED, TimerOutcome.STOPPED)


class TimerGuard:
    """Idle/Running state machine for the timer of one user on one task.

    The store's uniqueness constraint on open entries is authoritative; local
    state is re-synchronized from the store whenever it reports a conflict.
    """

    def __init__(
        self,
        store: RemoteTaskStore,
        task_id: str,
        user_id: str,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize an idle guard for (task_id, user_id)."""
        self._store = store
        self.task_id = task_id
        self.user_id = user_id
        self._clock = clock
        self.active: ActiveTimer | None = None
        self.time_logs: list[TimeLogEntry] = []
        self._busy = False

    @property
    def is_running(self) -> bool:
        """True while a timer entry is tracked locally."""
        return self.active is not None

    @property
    def is_busy(self) -> bool:
        """True while a start or stop call is in flight."""
        return self._busy

    async def load(self) -> None:
        """Load time logs and adopt the user's open entry, if any."""
        await self.load_time_logs()
        await self._resync()

    async def load_time_logs(self) -> list[TimeLogEntry]:
        """Reload the task's time logs; empty on failure."""
        try:
            self.time_logs = await self._store.list_time_logs(self.task_id)
        except Exception as e:
            logger.error(f"[TimerGuard] Failed to load time logs of task {self.task_id}: {e}")
            self.time_logs = []
        return self.time_logs

    async def start(self, subtask_name: str) -> TimerResult:
        """Start timing a subtask label.

        Returns ALREADY_RUNNING without touching the store when a timer is
        running or a call is in flight; also when the store reports an open
        entry for this user, after adopting that entry.
        """
        if self.active is not None or self._busy:
            logger.info(f"[TimerGuard] Timer already running for task {self.task_id}")
            return TimerResult(TimerOutcome.ALREADY_RUNNING, active=self.active)

        self._busy = True
        try:
            start_time = self._clock()
            try:
                entry = await self._store.create_time_log(
                    self.task_id, self.user_id, subtask_name, start_time
                )
            except ConflictError as e:
                logger.warning(
                    f"[TimerGuard] Store rejected timer for {self.task_id}/{self.user_id}: {e}"
                )
                await self._resync()
                return TimerResult(TimerOutcome.ALREADY_RUNNING, active=self.active, error=e)
            except StoreError as e:
                logger.error(f"[TimerGuard] Failed to start timer: {e}")
                return TimerResult(TimerOutcome.FAILED, error=e)

            self.active = ActiveTimer(
                entry_id=entry.id, subtask_name=subtask_name, start_time=start_time
            )
            logger.info(f"[TimerGuard] Started timer {entry.id} on '{subtask_name}'")
            return TimerResult(TimerOutcome.STARTED, active=self.active)
        finally:
            self._busy = False

    async def stop(self) -> TimerResult:
        """Stop the running timer; on failure the running state is kept."""
        active = self.active
        if active is None:
            return TimerResult(TimerOutcome.NOT_RUNNING)
        if self._busy:
            return TimerResult(TimerOutcome.FAILED, active=active)

        self._busy = True
        try:
            end_time = self._clock()
            duration = self._seconds_between(active.start_time, end_time)
            try:
                await self._store.close_time_log(active.entry_id, end_time, duration)
            except StoreError as e:
                logger.error(f"[TimerGuard] Failed to stop timer {active.entry_id}: {e}")
                return TimerResult(TimerOutcome.FAILED, active=self.active, error=e)

            logger.info(f"[TimerGuard] Stopped timer {active.entry_id} after {duration}s")
            self.active = None
        finally:
            self._busy = False

        await self.load()
        return TimerResult(TimerOutcome.STOPPED, active=self.active, duration_seconds=duration)

    def elapsed_seconds(self) -> int:
        """Seconds since the running timer started, 0 when idle."""
        if self.active is None:
            return 0
        return self._seconds_between(self.active.start_time, self._clock())

    def total_seconds_for(self, subtask_name: str) -> int:
        """Logged seconds for a subtask label, summed over closed entries."""
        return sum(
            log.duration_seconds or 0
            for log in self.time_logs
            if log.subtask_name == subtask_name and log.duration_seconds
        )

    def display_seconds(self, subtask_name: str) -> int:
        """Elapsed seconds for the running subtask, logged total for the others."""
        if self.active is not None and self.active.subtask_name == subtask_name:
            return self.elapsed_seconds()
        return self.total_seconds_for(subtask_name)

    async def ticks(self, interval: float = 1.0) -> AsyncIterator[int]:
        """Yield elapsed seconds every interval while the timer runs."""
        while self.active is not None:
            yield self.elapsed_seconds()
            await asyncio.sleep(interval)

    async def _resync(self) -> None:
        """Adopt the store's open entry for this user as the running timer."""
        try:
            entry = await self._store.find_open_time_log(self.task_id, self.user_id)
        except StoreError as e:
            logger.error(f"[TimerGuard] Failed to query open timer: {e}")
            return

        if entry is None:
            self.active = None
            return
        self.active = ActiveTimer(
            entry_id=entry.id, subtask_name=entry.subtask_name, start_time=entry.start_time
        )
        logger.info(f"[TimerGuard] Adopted open timer {entry.id} on '{entry.subtask_name}'")

    @staticmethod
    def _seconds_between(start: datetime, end: datetime) -> int:
        return max(0, math.floor((end - start).total_seconds()))
