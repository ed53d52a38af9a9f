"""Per task and user editing session."""

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from task_tracker.config import StatusPatterns
from task_tracker.core.optimistic import OperationResult
from task_tracker.core.status_inference import StatusInferenceEngine
from task_tracker.core.subtask_controller import ChangeListener, SubtaskStoreController
from task_tracker.core.timer_guard import (
    Clock,
    TimerGuard,
    TimerOutcome,
    TimerResult,
    format_duration,
    utc_now,
)
from task_tracker.errors import StoreError
from task_tracker.models import Status, Task
from task_tracker.store.remote_store import RemoteTaskStore

if TYPE_CHECKING:
    from task_tracker.status_cache import StatusCache

logger = logging.getLogger(__name__)


class TaskSession:
    """Subtask controller, status inference and timer guard for one task and user."""

    def __init__(
        self,
        store: RemoteTaskStore,
        task: Task,
        user_id: str,
        patterns: StatusPatterns | None = None,
        status_cache: "StatusCache | None" = None,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize session; call open() before use."""
        self._store = store
        self.task = task
        self.user_id = user_id
        self._status_cache = status_cache
        self.inference = StatusInferenceEngine(store, patterns)
        self.subtasks = SubtaskStoreController(store, task, self.inference)
        self.timer = TimerGuard(store, task.id, user_id, clock=clock)
        self._listeners: list[ChangeListener] = []

    @property
    def statuses(self) -> list[Status]:
        """Statuses of the task's scope."""
        return self.subtasks.statuses

    def add_listener(self, listener: ChangeListener) -> None:
        """Register a change callback for subtask, status, title and timer events."""
        self._listeners.append(listener)
        self.subtasks.add_listener(listener)

    async def open(self) -> None:
        """Load statuses, subtasks and timer state."""
        await self.load_statuses()
        await self.subtasks.load(self.task.id)
        await self.timer.load()
        logger.info(
            f"[TaskSession] Opened task {self.task.id} for user {self.user_id} "
            f"({len(self.subtasks.subtasks)} subtasks)"
        )

    async def load_statuses(self) -> list[Status]:
        """Load statuses of the task's scope; empty on failure or without scope."""
        statuses: list[Status] = []
        if self.task.scope_id:
            if self._status_cache is not None:
                statuses = await self._status_cache.get_statuses(self.task.scope_id)
            else:
                try:
                    statuses = await self._store.list_statuses(self.task.scope_id)
                except StoreError as e:
                    logger.error(f"[TaskSession] Failed to load statuses: {e}")
        self.subtasks.statuses = statuses
        return statuses

    async def set_status(self, status_id: str) -> OperationResult:
        """Explicit status choice by the user."""
        if self.statuses and status_id not in {s.id for s in self.statuses}:
            return OperationResult.rejected(f"Unknown status: {status_id}")
        try:
            await self._store.update_task_status(self.task.id, status_id)
        except StoreError as e:
            logger.error(f"[TaskSession] Failed to update status of task {self.task.id}: {e}")
            return OperationResult(ok=False, error=e)
        self.task.status_id = status_id
        self._notify("status")
        return OperationResult(ok=True, value=status_id)

    async def update_title(self, title: str) -> OperationResult:
        """Rename the task; nothing is written when the title is unchanged."""
        if title == self.task.title:
            return OperationResult(ok=True, value=title)
        try:
            await self._store.update_task_title(self.task.id, title)
        except StoreError as e:
            logger.error(f"[TaskSession] Failed to update title of task {self.task.id}: {e}")
            return OperationResult(ok=False, error=e)
        self.task.title = title
        self._notify("title")
        return OperationResult(ok=True, value=title)

    async def start_timer(self, subtask_name: str) -> TimerResult:
        """Start the user's timer on a subtask label."""
        result = await self.timer.start(subtask_name)
        if result.outcome != TimerOutcome.FAILED:
            self._notify("timer")
        return result

    async def stop_timer(self) -> TimerResult:
        """Stop the user's running timer."""
        result = await self.timer.stop()
        if result.ok:
            self._notify("timer")
        return result

    def timer_view(self) -> dict[str, Any]:
        """Timer state and per-subtask times for rendering."""
        active = self.timer.active
        return {
            "running": active is not None,
            "subtask_name": active.subtask_name if active else None,
            "entry_id": active.entry_id if active else None,
            "start_time": active.start_time if active else None,
            "elapsed_seconds": self.timer.elapsed_seconds(),
            "elapsed": format_duration(self.timer.elapsed_seconds()),
            "subtasks": [
                {
                    "subtask_id": s.id,
                    "title": s.title,
                    "is_active": active is not None and active.subtask_name == s.title,
                    "seconds": self.timer.display_seconds(s.title),
                    "display": format_duration(self.timer.display_seconds(s.title)),
                    "can_start": active is None
                    and not self.timer.is_busy
                    and not s.is_completed,
                }
                for s in self.subtasks.subtasks
            ],
        }

    def _notify(self, event_type: str) -> None:
        for listener in self._listeners:
            try:
                listener(event_type, self.task.id)
            except Exception as e:
                logger.error(f"[TaskSession] Listener error: {e}", exc_info=True)


class SessionRegistry:
    """Keeps one opened TaskSession per (task_id, user_id)."""

    def __init__(
        self,
        store: RemoteTaskStore,
        patterns: StatusPatterns | None = None,
        status_cache: "StatusCache | None" = None,
        listener: ChangeListener | None = None,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize empty registry."""
        self._store = store
        self._patterns = patterns
        self._status_cache = status_cache
        self._listener = listener
        self._clock = clock
        self._sessions: dict[tuple[str, str], TaskSession] = {}
        self._opening: dict[tuple[str, str], asyncio.Lock] = {}

    def get(self, task_id: str, user_id: str) -> TaskSession | None:
        """Get an opened session."""
        return self._sessions.get((task_id, user_id))

    def close_task(self, task_id: str) -> int:
        """Drop every session of a task (e.g. after the task was deleted).

        Returns:
            Number of sessions dropped
        """
        keys = [key for key in self._sessions if key[0] == task_id]
        for key in keys:
            del self._sessions[key]
            self._opening.pop(key, None)
        if keys:
            logger.info(f"[SessionRegistry] Closed {len(keys)} sessions of task {task_id}")
        return len(keys)

    async def open(self, task_id: str, user_id: str) -> TaskSession:
        """Get or open the session for (task_id, user_id).

        Raises:
            TaskNotFoundError: If the task does not exist
        """
        key = (task_id, user_id)
        session = self._sessions.get(key)
        if session is not None:
            return session

        lock = self._opening.setdefault(key, asyncio.Lock())
        try:
            async with lock:
                session = self._sessions.get(key)
                if session is not None:
                    return session

                task = await self._store.get_task(task_id)
                session = TaskSession(
                    self._store,
                    task,
                    user_id,
                    patterns=self._patterns,
                    status_cache=self._status_cache,
                    clock=self._clock,
                )
                if self._listener:
                    session.add_listener(self._listener)
                await session.open()
                self._sessions[key] = session
                return session
        finally:
            # Locks are only needed while a session is being opened
            if self._opening.get(key) is lock:
                del self._opening[key]
