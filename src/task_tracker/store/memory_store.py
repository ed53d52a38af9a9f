"""In-memory remote task store."""

import logging
import uuid
from dataclasses import replace
from datetime import UTC, datetime
from itertools import count

from task_tracker.errors import ConflictError, TaskNotFoundError
from task_tracker.models import Status, Subtask, Task, TimeLogEntry

logger = logging.getLogger(__name__)


class InMemoryTaskStore:
    """Dict-backed store with the same constraints as the hosted database.

    Subtasks are cascade-deleted with their task and at most one open time log
    may exist per (task_id, user_id). Returned entities are copies.
    """

    def __init__(self) -> None:
        """Initialize empty store."""
        self._tasks: dict[str, Task] = {}
        self._subtasks: dict[str, tuple[str, int, Subtask]] = {}  # id -> (task_id, seq, subtask)
        self._statuses: dict[str, list[Status]] = {}
        self._time_logs: dict[str, tuple[int, TimeLogEntry]] = {}
        self._seq = count()

    # Seeding helpers (not part of the remote contract)

    def add_task(self, task: Task) -> Task:
        """Insert or replace a task."""
        self._tasks[task.id] = replace(task)
        return replace(task)

    def remove_task(self, task_id: str) -> None:
        """Delete a task and cascade to its subtasks."""
        self._tasks.pop(task_id, None)
        for subtask_id in [sid for sid, (tid, _, _) in self._subtasks.items() if tid == task_id]:
            del self._subtasks[subtask_id]

    def set_statuses(self, scope_id: str, statuses: list[Status]) -> None:
        """Replace the statuses of a scope."""
        self._statuses[scope_id] = [replace(s) for s in statuses]

    def add_time_log(self, entry: TimeLogEntry) -> TimeLogEntry:
        """Insert a time log as-is (historical data)."""
        self._time_logs[entry.id] = (next(self._seq), replace(entry))
        return replace(entry)

    # Remote contract

    async def get_task(self, task_id: str) -> Task:
        """Get a task by id."""
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return replace(task)

    async def list_tasks(self) -> list[Task]:
        """List all tasks."""
        return [replace(t) for t in self._tasks.values()]

    async def list_subtasks(self, task_id: str) -> list[Subtask]:
        """List subtasks of a task, oldest first."""
        rows = sorted(
            (seq, subtask) for tid, seq, subtask in self._subtasks.values() if tid == task_id
        )
        return [replace(subtask) for _, subtask in rows]

    async def create_subtask(self, task_id: str, title: str) -> Subtask:
        """Create an incomplete subtask with a store-assigned id."""
        if task_id not in self._tasks:
            raise TaskNotFoundError(task_id)
        subtask = Subtask(
            id=str(uuid.uuid4()),
            title=title,
            is_completed=False,
            created_at=datetime.now(UTC),
        )
        self._subtasks[subtask.id] = (task_id, next(self._seq), subtask)
        return replace(subtask)

    async def update_subtask_completion(self, subtask_id: str, is_completed: bool) -> None:
        """Set the completion flag of a subtask."""
        row = self._subtasks.get(subtask_id)
        if row:
            row[2].is_completed = is_completed

    async def update_subtask_title(self, subtask_id: str, title: str) -> None:
        """Rename a subtask."""
        row = self._subtasks.get(subtask_id)
        if row:
            row[2].title = title

    async def delete_subtask(self, subtask_id: str) -> None:
        """Delete a subtask."""
        self._subtasks.pop(subtask_id, None)

    async def list_statuses(self, scope_id: str) -> list[Status]:
        """List statuses of a scope ordered by position."""
        statuses = sorted(self._statuses.get(scope_id, []), key=lambda s: s.position)
        return [replace(s) for s in statuses]

    async def update_task_status(self, task_id: str, status_id: str) -> None:
        """Move a task to another status."""
        task = self._tasks.get(task_id)
        if task:
            task.status_id = status_id

    async def update_task_title(self, task_id: str, title: str) -> None:
        """Rename a task."""
        task = self._tasks.get(task_id)
        if task:
            task.title = title

    async def list_time_logs(self, task_id: str) -> list[TimeLogEntry]:
        """List time logs of a task, newest first."""
        rows = sorted(
            ((seq, entry) for seq, entry in self._time_logs.values() if entry.task_id == task_id),
            key=lambda row: row[0],
            reverse=True,
        )
        return [replace(entry) for _, entry in rows]

    async def find_open_time_log(self, task_id: str, user_id: str) -> TimeLogEntry | None:
        """Find the running time log of a user on a task."""
        for _, entry in self._time_logs.values():
            if entry.task_id == task_id and entry.user_id == user_id and entry.is_open:
                return replace(entry)
        return None

    async def create_time_log(
        self, task_id: str, user_id: str, subtask_name: str, start_time: datetime
    ) -> TimeLogEntry:
        """Open a time log; at most one may be open per (task_id, user_id)."""
        # Check and insert run without an await in between, so they are atomic on the loop
        for _, entry in self._time_logs.values():
            if entry.task_id == task_id and entry.user_id == user_id and entry.is_open:
                logger.info(f"[InMemoryTaskStore] Open time log exists for {task_id}/{user_id}")
                raise ConflictError(
                    f"Open time log already exists for task {task_id} and user {user_id}"
                )
        entry = TimeLogEntry(
            id=str(uuid.uuid4()),
            task_id=task_id,
            user_id=user_id,
            subtask_name=subtask_name,
            start_time=start_time,
            created_at=datetime.now(UTC),
        )
        self._time_logs[entry.id] = (next(self._seq), entry)
        return replace(entry)

    async def close_time_log(
        self, entry_id: str, end_time: datetime, duration_seconds: int
    ) -> None:
        """Close a running time log."""
        row = self._time_logs.get(entry_id)
        if row:
            row[1].end_time = end_time
            row[1].duration_seconds = duration_seconds
