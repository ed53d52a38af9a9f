"""Remote task store contract."""

from datetime import datetime
from typing import Protocol

from task_tracker.models import Status, Subtask, Task, TimeLogEntry


class RemoteTaskStore(Protocol):
    """Protocol for the store that persists tasks, subtasks and time logs.

    Every method may raise a ``StoreError`` subclass. Updates and deletes
    addressed to unknown ids succeed without effect.
    """

    async def get_task(self, task_id: str) -> Task:
        """Get a task by id, raising TaskNotFoundError if absent."""
        ...

    async def list_tasks(self) -> list[Task]:
        """List all tasks."""
        ...

    async def list_subtasks(self, task_id: str) -> list[Subtask]:
        """List subtasks of a task, oldest first."""
        ...

    async def create_subtask(self, task_id: str, title: str) -> Subtask:
        """Create an incomplete subtask; the store assigns its id."""
        ...

    async def update_subtask_completion(self, subtask_id: str, is_completed: bool) -> None:
        """Set the completion flag of a subtask."""
        ...

    async def update_subtask_title(self, subtask_id: str, title: str) -> None:
        """Rename a subtask."""
        ...

    async def delete_subtask(self, subtask_id: str) -> None:
        """Delete a subtask."""
        ...

    async def list_statuses(self, scope_id: str) -> list[Status]:
        """List the workflow statuses of a scope ordered by position."""
        ...

    async def update_task_status(self, task_id: str, status_id: str) -> None:
        """Move a task to another status."""
        ...

    async def update_task_title(self, task_id: str, title: str) -> None:
        """Rename a task."""
        ...

    async def list_time_logs(self, task_id: str) -> list[TimeLogEntry]:
        """List time logs of a task for all users, newest first."""
        ...

    async def find_open_time_log(self, task_id: str, user_id: str) -> TimeLogEntry | None:
        """Find the running time log of a user on a task."""
        ...

    async def create_time_log(
        self, task_id: str, user_id: str, subtask_name: str, start_time: datetime
    ) -> TimeLogEntry:
        """Open a time log, raising ConflictError if one is already open for the pair."""
        ...

    async def close_time_log(
        self, entry_id: str, end_time: datetime, duration_seconds: int
    ) -> None:
        """Close a running time log."""
        ...
