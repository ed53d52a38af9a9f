"""Optimistic subtask list for one task."""

import asyncio
import logging
import uuid
from collections.abc import Callable, Coroutine, Sequence
from dataclasses import replace
from typing import Any

from task_tracker.core.optimistic import OperationResult, optimistic_update
from task_tracker.core.status_inference import StatusInferenceEngine
from task_tracker.models import Status, Subtask, Task
from task_tracker.store.remote_store import RemoteTaskStore

logger = logging.getLogger(__name__)

TEMP_ID_PREFIX = "temp-"

# listener(event_type, task_id)
ChangeListener = Callable[[str, str], None]


def compute_progress(subtasks: Sequence[Subtask]) -> int:
    """Percentage of completed subtasks, rounded half up; 0 for an empty list."""
    total = len(subtasks)
    if total == 0:
        return 0
    completed = sum(1 for s in subtasks if s.is_completed)
    return (200 * completed + total) // (2 * total)


def is_temporary_id(subtask_id: str) -> bool:
    """True for ids generated locally and not yet confirmed by the store."""
    return subtask_id.startswith(TEMP_ID_PREFIX)


class SubtaskStoreController:
    """Keeps a task's subtask list in sync with the store under optimistic updates.

    Mutations change ``subtasks`` before the remote call is awaited. Remote
    calls are not serialized: each completion reconciles against the live
    list, and reconciliation on ids no longer present does nothing.
    """

    def __init__(
        self,
        store: RemoteTaskStore,
        task: Task,
        inference: StatusInferenceEngine | None = None,
        statuses: Sequence[Status] = (),
    ) -> None:
        """Initialize controller for a task."""
        self._store = store
        self.task = task
        self._inference = inference
        self.statuses: list[Status] = list(statuses)
        self.subtasks: list[Subtask] = []
        self.progress = 0
        self._listeners: list[ChangeListener] = []
        self._background_tasks: set[asyncio.Task[Any]] = set()

    def add_listener(self, listener: ChangeListener) -> None:
        """Register a callback invoked after every local state change."""
        self._listeners.append(listener)

    def get(self, subtask_id: str) -> Subtask | None:
        """Find a subtask in the local list."""
        return next((s for s in self.subtasks if s.id == subtask_id), None)

    async def load(self, task_id: str | None = None) -> list[Subtask]:
        """Replace the local list with the store's; empty on failure."""
        task_id = task_id or self.task.id
        try:
            subtasks = await self._store.list_subtasks(task_id)
        except Exception as e:
            logger.error(f"[SubtaskController] Failed to load subtasks of task {task_id}: {e}")
            subtasks = []
        self._set_subtasks(list(subtasks))
        return self.subtasks

    async def add(self, text: str) -> OperationResult:
        """Append a subtask, confirming its store id or removing it on failure."""
        title = text.strip()
        if not title:
            return OperationResult.rejected("Subtask title must not be empty")

        temp_id = f"{TEMP_ID_PREFIX}{uuid.uuid4()}"

        def apply() -> None:
            self._set_subtasks([*self.subtasks, Subtask(id=temp_id, title=title)])
            self._infer()

        def confirm(created: Subtask) -> None:
            if self.get(temp_id) is None:
                logger.debug(f"[SubtaskController] Temp subtask {temp_id} gone before confirm")
                return
            self._set_subtasks([created if s.id == temp_id else s for s in self.subtasks])

        def undo() -> None:
            self._set_subtasks([s for s in self.subtasks if s.id != temp_id])

        return await optimistic_update(
            f"add subtask to task {self.task.id}",
            apply,
            lambda: self._store.create_subtask(self.task.id, title),
            undo=undo,
            confirm=confirm,
        )

    async def toggle_completion(self, subtask_id: str, is_completed: bool) -> OperationResult:
        """Set completion; on failure restore the previous value. Status is not re-inferred."""
        current = self.get(subtask_id)
        if current is None:
            return OperationResult.rejected(f"Unknown subtask: {subtask_id}")
        previous = current.is_completed

        def apply() -> None:
            self._set_completion(subtask_id, is_completed)
            self._infer()

        def undo() -> None:
            self._set_completion(subtask_id, previous)

        return await optimistic_update(
            f"toggle subtask {subtask_id}",
            apply,
            lambda: self._store.update_subtask_completion(subtask_id, is_completed),
            undo=undo,
        )

    async def remove(self, subtask_id: str) -> OperationResult:
        """Delete a subtask; on failure re-append it at the end of the list."""
        removed = self.get(subtask_id)
        if removed is None:
            return OperationResult.rejected(f"Unknown subtask: {subtask_id}")

        def apply() -> None:
            self._set_subtasks([s for s in self.subtasks if s.id != subtask_id])
            self._infer()

        def undo() -> None:
            if self.get(subtask_id) is None:
                self._set_subtasks([*self.subtasks, removed])

        return await optimistic_update(
            f"delete subtask {subtask_id}",
            apply,
            lambda: self._store.delete_subtask(subtask_id),
            undo=undo,
        )

    async def update_text(self, subtask_id: str, text: str) -> OperationResult:
        """Rename a subtask. Best effort: a failed write is reported, not rolled back."""
        if self.get(subtask_id) is None:
            return OperationResult.rejected(f"Unknown subtask: {subtask_id}")

        def apply() -> None:
            self._set_subtasks(
                [replace(s, title=text) if s.id == subtask_id else s for s in self.subtasks]
            )

        return await optimistic_update(
            f"rename subtask {subtask_id}",
            apply,
            lambda: self._store.update_subtask_title(subtask_id, text),
        )

    async def flush(self) -> None:
        """Wait for pending status pushes."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    def _set_completion(self, subtask_id: str, is_completed: bool) -> None:
        self._set_subtasks(
            [
                replace(s, is_completed=is_completed) if s.id == subtask_id else s
                for s in self.subtasks
            ]
        )

    def _set_subtasks(self, subtasks: list[Subtask]) -> None:
        self.subtasks = subtasks
        self.progress = compute_progress(subtasks)
        self._notify("subtasks")

    def _infer(self) -> None:
        """Schedule a status push evaluated on the current (optimistic) list."""
        if self._inference is None:
            return
        snapshot = list(self.subtasks)
        if self._inference.infer(self.task, snapshot, self.statuses) is None:
            return
        self._spawn(self._push_status(snapshot), name=f"status-push-{self.task.id}")

    async def _push_status(self, snapshot: list[Subtask]) -> None:
        assert self._inference is not None
        pushed = await self._inference.push(self.task, snapshot, self.statuses)
        if pushed:
            self._notify("status")

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        # Keep a strong reference until done
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    def _notify(self, event_type: str) -> None:
        for listener in self._listeners:
            try:
                listener(event_type, self.task.id)
            except Exception as e:
                logger.error(f"[SubtaskController] Listener error: {e}", exc_info=True)
