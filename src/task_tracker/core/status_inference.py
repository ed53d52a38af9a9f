"""Infer task status from subtask completion."""

import logging
import re
from collections.abc import Sequence
from enum import Enum

from task_tracker.config import StatusPatterns
from task_tracker.errors import StoreError
from task_tracker.models import Status, Subtask, Task
from task_tracker.store.remote_store import RemoteTaskStore

logger = logging.getLogger(__name__)


class StatusClass(str, Enum):
    """Workflow class a status label can belong to."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class StatusInferenceEngine:
    """Derives a target status from completion ratio and pushes it to the store.

    The push only moves a task towards the inferred status. A manual status
    choice stays until the next subtask mutation overwrites it.
    """

    def __init__(self, store: RemoteTaskStore, patterns: StatusPatterns | None = None) -> None:
        """Initialize with the store and label patterns."""
        self._store = store
        patterns = patterns or StatusPatterns()
        self._patterns = {
            StatusClass.NOT_STARTED: _compile(patterns.not_started),
            StatusClass.IN_PROGRESS: _compile(patterns.in_progress),
            StatusClass.DONE: _compile(patterns.done),
        }

    def classify(self, subtasks: Sequence[Subtask]) -> StatusClass | None:
        """Status class implied by the completion ratio, None without subtasks."""
        total = len(subtasks)
        if total == 0:
            return None
        completed = sum(1 for s in subtasks if s.is_completed)
        if completed == 0:
            return StatusClass.NOT_STARTED
        if completed == total:
            return StatusClass.DONE
        return StatusClass.IN_PROGRESS

    def label_class(self, label: str) -> StatusClass | None:
        """Status class a label matches, checked in not-started, in-progress, done order."""
        for status_class, pattern in self._patterns.items():
            if pattern.search(label):
                return status_class
        return None

    def match_status(self, status_class: StatusClass, statuses: Sequence[Status]) -> Status | None:
        """First status whose label matches the class patterns."""
        pattern = self._patterns[status_class]
        return next((s for s in statuses if pattern.search(s.label)), None)

    def infer(
        self, task: Task, subtasks: Sequence[Subtask], statuses: Sequence[Status]
    ) -> str | None:
        """Status id the task should move to, or None when no change applies."""
        status_class = self.classify(subtasks)
        if status_class is None:
            return None
        status = self.match_status(status_class, statuses)
        if status is None:
            logger.debug(f"[StatusInference] No status labelled as {status_class.value}")
            return None
        if status.id == task.status_id:
            return None
        return status.id

    async def push(
        self, task: Task, subtasks: Sequence[Subtask], statuses: Sequence[Status]
    ) -> str | None:
        """Infer and push the task status.

        Args:
            task: Task whose status_id is updated on success
            subtasks: Candidate subtask list (the optimistic state)
            statuses: Statuses available in the task's scope

        Returns:
            The pushed status id, None when nothing was pushed or the push failed
        """
        target = self.infer(task, subtasks, statuses)
        if target is None:
            return None

        logger.info(f"[StatusInference] Task {task.id}: {task.status_id} -> {target}")
        try:
            await self._store.update_task_status(task.id, target)
        except StoreError as e:
            logger.error(f"[StatusInference] Failed to update status of task {task.id}: {e}")
            return None

        task.status_id = target
        return target


def _compile(fragments: Sequence[str]) -> re.Pattern[str]:
    if not fragments:
        return re.compile(r"(?!)")  # Never matches
    return re.compile("|".join(f"(?:{f})" for f in fragments), re.IGNORECASE)
