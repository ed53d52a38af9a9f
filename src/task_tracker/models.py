"""Domain models shared by the store, the core and the API."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class Task:
    """Task owned by the remote store. Only status_id and title are mutated here."""

    id: str
    title: str
    status_id: str | None
    scope_id: str | None  # Department whose statuses apply
    priority: int | str | None = None
    assignees: list[str] = field(default_factory=list)
    due_date: str | None = None  # YYYY-MM-DD
    content_type: str | None = None


@dataclass
class Subtask:
    """Checklist item of a task."""

    id: str  # Temporary client id until the store confirms the create
    title: str
    is_completed: bool = False
    created_at: datetime | None = None


@dataclass
class Status:
    """Workflow stage of a scope."""

    id: str
    label: str
    position: int = 0


@dataclass
class TimeLogEntry:
    """Time tracked by one user against a subtask label."""

    id: str
    task_id: str
    user_id: str
    subtask_name: str  # Correlates to Subtask.title, not Subtask.id
    start_time: datetime
    end_time: datetime | None = None  # None while the timer is running
    duration_seconds: int | None = None
    created_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        """True while the timer for this entry is running."""
        return self.end_time is None
