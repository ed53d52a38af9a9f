"""API models for TaskTracker."""

from datetime import datetime

from pydantic import BaseModel, Field

from task_tracker.models import Status, Subtask, Task, TimeLogEntry


class TaskResponse(BaseModel):
    """API response model for tasks."""

    id: str
    title: str
    status_id: str | None
    scope_id: str | None
    priority: int | str | None
    assignees: list[str]
    due_date: str | None
    content_type: str | None

    @classmethod
    def from_task(cls, task: Task) -> "TaskResponse":
        """Convert Task to TaskResponse."""
        return cls(
            id=task.id,
            title=task.title,
            status_id=task.status_id,
            scope_id=task.scope_id,
            priority=task.priority,
            assignees=task.assignees,
            due_date=task.due_date,
            content_type=task.content_type,
        )


class SubtaskResponse(BaseModel):
    """API response model for subtasks."""

    id: str
    title: str
    is_completed: bool
    pending: bool  # Temporary id, create not yet confirmed

    @classmethod
    def from_subtask(cls, subtask: Subtask, pending: bool = False) -> "SubtaskResponse":
        """Convert Subtask to SubtaskResponse."""
        return cls(
            id=subtask.id,
            title=subtask.title,
            is_completed=subtask.is_completed,
            pending=pending,
        )


class StatusResponse(BaseModel):
    """API response model for statuses."""

    id: str
    label: str
    position: int
    status_class: str | None  # not_started / in_progress / done, None if unclassified

    @classmethod
    def from_status(cls, status: Status, status_class: str | None) -> "StatusResponse":
        """Convert Status to StatusResponse."""
        return cls(
            id=status.id, label=status.label, position=status.position, status_class=status_class
        )


class SubtaskTimeResponse(BaseModel):
    """Timer display for one subtask."""

    subtask_id: str
    title: str
    is_active: bool
    seconds: int
    display: str  # HH:MM:SS
    can_start: bool


class TimerResponse(BaseModel):
    """Timer state of a user on a task."""

    running: bool
    subtask_name: str | None
    entry_id: str | None
    start_time: datetime | None
    elapsed_seconds: int
    elapsed: str
    subtasks: list[SubtaskTimeResponse]


class TaskDetailResponse(BaseModel):
    """Task with subtasks, progress, statuses and the user's timer."""

    task: TaskResponse
    subtasks: list[SubtaskResponse]
    progress: int
    statuses: list[StatusResponse]
    timer: TimerResponse


class TimeLogResponse(BaseModel):
    """API response model for time logs."""

    id: str
    task_id: str
    user_id: str
    subtask_name: str
    start_time: datetime
    end_time: datetime | None
    duration_seconds: int | None

    @classmethod
    def from_entry(cls, entry: TimeLogEntry) -> "TimeLogResponse":
        """Convert TimeLogEntry to TimeLogResponse."""
        return cls(
            id=entry.id,
            task_id=entry.task_id,
            user_id=entry.user_id,
            subtask_name=entry.subtask_name,
            start_time=entry.start_time,
            end_time=entry.end_time,
            duration_seconds=entry.duration_seconds,
        )


class CreateSubtaskRequest(BaseModel):
    """Request model for adding a subtask."""

    title: str


class UpdateCompletionRequest(BaseModel):
    """Request model for toggling a subtask."""

    is_completed: bool


class UpdateTitleRequest(BaseModel):
    """Request model for renaming a task or subtask."""

    title: str


class UpdateStatusRequest(BaseModel):
    """Request model for an explicit status choice."""

    status_id: str


class StartTimerRequest(BaseModel):
    """Request model for starting a timer."""

    subtask_name: str = Field(min_length=1)
