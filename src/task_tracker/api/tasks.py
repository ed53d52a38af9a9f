"""Task and subtask API endpoints."""

import logging

from fastapi import APIRouter, HTTPException

from task_tracker.api.models import (
    CreateSubtaskRequest,
    StatusResponse,
    SubtaskResponse,
    TaskDetailResponse,
    TaskResponse,
    TimerResponse,
    UpdateCompletionRequest,
    UpdateStatusRequest,
    UpdateTitleRequest,
)
from task_tracker.core.optimistic import OperationResult
from task_tracker.core.session import TaskSession
from task_tracker.core.subtask_controller import is_temporary_id
from task_tracker.errors import StoreError, TaskNotFoundError
from task_tracker.factory import get_session_registry, get_status_cache, get_store

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/tasks", response_model=list[TaskResponse])
async def list_tasks(
    scope_id: str | None = None,
    status_id: str | None = None,
) -> list[TaskResponse]:
    """List tasks.

    Args:
        scope_id: Only tasks of this scope (department)
        status_id: Comma-separated list of status ids to filter

    Returns:
        List of tasks matching the filter
    """
    try:
        tasks = await get_store().list_tasks()
    except StoreError as e:
        logger.error(f"Failed to list tasks: {e}")
        raise HTTPException(status_code=502, detail=str(e)) from e

    if scope_id:
        tasks = [t for t in tasks if t.scope_id == scope_id]

    if status_id:
        status_filter = [s.strip() for s in status_id.split(",")]
        tasks = [t for t in tasks if t.status_id in status_filter]

    return [TaskResponse.from_task(task) for task in tasks]


@router.get("/tasks/{task_id}", response_model=TaskDetailResponse)
async def get_task(task_id: str, user_id: str, refresh: bool = False) -> TaskDetailResponse:
    """Task details as seen by a user.

    Args:
        task_id: Task ID
        user_id: Current user (owner of the timer)
        refresh: Reload subtasks, statuses and timer from the store

    Returns:
        Task, subtasks, progress, statuses and timer state
    """
    session = await open_session(task_id, user_id)
    if refresh:
        await session.open()
    return build_detail(session)


@router.post("/tasks/{task_id}/subtasks", response_model=TaskDetailResponse)
async def add_subtask(
    task_id: str, user_id: str, request: CreateSubtaskRequest
) -> TaskDetailResponse:
    """Add a subtask to a task.

    Raises:
        HTTPException: 400 for an empty title, 502 if the store rejected the create
    """
    session = await open_session(task_id, user_id)
    result = await session.subtasks.add(request.title)
    await session.subtasks.flush()
    raise_for_result(result, rejected_status=400)
    return build_detail(session)


@router.patch(
    "/tasks/{task_id}/subtasks/{subtask_id}/completion", response_model=TaskDetailResponse
)
async def toggle_subtask(
    task_id: str, subtask_id: str, user_id: str, request: UpdateCompletionRequest
) -> TaskDetailResponse:
    """Mark a subtask completed or not completed."""
    session = await open_session(task_id, user_id)
    result = await session.subtasks.toggle_completion(subtask_id, request.is_completed)
    await session.subtasks.flush()
    raise_for_result(result, rejected_status=404)
    return build_detail(session)


@router.patch("/tasks/{task_id}/subtasks/{subtask_id}/title", response_model=TaskDetailResponse)
async def rename_subtask(
    task_id: str, subtask_id: str, user_id: str, request: UpdateTitleRequest
) -> TaskDetailResponse:
    """Rename a subtask (best effort, no rollback)."""
    session = await open_session(task_id, user_id)
    result = await session.subtasks.update_text(subtask_id, request.title)
    raise_for_result(result, rejected_status=404)
    return build_detail(session)


@router.delete("/tasks/{task_id}/subtasks/{subtask_id}", response_model=TaskDetailResponse)
async def delete_subtask(task_id: str, subtask_id: str, user_id: str) -> TaskDetailResponse:
    """Delete a subtask."""
    session = await open_session(task_id, user_id)
    result = await session.subtasks.remove(subtask_id)
    await session.subtasks.flush()
    raise_for_result(result, rejected_status=404)
    return build_detail(session)


@router.patch("/tasks/{task_id}/status", response_model=TaskDetailResponse)
async def update_task_status(
    task_id: str, user_id: str, request: UpdateStatusRequest
) -> TaskDetailResponse:
    """Set the task status explicitly."""
    session = await open_session(task_id, user_id)
    result = await session.set_status(request.status_id)
    raise_for_result(result, rejected_status=400)
    return build_detail(session)


@router.patch("/tasks/{task_id}/title", response_model=TaskDetailResponse)
async def update_task_title(
    task_id: str, user_id: str, request: UpdateTitleRequest
) -> TaskDetailResponse:
    """Rename the task."""
    if not request.title.strip():
        raise HTTPException(status_code=400, detail="Task title must not be empty")
    session = await open_session(task_id, user_id)
    result = await session.update_title(request.title)
    raise_for_result(result, rejected_status=400)
    return build_detail(session)


@router.post("/cache/reload")
async def reload_cache(scope_id: str | None = None) -> dict[str, list[str] | dict[str, int]]:
    """Force status cache reload for debugging/recovery.

    Args:
        scope_id: Optional scope to reload. If None, reloads all cached scopes.

    Returns:
        {"reloaded": ["engineering"], "counts": {"engineering": 4}}
    """
    cache = get_status_cache()

    if scope_id:
        statuses = await cache.load_scope(scope_id)
        return {"reloaded": [scope_id], "counts": {scope_id: len(statuses)}}

    counts = await cache.reload()
    return {"reloaded": list(counts), "counts": counts}


async def open_session(task_id: str, user_id: str) -> TaskSession:
    """Open the (task, user) session, mapping store errors to HTTP errors."""
    if not user_id.strip():
        raise HTTPException(status_code=400, detail="user_id must not be empty")
    try:
        return await get_session_registry().open(task_id, user_id)
    except TaskNotFoundError as e:
        logger.error(f"Task not found: {e}")
        raise HTTPException(status_code=404, detail=str(e)) from e
    except StoreError as e:
        logger.exception(f"Error opening task {task_id}: {e}")
        raise HTTPException(status_code=502, detail=str(e)) from e


def raise_for_result(result: OperationResult, rejected_status: int) -> None:
    """Raise HTTPException for a failed operation."""
    if result.ok:
        return
    if result.error is not None:
        raise HTTPException(status_code=502, detail=str(result.error))
    raise HTTPException(status_code=rejected_status, detail=result.reason)


def build_detail(session: TaskSession) -> TaskDetailResponse:
    """Render a session as TaskDetailResponse."""
    statuses = []
    for status in session.statuses:
        status_class = session.inference.label_class(status.label)
        statuses.append(
            StatusResponse.from_status(status, status_class.value if status_class else None)
        )
    return TaskDetailResponse(
        task=TaskResponse.from_task(session.task),
        subtasks=[
            SubtaskResponse.from_subtask(s, pending=is_temporary_id(s.id))
            for s in session.subtasks.subtasks
        ],
        progress=session.subtasks.progress,
        statuses=statuses,
        timer=TimerResponse(**session.timer_view()),
    )
