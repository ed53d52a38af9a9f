"""Time tracking API endpoints."""

import logging

from fastapi import APIRouter, HTTPException

from task_tracker.api.models import StartTimerRequest, TimeLogResponse, TimerResponse
from task_tracker.api.tasks import open_session
from task_tracker.core.timer_guard import TimerOutcome

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/tasks/{task_id}/timer", response_model=TimerResponse)
async def get_timer(task_id: str, user_id: str) -> TimerResponse:
    """Timer state of the user and displayed time per subtask."""
    session = await open_session(task_id, user_id)
    return TimerResponse(**session.timer_view())


@router.post("/tasks/{task_id}/timer/start", response_model=TimerResponse)
async def start_timer(task_id: str, user_id: str, request: StartTimerRequest) -> TimerResponse:
    """Start timing a subtask.

    Raises:
        HTTPException: 400 for completed subtasks, 409 if a timer is already
            running for this user and task, 502 if the store failed
    """
    session = await open_session(task_id, user_id)

    matching = [s for s in session.subtasks.subtasks if s.title == request.subtask_name]
    if matching and all(s.is_completed for s in matching):
        raise HTTPException(status_code=400, detail="Cannot time completed task")

    result = await session.start_timer(request.subtask_name)
    if result.outcome == TimerOutcome.ALREADY_RUNNING:
        raise HTTPException(status_code=409, detail="A timer is already running for this task.")
    if result.outcome == TimerOutcome.FAILED:
        raise HTTPException(status_code=502, detail=f"Failed to start timer: {result.error}")
    return TimerResponse(**session.timer_view())


@router.post("/tasks/{task_id}/timer/stop", response_model=TimerResponse)
async def stop_timer(task_id: str, user_id: str) -> TimerResponse:
    """Stop the user's running timer.

    Raises:
        HTTPException: 409 if no timer is running, 502 if the store failed
    """
    session = await open_session(task_id, user_id)
    result = await session.stop_timer()
    if result.outcome == TimerOutcome.NOT_RUNNING:
        raise HTTPException(status_code=409, detail="No timer is running for this task.")
    if result.outcome == TimerOutcome.FAILED:
        raise HTTPException(status_code=502, detail=f"Failed to stop timer: {result.error}")
    return TimerResponse(**session.timer_view())


@router.get("/tasks/{task_id}/time-logs", response_model=list[TimeLogResponse])
async def list_time_logs(task_id: str, user_id: str) -> list[TimeLogResponse]:
    """Time logs of all users on a task, newest first."""
    session = await open_session(task_id, user_id)
    logs = await session.timer.load_time_logs()
    return [TimeLogResponse.from_entry(entry) for entry in logs]
