"""Test fixtures for TaskTracker."""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from task_tracker.errors import ConflictError, TransientIOError
from task_tracker.models import Status, Task
from task_tracker.store.memory_store import InMemoryTaskStore

REMOTE_METHODS = {
    "get_task",
    "list_tasks",
    "list_subtasks",
    "create_subtask",
    "update_subtask_completion",
    "update_subtask_title",
    "delete_subtask",
    "list_statuses",
    "update_task_status",
    "update_task_title",
    "list_time_logs",
    "find_open_time_log",
    "create_time_log",
    "close_time_log",
}

STATUSES = [
    Status(id="1", label="To Do", position=0),
    Status(id="2", label="In Progress", position=1),
    Status(id="3", label="Done", position=2),
]


class FlakyStore:
    """Wraps a store to record calls, inject failures and hold calls at a gate."""

    def __init__(self, inner: InMemoryTaskStore) -> None:
        self.inner = inner
        self.fail: set[str] = set()
        self.conflict: set[str] = set()
        self.gates: dict[str, asyncio.Event] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def hold(self, method: str) -> asyncio.Event:
        """Block calls to method until the returned event is set."""
        gate = asyncio.Event()
        self.gates[method] = gate
        return gate

    def count(self, method: str) -> int:
        """Number of calls made to method."""
        return sum(1 for name, _ in self.calls if name == method)

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self.inner, name)
        if name not in REMOTE_METHODS:
            return attr

        async def wrapper(*args: Any) -> Any:
            self.calls.append((name, args))
            gate = self.gates.get(name)
            if gate is not None:
                await gate.wait()
            if name in self.fail:
                raise TransientIOError(f"{name} failed")
            if name in self.conflict:
                raise ConflictError(f"{name} conflict")
            return await attr(*args)

        return wrapper


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 2, 9, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def memory_store() -> InMemoryTaskStore:
    """In-memory store with one task in scope 'eng' and To Do/In Progress/Done statuses."""
    store = InMemoryTaskStore()
    store.add_task(Task(id="task-1", title="Launch page", status_id="1", scope_id="eng"))
    store.set_statuses("eng", STATUSES)
    return store


@pytest.fixture
def flaky_store(memory_store: InMemoryTaskStore) -> FlakyStore:
    """Failure-injecting wrapper around memory_store."""
    return FlakyStore(memory_store)


@pytest.fixture
def clock() -> FakeClock:
    """Fake clock starting at a fixed UTC time."""
    return FakeClock()


@pytest.fixture
def statuses() -> list[Status]:
    """To Do / In Progress / Done statuses with ids 1, 2, 3."""
    return list(STATUSES)


@pytest.fixture
def run_soon() -> Callable[..., asyncio.Task[Any]]:
    """Start a coroutine as a task (for operations held at a gate)."""

    def start(coro: Any) -> asyncio.Task[Any]:
        return asyncio.get_running_loop().create_task(coro)

    return start


@pytest.fixture
def tmp_store(tmp_path: Path) -> Path:
    """Create temporary markdown store structure."""
    root = tmp_path / "store"
    (root / "tasks").mkdir(parents=True)
    (root / "statuses.yaml").write_text(
        """eng:
  - id: s-done
    label: Done
    position: 2
  - id: s-todo
    label: To Do
    position: 0
  - id: s-progress
    label: In Progress
    position: 1
ops:
  - id: o-open
    label: Open
    position: 0
"""
    )
    return root


@pytest.fixture
def sample_task_file(tmp_store: Path) -> Path:
    """Create a sample task file."""
    task_file = tmp_store / "tasks" / "launch-page.md"

    content = """---
title: Launch page
status_id: s-todo
scope_id: eng
priority: '2'
assignees:
  - alice
  - bob
due_date: 2026-02-28
content_type: feature
subtasks:
  - id: a1
    title: Design
    is_completed: true
    created_at: '2026-01-01T10:00:00+00:00'
  - id: a2
    title: Build
    is_completed: false
    created_at: '2026-01-01T10:05:00+00:00'
---

# Notes
Landing page for the spring release.
"""

    task_file.write_text(content)
    return task_file
