"""Tests for SubtaskStoreController."""

import asyncio
from pathlib import Path

import pytest
from conftest import FlakyStore

from task_tracker.core.status_inference import StatusInferenceEngine
from task_tracker.core.subtask_controller import (
    SubtaskStoreController,
    compute_progress,
    is_temporary_id,
)
from task_tracker.models import Status, Subtask
from task_tracker.store.markdown_store import MarkdownTaskStore
from task_tracker.store.memory_store import InMemoryTaskStore


async def make_controller(
    store: FlakyStore, statuses: list[Status] | None = None
) -> SubtaskStoreController:
    task = await store.get_task("task-1")
    inference = StatusInferenceEngine(store) if statuses is not None else None
    controller = SubtaskStoreController(store, task, inference, statuses or [])
    await controller.load()
    return controller


async def seed(store: InMemoryTaskStore, *titles_done: tuple[str, bool]) -> list[Subtask]:
    created = []
    for title, done in titles_done:
        subtask = await store.create_subtask("task-1", title)
        if done:
            await store.update_subtask_completion(subtask.id, True)
        created.append(subtask)
    return created


@pytest.mark.parametrize(
    ("completed", "total", "expected"),
    [
        (0, 0, 0),
        (0, 3, 0),
        (1, 3, 33),
        (2, 3, 67),
        (3, 3, 100),
        (1, 8, 13),  # 12.5 rounds half up
        (1, 2, 50),
    ],
)
def test_compute_progress(completed: int, total: int, expected: int) -> None:
    """Test progress is round(100 * completed / total), 0 without subtasks."""
    subtasks = [Subtask(id=str(i), title=f"s{i}", is_completed=i < completed) for i in range(total)]
    assert compute_progress(subtasks) == expected


@pytest.mark.asyncio
async def test_load_replaces_list_and_progress(
    memory_store: InMemoryTaskStore, flaky_store: FlakyStore
) -> None:
    """Test load fetches the store list in creation order."""
    await seed(memory_store, ("Design", True), ("Build", False))
    controller = await make_controller(flaky_store)

    assert [s.title for s in controller.subtasks] == ["Design", "Build"]
    assert controller.progress == 50


@pytest.mark.asyncio
async def test_load_failure_leaves_empty_list(
    memory_store: InMemoryTaskStore, flaky_store: FlakyStore
) -> None:
    """Test a failed load degrades to an empty list and zero progress."""
    await seed(memory_store, ("Design", True))
    controller = await make_controller(flaky_store)
    assert controller.progress == 100

    flaky_store.fail.add("list_subtasks")
    await controller.load()

    assert controller.subtasks == []
    assert controller.progress == 0


@pytest.mark.asyncio
async def test_add_confirmed_replaces_temporary_id(flaky_store: FlakyStore) -> None:
    """Test add-then-confirm leaves one entry with the store id."""
    controller = await make_controller(flaky_store)

    result = await controller.add("x")

    assert result.ok
    assert len(controller.subtasks) == 1
    subtask = controller.subtasks[0]
    assert subtask.title == "x"
    assert subtask.id == result.value.id
    assert not is_temporary_id(subtask.id)
    assert [s.id for s in await flaky_store.list_subtasks("task-1")] == [subtask.id]


@pytest.mark.asyncio
async def test_add_is_visible_before_confirmation(
    flaky_store: FlakyStore, run_soon
) -> None:
    """Test the optimistic entry appears before the store answers."""
    controller = await make_controller(flaky_store)
    gate = flaky_store.hold("create_subtask")

    pending = run_soon(controller.add("Write copy"))
    await asyncio.sleep(0)

    assert len(controller.subtasks) == 1
    assert is_temporary_id(controller.subtasks[0].id)
    assert controller.subtasks[0].is_completed is False

    gate.set()
    result = await pending
    assert result.ok
    assert not is_temporary_id(controller.subtasks[0].id)


@pytest.mark.asyncio
async def test_add_failure_restores_previous_list(
    memory_store: InMemoryTaskStore, flaky_store: FlakyStore
) -> None:
    """Test add-then-fail leaves the list identical to its pre-call state."""
    await seed(memory_store, ("Design", True))
    controller = await make_controller(flaky_store)
    before = list(controller.subtasks)

    flaky_store.fail.add("create_subtask")
    result = await controller.add("x")

    assert not result.ok
    assert result.error is not None
    assert controller.subtasks == before
    assert controller.progress == 100


@pytest.mark.asyncio
async def test_add_rejects_empty_title(flaky_store: FlakyStore) -> None:
    """Test blank titles never reach the store."""
    controller = await make_controller(flaky_store)

    result = await controller.add("   ")

    assert not result.ok
    assert result.reason
    assert flaky_store.count("create_subtask") == 0
    assert controller.subtasks == []


@pytest.mark.asyncio
async def test_add_confirm_after_temp_removed_is_noop(
    flaky_store: FlakyStore, run_soon
) -> None:
    """Test a confirmation for an entry no longer in the list does nothing."""
    controller = await make_controller(flaky_store)
    gate = flaky_store.hold("create_subtask")

    pending = run_soon(controller.add("x"))
    await asyncio.sleep(0)
    temp_id = controller.subtasks[0].id
    await controller.remove(temp_id)

    gate.set()
    await pending

    assert controller.subtasks == []


@pytest.mark.asyncio
async def test_toggle_updates_progress(
    memory_store: InMemoryTaskStore, flaky_store: FlakyStore
) -> None:
    """Test toggling completion updates the list, progress and store."""
    design, _ = await seed(memory_store, ("Design", False), ("Build", False))
    controller = await make_controller(flaky_store)

    result = await controller.toggle_completion(design.id, True)

    assert result.ok
    assert controller.get(design.id).is_completed is True
    assert controller.progress == 50
    stored = await memory_store.list_subtasks("task-1")
    assert stored[0].is_completed is True


@pytest.mark.asyncio
async def test_toggle_failure_restores_previous_value(
    memory_store: InMemoryTaskStore, flaky_store: FlakyStore
) -> None:
    """Test a failed toggle reverts is_completed to its pre-call value."""
    (design,) = await seed(memory_store, ("Design", False))
    controller = await make_controller(flaky_store)

    flaky_store.fail.add("update_subtask_completion")
    result = await controller.toggle_completion(design.id, True)

    assert not result.ok
    assert controller.get(design.id).is_completed is False


@pytest.mark.asyncio
async def test_toggle_unknown_id_is_rejected(flaky_store: FlakyStore) -> None:
    """Test toggling an absent id is a no-op."""
    controller = await make_controller(flaky_store)

    result = await controller.toggle_completion("missing", True)

    assert not result.ok
    assert result.error is None
    assert flaky_store.count("update_subtask_completion") == 0


@pytest.mark.asyncio
async def test_toggle_rollback_after_delete_does_not_resurrect(
    memory_store: InMemoryTaskStore, flaky_store: FlakyStore, run_soon
) -> None:
    """Test a late toggle rollback on a deleted id leaves the list alone."""
    design, build = await seed(memory_store, ("Design", False), ("Build", False))
    controller = await make_controller(flaky_store)
    gate = flaky_store.hold("update_subtask_completion")
    flaky_store.fail.add("update_subtask_completion")

    pending = run_soon(controller.toggle_completion(design.id, True))
    await asyncio.sleep(0)
    await controller.remove(design.id)

    gate.set()
    result = await pending

    assert not result.ok
    assert [s.id for s in controller.subtasks] == [build.id]


@pytest.mark.asyncio
async def test_remove_failure_reappends_at_end(
    memory_store: InMemoryTaskStore, flaky_store: FlakyStore
) -> None:
    """Test a failed delete puts the entry back at the end of the list."""
    design, build, ship = await seed(
        memory_store, ("Design", True), ("Build", False), ("Ship", False)
    )
    controller = await make_controller(flaky_store)

    flaky_store.fail.add("delete_subtask")
    result = await controller.remove(design.id)

    assert not result.ok
    assert [s.id for s in controller.subtasks] == [build.id, ship.id, design.id]
    assert controller.progress == 33


@pytest.mark.asyncio
async def test_remove_success(memory_store: InMemoryTaskStore, flaky_store: FlakyStore) -> None:
    """Test delete removes the entry locally and remotely."""
    design, build = await seed(memory_store, ("Design", True), ("Build", False))
    controller = await make_controller(flaky_store)

    result = await controller.remove(build.id)

    assert result.ok
    assert [s.id for s in controller.subtasks] == [design.id]
    assert controller.progress == 100
    assert [s.id for s in await memory_store.list_subtasks("task-1")] == [design.id]


@pytest.mark.asyncio
async def test_update_text_failure_keeps_new_title(
    memory_store: InMemoryTaskStore, flaky_store: FlakyStore
) -> None:
    """Test renames are best effort: a failed write is reported, not rolled back."""
    (design,) = await seed(memory_store, ("Design", False))
    controller = await make_controller(flaky_store)

    flaky_store.fail.add("update_subtask_title")
    result = await controller.update_text(design.id, "Design v2")

    assert not result.ok
    assert controller.get(design.id).title == "Design v2"


@pytest.mark.asyncio
async def test_listener_receives_changes(flaky_store: FlakyStore) -> None:
    """Test listeners are told about local state changes."""
    controller = await make_controller(flaky_store)
    events: list[tuple[str, str]] = []
    controller.add_listener(lambda event_type, task_id: events.append((event_type, task_id)))

    await controller.add("x")

    # Optimistic append and confirmation
    assert events == [("subtasks", "task-1"), ("subtasks", "task-1")]


@pytest.mark.asyncio
async def test_concurrent_adds_all_confirm(flaky_store: FlakyStore) -> None:
    """Test unserialized adds each reconcile their own entry."""
    controller = await make_controller(flaky_store)

    results = await asyncio.gather(*(controller.add(f"item {i}") for i in range(5)))

    assert all(r.ok for r in results)
    assert [s.title for s in controller.subtasks] == [f"item {i}" for i in range(5)]
    assert not any(is_temporary_id(s.id) for s in controller.subtasks)


@pytest.mark.asyncio
async def test_toggle_pushes_inferred_status(
    memory_store: InMemoryTaskStore, flaky_store: FlakyStore, statuses: list[Status]
) -> None:
    """Test completing one of two subtasks moves the task to In Progress."""
    design, _ = await seed(memory_store, ("Design", False), ("Build", False))
    controller = await make_controller(flaky_store, statuses)

    await controller.toggle_completion(design.id, True)
    await controller.flush()

    assert controller.task.status_id == "2"
    assert (await memory_store.get_task("task-1")).status_id == "2"


@pytest.mark.asyncio
async def test_no_push_when_status_already_matches(
    flaky_store: FlakyStore, statuses: list[Status]
) -> None:
    """Test adding to a To Do task with no completed subtasks pushes nothing."""
    controller = await make_controller(flaky_store, statuses)

    await controller.add("Design")
    await controller.flush()

    assert flaky_store.count("update_task_status") == 0


@pytest.mark.asyncio
async def test_status_inferred_from_optimistic_add_and_kept_after_rollback(
    memory_store: InMemoryTaskStore,
    flaky_store: FlakyStore,
    statuses: list[Status],
    run_soon,
) -> None:
    """Test the pushed status follows the optimistic list and survives a failed add."""
    await seed(memory_store, ("Design", True))
    await memory_store.update_task_status("task-1", "3")
    controller = await make_controller(flaky_store, statuses)
    gate = flaky_store.hold("create_subtask")
    flaky_store.fail.add("create_subtask")

    pending = run_soon(controller.add("Build"))
    await asyncio.sleep(0)
    await controller.flush()

    # Pushed while the create is still in flight
    assert (await memory_store.get_task("task-1")).status_id == "2"

    gate.set()
    result = await pending
    await controller.flush()

    assert not result.ok
    assert [s.title for s in controller.subtasks] == ["Design"]
    assert (await memory_store.get_task("task-1")).status_id == "2"
    assert flaky_store.count("update_task_status") == 1


@pytest.mark.asyncio
async def test_status_push_failure_keeps_subtask_change(
    memory_store: InMemoryTaskStore, flaky_store: FlakyStore, statuses: list[Status]
) -> None:
    """Test a failed status push does not roll back the subtask mutation."""
    (design,) = await seed(memory_store, ("Design", False))
    controller = await make_controller(flaky_store, statuses)
    flaky_store.fail.add("update_task_status")

    result = await controller.toggle_completion(design.id, True)
    await controller.flush()

    assert result.ok
    assert controller.get(design.id).is_completed is True
    assert controller.task.status_id == "1"


@pytest.mark.asyncio
async def test_toggle_with_corrupt_sibling_file(tmp_store: Path, sample_task_file: Path) -> None:
    """Test a corrupt task file elsewhere in the store does not roll back a toggle."""
    (tmp_store / "tasks" / "aaa-broken.md").write_text("---\ntitle: [unclosed\n---\n")
    store = MarkdownTaskStore(str(tmp_store))
    task = await store.get_task("launch-page")
    controller = SubtaskStoreController(store, task)
    await controller.load()

    result = await controller.toggle_completion("a2", True)

    assert result.ok
    assert controller.get("a2").is_completed
    assert [s.is_completed for s in await store.list_subtasks("launch-page")] == [True, True]
