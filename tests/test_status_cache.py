"""Tests for StatusCache."""

import pytest
from conftest import FlakyStore

from task_tracker.models import Status
from task_tracker.status_cache import StatusCache
from task_tracker.store.memory_store import InMemoryTaskStore


@pytest.mark.asyncio
async def test_get_statuses_caches(flaky_store: FlakyStore) -> None:
    """Test a scope is loaded once."""
    cache = StatusCache(flaky_store)

    first = await cache.get_statuses("eng")
    second = await cache.get_statuses("eng")

    assert [s.label for s in first] == ["To Do", "In Progress", "Done"]
    assert first == second
    assert flaky_store.count("list_statuses") == 1
    assert cache.scopes() == ["eng"]


@pytest.mark.asyncio
async def test_failed_load_is_not_cached(flaky_store: FlakyStore) -> None:
    """Test a failure returns an empty list and the next call retries."""
    cache = StatusCache(flaky_store)
    flaky_store.fail.add("list_statuses")

    assert await cache.get_statuses("eng") == []
    assert cache.scopes() == []

    flaky_store.fail.clear()
    assert len(await cache.get_statuses("eng")) == 3


@pytest.mark.asyncio
async def test_reload_picks_up_changes(
    memory_store: InMemoryTaskStore, flaky_store: FlakyStore
) -> None:
    """Test reload refreshes every cached scope."""
    cache = StatusCache(flaky_store)
    await cache.get_statuses("eng")
    memory_store.set_statuses("eng", [Status(id="9", label="Open", position=0)])

    counts = await cache.reload()

    assert counts == {"eng": 1}
    assert [s.id for s in await cache.get_statuses("eng")] == ["9"]


@pytest.mark.asyncio
async def test_invalidate(flaky_store: FlakyStore) -> None:
    """Test invalidation forces a reload."""
    cache = StatusCache(flaky_store)
    await cache.get_statuses("eng")
    await cache.get_statuses("ops")

    cache.invalidate("eng")
    assert cache.scopes() == ["ops"]

    cache.invalidate()
    assert cache.scopes() == []
    await cache.get_statuses("eng")
    assert flaky_store.count("list_statuses") == 3


@pytest.mark.asyncio
async def test_returned_list_is_a_copy(flaky_store: FlakyStore) -> None:
    """Test callers cannot mutate the cached list."""
    cache = StatusCache(flaky_store)
    statuses = await cache.get_statuses("eng")
    statuses.clear()

    assert len(await cache.get_statuses("eng")) == 3
