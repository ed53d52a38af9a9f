"""Tests for StoreWatcher."""

import threading
from pathlib import Path

import pytest
from watchdog.events import DirModifiedEvent, FileCreatedEvent, FileModifiedEvent

from task_tracker.store.store_watcher import StoreWatcher, _StoreEventHandler


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("/store/statuses.yaml", ("statuses", "")),
        ("/store/time_logs.yaml", ("time_logs", "")),
        ("/store/tasks/launch-page.md", ("task", "launch-page")),
        ("/store/tasks/.launch-page.md.swp", None),
        ("/store/notes.txt", None),
    ],
)
def test_classify(path: str, expected: tuple[str, str] | None) -> None:
    """Test store paths map to change kinds."""
    assert _StoreEventHandler(None).classify(path) == expected


def test_handler_invokes_callback() -> None:
    """Test relevant file events reach the callback."""
    events: list[tuple[str, str, str]] = []
    handler = _StoreEventHandler(lambda *args: events.append(args))

    handler.on_modified(FileModifiedEvent("/store/tasks/launch-page.md"))
    handler.on_created(FileCreatedEvent("/store/statuses.yaml"))
    handler.on_modified(FileModifiedEvent("/store/readme.txt"))
    handler.on_modified(DirModifiedEvent("/store/tasks"))

    assert events == [("modified", "task", "launch-page"), ("created", "statuses", "")]


def test_handler_survives_callback_error() -> None:
    """Test a failing callback is logged, not raised."""

    def boom(*args: str) -> None:
        raise RuntimeError("boom")

    handler = _StoreEventHandler(boom)
    handler.on_modified(FileModifiedEvent("/store/statuses.yaml"))


@pytest.mark.integration
def test_watcher_sees_file_changes(tmp_store: Path) -> None:
    """Test the observer reports a status file change."""
    seen = threading.Event()

    def callback(event_type: str, kind: str, item_id: str) -> None:
        if kind == "statuses":
            seen.set()

    watcher = StoreWatcher(tmp_store)
    watcher.set_callback(callback)
    watcher.start(background=True)
    try:
        (tmp_store / "statuses.yaml").write_text("eng: []\n")
        assert seen.wait(timeout=5)
    finally:
        watcher.stop()
