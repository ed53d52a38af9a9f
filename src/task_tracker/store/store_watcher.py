"""File system watcher for the markdown task store."""

import logging
import time
from collections.abc import Callable
from pathlib import Path
from threading import Thread

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from task_tracker.store.markdown_store import STATUSES_FILE, TIME_LOGS_FILE

logger = logging.getLogger(__name__)

# callback(event_type, kind, item_id); kind is "task", "statuses" or "time_logs"
StoreCallback = Callable[[str, str, str], None]


class StoreWatcher:
    """Watches the store directory for file changes and triggers callbacks."""

    def __init__(self, store_dir: Path):
        """Initialize watcher for a store directory.

        Args:
            store_dir: Root of a MarkdownTaskStore
        """
        self.store_dir = store_dir
        self._observer: BaseObserver | None = None
        self._thread: Thread | None = None
        self._callback: StoreCallback | None = None

    def set_callback(self, callback: StoreCallback) -> None:
        """Set callback for store change events."""
        self._callback = callback

    def start(self, background: bool = True) -> None:
        """Start watching the store directory.

        Args:
            background: Run in background thread (daemon mode)
        """
        handler = _StoreEventHandler(self._callback)
        self._observer = Observer()
        self._observer.schedule(handler, str(self.store_dir), recursive=True)
        logger.info(f"[StoreWatcher] Watching {self.store_dir}")
        self._observer.start()

        if background:
            self._thread = Thread(target=self._run_loop, daemon=True)
            self._thread.start()
        else:
            self._run_loop()

    def _run_loop(self) -> None:
        """Keep observer running until stopped."""
        try:
            while self._observer and self._observer.is_alive():
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        """Stop watching and clean up resources."""
        if self._observer:
            logger.info(f"[StoreWatcher] Stopping watcher for {self.store_dir}")
            self._observer.stop()
            self._observer.join()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2)


class _StoreEventHandler(FileSystemEventHandler):
    """Maps file system events to store change notifications."""

    def __init__(self, callback: StoreCallback | None):
        self.callback = callback

    def classify(self, file_path: str) -> tuple[str, str] | None:
        """Classify a changed path as (kind, item_id), or None if irrelevant."""
        path = Path(file_path)
        if path.name == STATUSES_FILE:
            return "statuses", ""
        if path.name == TIME_LOGS_FILE:
            return "time_logs", ""
        if path.suffix == ".md":
            return "task", path.stem
        return None

    def _handle_event(self, event_type: str, event: FileSystemEvent) -> None:
        if event.is_directory:
            return

        # Convert bytes to str if needed
        src_path = event.src_path
        if isinstance(src_path, bytes):
            src_path = src_path.decode("utf-8")

        classified = self.classify(src_path)
        if not classified:
            return
        kind, item_id = classified

        logger.debug(f"[StoreEventHandler] {event_type}: {kind} {item_id}")

        if self.callback:
            try:
                self.callback(event_type, kind, item_id)
            except Exception as e:
                logger.error(f"[StoreEventHandler] Callback error: {e}", exc_info=True)

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle file modification events."""
        self._handle_event("modified", event)

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle file creation events."""
        self._handle_event("created", event)

    def on_deleted(self, event: FileSystemEvent) -> None:
        """Handle file deletion events."""
        self._handle_event("deleted", event)

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle file move/rename events."""
        self._handle_event("moved", event)
