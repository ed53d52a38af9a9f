"""Dependency injection factory."""

import asyncio
import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from task_tracker.config import Config
from task_tracker.core.session import SessionRegistry
from task_tracker.status_cache import StatusCache
from task_tracker.store.markdown_store import MarkdownTaskStore
from task_tracker.store.memory_store import InMemoryTaskStore
from task_tracker.store.remote_store import RemoteTaskStore
from task_tracker.store.store_watcher import StoreWatcher
from task_tracker.websocket.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)

# Global instances for dependency injection
_config: Config | None = None
_store: RemoteTaskStore | None = None
_status_cache: StatusCache | None = None
_connection_manager: ConnectionManager | None = None
_session_registry: SessionRegistry | None = None
_watcher: StoreWatcher | None = None


def get_config() -> Config:
    """Get or create Config instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def get_store() -> RemoteTaskStore:
    """Get or create the configured task store."""
    global _store
    if _store is None:
        config = get_config()
        if config.store_backend == "markdown":
            store = MarkdownTaskStore(config.store_path)
            store.ensure_layout()
            _store = store
        else:
            _store = InMemoryTaskStore()
        logger.info(f"[Factory] Using {config.store_backend} task store")
    return _store


def get_status_cache() -> StatusCache:
    """Get or create StatusCache singleton."""
    global _status_cache
    if _status_cache is None:
        _status_cache = StatusCache(get_store())
    return _status_cache


def get_connection_manager() -> ConnectionManager:
    """Get or create ConnectionManager singleton."""
    global _connection_manager
    if _connection_manager is None:
        _connection_manager = ConnectionManager()
    return _connection_manager


def get_session_registry() -> SessionRegistry:
    """Get or create SessionRegistry singleton."""
    global _session_registry
    if _session_registry is None:
        _session_registry = SessionRegistry(
            get_store(),
            patterns=get_config().status_patterns,
            status_cache=get_status_cache(),
            listener=get_connection_manager().publish,
        )
    return _session_registry


def start_store_watcher() -> None:
    """Watch the markdown store for changes made outside this process."""
    global _watcher
    config = get_config()
    store = get_store()
    if not config.watch_store or not isinstance(store, MarkdownTaskStore):
        return

    # Get the running event loop to schedule coroutines from the watcher thread
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.error("[Factory] No running event loop found")
        return

    connection_manager = get_connection_manager()
    cache = get_status_cache()
    registry = get_session_registry()

    def make_callback() -> Callable[[str, str, str], None]:
        def callback(event_type: str, kind: str, item_id: str) -> None:
            if kind == "statuses":
                loop.call_soon_threadsafe(cache.invalidate)
            elif kind == "task" and event_type in ("deleted", "moved"):
                loop.call_soon_threadsafe(registry.close_task, item_id)

            message = {"type": event_type, "kind": kind, "task_id": item_id}
            asyncio.run_coroutine_threadsafe(connection_manager.broadcast(message), loop)

        return callback

    try:
        watcher = StoreWatcher(store.root)
        watcher.set_callback(make_callback())
        watcher.start(background=True)
        _watcher = watcher
    except Exception as e:
        logger.error(f"[Factory] Failed to start store watcher: {e}", exc_info=True)


def stop_store_watcher() -> None:
    """Stop the store watcher if running."""
    global _watcher
    if _watcher is None:
        return
    try:
        _watcher.stop()
        logger.info("[Factory] Stopped store watcher")
    except Exception as e:
        logger.error(f"[Factory] Failed to stop store watcher: {e}")
    _watcher = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle - startup and shutdown."""
    logger.info("[Lifespan] Loading status cache...")
    cache = get_status_cache()
    try:
        tasks = await get_store().list_tasks()
    except Exception as e:
        logger.error(f"[Lifespan] Failed to list tasks: {e}")
        tasks = []
    for scope_id in sorted({t.scope_id for t in tasks if t.scope_id}):
        await cache.load_scope(scope_id)

    logger.info("[Lifespan] Starting store watcher...")
    start_store_watcher()
    try:
        yield
    finally:
        logger.info("[Lifespan] Stopping store watcher...")
        stop_store_watcher()


def create_app() -> FastAPI:
    """Create FastAPI application (composition root)."""
    from task_tracker.api.tasks import router as tasks_router
    from task_tracker.api.timer import router as timer_router
    from task_tracker.api.websocket import router as ws_router

    app = FastAPI(
        title="TaskTracker",
        description="Subtasks, status workflow and time tracking for tasks",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Mount API routes
    app.include_router(tasks_router, prefix="/api")
    app.include_router(timer_router, prefix="/api")
    app.include_router(ws_router)  # WebSocket at /ws

    # Mount static files (HTML/CSS/JS)
    static_dir = Path(__file__).parent / "static"
    if static_dir.exists():
        app.mount("/", StaticFiles(directory=str(static_dir), html=True), name="static")

    return app
