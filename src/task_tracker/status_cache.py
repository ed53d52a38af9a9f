"""In-memory cache for workflow statuses per scope."""

import logging

from task_tracker.errors import StoreError
from task_tracker.models import Status
from task_tracker.store.remote_store import RemoteTaskStore

logger = logging.getLogger(__name__)


class StatusCache:
    """Caches list_statuses results so opening a task does not hit the store each time."""

    def __init__(self, store: RemoteTaskStore) -> None:
        """Initialize empty cache."""
        self._store = store
        self._cache: dict[str, list[Status]] = {}

    async def get_statuses(self, scope_id: str) -> list[Status]:
        """Get statuses of a scope, loading them on a miss.

        Failed loads return an empty list and are not cached.

        Args:
            scope_id: Scope (department) id

        Returns:
            Statuses ordered by position
        """
        cached = self._cache.get(scope_id)
        if cached is not None:
            return list(cached)
        return await self.load_scope(scope_id)

    async def load_scope(self, scope_id: str) -> list[Status]:
        """Load/reload the statuses of one scope from the store."""
        try:
            statuses = await self._store.list_statuses(scope_id)
        except StoreError as e:
            logger.error(f"[StatusCache] Failed to load statuses for scope '{scope_id}': {e}")
            return []

        # Atomic replacement (overwrites previous entry)
        self._cache[scope_id] = list(statuses)
        logger.info(f"[StatusCache] Loaded {len(statuses)} statuses for scope '{scope_id}'")
        return list(statuses)

    async def reload(self) -> dict[str, int]:
        """Reload every cached scope; returns status counts per scope."""
        counts: dict[str, int] = {}
        for scope_id in list(self._cache):
            counts[scope_id] = len(await self.load_scope(scope_id))
        return counts

    def scopes(self) -> list[str]:
        """Cached scope ids."""
        return list(self._cache)

    def invalidate(self, scope_id: str | None = None) -> None:
        """Drop one scope, or every scope when scope_id is None."""
        if scope_id is None:
            self._cache.clear()
            logger.debug("[StatusCache] Cleared all scopes")
        else:
            self._cache.pop(scope_id, None)
            logger.debug(f"[StatusCache] Removed scope '{scope_id}'")
