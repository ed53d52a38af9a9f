"""Optimistic update helper shared by the subtask controller and the API layer."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from task_tracker.errors import StoreError, TransientIOError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class OperationResult:
    """Outcome of a mutation. Store failures are reported here, never raised."""

    ok: bool
    error: StoreError | None = None
    value: Any = None
    reason: str | None = None  # Set when the operation was rejected locally

    @classmethod
    def rejected(cls, reason: str) -> "OperationResult":
        """Result for an operation refused before any remote call."""
        return cls(ok=False, reason=reason)


async def optimistic_update(
    description: str,
    apply: Callable[[], None],
    remote: Callable[[], Awaitable[T]],
    undo: Callable[[], None] | None = None,
    confirm: Callable[[T], None] | None = None,
) -> OperationResult:
    """Apply a tentative local mutation, await the remote write, compensate on failure.

    ``apply`` runs synchronously before the remote call is awaited, so the local
    state is updated immediately. ``confirm`` and ``undo`` run against whatever
    the live state is when the remote call completes.

    Args:
        description: Operation name for logging
        apply: Local mutation
        remote: Factory for the remote call
        undo: Compensating mutation run when the remote call fails
        confirm: Reconciliation run with the remote result on success

    Returns:
        OperationResult carrying the remote result or the store error
    """
    apply()
    try:
        result = await remote()
    except StoreError as e:
        logger.error(f"[Optimistic] {description} failed: {e}")
        _rollback(description, undo)
        return OperationResult(ok=False, error=e)
    except Exception as e:
        logger.exception(f"[Optimistic] {description} failed unexpectedly: {e}")
        _rollback(description, undo)
        return OperationResult(ok=False, error=TransientIOError(str(e)))

    if confirm:
        confirm(result)
    return OperationResult(ok=True, value=result)


def _rollback(description: str, undo: Callable[[], None] | None) -> None:
    if undo is None:
        return
    logger.warning(f"[Optimistic] Rolling back {description}")
    undo()
