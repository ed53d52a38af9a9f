"""Error kinds raised by remote task stores."""


class StoreError(Exception):
    """Base class for failures reported by a remote task store."""


class TransientIOError(StoreError):
    """Store call failed (network, IO, unavailable backend)."""


class ConflictError(StoreError):
    """Store rejected a write because it would violate a uniqueness constraint."""


class TaskNotFoundError(StoreError):
    """Requested task does not exist in the store."""

    def __init__(self, task_id: str) -> None:
        """Initialize with the missing task id."""
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id
