"""Markdown/YAML file backed task store."""

import asyncio
import logging
import re
import threading
import uuid
from contextlib import suppress
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

import yaml

from task_tracker.errors import ConflictError, TaskNotFoundError, TransientIOError
from task_tracker.models import Status, Subtask, Task, TimeLogEntry

logger = logging.getLogger(__name__)

FRONTMATTER_RE = re.compile(r"^(---\s*\n)(.*?)(\n---)", re.DOTALL)

TASKS_FOLDER = "tasks"
STATUSES_FILE = "statuses.yaml"
TIME_LOGS_FILE = "time_logs.yaml"


class MarkdownTaskStore:
    """Task store persisted as markdown files with YAML frontmatter.

    Layout below ``store_path``::

        tasks/<task_id>.md   frontmatter: title, status_id, scope_id, subtasks, ...
        statuses.yaml        scope_id -> list of {id, label, position}
        time_logs.yaml       list of time log entries

    File IO runs in a worker thread; a lock serializes read-modify-write
    cycles so the open time log check and insert are atomic.
    """

    def __init__(self, store_path: str) -> None:
        """Initialize store rooted at store_path."""
        self.root = Path(store_path)
        self.tasks_dir = self.root / TASKS_FOLDER
        self._lock = threading.Lock()

    def ensure_layout(self) -> None:
        """Create the store folders if missing."""
        self.tasks_dir.mkdir(parents=True, exist_ok=True)

    # Remote contract

    async def get_task(self, task_id: str) -> Task:
        """Get a task by id."""
        return await self._run(self._get_task, task_id)

    async def list_tasks(self) -> list[Task]:
        """List all tasks."""
        return await self._run(self._list_tasks)

    async def list_subtasks(self, task_id: str) -> list[Subtask]:
        """List subtasks of a task, oldest first."""
        return await self._run(self._list_subtasks, task_id)

    async def create_subtask(self, task_id: str, title: str) -> Subtask:
        """Create an incomplete subtask with a store-assigned id."""
        return await self._run(self._create_subtask, task_id, title)

    async def update_subtask_completion(self, subtask_id: str, is_completed: bool) -> None:
        """Set the completion flag of a subtask."""
        await self._run(self._update_subtask, subtask_id, {"is_completed": is_completed})

    async def update_subtask_title(self, subtask_id: str, title: str) -> None:
        """Rename a subtask."""
        await self._run(self._update_subtask, subtask_id, {"title": title})

    async def delete_subtask(self, subtask_id: str) -> None:
        """Delete a subtask."""
        await self._run(self._delete_subtask, subtask_id)

    async def list_statuses(self, scope_id: str) -> list[Status]:
        """List statuses of a scope ordered by position."""
        return await self._run(self._list_statuses, scope_id)

    async def update_task_status(self, task_id: str, status_id: str) -> None:
        """Move a task to another status."""
        await self._run(self._update_task_fields, task_id, {"status_id": status_id})

    async def update_task_title(self, task_id: str, title: str) -> None:
        """Rename a task."""
        await self._run(self._update_task_fields, task_id, {"title": title})

    async def list_time_logs(self, task_id: str) -> list[TimeLogEntry]:
        """List time logs of a task, newest first."""
        return await self._run(self._list_time_logs, task_id)

    async def find_open_time_log(self, task_id: str, user_id: str) -> TimeLogEntry | None:
        """Find the running time log of a user on a task."""
        return await self._run(self._find_open_time_log, task_id, user_id)

    async def create_time_log(
        self, task_id: str, user_id: str, subtask_name: str, start_time: datetime
    ) -> TimeLogEntry:
        """Open a time log; at most one may be open per (task_id, user_id)."""
        return await self._run(self._create_time_log, task_id, user_id, subtask_name, start_time)

    async def close_time_log(
        self, entry_id: str, end_time: datetime, duration_seconds: int
    ) -> None:
        """Close a running time log."""
        await self._run(self._close_time_log, entry_id, end_time, duration_seconds)

    async def _run(self, func: Any, *args: Any) -> Any:
        """Run a blocking store operation in a worker thread.

        OSError, encoding and YAML errors, and files whose content has the
        wrong shape (missing keys, wrong types), are reported as TransientIOError.
        """
        try:
            return await asyncio.to_thread(func, *args)
        except (
            OSError,
            UnicodeError,
            yaml.YAMLError,
            KeyError,
            ValueError,
            TypeError,
            AttributeError,
        ) as e:
            logger.error(f"[MarkdownTaskStore] {func.__name__} failed: {e}")
            raise TransientIOError(str(e)) from e

    # Tasks

    def task_path(self, task_id: str) -> Path:
        """Path of the markdown file for a task."""
        return self.tasks_dir / f"{task_id}.md"

    def _get_task(self, task_id: str) -> Task:
        file_path = self.task_path(task_id)
        if not file_path.exists():
            raise TaskNotFoundError(task_id)
        data, _, _ = self._read_task_file(file_path)
        return self._task_from_frontmatter(task_id, data)

    def _list_tasks(self) -> list[Task]:
        tasks: list[Task] = []
        if not self.tasks_dir.exists():
            return tasks
        for file_path in sorted(self.tasks_dir.glob("*.md")):
            try:
                data, _, _ = self._read_task_file(file_path)
                tasks.append(self._task_from_frontmatter(file_path.stem, data))
            except Exception as e:
                logger.warning(f"[MarkdownTaskStore] Failed to parse {file_path.name}: {e}")
                continue
        return tasks

    def _update_task_fields(self, task_id: str, fields: dict[str, Any]) -> None:
        with self._lock:
            file_path = self.task_path(task_id)
            if not file_path.exists():
                logger.debug(f"[MarkdownTaskStore] Update skipped, no task {task_id}")
                return
            data, body, encoding = self._read_task_file(file_path)
            data.update(fields)
            self._write_task_file(file_path, data, body, encoding)

    def _task_from_frontmatter(self, task_id: str, data: dict[str, Any]) -> Task:
        assignees = data.get("assignees") or []
        if isinstance(assignees, str):
            assignees = [assignees]
        return Task(
            id=task_id,
            title=str(data.get("title") or task_id),
            status_id=_optional_str(data.get("status_id")),
            scope_id=_optional_str(data.get("scope_id")),
            priority=_normalize_priority(data.get("priority")),
            assignees=[str(a) for a in assignees],
            due_date=_date_to_string(data.get("due_date")),
            content_type=data.get("content_type"),
        )

    # Subtasks

    def _list_subtasks(self, task_id: str) -> list[Subtask]:
        file_path = self.task_path(task_id)
        if not file_path.exists():
            return []
        data, _, _ = self._read_task_file(file_path)
        return [_subtask_from_dict(raw) for raw in data.get("subtasks") or []]

    def _create_subtask(self, task_id: str, title: str) -> Subtask:
        with self._lock:
            file_path = self.task_path(task_id)
            if not file_path.exists():
                raise TaskNotFoundError(task_id)
            data, body, encoding = self._read_task_file(file_path)
            subtask = Subtask(
                id=str(uuid.uuid4()),
                title=title,
                is_completed=False,
                created_at=datetime.now(UTC),
            )
            items = list(data.get("subtasks") or [])
            items.append(_subtask_to_dict(subtask))
            data["subtasks"] = items
            self._write_task_file(file_path, data, body, encoding)
            return subtask

    def _update_subtask(self, subtask_id: str, fields: dict[str, Any]) -> None:
        with self._lock:
            located = self._locate_subtask(subtask_id)
            if located is None:
                return
            file_path, data, body, encoding, index = located
            data["subtasks"][index].update(fields)
            self._write_task_file(file_path, data, body, encoding)

    def _delete_subtask(self, subtask_id: str) -> None:
        with self._lock:
            located = self._locate_subtask(subtask_id)
            if located is None:
                return
            file_path, data, body, encoding, index = located
            del data["subtasks"][index]
            self._write_task_file(file_path, data, body, encoding)

    def _locate_subtask(
        self, subtask_id: str
    ) -> tuple[Path, dict[str, Any], str, str, int] | None:
        if not self.tasks_dir.exists():
            return None
        for file_path in sorted(self.tasks_dir.glob("*.md")):
            try:
                data, body, encoding = self._read_task_file(file_path)
            except Exception as e:
                logger.warning(f"[MarkdownTaskStore] Failed to parse {file_path.name}: {e}")
                continue
            items = data.get("subtasks")
            if not isinstance(items, list):
                continue
            for index, raw in enumerate(items):
                if isinstance(raw, dict) and str(raw.get("id")) == subtask_id:
                    return file_path, data, body, encoding, index
        return None

    # Statuses

    def _list_statuses(self, scope_id: str) -> list[Status]:
        data = self._read_yaml(self.root / STATUSES_FILE, {})
        scopes = {str(key): value for key, value in data.items()} if isinstance(data, dict) else {}
        raw_statuses = scopes.get(scope_id) or []
        statuses = [
            Status(id=str(raw["id"]), label=str(raw["label"]), position=int(raw.get("position", 0)))
            for raw in raw_statuses
        ]
        return sorted(statuses, key=lambda s: s.position)

    # Time logs

    def _list_time_logs(self, task_id: str) -> list[TimeLogEntry]:
        entries = [e for e in self._load_time_logs() if e.task_id == task_id]
        # File order is insertion order
        return list(reversed(entries))

    def _find_open_time_log(self, task_id: str, user_id: str) -> TimeLogEntry | None:
        for entry in self._load_time_logs():
            if entry.task_id == task_id and entry.user_id == user_id and entry.is_open:
                return entry
        return None

    def _create_time_log(
        self, task_id: str, user_id: str, subtask_name: str, start_time: datetime
    ) -> TimeLogEntry:
        with self._lock:
            entries = self._load_time_logs()
            if any(
                e.task_id == task_id and e.user_id == user_id and e.is_open for e in entries
            ):
                raise ConflictError(
                    f"Open time log already exists for task {task_id} and user {user_id}"
                )
            entry = TimeLogEntry(
                id=str(uuid.uuid4()),
                task_id=task_id,
                user_id=user_id,
                subtask_name=subtask_name,
                start_time=start_time,
                created_at=datetime.now(UTC),
            )
            entries.append(entry)
            self._save_time_logs(entries)
            return entry

    def _close_time_log(self, entry_id: str, end_time: datetime, duration_seconds: int) -> None:
        with self._lock:
            entries = self._load_time_logs()
            for entry in entries:
                if entry.id == entry_id:
                    entry.end_time = end_time
                    entry.duration_seconds = duration_seconds
                    self._save_time_logs(entries)
                    return

    def _load_time_logs(self) -> list[TimeLogEntry]:
        raw_entries = self._read_yaml(self.root / TIME_LOGS_FILE, [])
        return [_time_log_from_dict(raw) for raw in raw_entries or []]

    def _save_time_logs(self, entries: list[TimeLogEntry]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        text = yaml.dump(
            [_time_log_to_dict(e) for e in entries],
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
        (self.root / TIME_LOGS_FILE).write_text(text, encoding="utf-8")

    # File helpers

    def _read_yaml(self, file_path: Path, default: Any) -> Any:
        if not file_path.exists():
            return default
        data = yaml.safe_load(file_path.read_text(encoding="utf-8"))
        return default if data is None else data

    def _read_task_file(self, file_path: Path) -> tuple[dict[str, Any], str, str]:
        """Read a task file into (frontmatter, body, encoding)."""
        # Try UTF-8 first, fallback to latin-1 for non-UTF-8 files
        try:
            content = file_path.read_text(encoding="utf-8")
            encoding = "utf-8"
        except UnicodeDecodeError:
            content = file_path.read_text(encoding="latin-1")
            encoding = "latin-1"

        match = FRONTMATTER_RE.match(content)
        if not match:
            return {}, content, encoding

        data = yaml.safe_load(match.group(2)) or {}
        if not isinstance(data, dict):
            data = {}
        return data, content[match.end() :], encoding

    def _write_task_file(
        self, file_path: Path, data: dict[str, Any], body: str, encoding: str = "utf-8"
    ) -> None:
        new_frontmatter = yaml.dump(
            data, default_flow_style=False, sort_keys=False, allow_unicode=True
        )
        if not body.startswith("\n"):
            body = "\n" + body
        file_path.write_text(f"---\n{new_frontmatter}---" + body, encoding=encoding)

    def read_task_document(self, task_id: str) -> tuple[dict[str, Any], str]:
        """Read raw frontmatter and body of a task file."""
        data, body, _ = self._read_task_file(self.task_path(task_id))
        return data, body

    def write_task_document(self, task_id: str, data: dict[str, Any], body: str) -> None:
        """Write raw frontmatter and body of a task file."""
        with self._lock:
            self._write_task_file(self.task_path(task_id), data, body)


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _normalize_priority(value: Any) -> int | str | None:
    """Normalize priority to int or string.

    Numeric strings become ints, other non-empty strings pass through,
    booleans, floats and empty strings are rejected.
    """
    if value is None:
        return None
    # Check bool before int (bool is subclass of int in Python)
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        if not value.strip():
            return None
        with suppress(ValueError):
            return int(value)
        return value
    return None


def _date_to_string(value: Any) -> str | None:
    """Convert date object to ISO string or return None."""
    if value is None:
        return None
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        return value
    return None


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    parsed = datetime.fromisoformat(str(value))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _subtask_from_dict(raw: dict[str, Any]) -> Subtask:
    return Subtask(
        id=str(raw["id"]),
        title=str(raw.get("title", "")),
        is_completed=bool(raw.get("is_completed", False)),
        created_at=_parse_datetime(raw.get("created_at")),
    )


def _subtask_to_dict(subtask: Subtask) -> dict[str, Any]:
    return {
        "id": subtask.id,
        "title": subtask.title,
        "is_completed": subtask.is_completed,
        "created_at": _format_datetime(subtask.created_at),
    }


def _time_log_from_dict(raw: dict[str, Any]) -> TimeLogEntry:
    duration = raw.get("duration_seconds")
    start_time = _parse_datetime(raw.get("start_time"))
    if start_time is None:
        raise ValueError(f"Time log {raw.get('id')} has no start_time")
    return TimeLogEntry(
        id=str(raw["id"]),
        task_id=str(raw["task_id"]),
        user_id=str(raw["user_id"]),
        subtask_name=str(raw.get("subtask_name", "")),
        start_time=start_time,
        end_time=_parse_datetime(raw.get("end_time")),
        duration_seconds=None if duration is None else int(duration),
        created_at=_parse_datetime(raw.get("created_at")),
    )


def _time_log_to_dict(entry: TimeLogEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "task_id": entry.task_id,
        "user_id": entry.user_id,
        "subtask_name": entry.subtask_name,
        "start_time": _format_datetime(entry.start_time),
        "end_time": _format_datetime(entry.end_time),
        "duration_seconds": entry.duration_seconds,
        "created_at": _format_datetime(entry.created_at),
    }
