"""One-off import of legacy rich-text checklists into structured subtasks.

Legacy task bodies hold editor HTML such as::

    <ul data-type="taskList">
      <li data-type="taskItem" data-checked="true">Write draft</li>
    </ul>

Each checklist item becomes a subtask in the task's frontmatter. Subtask ids
are derived from task id, position and text, so running the import twice
adds nothing the second time.
"""

import argparse
import html
import logging
import re
import sys
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from task_tracker.store.markdown_store import MarkdownTaskStore

logger = logging.getLogger(__name__)

TASK_ITEM_RE = re.compile(
    r'<li[^>]*data-type="taskItem"[^>]*data-checked="(true|false)"[^>]*>(.*?)</li>',
    re.DOTALL,
)
TAG_RE = re.compile(r"<[^>]*>?")

LEGACY_NAMESPACE = uuid.UUID("6f1c3a52-5b0e-4a53-9d3c-0c5f4b1e7a21")


@dataclass
class LegacyItem:
    """Checklist item parsed from legacy HTML."""

    text: str
    completed: bool


@dataclass
class MigrationReport:
    """Per-task outcome of a migration run."""

    migrated: dict[str, int] = field(default_factory=dict)  # task_id -> subtasks added
    skipped: list[str] = field(default_factory=list)  # no checklist items found
    failed: dict[str, str] = field(default_factory=dict)


def parse_legacy_items(content: str) -> list[LegacyItem]:
    """Extract checklist items; inner tags are stripped and empty items skipped."""
    items: list[LegacyItem] = []
    for match in TASK_ITEM_RE.finditer(content):
        text = html.unescape(TAG_RE.sub("", match.group(2))).strip()
        if text:
            items.append(LegacyItem(text=text, completed=match.group(1) == "true"))
    return items


def legacy_subtask_id(task_id: str, index: int, text: str) -> str:
    """Stable id for the index-th legacy item of a task."""
    return str(uuid.uuid5(LEGACY_NAMESPACE, f"{task_id}:{index}:{text}"))


def migrate_task(store: MarkdownTaskStore, task_id: str, dry_run: bool = False) -> int:
    """Import the legacy checklist of one task.

    Returns:
        Number of subtasks added
    """
    data, body = store.read_task_document(task_id)
    items = parse_legacy_items(body)
    if not items:
        return 0

    existing: list[dict[str, Any]] = list(data.get("subtasks") or [])
    existing_ids = {str(raw.get("id")) for raw in existing}
    now = datetime.now(UTC).isoformat()
    added = 0
    for index, item in enumerate(items):
        subtask_id = legacy_subtask_id(task_id, index, item.text)
        if subtask_id in existing_ids:
            continue
        existing.append(
            {
                "id": subtask_id,
                "title": item.text,
                "is_completed": item.completed,
                "created_at": now,
            }
        )
        added += 1

    if added and not dry_run:
        data["subtasks"] = existing
        store.write_task_document(task_id, data, body)
    return added


def migrate_legacy_subtasks(store_path: str, dry_run: bool = False) -> MigrationReport:
    """Import legacy checklists of every task in a markdown store."""
    store = MarkdownTaskStore(store_path)
    report = MigrationReport()
    task_files = sorted(store.tasks_dir.glob("*.md")) if store.tasks_dir.exists() else []
    logger.info(f"[Migration] Found {len(task_files)} task files in {store_path}")

    for file_path in task_files:
        task_id = file_path.stem
        try:
            _, body = store.read_task_document(task_id)
            if not parse_legacy_items(body):
                logger.info(f"[Migration] No subtasks found in HTML for task {task_id}")
                report.skipped.append(task_id)
                continue
            added = migrate_task(store, task_id, dry_run=dry_run)
        except Exception as e:
            logger.error(f"[Migration] Failed to migrate task {task_id}: {e}")
            report.failed[task_id] = str(e)
            continue
        report.migrated[task_id] = added
        logger.info(f"[Migration] Migrated task {task_id}: {added} subtasks")

    logger.info("[Migration] Migration complete")
    return report


def main(argv: list[str] | None = None) -> int:
    """Run the migration from the command line."""
    from task_tracker.factory import get_config

    parser = argparse.ArgumentParser(description="Import legacy checklist HTML as subtasks")
    parser.add_argument("--store", default=None, help="Markdown store path (default: config)")
    parser.add_argument("--dry-run", action="store_true", help="Report without writing")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-8s [%(name)s:%(lineno)d] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    store_path = args.store or get_config().store_path
    report = migrate_legacy_subtasks(store_path, dry_run=args.dry_run)
    return 1 if report.failed else 0


if __name__ == "__main__":
    sys.exit(main())
