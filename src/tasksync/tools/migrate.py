# src/tasksync/tools/migrate.py

"""
Copy categories and tasks from one backend to another.

Categories go first so task references can be rewritten to the ids the
target assigned. Each record is migrated independently: a failure is
recorded in the MigrationLog and the run continues.

    $ tasksync-migrate --source rest --target graphql
    $ tasksync-migrate --source rest --target graphql --dry-run
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path

from ..cli.bootstrap import build_transport
from ..config import TRANSPORT_CHOICES, Settings, get_settings
from ..core.errors import TaskSyncError
from ..core.models import TaskDraft
from ..core.ports import Transport
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RecordError:
    id: str
    error: str


@dataclass(slots=True)
class EntityLog:
    total: int = 0
    migrated: int = 0
    failed: int = 0
    errors: list[RecordError] = field(default_factory=list)

    def fail(self, record_id: str, error: BaseException | str) -> None:
        self.failed += 1
        self.errors.append(RecordError(id=record_id, error=str(error)))


@dataclass(slots=True)
class MigrationLog:
    categories: EntityLog = field(default_factory=EntityLog)
    tasks: EntityLog = field(default_factory=EntityLog)
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return self.categories.failed == 0 and self.tasks.failed == 0

    def to_dict(self) -> dict:
        return asdict(self)

    def summary(self) -> str:
        lines = ["Migration result" + (" (dry run)" if self.dry_run else "") + ":"]
        for name, entry in (("categories", self.categories), ("tasks", self.tasks)):
            lines.append(
                f"  {name}: total {entry.total}, migrated {entry.migrated}, failed {entry.failed}"
            )
            for err in entry.errors:
                lines.append(f"    #{err.id}: {err.error}")
        return "\n".join(lines)


async def migrate(
    source: Transport,
    target: Transport,
    *,
    user_id: str,
    target_user_id: str | None = None,
    dry_run: bool = False,
) -> MigrationLog:
    """
    Copy every category and task of `user_id` from `source` to `target`.

    Reading the source is not per-record: if listing fails the error
    propagates and nothing is written.
    """
    owner = target_user_id or user_id
    log = MigrationLog(dry_run=dry_run)

    categories = await source.list_categories(user_id)
    tasks = await source.list_tasks(user_id)
    log.categories.total = len(categories)
    log.tasks.total = len(tasks)
    logger.info(
        "Migrating %d categories, %d tasks (%s -> %s, dry_run=%s)",
        len(categories),
        len(tasks),
        source.name,
        target.name,
        dry_run,
    )

    category_ids: dict[str, str] = {}
    for category in categories:
        if dry_run:
            category_ids[category.id] = category.id
            log.categories.migrated += 1
            continue
        try:
            created = await target.create_category(owner, category.name)
        except TaskSyncError as e:
            logger.warning("Category %s (%s) failed: %s", category.id, category.name, e)
            log.categories.fail(category.id, e)
            continue
        category_ids[category.id] = created.id
        log.categories.migrated += 1
        logger.info("Category migrated: %s (%s -> %s)", category.name, category.id, created.id)

    for task in tasks:
        category_id = None
        if task.category_id is not None:
            category_id = category_ids.get(task.category_id)
            if category_id is None:
                logger.warning(
                    "Task %s references category %s which was not migrated; dropping the reference",
                    task.id,
                    task.category_id,
                )
        draft = TaskDraft(
            title=task.title,
            description=task.description,
            due_date=task.due_date,
            priority=task.priority,
            completed=task.completed,
            category_id=category_id,
        )
        try:
            draft = draft.validate()
            if not dry_run:
                created_task = await target.create_task(owner, draft)
                logger.info("Task migrated: %s (%s -> %s)", task.title, task.id, created_task.id)
        except TaskSyncError as e:
            logger.warning("Task %s (%s) failed: %s", task.id, task.title, e)
            log.tasks.fail(task.id, e)
            continue
        log.tasks.migrated += 1

    return log


def write_log(log: MigrationLog, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(log.to_dict(), ensure_ascii=False, indent=2), "utf-8")
    os.replace(tmp, path)
    logger.info("Migration log written to %s", path)


def _pick(settings: Settings, name: str) -> Transport:
    transport = build_transport(settings, name)
    if transport is None:
        raise SystemExit(f"Transport {name!r} is not configured.")
    return transport


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="tasksync-migrate", description="Copy categories and tasks between backends."
    )
    p.add_argument("--source", choices=TRANSPORT_CHOICES, default="rest")
    p.add_argument("--target", choices=TRANSPORT_CHOICES, default="graphql")
    p.add_argument("--user-id", default=None, help="Owner to read from (default: settings user).")
    p.add_argument("--target-user-id", default=None, help="Owner on the target (default: same).")
    p.add_argument("--dry-run", action="store_true", help="Read and validate only; write nothing.")
    p.add_argument("--log-file", type=Path, default=None, help="Where to write the JSON log.")
    return p


async def _run(args: argparse.Namespace, settings: Settings) -> MigrationLog:
    source = _pick(settings, args.source)
    target = _pick(settings, args.target)
    try:
        return await migrate(
            source,
            target,
            user_id=args.user_id or settings.user_id,
            target_user_id=args.target_user_id,
            dry_run=args.dry_run,
        )
    finally:
        await source.aclose()
        await target.aclose()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.source == args.target:
        print("Source and target must differ.")
        return 2

    settings = get_settings()
    log_path = setup_logging(
        log_dir=settings.data_dir, filename="migrate.log", console_level=settings.log_level
    )
    logger.debug("Migration log file: %s", log_path)

    try:
        log = asyncio.run(_run(args, settings))
    except TaskSyncError as e:
        logger.error("Migration aborted: %s", e)
        return 1

    print(log.summary())
    write_log(log, args.log_file or settings.data_dir / "migration-log.json")
    return 0 if log.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
