# tests/test_migrate.py

from __future__ import annotations

import json
from pathlib import Path

import pytest

from tasksync.core.models import Priority, TaskDraft
from tasksync.tools.migrate import migrate, write_log
from tasksync.transports.memory import InMemoryTransport

from .fakes import USER, FakeTransport


async def _source() -> InMemoryTransport:
    src = InMemoryTransport(seed_categories=False)
    work = await src.create_category(USER, "Work")
    home = await src.create_category(USER, "Home")
    await src.create_task(USER, TaskDraft(title="report", category_id=work.id, priority="high").validate())
    await src.create_task(USER, TaskDraft(title="dishes", category_id=home.id).validate())
    await src.create_task(USER, TaskDraft(title="loose").validate())
    return src


@pytest.mark.asyncio
async def test_migrates_and_remaps_category_ids() -> None:
    src = await _source()
    target = InMemoryTransport(seed_user_id="other", seed_categories=True)

    log = await migrate(src, target, user_id=USER, target_user_id="other")

    assert log.ok
    assert (log.categories.total, log.categories.migrated) == (2, 2)
    assert (log.tasks.total, log.tasks.migrated) == (3, 3)

    categories = {c.id: c.name for c in await target.list_categories("other")}
    tasks = {t.title: t for t in await target.list_tasks("other")}
    assert categories[tasks["report"].category_id] == "Work"
    assert categories[tasks["dishes"].category_id] == "Home"
    assert tasks["loose"].category_id is None
    assert tasks["report"].priority is Priority.HIGH


@pytest.mark.asyncio
async def test_failed_category_drops_the_reference() -> None:
    src = await _source()
    target = FakeTransport("graphql")
    target.fail("create_category")  # "Work" fails

    log = await migrate(src, target, user_id=USER)

    assert not log.ok
    assert (log.categories.migrated, log.categories.failed) == (1, 1)
    assert log.categories.errors[0].id == "1"
    assert log.tasks.migrated == 3
    migrated = {t.title: t for t in await target.backend.list_tasks(USER)}
    assert migrated["report"].category_id is None
    assert migrated["dishes"].category_name == "Home"


@pytest.mark.asyncio
async def test_failed_task_is_recorded_and_run_continues() -> None:
    src = await _source()
    target = FakeTransport("graphql")
    target.fail("create_task")  # first task fails

    log = await migrate(src, target, user_id=USER)

    assert (log.tasks.migrated, log.tasks.failed) == (2, 1)
    assert log.tasks.errors[0].id == "1"
    assert "failed 1" in log.summary()
    assert {t.title for t in await target.backend.list_tasks(USER)} == {"dishes", "loose"}


@pytest.mark.asyncio
async def test_dry_run_writes_nothing(tmp_path: Path) -> None:
    src = await _source()
    target = FakeTransport("graphql")

    log = await migrate(src, target, user_id=USER, dry_run=True)

    assert log.dry_run and log.ok
    assert log.tasks.migrated == 3
    assert target.calls == []

    path = tmp_path / "log.json"
    write_log(log, path)
    data = json.loads(path.read_text("utf-8"))
    assert data["tasks"]["total"] == 3
    assert data["dry_run"] is True
