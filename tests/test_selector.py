# tests/test_selector.py

from __future__ import annotations

import pytest

from tasksync.core.errors import AllTransportsFailedError, NotFoundError, TransportError
from tasksync.core.models import TaskDraft
from tasksync.transports.memory import InMemoryTransport
from tasksync.transports.selector import TransportSelector

from .fakes import FakeTransport


def _pair() -> tuple[FakeTransport, FakeTransport]:
    shared = InMemoryTransport(seed_user_id="u1")
    return FakeTransport("graphql", backend=shared), FakeTransport("rest", backend=shared)


@pytest.mark.asyncio
async def test_primary_answers_without_touching_fallback() -> None:
    primary, secondary = _pair()
    selector = TransportSelector([primary, secondary])

    categories = await selector.list_categories("u1")

    assert [c.name for c in categories][:2] == ["Work", "Personal"]
    assert primary.count("list_categories") == 1
    assert secondary.count("list_categories") == 0
    assert selector.last_used == "graphql"


@pytest.mark.asyncio
async def test_falls_back_once_per_transport_in_order() -> None:
    primary, secondary = _pair()
    primary.fail_always("create_task")
    selector = TransportSelector([primary, secondary])

    created = await selector.create_task("u1", TaskDraft(title="Buy milk").validate())

    assert created.title == "Buy milk"
    assert primary.count("create_task") == 1
    assert secondary.count("create_task") == 1
    assert selector.last_used == "rest"


@pytest.mark.asyncio
async def test_all_failed_raises_aggregated_error() -> None:
    primary, secondary = _pair()
    primary.fail_always("list_tasks")
    secondary.fail_always("list_tasks", TransportError("500 boom", status=500))
    selector = TransportSelector([primary, secondary])

    with pytest.raises(AllTransportsFailedError) as excinfo:
        await selector.list_tasks("u1")

    err = excinfo.value
    assert err.operation == "list_tasks"
    assert [e.transport for e in err.errors] == ["graphql", "rest"]
    assert "500 boom" in str(err)


@pytest.mark.asyncio
async def test_not_found_everywhere_stays_not_found() -> None:
    primary, secondary = _pair()
    selector = TransportSelector([primary, secondary])

    with pytest.raises(NotFoundError):
        await selector.delete_task("999")

    assert primary.count("delete_task") == 1
    assert secondary.count("delete_task") == 1


@pytest.mark.asyncio
async def test_fallback_disabled_uses_primary_only() -> None:
    primary, secondary = _pair()
    primary.fail_always("list_categories")
    selector = TransportSelector([primary, secondary], fallback_enabled=False)

    with pytest.raises(AllTransportsFailedError):
        await selector.list_categories("u1")
    assert secondary.count("list_categories") == 0


@pytest.mark.asyncio
async def test_unknown_operation_and_close() -> None:
    primary, secondary = _pair()
    selector = TransportSelector([primary, secondary])

    with pytest.raises(ValueError):
        await selector.call("drop_database")

    await selector.aclose()
    assert primary.closed and secondary.closed


def test_selector_needs_a_transport() -> None:
    with pytest.raises(ValueError):
        TransportSelector([])
