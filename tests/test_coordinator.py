# tests/test_coordinator.py

from __future__ import annotations

import asyncio

import pytest

from tasksync.core.errors import (
    AllTransportsFailedError,
    MutationTimeoutError,
    NotFoundError,
    ValidationError,
)
from tasksync.core.models import Priority, TaskDraft, TaskPatch
from tasksync.sync.client import SyncClient
from tasksync.sync.coordinator import MutationState
from tasksync.sync.notifications import NotificationLevel
from tasksync.sync.views import TaskFilter
from tasksync.transports.selector import TransportSelector

from .fakes import USER


async def _seed(backend, *titles: str, **fields):
    return [await backend.create_task(USER, TaskDraft(title=t, **fields).validate()) for t in titles]


async def _settle() -> None:
    for _ in range(3):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_create_is_visible_before_the_network_call_resolves(client, transport, notifications) -> None:
    await client.load_tasks()
    gate = transport.gate("create_task")

    pending = client.create_task(TaskDraft(title="Buy milk", priority="high"))

    cached = client.cache.peek(client.tasks_key())
    assert len(cached) == 1
    assert cached[0].is_temporary
    assert cached[0].title == "Buy milk"
    assert cached[0].priority is Priority.HIGH

    gate.set()
    created = await pending

    cached = client.cache.peek(client.tasks_key())
    assert [t.id for t in cached] == [created.id]
    assert not cached[0].is_temporary
    assert created.created_at is not None

    last = notifications.history[-1]
    assert last.level == NotificationLevel.SUCCESS
    assert last.title == "Task created"
    assert last.ttl_seconds == 4.0
    assert client.mutations.history[-1].state == MutationState.COMMITTED


@pytest.mark.asyncio
async def test_failed_update_restores_exact_prior_state(client, transport, backend, notifications) -> None:
    await _seed(backend, "A", "B", "C")
    before = list(await client.load_tasks())
    target = before[1]
    transport.fail("update_task")

    pending = client.update_task(target.id, TaskPatch(title="B2", priority="high"))
    optimistic = client.cache.peek(client.tasks_key())
    assert optimistic[1].title == "B2"

    with pytest.raises(AllTransportsFailedError):
        await pending

    assert client.cache.peek(client.tasks_key()) == before
    assert notifications.history[-1].level == NotificationLevel.ERROR
    assert notifications.history[-1].title == "Failed to update task"
    assert notifications.history[-1].ttl_seconds is None
    assert client.mutations.history[-1].state == MutationState.ROLLED_BACK


@pytest.mark.asyncio
async def test_failed_delete_reinserts_at_original_position(client, transport, backend) -> None:
    await _seed(backend, "first", "second", "third")
    before = list(await client.load_tasks())
    transport.fail("delete_task")

    pending = client.delete_task(before[1].id)
    assert [t.title for t in client.cache.peek(client.tasks_key())] == ["first", "third"]

    with pytest.raises(AllTransportsFailedError):
        await pending

    assert client.cache.peek(client.tasks_key()) == before


@pytest.mark.asyncio
async def test_invalid_input_never_reaches_cache_or_network(client, transport, notifications) -> None:
    await client.load_tasks()

    with pytest.raises(ValidationError):
        client.create_task(TaskDraft(title="   "))
    with pytest.raises(ValidationError):
        client.update_task("1", TaskPatch())
    with pytest.raises(ValidationError):
        client.create_category("")

    assert client.cache.peek(client.tasks_key()) == []
    assert transport.count("create_task") == 0
    assert transport.count("update_task") == 0
    assert transport.count("create_category") == 0
    assert all(n.level == NotificationLevel.ERROR for n in notifications.history)
    assert len(notifications.history) == 3


@pytest.mark.asyncio
async def test_timeout_rolls_back(transport, notifications) -> None:
    client = SyncClient(
        TransportSelector([transport]),
        notifications,
        user_id=USER,
        stale_after_seconds=None,
        invalidate_delay_seconds=0,
        mutation_timeout_seconds=0.05,
    )
    await client.load_tasks()
    transport.gate("create_task")  # never released

    pending = client.create_task(TaskDraft(title="slow"))
    assert len(client.cache.peek(client.tasks_key())) == 1

    with pytest.raises(MutationTimeoutError):
        await pending

    assert client.cache.peek(client.tasks_key()) == []
    assert notifications.history[-1].title == "Failed to create task"


@pytest.mark.asyncio
async def test_one_failure_does_not_clobber_concurrent_success(client, transport, backend) -> None:
    a, b = await _seed(backend, "a", "b")
    await client.load_tasks()
    transport.fail("update_task")  # the first call fails

    failing = client.update_task(b.id, TaskPatch(title="b-edited"))
    passing = client.update_task(a.id, TaskPatch(title="a-edited"))
    results = await asyncio.gather(failing, passing, return_exceptions=True)

    assert isinstance(results[0], AllTransportsFailedError)
    assert results[1].title == "a-edited"
    titles = {t.id: t.title for t in client.cache.peek(client.tasks_key())}
    assert titles == {a.id: "a-edited", b.id: "b"}


@pytest.mark.asyncio
async def test_mutations_on_one_record_run_in_invocation_order(client, transport, backend) -> None:
    (task,) = await _seed(backend, "t")
    await client.load_tasks()
    gate = transport.gate("update_task")

    first = client.update_task(task.id, TaskPatch(title="one"))
    second = client.update_task(task.id, TaskPatch(title="two"))
    await _settle()

    # The second network call waits for the first one to finish.
    assert transport.count("update_task") == 1
    assert client.cache.peek(client.tasks_key())[0].title == "two"

    gate.set()
    await asyncio.gather(first, second)

    sent = [args[1].title for op, args in transport.calls if op == "update_task"]
    assert sent == ["one", "two"]
    assert (await backend.get_task(task.id)).title == "two"
    assert client.cache.peek(client.tasks_key())[0].title == "two"


@pytest.mark.asyncio
async def test_toggle_requires_a_loaded_task(client, notifications) -> None:
    with pytest.raises(NotFoundError):
        client.toggle_completed("42")
    assert notifications.history[-1].title == "Task not found"


@pytest.mark.asyncio
async def test_toggle_flips_completed(client, backend) -> None:
    (task,) = await _seed(backend, "t")
    await client.load_tasks()

    pending = client.toggle_completed(task.id)
    assert client.cache.peek(client.tasks_key())[0].completed is True
    updated = await pending

    assert updated.completed is True
    assert (await backend.get_task(task.id)).completed is True


@pytest.mark.asyncio
async def test_delete_of_vanished_record_reports_not_found(client, backend, notifications) -> None:
    (task,) = await _seed(backend, "gone")
    before = list(await client.load_tasks())
    await backend.delete_task(task.id)

    with pytest.raises(NotFoundError):
        await client.delete_task(task.id)

    assert client.cache.peek(client.tasks_key()) == before
    assert notifications.history[-1].title == "Task not found"


@pytest.mark.asyncio
async def test_commit_invalidates_affected_collections(client, backend) -> None:
    category = await backend.create_category(USER, "Work")
    await client.load_tasks()
    await client.load_categories()

    await client.create_task(TaskDraft(title="t", category_id=category.id))

    assert client.cache.is_stale(client.tasks_key())
    assert client.cache.is_stale(client.categories_key())


@pytest.mark.asyncio
async def test_invalidation_is_delayed(transport, notifications) -> None:
    client = SyncClient(
        TransportSelector([transport]),
        notifications,
        user_id=USER,
        stale_after_seconds=None,
        invalidate_delay_seconds=0.05,
    )
    await client.load_tasks()
    await client.create_task(TaskDraft(title="t"))

    assert not client.cache.is_stale(client.tasks_key())
    await asyncio.sleep(0.1)
    assert client.cache.is_stale(client.tasks_key())
    await client.aclose()


@pytest.mark.asyncio
async def test_optimistic_create_respects_filtered_lists(client, backend) -> None:
    high = TaskFilter(priority=Priority.HIGH)
    await client.load_tasks()
    await client.load_tasks(high)

    pending_low = client.create_task(TaskDraft(title="low one", priority="low"))
    pending_high = client.create_task(TaskDraft(title="high one", priority="high"))

    assert {t.title for t in client.cache.peek(client.tasks_key())} == {"low one", "high one"}
    assert [t.title for t in client.cache.peek(client.tasks_key(high))] == ["high one"]

    await asyncio.gather(pending_low, pending_high)
    assert [t.title for t in client.cache.peek(client.tasks_key(high))] == ["high one"]
    assert not any(t.is_temporary for t in client.cache.peek(client.tasks_key()))


@pytest.mark.asyncio
async def test_update_moves_task_out_of_filtered_list(client, backend) -> None:
    (task,) = await _seed(backend, "t", priority="high")
    high = TaskFilter(priority=Priority.HIGH)
    assert len(await client.load_tasks(high)) == 1

    pending = client.update_task(task.id, TaskPatch(priority="low"))
    assert client.cache.peek(client.tasks_key(high)) == []
    await pending
    assert client.cache.peek(client.tasks_key(high)) == []


@pytest.mark.asyncio
async def test_category_create_and_failure(client, transport) -> None:
    await client.load_categories()

    created = await client.create_category("Errands")
    assert [c.name for c in client.cache.peek(client.categories_key())] == ["Errands"]
    assert not created.id.startswith("tmp-")

    transport.fail("create_category")
    with pytest.raises(AllTransportsFailedError):
        await client.create_category("Broken")
    assert [c.name for c in client.cache.peek(client.categories_key())] == ["Errands"]


@pytest.mark.asyncio
async def test_drain_waits_for_pending_mutations(client, transport) -> None:
    await client.load_tasks()
    gate = transport.gate("create_task")
    client.create_task(TaskDraft(title="x"))
    assert client.mutations.pending == 1

    gate.set()
    await client.mutations.drain()
    assert client.mutations.pending == 0


@pytest.mark.asyncio
async def test_two_failed_edits_on_one_record_restore_the_server_value(client, transport, backend) -> None:
    (task,) = await _seed(backend, "A")
    await client.load_tasks()
    transport.fail("update_task", times=2)

    first = client.update_task(task.id, TaskPatch(title="B"))
    second = client.update_task(task.id, TaskPatch(title="C"))
    assert client.cache.peek(client.tasks_key())[0].title == "C"

    results = await asyncio.gather(first, second, return_exceptions=True)

    assert all(isinstance(r, AllTransportsFailedError) for r in results)
    assert (await backend.get_task(task.id)).title == "A"
    assert client.cache.peek(client.tasks_key())[0].title == "A"
    assert client.cache.is_stale(client.tasks_key())


@pytest.mark.asyncio
async def test_failed_first_edit_keeps_the_queued_second_edit_visible(client, transport, backend) -> None:
    (task,) = await _seed(backend, "A")
    await client.load_tasks()
    transport.fail("update_task")

    first = client.update_task(task.id, TaskPatch(title="B"))
    second = client.update_task(task.id, TaskPatch(title="C"))

    with pytest.raises(AllTransportsFailedError):
        await first
    assert client.cache.peek(client.tasks_key())[0].title == "C"

    await second
    assert client.cache.peek(client.tasks_key())[0].title == "C"
    assert (await backend.get_task(task.id)).title == "C"


@pytest.mark.asyncio
async def test_delete_category_uncategorizes_tasks_and_rolls_back_exactly(client, transport, backend) -> None:
    shopping = await backend.create_category(USER, "Shopping")
    work = await backend.create_category(USER, "Work")
    milk, eggs = await _seed(backend, "milk", "eggs", category_id=shopping.id)
    await _seed(backend, "report", category_id=work.id)
    in_shopping = TaskFilter(category_id=shopping.id)

    categories = list(await client.load_categories())
    everything = list(await client.load_tasks())
    filtered = list(await client.load_tasks(in_shopping))
    assert {t.id for t in filtered} == {milk.id, eggs.id}

    gate = transport.gate("delete_category")
    transport.fail("delete_category")
    pending = client.delete_category(shopping.id)

    assert [c.name for c in client.cache.peek(client.categories_key())] == ["Work"]
    by_id = {t.id: t for t in client.cache.peek(client.tasks_key())}
    assert len(by_id) == 3
    assert by_id[milk.id].category_id is None and by_id[eggs.id].category_id is None
    assert client.cache.peek(client.tasks_key(in_shopping)) == []

    gate.set()
    with pytest.raises(AllTransportsFailedError):
        await pending

    assert client.cache.peek(client.categories_key()) == categories
    assert client.cache.peek(client.tasks_key()) == everything
    assert client.cache.peek(client.tasks_key(in_shopping)) == filtered
    assert (await backend.list_categories(USER))[0].id == shopping.id
