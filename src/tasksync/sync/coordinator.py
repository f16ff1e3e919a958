# src/tasksync/sync/coordinator.py

from __future__ import annotations

"""
Mutation coordinator.

Each mutation goes through a small state machine:

  IDLE -> APPLIED -> COMMITTED | ROLLED_BACK

- APPLIED happens synchronously inside the public method, before the
  network call is even scheduled (the method returns an asyncio.Task).
- COMMITTED: the server record replaces the optimistic one, a success
  notification is emitted and an invalidation of the affected kinds is
  scheduled after `invalidate_delay_seconds`.
- ROLLED_BACK: transport error, not-found or timeout; the optimistic edit
  is reverted and a failure notification is emitted.

Reverts are per record (drop the record id, reinsert the prior record at
its prior index), so a failed mutation does not clobber concurrent edits
to other records. Network calls touching the same record are queued in
invocation order. When a later mutation on the same record is still in
flight, a failed one hands its snapshot over instead of reverting, so the
later edit stays visible and its own rollback lands on the last value the
server confirmed. Rollbacks schedule the same invalidation as commits.
"""

import asyncio
import itertools
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

from ..core.errors import MutationTimeoutError, NotFoundError, TaskSyncError, ValidationError
from ..core.models import (
    Category,
    Task,
    TaskDraft,
    TaskPatch,
    new_temporary_id,
    normalize_id,
    validate_name,
)
from ..core.ports import Notifier
from ..transports.selector import TransportSelector
from .cache import CacheKey, CacheStore
from .notifications import Notification, NotificationLevel
from .views import TaskFilter

logger = logging.getLogger(__name__)

TASKS = "tasks"
CATEGORIES = "categories"


class MutationState(StrEnum):
    IDLE = "idle"
    APPLIED = "applied"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(slots=True)
class MutationRecord:
    id: int
    operation: str
    target: str
    state: MutationState = MutationState.IDLE
    error: str | None = None
    started_at: float = field(default_factory=time.monotonic)
    finished_at: float | None = None


@dataclass(slots=True, frozen=True)
class _Snapshot:
    record_id: str
    before: Any  # None -> record was absent
    index: int


@dataclass(slots=True)
class _KeyEdit:
    key: CacheKey
    snapshots: list[_Snapshot]


EditFn = Callable[[CacheKey, list[Any]], tuple[list[Any], list[str]]]


def _index_of(items: list[Any], record_id: str) -> int | None:
    for i, item in enumerate(items):
        if item.id == record_id:
            return i
    return None


def _key_filter(key: CacheKey) -> TaskFilter | None:
    if len(key) > 2 and isinstance(key[2], TaskFilter):
        return key[2]
    return None


def _put(items: list[Any], old_id: str, new: Any, flt: TaskFilter | None) -> list[Any]:
    """
    Replace record `old_id` with `new` (None removes it).

    A record that stops matching the key's filter leaves the list; one that
    starts matching is prepended.
    """
    out = list(items)
    idx = _index_of(out, old_id)
    keep = new is not None and (flt is None or flt.matches(new))
    if idx is None:
        if keep:
            out.insert(0, new)
        return out
    if keep:
        out[idx] = new
    else:
        del out[idx]
    return out


class MutationCoordinator:
    def __init__(
            self,
            cache: CacheStore,
            transport: TransportSelector,
            notifier: Notifier,
            *,
            user_id: str,
            invalidate_delay_seconds: float = 1.0,
            timeout_seconds: float | None = 15.0,
            success_ttl_seconds: float = 4.0,
            history_size: int = 100,
    ) -> None:
        self._cache = cache
        self._transport = transport
        self._notifier = notifier
        self._user_id = user_id
        self.invalidate_delay_seconds = max(0.0, float(invalidate_delay_seconds))
        self.timeout_seconds = timeout_seconds
        self.success_ttl_seconds = success_ttl_seconds
        self.history: deque[MutationRecord] = deque(maxlen=history_size)

        self._ids = itertools.count(1)
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._pending: set[asyncio.Task[Any]] = set()
        self._in_flight: dict[int, list[_KeyEdit]] = {}
        self._timers: set[asyncio.TimerHandle] = set()

    # ---- public operations ----

    def create_task(self, draft: TaskDraft) -> asyncio.Task[Task]:
        try:
            draft = draft.validate()
        except ValidationError as e:
            self._reject("Task was not created", e)
            raise

        temp = draft.to_task(new_temporary_id(), user_id=self._user_id)
        record = self._start("create_task", temp.id)
        edits = self._edit(
            TASKS, lambda key, items: (_put(items, temp.id, temp, _key_filter(key)), [temp.id])
        )

        return self._launch(
            record,
            edits,
            lambda: self._transport.create_task(self._user_id, draft),
            lock_id=f"task:{temp.id}",
            reconcile=lambda created: self._swap(TASKS, temp.id, created),
            invalidate=(TASKS, CATEGORIES) if draft.category_id else (TASKS,),
            success=("Task created", draft.title),
            failure="Failed to create task",
        )

    def update_task(self, task_id: str, patch: TaskPatch) -> asyncio.Task[Task]:
        task_id = normalize_id(task_id) or ""
        try:
            patch = patch.validate()
        except ValidationError as e:
            self._reject("Task was not updated", e)
            raise
        return self._update(task_id, patch, "update_task", ("Task updated", ""), "Failed to update task")

    def toggle_completed(self, task_id: str) -> asyncio.Task[Task]:
        """Flip `completed` on a task that is present in a loaded task list."""
        task_id = normalize_id(task_id) or ""
        current = self.find_task(task_id)
        if current is None:
            err = NotFoundError(f"task {task_id}: not in any loaded list", transport="cache")
            self._reject("Task not found", err)
            raise err
        done = not current.completed
        return self._update(
            task_id,
            TaskPatch(completed=done),
            "toggle_completed",
            ("Task completed" if done else "Task marked as not completed", current.title),
            "Failed to update task",
        )

    def delete_task(self, task_id: str) -> asyncio.Task[None]:
        task_id = normalize_id(task_id) or ""
        current = self.find_task(task_id)
        record = self._start("delete_task", task_id)
        edits = self._edit(TASKS, lambda key, items: (_put(items, task_id, None, None), [task_id]))

        async def call() -> None:
            await self._transport.delete_task(task_id)

        return self._launch(
            record,
            edits,
            call,
            lock_id=f"task:{task_id}",
            reconcile=None,
            invalidate=(TASKS, CATEGORIES) if current is None or current.category_id else (TASKS,),
            success=("Task deleted", current.title if current else task_id),
            failure="Failed to delete task",
            not_found="Task not found",
        )

    def create_category(self, name: str) -> asyncio.Task[Category]:
        try:
            name = validate_name(name, "category name")
        except ValidationError as e:
            self._reject("Category was not created", e)
            raise

        temp = Category(id=new_temporary_id(), name=name, user_id=self._user_id)
        record = self._start("create_category", temp.id)
        edits = self._edit(CATEGORIES, lambda key, items: (items + [temp], [temp.id]))

        return self._launch(
            record,
            edits,
            lambda: self._transport.create_category(self._user_id, name),
            lock_id=f"category:{temp.id}",
            reconcile=lambda created: self._swap(CATEGORIES, temp.id, created),
            invalidate=(CATEGORIES,),
            success=("Category created", name),
            failure="Failed to create category",
        )

    def delete_category(self, category_id: str) -> asyncio.Task[None]:
        """Remove a category; tasks that used it stay but lose the reference."""
        category_id = normalize_id(category_id) or ""
        name = self._category_name(category_id) or category_id
        record = self._start("delete_category", category_id)

        def uncategorize(key: CacheKey, items: list[Any]) -> tuple[list[Any], list[str]]:
            flt = _key_filter(key)
            out = list(items)
            touched = []
            for t in items:
                if t.category_id == category_id:
                    touched.append(t.id)
                    out = _put(out, t.id, replace(t, category_id=None, category_name=None), flt)
            return out, touched

        edits = self._edit(
            CATEGORIES, lambda key, items: (_put(items, category_id, None, None), [category_id])
        )
        edits += self._edit(TASKS, uncategorize)

        async def call() -> None:
            await self._transport.delete_category(category_id)

        return self._launch(
            record,
            edits,
            call,
            lock_id=f"category:{category_id}",
            reconcile=None,
            invalidate=(CATEGORIES, TASKS),
            success=("Category deleted", name),
            failure="Failed to delete category",
            not_found="Category not found",
        )

    # ---- lookups ----

    def find_task(self, task_id: str) -> Task | None:
        for key in self._cache.loaded_keys(TASKS):
            items = self._cache.peek(key) or []
            idx = _index_of(items, task_id)
            if idx is not None:
                return items[idx]
        return None

    def _category_name(self, category_id: str) -> str | None:
        for key in self._cache.loaded_keys(CATEGORIES):
            items = self._cache.peek(key) or []
            idx = _index_of(items, category_id)
            if idx is not None:
                return items[idx].name
        return None

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every in-flight mutation (errors are not re-raised)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        for handle in list(self._timers):
            handle.cancel()
        self._timers.clear()
        await self.drain()

    # ---- internals ----

    def _update(
            self,
            task_id: str,
            patch: TaskPatch,
            operation: str,
            success: tuple[str, str],
            failure: str,
    ) -> asyncio.Task[Task]:
        current = self.find_task(task_id)
        predicted = patch.apply_to(current) if current is not None else None
        record = self._start(operation, task_id)
        edits: list[_KeyEdit] = []
        if predicted is not None:
            edits = self._edit(
                TASKS, lambda key, items: (_put(items, task_id, predicted, _key_filter(key)), [task_id])
            )

        changes_category = "category_id" in patch.changes()
        title, detail = success
        return self._launch(
            record,
            edits,
            lambda: self._transport.update_task(task_id, patch),
            lock_id=f"task:{task_id}",
            reconcile=lambda updated: self._swap(TASKS, task_id, updated),
            invalidate=(TASKS, CATEGORIES) if changes_category else (TASKS,),
            success=(title, detail or (predicted.title if predicted else task_id)),
            failure=failure,
            not_found="Task not found",
        )

    def _start(self, operation: str, target: str) -> MutationRecord:
        record = MutationRecord(id=next(self._ids), operation=operation, target=target)
        self.history.append(record)
        return record

    def _reject(self, title: str, error: Exception) -> None:
        logger.info("Mutation rejected locally: %s (%s)", title, error)
        self._notifier.notify(Notification(NotificationLevel.ERROR, title, str(error)))

    def _edit(self, kind: str, fn: EditFn) -> list[_KeyEdit]:
        """Apply `fn` to every loaded key of `kind`, remembering what it touched."""
        edits = []
        for key in self._cache.loaded_keys(kind):
            items = list(self._cache.peek(key) or [])
            new_items, touched = fn(key, items)
            snapshots = []
            for rid in touched:
                idx = _index_of(items, rid)
                snapshots.append(
                    _Snapshot(rid, items[idx] if idx is not None else None, idx if idx is not None else 0)
                )
            self._cache.begin_mutation(key)
            self._cache.set(key, new_items)
            edits.append(_KeyEdit(key, snapshots))
        return edits

    def _revert(self, mutation_id: int, edits: list[_KeyEdit]) -> None:
        for edit in edits:
            restore = [s for s in edit.snapshots if not self._hand_over(mutation_id, edit.key, s)]
            if not restore:
                continue
            items = list(self._cache.peek(edit.key) or [])
            ids = {s.record_id for s in restore}
            items = [i for i in items if i.id not in ids]
            for snap in sorted(restore, key=lambda s: s.index):
                if snap.before is not None:
                    items.insert(min(snap.index, len(items)), snap.before)
            self._cache.set(edit.key, items)

    def _hand_over(self, mutation_id: int, key: CacheKey, snap: _Snapshot) -> bool:
        """Give `snap` to the next in-flight mutation that edited the same record under `key`."""
        for other_id, other_edits in self._in_flight.items():
            if other_id <= mutation_id:
                continue
            for edit in other_edits:
                if edit.key != key:
                    continue
                for i, theirs in enumerate(edit.snapshots):
                    if theirs.record_id == snap.record_id:
                        edit.snapshots[i] = snap
                        return True
        return False

    def _swap(self, kind: str, old_id: str, record: Any) -> None:
        for key in self._cache.loaded_keys(kind):
            items = self._cache.peek(key) or []
            flt = _key_filter(key)
            if _index_of(items, old_id) is None and (flt is None or not flt.matches(record)):
                continue
            self._cache.set(key, _put(items, old_id, record, flt))

    def _launch(
            self,
            record: MutationRecord,
            edits: list[_KeyEdit],
            call: Callable[[], Awaitable[Any]],
            *,
            lock_id: str,
            reconcile: Callable[[Any], None] | None,
            invalidate: tuple[str, ...],
            success: tuple[str, str],
            failure: str,
            not_found: str | None = None,
    ) -> asyncio.Task[Any]:
        record.state = MutationState.APPLIED
        logger.debug("Mutation %s %s applied (%d keys)", record.operation, record.target, len(edits))
        self._in_flight[record.id] = edits

        task = asyncio.get_running_loop().create_task(
            self._commit(record, edits, call, lock_id, reconcile, invalidate, success, failure, not_found)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _commit(
            self,
            record: MutationRecord,
            edits: list[_KeyEdit],
            call: Callable[[], Awaitable[Any]],
            lock_id: str,
            reconcile: Callable[[Any], None] | None,
            invalidate: tuple[str, ...],
            success: tuple[str, str],
            failure: str,
            not_found: str | None,
    ) -> Any:
        lock = self._locks.setdefault(lock_id, asyncio.Lock())
        self._lock_users[lock_id] = self._lock_users.get(lock_id, 0) + 1
        try:
            async with lock:
                try:
                    result = await asyncio.wait_for(call(), timeout=self.timeout_seconds)
                except TimeoutError as e:
                    raise MutationTimeoutError(
                        f"{record.operation} timed out after {self.timeout_seconds}s"
                    ) from e
        except asyncio.CancelledError:
            self._rollback(record, edits, "cancelled", invalidate)
            raise
        except Exception as e:
            self._rollback(record, edits, str(e), invalidate)
            if not isinstance(e, TaskSyncError):
                logger.exception("Mutation %s %s crashed", record.operation, record.target)
            title = not_found if (not_found and isinstance(e, NotFoundError)) else failure
            self._notifier.notify(Notification(NotificationLevel.ERROR, title, str(e)))
            raise
        finally:
            self._in_flight.pop(record.id, None)
            for edit in edits:
                self._cache.end_mutation(edit.key)
            self._lock_users[lock_id] -= 1
            if self._lock_users[lock_id] <= 0:
                self._lock_users.pop(lock_id, None)
                self._locks.pop(lock_id, None)

        if reconcile is not None:
            reconcile(result)
        record.state = MutationState.COMMITTED
        record.finished_at = time.monotonic()
        logger.info("Mutation %s %s committed", record.operation, record.target)

        title, detail = success
        self._notifier.notify(
            Notification(NotificationLevel.SUCCESS, title, detail, ttl_seconds=self.success_ttl_seconds)
        )
        self._schedule_invalidate(invalidate)
        return result

    def _rollback(
            self,
            record: MutationRecord,
            edits: list[_KeyEdit],
            reason: str,
            invalidate: tuple[str, ...],
    ) -> None:
        self._revert(record.id, edits)
        record.state = MutationState.ROLLED_BACK
        record.error = reason
        record.finished_at = time.monotonic()
        logger.warning("Mutation %s %s rolled back: %s", record.operation, record.target, reason)
        self._schedule_invalidate(invalidate)

    def _schedule_invalidate(self, kinds: tuple[str, ...]) -> None:
        if self.invalidate_delay_seconds <= 0:
            self._invalidate(kinds)
            return

        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle | None = None

        def fire() -> None:
            if handle is not None:
                self._timers.discard(handle)
            self._invalidate(kinds)

        handle = loop.call_later(self.invalidate_delay_seconds, fire)
        self._timers.add(handle)

    def _invalidate(self, kinds: tuple[str, ...]) -> None:
        for kind in kinds:
            keys = self._cache.invalidate_kind(kind)
            logger.debug("Invalidated kind=%s keys=%d", kind, len(keys))
