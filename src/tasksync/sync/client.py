# src/tasksync/sync/client.py

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..core.models import Category, Task, TaskDraft, TaskPatch
from ..core.ports import Notifier
from ..transports.selector import TransportSelector
from .cache import CacheKey, CacheStore
from .coordinator import CATEGORIES, TASKS, MutationCoordinator
from .views import TaskFilter, attach_category_names, category_counts

logger = logging.getLogger(__name__)


class SyncClient:
    """
    What the UI talks to: per-collection get/load/invalidate plus mutations.

    Built once per session (see cli.bootstrap) and passed around explicitly.
    The UI never calls a transport directly.
    """

    def __init__(
            self,
            selector: TransportSelector,
            notifier: Notifier,
            *,
            user_id: str,
            stale_after_seconds: float | None = 10.0,
            invalidate_delay_seconds: float = 1.0,
            mutation_timeout_seconds: float | None = 15.0,
            success_ttl_seconds: float = 4.0,
    ) -> None:
        self.user_id = user_id
        self.selector = selector
        self.cache = CacheStore(self._fetch, stale_after_seconds=stale_after_seconds)
        self.mutations = MutationCoordinator(
            self.cache,
            selector,
            notifier,
            user_id=user_id,
            invalidate_delay_seconds=invalidate_delay_seconds,
            timeout_seconds=mutation_timeout_seconds,
            success_ttl_seconds=success_ttl_seconds,
        )

    # ---- keys ----

    def tasks_key(self, flt: TaskFilter | None = None) -> CacheKey:
        return (TASKS, self.user_id, flt or TaskFilter())

    def categories_key(self) -> CacheKey:
        return (CATEGORIES, self.user_id)

    async def _fetch(self, key: CacheKey) -> Any:
        kind = key[0]
        if kind == TASKS:
            flt = key[2] if len(key) > 2 and isinstance(key[2], TaskFilter) else TaskFilter()
            tasks = await self.selector.list_tasks(
                self.user_id, category_id=flt.category_id, priority=flt.priority
            )
            return flt.apply(tasks)
        if kind == CATEGORIES:
            return await self.selector.list_categories(self.user_id)
        raise ValueError(f"unknown cache key kind: {kind!r}")

    # ---- tasks ----

    def get_tasks(self, flt: TaskFilter | None = None) -> list[Task] | None:
        return self.cache.get(self.tasks_key(flt))

    async def load_tasks(self, flt: TaskFilter | None = None, *, force: bool = False) -> list[Task]:
        return await self.cache.load(self.tasks_key(flt), force=force) or []

    def invalidate_tasks(self) -> None:
        self.cache.invalidate_kind(TASKS)

    def tasks_error(self, flt: TaskFilter | None = None) -> BaseException | None:
        return self.cache.error(self.tasks_key(flt))

    def create_task(self, draft: TaskDraft) -> asyncio.Task[Task]:
        return self.mutations.create_task(draft)

    def update_task(self, task_id: str, patch: TaskPatch) -> asyncio.Task[Task]:
        return self.mutations.update_task(task_id, patch)

    def toggle_completed(self, task_id: str) -> asyncio.Task[Task]:
        return self.mutations.toggle_completed(task_id)

    def delete_task(self, task_id: str) -> asyncio.Task[None]:
        return self.mutations.delete_task(task_id)

    # ---- categories ----

    def get_categories(self) -> list[Category] | None:
        return self.cache.get(self.categories_key())

    async def load_categories(self, *, force: bool = False) -> list[Category]:
        return await self.cache.load(self.categories_key(), force=force) or []

    def invalidate_categories(self) -> None:
        self.cache.invalidate_kind(CATEGORIES)

    def create_category(self, name: str) -> asyncio.Task[Category]:
        return self.mutations.create_category(name)

    def delete_category(self, category_id: str) -> asyncio.Task[None]:
        return self.mutations.delete_category(category_id)

    # ---- derived views ----

    async def categories_with_counts(self) -> list[Category]:
        categories = await self.load_categories()
        tasks = await self.load_tasks()
        return category_counts(categories, tasks)

    async def tasks_with_categories(self, flt: TaskFilter | None = None) -> list[Task]:
        tasks = await self.load_tasks(flt)
        categories = await self.load_categories()
        return attach_category_names(tasks, categories)

    async def aclose(self) -> None:
        await self.mutations.aclose()
        await self.cache.aclose()
        await self.selector.aclose()
