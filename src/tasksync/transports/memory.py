# src/tasksync/transports/memory.py

from __future__ import annotations

import itertools
import logging
from dataclasses import replace
from datetime import UTC, datetime

from ..core.errors import NotFoundError
from ..core.models import Category, Priority, Task, TaskDraft, TaskPatch

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = ("Work", "Personal", "Shopping", "Health", "Finance")


def _iso_now() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")


class InMemoryTransport:
    """
    Process-local backend with the REST server's semantics.

    - serial integer ids (exposed as strings)
    - server-assigned ISO timestamps
    - default categories seeded for `seed_user_id`

    Used for offline demo mode (no endpoint configured) and tests.
    """

    name = "memory"

    def __init__(self, *, seed_user_id: str | None = None, seed_categories: bool = True) -> None:
        self._tasks: dict[str, Task] = {}
        self._categories: dict[str, Category] = {}
        self._task_ids = itertools.count(1)
        self._category_ids = itertools.count(1)

        if seed_user_id and seed_categories:
            for name in DEFAULT_CATEGORIES:
                self._insert_category(seed_user_id, name)
        logger.debug("InMemoryTransport ready categories=%d", len(self._categories))

    async def aclose(self) -> None:
        return

    def _insert_category(self, user_id: str, name: str) -> Category:
        category = Category(
            id=str(next(self._category_ids)),
            name=name,
            user_id=user_id,
            created_at=_iso_now(),
        )
        self._categories[category.id] = category
        return category

    def _with_category_name(self, task: Task) -> Task:
        category = self._categories.get(task.category_id or "")
        return replace(task, category_name=category.name if category else None)

    # ---- tasks ----

    async def list_tasks(
            self,
            user_id: str,
            *,
            category_id: str | None = None,
            priority: Priority | None = None,
    ) -> list[Task]:
        out = []
        for task in self._tasks.values():
            if task.user_id != user_id:
                continue
            if category_id is not None and task.category_id != category_id:
                continue
            if priority is not None and task.priority != priority:
                continue
            out.append(self._with_category_name(task))
        return out

    async def get_task(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError(f"task {task_id}: not found", transport=self.name, status=404)
        return self._with_category_name(task)

    async def create_task(self, user_id: str, draft: TaskDraft) -> Task:
        now = _iso_now()
        task = replace(
            draft.to_task(str(next(self._task_ids)), user_id=user_id),
            created_at=now,
            updated_at=now,
        )
        self._tasks[task.id] = task
        return self._with_category_name(task)

    async def update_task(self, task_id: str, patch: TaskPatch) -> Task:
        existing = self._tasks.get(task_id)
        if existing is None:
            raise NotFoundError(f"task {task_id}: not found", transport=self.name, status=404)
        task = replace(patch.apply_to(existing), updated_at=_iso_now())
        self._tasks[task_id] = task
        return self._with_category_name(task)

    async def delete_task(self, task_id: str) -> None:
        if self._tasks.pop(task_id, None) is None:
            raise NotFoundError(f"task {task_id}: not found", transport=self.name, status=404)

    # ---- categories ----

    async def list_categories(self, user_id: str) -> list[Category]:
        return [c for c in self._categories.values() if c.user_id == user_id]

    async def create_category(self, user_id: str, name: str) -> Category:
        return self._insert_category(user_id, name)

    async def delete_category(self, category_id: str) -> None:
        if self._categories.pop(category_id, None) is None:
            raise NotFoundError(f"category {category_id}: not found", transport=self.name, status=404)
        # Tasks survive; they only lose the reference.
        for task_id, task in list(self._tasks.items()):
            if task.category_id == category_id:
                self._tasks[task_id] = replace(task, category_id=None, category_name=None)
