# src/tasksync/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the sync layer.

The sync layer depends on Protocols instead of concrete transports, so REST,
GraphQL and the in-memory backend stay swappable and tests can script
failures.
"""

from typing import TYPE_CHECKING, Protocol

from .models import Category, Priority, Task, TaskDraft, TaskPatch

if TYPE_CHECKING:
    from ..sync.notifications import Notification


class Transport(Protocol):
    """One way of reading/writing tasks and categories over the network."""

    name: str

    async def list_tasks(
            self,
            user_id: str,
            *,
            category_id: str | None = None,
            priority: Priority | None = None,
    ) -> list[Task]: ...

    async def get_task(self, task_id: str) -> Task: ...
    async def create_task(self, user_id: str, draft: TaskDraft) -> Task: ...
    async def update_task(self, task_id: str, patch: TaskPatch) -> Task: ...
    async def delete_task(self, task_id: str) -> None: ...

    async def list_categories(self, user_id: str) -> list[Category]: ...
    async def create_category(self, user_id: str, name: str) -> Category: ...
    async def delete_category(self, category_id: str) -> None: ...

    async def aclose(self) -> None: ...


class Notifier(Protocol):
    """Sink for user-visible success/failure notifications."""
    def notify(self, notification: Notification) -> None: ...
