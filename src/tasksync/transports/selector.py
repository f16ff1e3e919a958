# src/tasksync/transports/selector.py

from __future__ import annotations

"""
Transport selector.

Tries the configured transports in priority order for one logical
operation:
- any TransportError -> log and try the next transport (if fallback is on),
- all attempts failed -> one aggregated error,
- no retries beyond the chain.

The selector never touches the cache.
"""

import logging
import time
from collections.abc import Sequence
from typing import Any

from ..core.errors import AllTransportsFailedError, NotFoundError, TransportError
from ..core.models import Category, Priority, Task, TaskDraft, TaskPatch
from ..core.ports import Transport

logger = logging.getLogger(__name__)

OPERATIONS = frozenset(
    {
        "list_tasks",
        "get_task",
        "create_task",
        "update_task",
        "delete_task",
        "list_categories",
        "create_category",
        "delete_category",
    }
)


class TransportSelector:
    def __init__(self, transports: Sequence[Transport], *, fallback_enabled: bool = True) -> None:
        if not transports:
            raise ValueError("at least one transport is required")
        self._transports = list(transports)
        self.fallback_enabled = fallback_enabled
        self.last_used: str | None = None

    @property
    def names(self) -> list[str]:
        return [t.name for t in self._transports]

    @property
    def primary(self) -> Transport:
        return self._transports[0]

    def chain(self) -> list[Transport]:
        return list(self._transports) if self.fallback_enabled else self._transports[:1]

    async def call(self, operation: str, *args: Any, **kwargs: Any) -> Any:
        if operation not in OPERATIONS:
            raise ValueError(f"unknown operation: {operation}")

        errors: list[TransportError] = []

        for transport in self.chain():
            t0 = time.monotonic()
            try:
                result = await getattr(transport, operation)(*args, **kwargs)
            except TransportError as e:
                if not e.transport:
                    e.transport = transport.name
                errors.append(e)
                logger.info("%s failed on transport=%s (%s), trying next", operation, transport.name, e)
                continue

            if errors:
                logger.warning(
                    "%s served by fallback transport=%s after %d failure(s)",
                    operation,
                    transport.name,
                    len(errors),
                )
            else:
                logger.debug("%s ok transport=%s (%.3fs)", operation, transport.name, time.monotonic() - t0)
            self.last_used = transport.name
            return result

        if errors and all(isinstance(e, NotFoundError) for e in errors):
            raise NotFoundError(
                f"{operation}: not found ({', '.join(e.transport for e in errors)})",
                transport=errors[-1].transport,
                status=404,
            ) from errors[-1]
        raise AllTransportsFailedError(operation, errors) from (errors[-1] if errors else None)

    async def aclose(self) -> None:
        for transport in self._transports:
            try:
                await transport.aclose()
            except Exception:
                logger.exception("Failed to close transport=%s", transport.name)

    # ---- typed helpers ----

    async def list_tasks(
            self,
            user_id: str,
            *,
            category_id: str | None = None,
            priority: Priority | None = None,
    ) -> list[Task]:
        return await self.call("list_tasks", user_id, category_id=category_id, priority=priority)

    async def get_task(self, task_id: str) -> Task:
        return await self.call("get_task", task_id)

    async def create_task(self, user_id: str, draft: TaskDraft) -> Task:
        return await self.call("create_task", user_id, draft)

    async def update_task(self, task_id: str, patch: TaskPatch) -> Task:
        return await self.call("update_task", task_id, patch)

    async def delete_task(self, task_id: str) -> None:
        await self.call("delete_task", task_id)

    async def list_categories(self, user_id: str) -> list[Category]:
        return await self.call("list_categories", user_id)

    async def create_category(self, user_id: str, name: str) -> Category:
        return await self.call("create_category", user_id, name)

    async def delete_category(self, category_id: str) -> None:
        await self.call("delete_category", category_id)
