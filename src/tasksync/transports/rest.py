# src/tasksync/transports/rest.py

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from ..core.errors import NotFoundError, TransportError, ValidationError
from ..core.models import (
    Category,
    Priority,
    Task,
    TaskDraft,
    TaskPatch,
    normalize_id,
)

logger = logging.getLogger(__name__)

# canonical field -> REST (camelCase) field
_REST_FIELDS = {
    "title": "title",
    "description": "description",
    "due_date": "dueDate",
    "priority": "priority",
    "completed": "completed",
    "category_id": "categoryId",
}


def _wire_id(record_id: str | None) -> Any:
    """The REST server uses serial integer ids."""
    if record_id is None:
        return None
    return int(record_id) if record_id.isdigit() else record_id


def _parse_id(raw: Any) -> str | None:
    try:
        return normalize_id(raw)
    except ValidationError as e:
        raise TransportError(str(e), transport="rest") from e


def _opt_str(raw: Any) -> str | None:
    if raw is None:
        return None
    s = str(raw)
    return s if s.strip() else None


def task_from_rest(raw: Any) -> Task:
    if not isinstance(raw, dict):
        raise TransportError(f"unexpected task payload: {type(raw).__name__}", transport="rest")
    task_id = _parse_id(raw.get("id"))
    if task_id is None:
        raise TransportError("task payload without id", transport="rest")
    try:
        priority = Priority.parse(raw.get("priority"), default=Priority.MEDIUM)
    except ValueError as e:
        raise TransportError(str(e), transport="rest") from e
    return Task(
        id=task_id,
        title=str(raw.get("title") or ""),
        description=_opt_str(raw.get("description")),
        due_date=_opt_str(raw.get("dueDate")),
        priority=priority,
        completed=bool(raw.get("completed", False)),
        category_id=_parse_id(raw.get("categoryId")),
        category_name=_opt_str(raw.get("category")),
        user_id=_parse_id(raw.get("userId")),
        created_at=_opt_str(raw.get("createdAt")),
        updated_at=_opt_str(raw.get("updatedAt")),
    )


def category_from_rest(raw: Any) -> Category:
    if not isinstance(raw, dict):
        raise TransportError(f"unexpected category payload: {type(raw).__name__}", transport="rest")
    category_id = _parse_id(raw.get("id"))
    if category_id is None:
        raise TransportError("category payload without id", transport="rest")
    return Category(
        id=category_id,
        name=str(raw.get("name") or ""),
        user_id=_parse_id(raw.get("userId")),
        created_at=_opt_str(raw.get("createdAt")),
    )


def _to_rest_value(field: str, value: Any) -> Any:
    if field == "priority" and value is not None:
        return Priority.parse(value).value
    if field == "category_id":
        return _wire_id(value)
    return value


def draft_to_rest(user_id: str, draft: TaskDraft) -> dict[str, Any]:
    body = {
        rest: _to_rest_value(field, getattr(draft, field))
        for field, rest in _REST_FIELDS.items()
    }
    body["userId"] = _wire_id(user_id)
    return body


def patch_to_rest(patch: TaskPatch) -> dict[str, Any]:
    return {_REST_FIELDS[k]: _to_rest_value(k, v) for k, v in patch.changes().items()}


class RestTransport:
    """
    Plain REST transport (`/tasks`, `/categories`).

    The server only filters by user, so category/priority filters are
    applied locally on the returned list.
    """

    name = "rest"

    def __init__(
            self,
            base_url: str,
            *,
            timeout_seconds: float = 10.0,
            client: httpx.AsyncClient | None = None,
    ) -> None:
        if not base_url or not base_url.strip():
            raise ValueError("REST base URL is not set. Set TASKSYNC_REST_BASE_URL in your .env.")
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self._base_url}{path}"
        logger.debug("REST %s %s", method, url)
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path}: {e.__class__.__name__}: {e}", transport=self.name) from e

        if resp.status_code == 404:
            raise NotFoundError(f"{method} {path}: not found", transport=self.name, status=404)

        if resp.status_code < 200 or resp.status_code >= 300:
            raise TransportError(
                f"{method} {path}: {resp.status_code} {self._error_message(resp)}",
                transport=self.name,
                status=resp.status_code,
            )

        if resp.status_code == 204 or not resp.content:
            return None

        try:
            return resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise TransportError(
                f"{method} {path}: invalid JSON response", transport=self.name, status=resp.status_code
            ) from e

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            data = resp.json()
        except ValueError:
            return resp.text[:200] or resp.reason_phrase
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
        return resp.reason_phrase

    def _expect_list(self, data: Any, what: str) -> list[Any]:
        if not isinstance(data, list):
            raise TransportError(f"{what}: expected a JSON array", transport=self.name)
        return data

    # ---- tasks ----

    async def list_tasks(
            self,
            user_id: str,
            *,
            category_id: str | None = None,
            priority: Priority | None = None,
    ) -> list[Task]:
        data = await self._request("GET", "/tasks", params={"userId": user_id})
        tasks = [task_from_rest(r) for r in self._expect_list(data, "list tasks")]
        if category_id is not None:
            tasks = [t for t in tasks if t.category_id == category_id]
        if priority is not None:
            tasks = [t for t in tasks if t.priority == priority]
        return tasks

    async def get_task(self, task_id: str) -> Task:
        return task_from_rest(await self._request("GET", f"/tasks/{task_id}"))

    async def create_task(self, user_id: str, draft: TaskDraft) -> Task:
        data = await self._request("POST", "/tasks", json=draft_to_rest(user_id, draft))
        return task_from_rest(data)

    async def update_task(self, task_id: str, patch: TaskPatch) -> Task:
        data = await self._request("PATCH", f"/tasks/{task_id}", json=patch_to_rest(patch))
        return task_from_rest(data)

    async def delete_task(self, task_id: str) -> None:
        await self._request("DELETE", f"/tasks/{task_id}")

    # ---- categories ----

    async def list_categories(self, user_id: str) -> list[Category]:
        data = await self._request("GET", "/categories", params={"userId": user_id})
        return [category_from_rest(r) for r in self._expect_list(data, "list categories")]

    async def create_category(self, user_id: str, name: str) -> Category:
        data = await self._request(
            "POST", "/categories", json={"name": name, "userId": _wire_id(user_id)}
        )
        return category_from_rest(data)

    async def delete_category(self, category_id: str) -> None:
        await self._request("DELETE", f"/categories/{category_id}")
