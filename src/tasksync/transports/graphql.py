# src/tasksync/transports/graphql.py

from __future__ import annotations

"""
GraphQL-over-HTTP transport.

Requests are POSTed as {"query", "variables"} to a single endpoint with a
static API key in the `x-api-key` header; responses are {"data", "errors"?}.
Priority travels as the upper-case `TaskPriority` enum.
"""

import json
import logging
from typing import Any

import httpx

from ..core.errors import NotFoundError, TransportError, ValidationError
from ..core.models import Category, Priority, Task, TaskDraft, TaskPatch, normalize_id

logger = logging.getLogger(__name__)

# Safety stop for nextToken chains.
MAX_PAGES = 100

_TASK_FIELDS = """
      id
      title
      description
      dueDate
      priority
      completed
      categoryId
      category {
        id
        name
      }
      createdAt
      updatedAt
"""

LIST_TASKS = f"""
  query ListTasks($nextToken: String) {{
    listTaskItems(nextToken: $nextToken) {{
      items {{{_TASK_FIELDS}    }}
      nextToken
    }}
  }}
"""

GET_TASK = f"""
  query GetTask($id: ID!) {{
    getTask(id: $id) {{{_TASK_FIELDS}  }}
  }}
"""

GET_TASKS_BY_CATEGORY = f"""
  query GetTasksByCategory($categoryId: ID!) {{
    getTasksByCategory(categoryId: $categoryId) {{{_TASK_FIELDS}  }}
  }}
"""

GET_TASKS_BY_PRIORITY = f"""
  query GetTasksByPriority($priority: TaskPriority!) {{
    getTasksByPriority(priority: $priority) {{{_TASK_FIELDS}  }}
  }}
"""

CREATE_TASK = f"""
  mutation CreateTask($input: CreateTaskInput!) {{
    createTask(input: $input) {{{_TASK_FIELDS}  }}
  }}
"""

UPDATE_TASK = f"""
  mutation UpdateTask($input: UpdateTaskInput!) {{
    updateTask(input: $input) {{{_TASK_FIELDS}  }}
  }}
"""

DELETE_TASK = """
  mutation DeleteTask($input: DeleteTaskInput!) {
    deleteTask(input: $input) {
      id
    }
  }
"""

LIST_CATEGORIES = """
  query ListCategories($nextToken: String) {
    listCategoryItems(nextToken: $nextToken) {
      items {
        id
        name
        ownerId
        createdAt
      }
      nextToken
    }
  }
"""

CREATE_CATEGORY = """
  mutation CreateCategory($input: CreateCategoryInput!) {
    createCategory(input: $input) {
      id
      name
      ownerId
      createdAt
    }
  }
"""

DELETE_CATEGORY = """
  mutation DeleteCategory($input: DeleteCategoryInput!) {
    deleteCategory(input: $input) {
      id
      name
    }
  }
"""

# canonical field -> GraphQL input field
_GQL_FIELDS = {
    "title": "title",
    "description": "description",
    "due_date": "dueDate",
    "priority": "priority",
    "completed": "completed",
    "category_id": "categoryId",
}


def _parse_id(raw: Any) -> str | None:
    try:
        return normalize_id(raw)
    except ValidationError as e:
        raise TransportError(str(e), transport="graphql") from e


def _opt_str(raw: Any) -> str | None:
    if raw is None:
        return None
    s = str(raw)
    return s if s.strip() else None


def task_from_graphql(raw: Any) -> Task:
    if not isinstance(raw, dict):
        raise TransportError(f"unexpected task payload: {type(raw).__name__}", transport="graphql")
    task_id = _parse_id(raw.get("id"))
    if task_id is None:
        raise TransportError("task payload without id", transport="graphql")

    category = raw.get("category")
    category_id = _parse_id(raw.get("categoryId"))
    category_name = None
    if isinstance(category, dict):
        category_id = _parse_id(category.get("id")) or category_id
        category_name = _opt_str(category.get("name"))

    try:
        priority = Priority.parse(raw.get("priority"), default=Priority.MEDIUM)
    except ValueError as e:
        raise TransportError(str(e), transport="graphql") from e

    return Task(
        id=task_id,
        title=str(raw.get("title") or ""),
        description=_opt_str(raw.get("description")),
        due_date=_opt_str(raw.get("dueDate")),
        priority=priority,
        completed=bool(raw.get("completed") or False),
        category_id=category_id,
        category_name=category_name,
        user_id=_parse_id(raw.get("ownerId") or raw.get("userId")),
        created_at=_opt_str(raw.get("createdAt")),
        updated_at=_opt_str(raw.get("updatedAt")),
    )


def category_from_graphql(raw: Any) -> Category:
    if not isinstance(raw, dict):
        raise TransportError(f"unexpected category payload: {type(raw).__name__}", transport="graphql")
    category_id = _parse_id(raw.get("id"))
    if category_id is None:
        raise TransportError("category payload without id", transport="graphql")
    return Category(
        id=category_id,
        name=str(raw.get("name") or ""),
        user_id=_parse_id(raw.get("ownerId") or raw.get("userId")),
        created_at=_opt_str(raw.get("createdAt")),
    )


def _to_gql_value(field: str, value: Any) -> Any:
    if field == "priority" and value is not None:
        return Priority.parse(value).to_graphql()
    return value


def draft_to_graphql(user_id: str, draft: TaskDraft) -> dict[str, Any]:
    payload = {
        gql: _to_gql_value(field, getattr(draft, field))
        for field, gql in _GQL_FIELDS.items()
    }
    payload["ownerId"] = user_id
    return payload


def patch_to_graphql(task_id: str, patch: TaskPatch) -> dict[str, Any]:
    payload = {_GQL_FIELDS[k]: _to_gql_value(k, v) for k, v in patch.changes().items()}
    payload["id"] = task_id
    return payload


class GraphQLTransport:
    name = "graphql"

    def __init__(
            self,
            endpoint: str,
            api_key: str,
            *,
            timeout_seconds: float = 10.0,
            client: httpx.AsyncClient | None = None,
    ) -> None:
        if not endpoint or not endpoint.strip():
            raise ValueError(
                "GraphQL endpoint is not set. Set TASKSYNC_GRAPHQL_ENDPOINT in your .env."
            )
        if not api_key or not api_key.strip():
            raise ValueError("GraphQL API key is not set. Set TASKSYNC_GRAPHQL_API_KEY in your .env.")
        self._endpoint = endpoint.strip()
        self._api_key = api_key.strip()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def execute(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """Run one operation and return its `data` object."""
        op = _operation_name(query)
        logger.debug(
            "GraphQL %s endpoint=%s key=%s... vars=%s",
            op,
            self._endpoint,
            self._api_key[:4],
            sorted((variables or {}).keys()),
        )
        try:
            resp = await self._client.post(
                self._endpoint,
                json={"query": query, "variables": variables or {}},
                headers={"Content-Type": "application/json", "x-api-key": self._api_key},
            )
        except httpx.HTTPError as e:
            raise TransportError(f"{op}: {e.__class__.__name__}: {e}", transport=self.name) from e

        if resp.status_code < 200 or resp.status_code >= 300:
            raise TransportError(
                f"{op}: {resp.status_code} {resp.reason_phrase}: {resp.text[:200]}",
                transport=self.name,
                status=resp.status_code,
            )

        try:
            body = resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise TransportError(f"{op}: invalid JSON response", transport=self.name) from e

        if not isinstance(body, dict):
            raise TransportError(f"{op}: response is not a JSON object", transport=self.name)

        errors = body.get("errors")
        if errors:
            detail = json.dumps(errors, ensure_ascii=False)
            raise TransportError(f"{op}: GraphQL errors: {detail}", transport=self.name)

        data = body.get("data")
        if not isinstance(data, dict):
            raise TransportError(f"{op}: response has no data", transport=self.name)
        return data

    async def _field(self, query: str, field: str, variables: dict[str, Any] | None = None) -> Any:
        data = await self.execute(query, variables)
        return data.get(field)

    async def _paged(self, query: str, field: str, variables: dict[str, Any] | None = None) -> list[Any]:
        items: list[Any] = []
        next_token: str | None = None
        for _ in range(MAX_PAGES):
            page = await self._field(query, field, {**(variables or {}), "nextToken": next_token})
            if not isinstance(page, dict):
                raise TransportError(f"{field}: expected a connection object", transport=self.name)
            items.extend(i for i in (page.get("items") or []) if i is not None)
            next_token = page.get("nextToken")
            if not next_token:
                return items
        logger.warning("GraphQL %s: stopped after %d pages", field, MAX_PAGES)
        return items

    def _required(self, value: Any, what: str) -> Any:
        if value is None:
            raise NotFoundError(f"{what}: not found", transport=self.name)
        return value

    # ---- tasks ----

    async def list_tasks(
            self,
            user_id: str,
            *,
            category_id: str | None = None,
            priority: Priority | None = None,
    ) -> list[Task]:
        # The schema has no owner filter; items belong to the API key's owner.
        if category_id is not None:
            raw = await self._field(GET_TASKS_BY_CATEGORY, "getTasksByCategory", {"categoryId": category_id})
            tasks = [task_from_graphql(r) for r in (raw or []) if r is not None]
            if priority is not None:
                tasks = [t for t in tasks if t.priority == priority]
            return tasks
        if priority is not None:
            raw = await self._field(
                GET_TASKS_BY_PRIORITY, "getTasksByPriority", {"priority": priority.to_graphql()}
            )
            return [task_from_graphql(r) for r in (raw or []) if r is not None]
        return [task_from_graphql(r) for r in await self._paged(LIST_TASKS, "listTaskItems")]

    async def get_task(self, task_id: str) -> Task:
        raw = await self._field(GET_TASK, "getTask", {"id": task_id})
        return task_from_graphql(self._required(raw, f"task {task_id}"))

    async def create_task(self, user_id: str, draft: TaskDraft) -> Task:
        raw = await self._field(CREATE_TASK, "createTask", {"input": draft_to_graphql(user_id, draft)})
        return task_from_graphql(self._required(raw, "createTask result"))

    async def update_task(self, task_id: str, patch: TaskPatch) -> Task:
        raw = await self._field(UPDATE_TASK, "updateTask", {"input": patch_to_graphql(task_id, patch)})
        return task_from_graphql(self._required(raw, f"task {task_id}"))

    async def delete_task(self, task_id: str) -> None:
        raw = await self._field(DELETE_TASK, "deleteTask", {"input": {"id": task_id}})
        self._required(raw, f"task {task_id}")

    # ---- categories ----

    async def list_categories(self, user_id: str) -> list[Category]:
        return [category_from_graphql(r) for r in await self._paged(LIST_CATEGORIES, "listCategoryItems")]

    async def create_category(self, user_id: str, name: str) -> Category:
        raw = await self._field(
            CREATE_CATEGORY, "createCategory", {"input": {"name": name, "ownerId": user_id}}
        )
        return category_from_graphql(self._required(raw, "createCategory result"))

    async def delete_category(self, category_id: str) -> None:
        raw = await self._field(DELETE_CATEGORY, "deleteCategory", {"input": {"id": category_id}})
        self._required(raw, f"category {category_id}")


def _operation_name(query: str) -> str:
    for word_before, word in zip(query.split(), query.split()[1:]):
        if word_before in ("query", "mutation"):
            return word.split("(")[0]
    return "anonymous"
