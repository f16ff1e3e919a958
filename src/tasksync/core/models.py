# src/tasksync/core/models.py

from __future__ import annotations

import itertools
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any

from .errors import ValidationError

TEMP_ID_PREFIX = "tmp-"

_temp_ids = itertools.count(1)


class Priority(StrEnum):
    """
    Task priority.

    Canonical values are lower case (REST convention). The GraphQL schema
    uses upper case enum names; `parse` accepts both.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, raw: Any, default: Priority | None = None) -> Priority:
        if isinstance(raw, Priority):
            return raw
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            if default is not None:
                return default
            raise ValidationError("priority is required")
        try:
            return cls(str(raw).strip().lower())
        except ValueError as e:
            raise ValidationError(f"unknown priority: {raw!r}") from e

    @property
    def weight(self) -> int:
        return _PRIORITY_WEIGHT[self]

    def to_graphql(self) -> str:
        return self.value.upper()


_PRIORITY_WEIGHT = {Priority.LOW: 1, Priority.MEDIUM: 2, Priority.HIGH: 3}


def new_temporary_id() -> str:
    return f"{TEMP_ID_PREFIX}{next(_temp_ids)}"


def is_temporary_id(record_id: str | None) -> bool:
    return bool(record_id) and str(record_id).startswith(TEMP_ID_PREFIX)


def normalize_id(raw: Any) -> str | None:
    """REST ids are numeric, GraphQL ids are strings; canonical ids are strings."""
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ValidationError(f"invalid id: {raw!r}")
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    s = str(raw).strip()
    return s or None


@dataclass(slots=True, frozen=True)
class Task:
    id: str
    title: str
    description: str | None = None
    due_date: str | None = None
    priority: Priority = Priority.MEDIUM
    completed: bool = False
    category_id: str | None = None
    category_name: str | None = None  # display only
    user_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_temporary(self) -> bool:
        return is_temporary_id(self.id)


@dataclass(slots=True, frozen=True)
class Category:
    id: str
    name: str
    user_id: str | None = None
    created_at: str | None = None
    count: int = 0  # derived from the task collection, never stored


def validate_name(value: str | None, what: str) -> str:
    name = (value or "").strip()
    if not name:
        raise ValidationError(f"{what} is required")
    return name


@dataclass(slots=True, frozen=True)
class TaskDraft:
    """Fields for "create task"."""

    title: str
    description: str | None = None
    due_date: str | None = None
    priority: Priority = Priority.MEDIUM
    completed: bool = False
    category_id: str | None = None

    def validate(self) -> TaskDraft:
        """Return a cleaned copy or raise ValidationError."""
        return replace(
            self,
            title=validate_name(self.title, "title"),
            priority=Priority.parse(self.priority, default=Priority.MEDIUM),
            completed=bool(self.completed),
            category_id=normalize_id(self.category_id),
        )

    def to_task(self, task_id: str, *, user_id: str | None = None) -> Task:
        return Task(
            id=task_id,
            title=self.title,
            description=self.description,
            due_date=self.due_date,
            priority=self.priority,
            completed=self.completed,
            category_id=self.category_id,
            user_id=user_id,
        )


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()

PATCH_FIELDS = ("title", "description", "due_date", "priority", "completed", "category_id")


@dataclass(slots=True, frozen=True)
class TaskPatch:
    """
    Partial replacement for "update task".

    Only fields that were explicitly given are sent. `category_id=None`
    clears the category; leaving it UNSET keeps it.
    """

    title: Any = UNSET
    description: Any = UNSET
    due_date: Any = UNSET
    priority: Any = UNSET
    completed: Any = UNSET
    category_id: Any = UNSET

    def changes(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for name in PATCH_FIELDS:
            value = getattr(self, name)
            if value is not UNSET:
                out[name] = value
        return out

    def validate(self) -> TaskPatch:
        changes = self.changes()
        if not changes:
            raise ValidationError("nothing to update")
        if "title" in changes:
            changes["title"] = validate_name(changes["title"], "title")
        if "priority" in changes:
            changes["priority"] = Priority.parse(changes["priority"])
        if "completed" in changes:
            changes["completed"] = bool(changes["completed"])
        if "category_id" in changes:
            changes["category_id"] = normalize_id(changes["category_id"])
        return TaskPatch(**changes)

    def apply_to(self, task: Task) -> Task:
        changes = self.changes()
        if "category_id" in changes and changes["category_id"] != task.category_id:
            changes["category_name"] = None
        return replace(task, **changes)
