# src/tasksync/sync/views.py

from __future__ import annotations

"""
Client-side list shaping: filtering, searching, sorting and derived counts.

Everything here is pure (no cache or network access).
"""

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import StrEnum

from ..core.models import Category, Priority, Task


def _parse_day(raw: str | None) -> date | None:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError:
        try:
            return date.fromisoformat(raw[:10])
        except ValueError:
            return None


@dataclass(slots=True, frozen=True)
class TaskFilter:
    """
    Filter for a task list. Hashable: it is part of the cache key.

    due_from is inclusive, due_before exclusive (ISO dates). Tasks without
    a due date never match a due-date bound.
    """

    category_id: str | None = None
    priority: Priority | None = None
    completed: bool | None = None
    due_from: str | None = None
    due_before: str | None = None

    @property
    def is_empty(self) -> bool:
        return self == TaskFilter()

    def matches(self, task: Task) -> bool:
        if self.category_id is not None and task.category_id != self.category_id:
            return False
        if self.priority is not None and task.priority != self.priority:
            return False
        if self.completed is not None and task.completed != self.completed:
            return False
        if self.due_from or self.due_before:
            due = _parse_day(task.due_date)
            if due is None:
                return False
            lo = _parse_day(self.due_from)
            hi = _parse_day(self.due_before)
            if lo is not None and due < lo:
                return False
            if hi is not None and due >= hi:
                return False
        return True

    def apply(self, tasks: Iterable[Task]) -> list[Task]:
        return [t for t in tasks if self.matches(t)]


class SortOption(StrEnum):
    DATE_NEWEST = "newest"
    DATE_OLDEST = "oldest"
    PRIORITY = "priority"
    ALPHABETICAL = "alpha"


def sort_tasks(tasks: Iterable[Task], option: SortOption = SortOption.DATE_NEWEST) -> list[Task]:
    items = list(tasks)
    if option == SortOption.PRIORITY:
        return sorted(items, key=lambda t: t.priority.weight, reverse=True)
    if option == SortOption.ALPHABETICAL:
        return sorted(items, key=lambda t: t.title.casefold())
    # Optimistic records have no created_at yet; they count as newest.
    newest_first = option == SortOption.DATE_NEWEST
    return sorted(items, key=lambda t: t.created_at or "\uffff", reverse=newest_first)


def search_tasks(tasks: Iterable[Task], text: str) -> list[Task]:
    needle = (text or "").strip().casefold()
    if not needle:
        return list(tasks)
    return [
        t
        for t in tasks
        if needle in t.title.casefold() or (t.description and needle in t.description.casefold())
    ]


def category_counts(categories: Iterable[Category], tasks: Iterable[Task]) -> list[Category]:
    """Categories with `count` recomputed; references to unknown categories are ignored."""
    counts = Counter(t.category_id for t in tasks if t.category_id)
    return [replace(c, count=counts.get(c.id, 0)) for c in categories]


def priority_counts(tasks: Iterable[Task]) -> dict[Priority, int]:
    counts = Counter(t.priority for t in tasks)
    return {p: counts.get(p, 0) for p in Priority}


def attach_category_names(tasks: Iterable[Task], categories: Iterable[Category]) -> list[Task]:
    """Fill category_name from the category list; clear dangling references."""
    names = {c.id: c.name for c in categories}
    out = []
    for t in tasks:
        if t.category_id is None:
            out.append(t if t.category_name is None else replace(t, category_name=None))
        elif t.category_id in names:
            out.append(replace(t, category_name=names[t.category_id]))
        else:
            out.append(replace(t, category_id=None, category_name=None))
    return out
