# src/tasksync/cli/commands.py

from __future__ import annotations

import inspect
import logging
import shlex
from collections.abc import Awaitable, Callable
from typing import Any

from ..core.errors import TaskSyncError, ValidationError
from ..core.models import Category, Priority, Task, TaskDraft, TaskPatch
from ..core.state import AppState
from ..sync.notifications import NotificationLevel
from ..sync.views import SortOption, TaskFilter, search_tasks, sort_tasks

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[..., Awaitable[str]]

logger = logging.getLogger(__name__)

_TRUE = {"1", "true", "yes", "y", "on", "done"}
_FALSE = {"0", "false", "no", "n", "off", "open"}
_NONE = {"", "none", "-", "null"}


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError as e:
            return f"Could not parse command: {e}"
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            return await handler(state, args, emit)
        return await handler(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- argument helpers ----


def split_options(args: list[str]) -> tuple[list[str], dict[str, str]]:
    """Split `["Buy milk", "priority=high"]` into positionals and key=value options."""
    positional: list[str] = []
    options: dict[str, str] = {}
    for arg in args:
        key, sep, value = arg.partition("=")
        if sep and key and key.isidentifier():
            options[key.lower()] = value
        else:
            positional.append(arg)
    return positional, options


def _parse_bool(raw: str) -> bool:
    v = raw.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ValidationError(f"expected yes/no, got {raw!r}")


def _opt_none(raw: str) -> str | None:
    return None if raw.strip().lower() in _NONE else raw.strip()


def parse_filter(options: dict[str, str]) -> TaskFilter:
    done = options.get("done")
    priority = options.get("priority")
    return TaskFilter(
        category_id=_opt_none(options.get("cat", "")),
        priority=Priority.parse(priority) if priority else None,
        completed=_parse_bool(done) if done else None,
        due_from=_opt_none(options.get("from", "")),
        due_before=_opt_none(options.get("before", "")),
    )


def parse_patch(options: dict[str, str]) -> TaskPatch:
    fields: dict[str, Any] = {}
    if "title" in options:
        fields["title"] = options["title"]
    if "desc" in options:
        fields["description"] = _opt_none(options["desc"])
    if "due" in options:
        fields["due_date"] = _opt_none(options["due"])
    if "priority" in options:
        fields["priority"] = options["priority"]
    if "done" in options:
        fields["completed"] = _parse_bool(options["done"])
    if "cat" in options:
        fields["category_id"] = _opt_none(options["cat"])
    return TaskPatch(**fields)


def format_task(task: Task) -> str:
    mark = "x" if task.completed else " "
    extra = [task.priority.value]
    if task.category_name:
        extra.append(task.category_name)
    if task.due_date:
        extra.append(f"due {task.due_date[:10]}")
    pending = " *" if task.is_temporary else ""
    return f"[{mark}] #{task.id} {task.title} ({', '.join(extra)}){pending}"


def format_category(category: Category) -> str:
    return f"#{category.id} {category.name} ({category.count})"


async def _wait(pending: Awaitable[Any]) -> Any:
    """Await a mutation; failures were already reported as notifications."""
    try:
        return await pending
    except TaskSyncError as e:
        logger.debug("Mutation failed: %s", e)
        return None


# ---- commands ----


async def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


async def cmd_status(state: AppState, args: list[str]) -> str:
    client = state.client
    settings = state.settings
    selector = client.selector
    cache = client.cache
    return (
        "Status:\n"
        f"  User: {client.user_id}\n"
        f"  Transports (priority -> fallback): {' -> '.join(selector.names)}\n"
        f"  Fallback: {'ON' if selector.fallback_enabled else 'OFF'}\n"
        f"  Last transport used: {selector.last_used or '-'}\n"
        f"  Cached collections: {len(cache.loaded_keys())}\n"
        f"  Pending mutations: {client.mutations.pending}\n"
        f"  Refresh interval: {getattr(settings, 'refresh_interval_seconds', '-')}s"
    )


async def cmd_tasks(state: AppState, args: list[str]) -> str:
    """
    /tasks                          -> list with the last filter/sort
    /tasks all                      -> reset filter
    /tasks cat=2 priority=high done=no from=2024-01-01 before=2024-02-01
    /tasks sort=priority q=milk
    """
    positional, options = split_options(args)
    try:
        if positional and positional[0].lower() == "all":
            state.task_filter = TaskFilter()
        filter_keys = {"cat", "priority", "done", "from", "before"}
        if filter_keys & options.keys():
            state.task_filter = parse_filter(options)
        if "sort" in options:
            state.sort = SortOption(options["sort"].strip().lower())
    except ValueError as e:
        return f"Bad filter: {e}"

    try:
        tasks = await state.client.tasks_with_categories(state.task_filter)
    except TaskSyncError as e:
        return f"Could not load tasks: {e}"

    if "q" in options:
        tasks = search_tasks(tasks, options["q"])
    tasks = sort_tasks(tasks, state.sort)

    if not tasks:
        return "No tasks."
    lines = [f"Tasks ({len(tasks)}, sort={state.sort.value}):"]
    lines.extend(f"  {format_task(t)}" for t in tasks)
    return "\n".join(lines)


async def cmd_add(state: AppState, args: list[str]) -> str:
    """/add <title> [desc=...] [due=YYYY-MM-DD] [priority=low|medium|high] [cat=<id>]"""
    positional, options = split_options(args)
    if not positional:
        return "Usage: /add <title> [desc=...] [due=YYYY-MM-DD] [priority=...] [cat=<id>]"
    draft = TaskDraft(
        title=" ".join(positional),
        description=_opt_none(options.get("desc", "")),
        due_date=_opt_none(options.get("due", "")),
        priority=options.get("priority") or Priority.MEDIUM,
        category_id=_opt_none(options.get("cat", "")),
    )
    try:
        pending = state.client.create_task(draft)
    except ValidationError as e:
        return f"Not added: {e}"
    created = await _wait(pending)
    return f"Added {format_task(created)}" if created is not None else ""


async def cmd_edit(state: AppState, args: list[str]) -> str:
    """/edit <id> [title=...] [desc=...] [due=...] [priority=...] [cat=<id>|none] [done=yes|no]"""
    positional, options = split_options(args)
    if len(positional) != 1:
        return "Usage: /edit <id> title=... desc=... due=... priority=... cat=<id|none> done=yes|no"
    try:
        patch = parse_patch(options)
        pending = state.client.update_task(positional[0], patch)
    except ValidationError as e:
        return f"Not updated: {e}"
    updated = await _wait(pending)
    return f"Updated {format_task(updated)}" if updated is not None else ""


async def cmd_done(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /done <id>"
    try:
        await state.client.load_tasks()
        pending = state.client.toggle_completed(args[0])
    except TaskSyncError as e:
        return f"Not toggled: {e}"
    updated = await _wait(pending)
    return format_task(updated) if updated is not None else ""


async def cmd_rm(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /rm <id>"
    pending = state.client.delete_task(args[0])
    try:
        await pending
    except TaskSyncError:
        return ""
    return f"Deleted task #{args[0]}."


async def cmd_cats(state: AppState, args: list[str]) -> str:
    try:
        categories = await state.client.categories_with_counts()
    except TaskSyncError as e:
        return f"Could not load categories: {e}"
    if not categories:
        return "No categories."
    lines = ["Categories:"]
    lines.extend(f"  {format_category(c)}" for c in categories)
    return "\n".join(lines)


async def cmd_addcat(state: AppState, args: list[str]) -> str:
    try:
        pending = state.client.create_category(" ".join(args))
    except ValidationError as e:
        return f"Not added: {e}"
    created = await _wait(pending)
    return f"Added category #{created.id} {created.name}" if created is not None else ""


async def cmd_rmcat(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /rmcat <id>"
    try:
        await state.client.delete_category(args[0])
    except TaskSyncError:
        return ""
    return f"Deleted category #{args[0]}."


async def cmd_refresh(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if emit:
        emit("Refreshing...")
    state.client.invalidate_tasks()
    state.client.invalidate_categories()
    try:
        tasks = await state.client.load_tasks(state.task_filter, force=True)
        categories = await state.client.load_categories(force=True)
    except TaskSyncError as e:
        return f"Refresh failed: {e}"
    return f"Refreshed: {len(tasks)} task(s), {len(categories)} categories."


async def cmd_notes(state: AppState, args: list[str]) -> str:
    """
    /notes        -> active notifications
    /notes all    -> full history
    /notes clear  -> forget everything
    """
    sub = args[0].lower() if args else ""
    if sub == "clear":
        state.notifications.clear()
        return "Notifications cleared."
    items = state.notifications.history if sub == "all" else state.notifications.active()
    if not items:
        return "No notifications."
    lines = ["Notifications:"]
    for n in items:
        tag = "!" if n.level == NotificationLevel.ERROR else "-"
        detail = f": {n.detail}" if n.detail else ""
        lines.append(f"  {tag} {n.title}{detail}")
    return "\n".join(lines)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show transports, cache and pending mutations.")
registry.register(
    "tasks",
    cmd_tasks,
    help_text="List tasks: /tasks [all] [cat=] [priority=] [done=] [from=] [before=] [sort=] [q=].",
    aliases=["ls"],
)
registry.register("add", cmd_add, help_text="Create a task: /add <title> [priority=] [cat=] [due=].")
registry.register("edit", cmd_edit, help_text="Update a task: /edit <id> field=value ...")
registry.register("done", cmd_done, help_text="Toggle completion: /done <id>.")
registry.register("rm", cmd_rm, help_text="Delete a task: /rm <id>.")
registry.register("cats", cmd_cats, help_text="List categories with task counts.")
registry.register("addcat", cmd_addcat, help_text="Create a category: /addcat <name>.")
registry.register("rmcat", cmd_rmcat, help_text="Delete a category: /rmcat <id>.")
registry.register("refresh", cmd_refresh, help_text="Reload tasks and categories now.")
registry.register("notes", cmd_notes, help_text="Notifications: /notes | /notes all | /notes clear.")
