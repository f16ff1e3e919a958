# src/tasksync/core/state.py

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from ..sync.client import SyncClient
from ..sync.notifications import NotificationCenter
from ..sync.views import SortOption, TaskFilter


@dataclass(slots=True)
class AppState:
    """Per-session container built by cli.bootstrap and passed to commands."""

    # Settings are stored on the state for easy access in commands.
    settings: Any

    client: SyncClient
    notifications: NotificationCenter

    # Last filter/sort used by /tasks; reused when no arguments are given.
    task_filter: TaskFilter = field(default_factory=TaskFilter)
    sort: SortOption = SortOption.DATE_NEWEST

    refresher: asyncio.Task[None] | None = None
