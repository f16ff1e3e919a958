# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from tasksync.core.state import AppState
from tasksync.sync.client import SyncClient
from tasksync.sync.notifications import NotificationCenter
from tasksync.transports.memory import InMemoryTransport
from tasksync.transports.selector import TransportSelector

from .fakes import USER, FakeTransport


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the commands.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the environment.
    """
    return SimpleNamespace(
        app_name="tasksync-test",
        data_dir=tmp_path,
        user_id=USER,
        refresh_interval_seconds=30.0,
    )


@pytest.fixture()
def backend() -> InMemoryTransport:
    return InMemoryTransport(seed_user_id=USER, seed_categories=False)


@pytest.fixture()
def transport(backend: InMemoryTransport) -> FakeTransport:
    return FakeTransport(backend=backend)


@pytest.fixture()
def notifications() -> NotificationCenter:
    return NotificationCenter(success_ttl_seconds=4.0)


@pytest.fixture()
def client(transport: FakeTransport, notifications: NotificationCenter) -> SyncClient:
    """
    SyncClient over a single fake transport.

    Staleness by age is disabled and post-commit invalidation is immediate,
    so tests control every fetch explicitly.
    """
    return SyncClient(
        TransportSelector([transport]),
        notifications,
        user_id=USER,
        stale_after_seconds=None,
        invalidate_delay_seconds=0,
        mutation_timeout_seconds=2.0,
    )


@pytest.fixture()
def state(settings: SimpleNamespace, client: SyncClient, notifications: NotificationCenter) -> AppState:
    return AppState(settings=settings, client=client, notifications=notifications)
