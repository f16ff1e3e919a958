# src/tasksync/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- builds the transport chain (primary first, then the other configured one),
- wires selector, SyncClient and NotificationCenter into AppState.
"""

from __future__ import annotations

import logging

from ..config import Settings, get_settings
from ..core.ports import Transport
from ..core.state import AppState
from ..sync.client import SyncClient
from ..sync.notifications import NotificationCenter
from ..transports.graphql import GraphQLTransport
from ..transports.memory import InMemoryTransport
from ..transports.rest import RestTransport
from ..transports.selector import TransportSelector

logger = logging.getLogger(__name__)


def mask_secret(value: str | None) -> str:
    if not value:
        return "<unset>"
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}...{value[-2:]}"


def _ensure_local_dirs(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)


def build_transport(settings: Settings, name: str) -> Transport | None:
    """One transport by name, or None when settings do not configure it."""
    if name == "memory":
        return InMemoryTransport(seed_user_id=settings.user_id)
    if name == "graphql" and settings.graphql_configured:
        return GraphQLTransport(
            settings.graphql_endpoint,
            settings.graphql_api_key or "",
            timeout_seconds=settings.http_timeout_seconds,
        )
    if name == "rest" and settings.rest_base_url:
        return RestTransport(settings.rest_base_url, timeout_seconds=settings.http_timeout_seconds)
    return None


def build_transports(settings: Settings) -> list[Transport]:
    """
    Transports in priority order.

    - primary=memory, or nothing configured -> in-memory backend only
    - otherwise the primary, then the other configured HTTP transport
    """
    if settings.primary_transport == "memory":
        return [InMemoryTransport(seed_user_id=settings.user_id)]

    available: dict[str, Transport] = {}
    for name in ("graphql", "rest"):
        transport = build_transport(settings, name)
        if transport is not None:
            available[name] = transport

    if not available:
        logger.warning("No backend configured; using the in-memory backend (data is not persisted).")
        return [InMemoryTransport(seed_user_id=settings.user_id)]

    if settings.primary_transport not in available:
        logger.warning(
            "Primary transport %r is not configured; using %s.",
            settings.primary_transport,
            ", ".join(available),
        )

    ordered = [available.pop(settings.primary_transport)] if settings.primary_transport in available else []
    ordered.extend(available.values())
    return ordered


def create_initial_state(*, settings: Settings | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    transports = build_transports(settings)
    selector = TransportSelector(transports, fallback_enabled=settings.fallback_enabled)
    logger.info(
        "Transports: %s (fallback=%s, graphql key=%s)",
        " -> ".join(selector.names),
        "on" if settings.fallback_enabled else "off",
        mask_secret(settings.graphql_api_key),
    )

    notifications = NotificationCenter(success_ttl_seconds=settings.notification_ttl_seconds)
    client = SyncClient(
        selector,
        notifications,
        user_id=settings.user_id,
        stale_after_seconds=settings.stale_after_seconds,
        invalidate_delay_seconds=settings.invalidate_delay_seconds,
        mutation_timeout_seconds=settings.mutation_timeout_seconds,
        success_ttl_seconds=settings.notification_ttl_seconds,
    )
    return AppState(settings=settings, client=client, notifications=notifications)
