# src/tasksync/sync/refresher.py

from __future__ import annotations

"""
Background refresh.

A small polling loop that periodically reloads every cached collection.
Keys with a pending mutation are skipped so an optimistic edit is never
overwritten before its network call resolves. To stop it, cancel the task.
"""

import asyncio
import logging

from .client import SyncClient

logger = logging.getLogger(__name__)


async def refresh_once(client: SyncClient) -> int:
    """Reload all loaded keys without pending mutations. Returns the number reloaded."""
    refreshed = 0
    for key in client.cache.loaded_keys():
        if client.cache.has_pending_mutation(key):
            logger.debug("Refresh skipped key=%s (mutation pending)", key)
            continue
        try:
            await client.cache.load(key, force=True)
            refreshed += 1
        except Exception:
            logger.exception("Background refresh failed key=%s", key)
    return refreshed


async def run_background_refresh(client: SyncClient, *, interval_seconds: float = 30.0) -> None:
    sleep_s = max(0.5, float(interval_seconds))
    logger.info("Background refresh started (every %.1fs)", sleep_s)
    while True:
        await asyncio.sleep(sleep_s)
        n = await refresh_once(client)
        logger.debug("Background refresh reloaded %d key(s)", n)
