# src/tasksync/sync/cache.py

from __future__ import annotations

"""
Cache store.

One entry per logical query key, e.g. ("tasks", user_id, TaskFilter(...)).

Key invariants:
- at most one in-flight fetch per key; later readers attach to it,
- invalidate() marks stale but keeps the value (no flicker to empty),
- a fetch result is dropped if the entry was set() while the fetch was in
  flight or a mutation is pending on the key, so background refreshes
  never overwrite an optimistic edit,
- a failed fetch keeps the last value and records the error.

All methods must be called from the event loop thread.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

CacheKey = tuple[Hashable, ...]
Fetcher = Callable[[CacheKey], Awaitable[Any]]
Subscriber = Callable[[CacheKey, Any], None]


@dataclass(slots=True)
class CacheEntry:
    value: Any = None
    has_value: bool = False
    stale: bool = True
    error: BaseException | None = None
    updated_at: float | None = None  # monotonic
    version: int = 0
    pending_mutations: int = 0
    in_flight: asyncio.Task[Any] | None = None


class CacheStore:
    def __init__(self, fetcher: Fetcher, *, stale_after_seconds: float | None = None) -> None:
        self._fetcher = fetcher
        self._stale_after = stale_after_seconds
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._subscribers: list[Subscriber] = []
        self.fetch_count = 0

    # ---- inspection ----

    def keys(self, kind: Hashable | None = None) -> list[CacheKey]:
        return [k for k in self._entries if kind is None or (k and k[0] == kind)]

    def loaded_keys(self, kind: Hashable | None = None) -> list[CacheKey]:
        return [k for k in self.keys(kind) if self._entries[k].has_value]

    def entry(self, key: CacheKey) -> CacheEntry | None:
        return self._entries.get(key)

    def peek(self, key: CacheKey) -> Any:
        """Cached value without triggering a fetch."""
        entry = self._entries.get(key)
        return entry.value if entry is not None and entry.has_value else None

    def is_stale(self, key: CacheKey) -> bool:
        entry = self._entries.get(key)
        if entry is None or not entry.has_value or entry.stale:
            return True
        if self._stale_after is not None and entry.updated_at is not None:
            return time.monotonic() - entry.updated_at >= self._stale_after
        return False

    def is_fetching(self, key: CacheKey) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.in_flight is not None and not entry.in_flight.done()

    def error(self, key: CacheKey) -> BaseException | None:
        entry = self._entries.get(key)
        return entry.error if entry is not None else None

    def has_pending_mutation(self, key: CacheKey) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.pending_mutations > 0

    # ---- reads ----

    def get(self, key: CacheKey) -> Any:
        """
        Return the cached value immediately (possibly stale, None if absent).

        If stale or absent, start a background fetch (deduplicated).
        """
        entry = self._entries.setdefault(key, CacheEntry())
        if self.is_stale(key) and entry.pending_mutations == 0:
            self._ensure_fetch(key, entry)
        return entry.value if entry.has_value else None

    async def load(self, key: CacheKey, *, force: bool = False) -> Any:
        """
        Return a fresh value, fetching if needed.

        Fetch errors propagate here; the entry keeps its last value.
        """
        entry = self._entries.setdefault(key, CacheEntry())
        if force:
            entry.stale = True
        if not self.is_stale(key) and not self.is_fetching(key):
            return entry.value
        if entry.pending_mutations > 0 and entry.has_value:
            # Optimistic state wins until the mutation resolves.
            return entry.value
        task = self._ensure_fetch(key, entry)
        await asyncio.shield(task)
        return self.peek(key)

    def _ensure_fetch(self, key: CacheKey, entry: CacheEntry) -> asyncio.Task[Any]:
        if entry.in_flight is not None and not entry.in_flight.done():
            return entry.in_flight
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run_fetch(key, entry.version))
        task.add_done_callback(_consume_exception)
        entry.in_flight = task
        return task

    async def _run_fetch(self, key: CacheKey, version_at_start: int) -> None:
        self.fetch_count += 1
        logger.debug("Cache fetch key=%s", key)
        try:
            value = await self._fetcher(key)
        except Exception as e:
            entry = self._entries.setdefault(key, CacheEntry())
            entry.error = e
            entry.in_flight = None
            logger.info("Cache fetch failed key=%s: %s", key, e)
            self._emit(key, entry.value)
            raise

        entry = self._entries.setdefault(key, CacheEntry())
        entry.in_flight = None

        if entry.version != version_at_start or entry.pending_mutations > 0:
            logger.debug("Cache fetch result dropped key=%s (changed while in flight)", key)
            entry.stale = True
            return

        entry.error = None
        self._store(key, entry, value)

    # ---- writes ----

    def set(self, key: CacheKey, value: Any) -> None:
        """Unconditionally replace the cached value."""
        entry = self._entries.setdefault(key, CacheEntry())
        self._store(key, entry, value)

    def _store(self, key: CacheKey, entry: CacheEntry, value: Any) -> None:
        entry.value = value
        entry.has_value = True
        entry.stale = False
        entry.updated_at = time.monotonic()
        entry.version += 1
        self._emit(key, value)

    def invalidate(self, key: CacheKey) -> None:
        """Mark stale; keeps the value. Unknown keys are a no-op."""
        entry = self._entries.get(key)
        if entry is None:
            return
        entry.stale = True

    def invalidate_kind(self, kind: Hashable) -> list[CacheKey]:
        keys = self.keys(kind)
        for key in keys:
            self.invalidate(key)
        return keys

    def begin_mutation(self, key: CacheKey) -> None:
        self._entries.setdefault(key, CacheEntry()).pending_mutations += 1

    def end_mutation(self, key: CacheKey) -> None:
        entry = self._entries.get(key)
        if entry is not None and entry.pending_mutations > 0:
            entry.pending_mutations -= 1

    # ---- subscriptions ----

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def _emit(self, key: CacheKey, value: Any) -> None:
        for cb in list(self._subscribers):
            try:
                cb(key, value)
            except Exception:
                logger.exception("Cache subscriber failed key=%s", key)

    async def aclose(self) -> None:
        tasks = [e.in_flight for e in self._entries.values() if e.in_flight is not None]
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


def _consume_exception(task: asyncio.Task[Any]) -> None:
    # Background get() fetches may have no awaiter; errors are kept on the entry.
    if not task.cancelled():
        task.exception()
