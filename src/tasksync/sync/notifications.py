# src/tasksync/sync/notifications.py

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

logger = logging.getLogger(__name__)


class NotificationLevel(StrEnum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


@dataclass(slots=True, frozen=True)
class Notification:
    level: NotificationLevel
    title: str
    detail: str = ""
    # None -> stays until dismissed
    ttl_seconds: float | None = None
    created_at: float = field(default_factory=time.monotonic)

    def expired(self, now: float | None = None) -> bool:
        if self.ttl_seconds is None:
            return False
        now = time.monotonic() if now is None else now
        return now - self.created_at >= self.ttl_seconds


NotificationListener = Callable[[Notification], None]


class NotificationCenter:
    """
    Records user-visible notifications (toasts).

    Success notifications are short-lived; failures stay until dismissed.
    """

    def __init__(self, *, success_ttl_seconds: float = 4.0, max_items: int = 200) -> None:
        self.success_ttl_seconds = success_ttl_seconds
        self._items: deque[Notification] = deque(maxlen=max_items)
        self._listeners: list[NotificationListener] = []

    def notify(self, notification: Notification) -> None:
        self._items.append(notification)
        if notification.level == NotificationLevel.ERROR:
            logger.warning("Notification: %s %s", notification.title, notification.detail)
        else:
            logger.info("Notification: %s %s", notification.title, notification.detail)
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                logger.exception("Notification listener failed.")

    def success(self, title: str, detail: str = "") -> Notification:
        n = Notification(NotificationLevel.SUCCESS, title, detail, ttl_seconds=self.success_ttl_seconds)
        self.notify(n)
        return n

    def error(self, title: str, detail: str = "") -> Notification:
        n = Notification(NotificationLevel.ERROR, title, detail)
        self.notify(n)
        return n

    def add_listener(self, listener: NotificationListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    @property
    def history(self) -> list[Notification]:
        return list(self._items)

    def active(self, now: float | None = None) -> list[Notification]:
        return [n for n in self._items if not n.expired(now)]

    def dismiss(self, notification: Notification) -> None:
        try:
            self._items.remove(notification)
        except ValueError:
            pass

    def clear(self) -> None:
        self._items.clear()
