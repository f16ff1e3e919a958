# src/tasksync/core/errors.py

from __future__ import annotations


class TaskSyncError(Exception):
    """Base class for all tasksync errors."""


class ValidationError(TaskSyncError, ValueError):
    """Rejected locally, before any cache or network interaction."""


class TransportError(TaskSyncError):
    """
    A transport could not produce a usable result.

    Covers network exceptions, non-2xx HTTP statuses, GraphQL `errors`,
    missing `data` and malformed JSON.
    """

    def __init__(self, message: str, *, transport: str = "", status: int | None = None) -> None:
        super().__init__(message)
        self.transport = transport
        self.status = status

    def __str__(self) -> str:
        msg = super().__str__()
        return f"[{self.transport}] {msg}" if self.transport else msg


class NotFoundError(TransportError):
    """404 or a null GraphQL result on get/update/delete."""


class MutationTimeoutError(TransportError):
    """The network call behind an optimistic edit did not resolve in time."""


class AllTransportsFailedError(TransportError):
    """Aggregated failure of every attempt in a fallback chain."""

    def __init__(self, operation: str, errors: list[TransportError]) -> None:
        detail = "; ".join(str(e) for e in errors) or "no transports configured"
        super().__init__(f"{operation} failed on all transports: {detail}")
        self.operation = operation
        self.errors = list(errors)
