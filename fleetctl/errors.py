"""Error types raised by the store client and the reconciliation engine."""

from __future__ import annotations

from typing import Optional


class FleetError(Exception):
    """Base class for everything fleetctl raises on purpose."""


class StoreError(FleetError):
    """The object store rejected or failed a request."""

    def __init__(self, message: str, status_code: Optional[int] = None, reason: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason


class NotFoundError(StoreError):
    pass


class GoneError(StoreError):
    pass


class ConflictError(StoreError):
    """Write raced with another writer (stale resourceVersion or AlreadyExists)."""


class TransientStoreError(StoreError):
    """Throttling, server-side failure or a broken connection. Safe to retry the whole pass."""


class MalformedSelector(FleetError):
    pass


class BackoffExhausted(FleetError):
    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


def is_absent(err: BaseException) -> bool:
    """True for errors meaning the object is already gone."""
    return isinstance(err, (NotFoundError, GoneError))
