"""
Failures raised by the document gateway and its backends.

Every condition derives from ``StoreError``; only the unavailable family is
worth retrying. Callers map these to responses without exposing the
underlying storage detail.
"""

from __future__ import annotations

from typing import Optional


class StoreError(Exception):
    """Base class for document store failures."""

    retryable = False

    def __init__(self, message: str, *, table: Optional[str] = None, key: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.table = table
        self.key = key


class NotFoundError(StoreError):
    pass


class AlreadyExistsError(StoreError):
    pass


class InvalidUpdateError(StoreError):
    pass


class ConflictError(StoreError):
    """The row changed since it was read (stale version token)."""


class StoreUnavailableError(StoreError):
    retryable = True


class StoreTimeoutError(StoreUnavailableError):
    pass
