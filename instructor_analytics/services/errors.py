"""Error taxonomy for the analytics core.

The core raises these and never recovers from them; the HTTP layer maps
them to status codes.
"""

from __future__ import annotations


class AnalyticsError(Exception):
    pass


class NotFoundError(AnalyticsError):
    """The targeted course does not exist or is soft-deleted."""


class ForbiddenError(AnalyticsError):
    """The course exists but belongs to another instructor."""


class StorageError(AnalyticsError):
    """A store query failed.  Not retried."""

    def __init__(self, operation: str) -> None:
        super().__init__(f"store query failed: {operation}")
        self.operation = operation


class InvalidArgumentError(AnalyticsError, ValueError):
    """Malformed input, rejected before any query is issued."""
