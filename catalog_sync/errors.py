# catalog_sync/errors.py
# Exceptions raised by the clients, the store and the mappers.
from __future__ import annotations

from typing import Optional


class SyncError(Exception):
    """Base class for everything the sync engine raises on purpose."""


class ConfigurationError(SyncError):
    pass


class MappingError(SyncError):
    """A source item cannot be mapped with the saved config (item-level)."""


class PimApiError(SyncError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PimTokenExpiredError(PimApiError):
    """Raised when the PIM rejects the access token; the client re-authenticates."""


class CommerceApiError(SyncError):
    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[dict] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body or {}


class ConcurrentUpdateError(SyncError):
    """A store record changed between read and write (optimistic version mismatch)."""

    def __init__(self, container: str, key: str, expected: Optional[int], actual: Optional[int]):
        super().__init__(
            f"{container}/{key} was modified concurrently (expected version {expected}, found {actual})"
        )
        self.container = container
        self.key = key
        self.expected = expected
        self.actual = actual
