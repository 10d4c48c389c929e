"""Service-level error taxonomy shared by the store, cache and API layers."""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for errors raised by the patient record service."""


class ValidationError(ServiceError):
    """A required identifier is missing; nothing was read or written."""


class ConflictError(ServiceError):
    """An identifier already exists; no mutation was performed."""


class NotFoundError(ServiceError):
    """The requested entity does not exist in the store of record."""


class StoreUnavailable(ServiceError):
    """The document store or the cache could not be reached."""


class CorruptCacheEntry(ServiceError):
    """A cached value could not be turned back into an entity."""

    def __init__(self, key: str, reason: str = "malformed value") -> None:
        super().__init__(f"Corrupt cache entry {key!r}: {reason}")
        self.key = key
