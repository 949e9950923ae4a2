"""Error taxonomy for the catalog engine.

Only validation, incompatibility and cancellation errors escape an import
job. Page, item and store level errors are absorbed by the component that
raised them and recorded in its progress log or result.
"""

from __future__ import annotations


class CatalogSyncError(Exception):
    """Base class for all engine errors."""


class ValidationError(CatalogSyncError, ValueError):
    """Bad input shape or range, raised before any work starts."""


class IncompatibleStoreError(CatalogSyncError):
    """The remote endpoint is not a catalog of the expected platform."""

    def __init__(self, url: str, platform: str = "shopify"):
        self.url = url
        self.platform = platform
        super().__init__(f"Not a valid {platform} store: {url}")


class RemoteFetchError(CatalogSyncError):
    """One remote page could not be fetched or parsed."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ItemProcessingError(CatalogSyncError):
    """One catalog item failed during import."""

    def __init__(self, label: str, cause: BaseException):
        self.label = label
        self.cause = cause
        super().__init__(f"{label}: {cause}")


class StoreSyncError(CatalogSyncError):
    """One store failed during a multi-store sync."""

    def __init__(self, store_id: str, message: str):
        self.store_id = store_id
        super().__init__(message)


class BatchTimeoutError(CatalogSyncError, TimeoutError):
    """A time-bounded batch exceeded its allotment."""

    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(f"Request timeout after {timeout_ms}ms")


class ImportCancelledError(CatalogSyncError):
    """The job's cancellation token was set."""


__all__ = [
    "CatalogSyncError",
    "ValidationError",
    "IncompatibleStoreError",
    "RemoteFetchError",
    "ItemProcessingError",
    "StoreSyncError",
    "BatchTimeoutError",
    "ImportCancelledError",
]
