"""
catalogsync - catalog ingestion and multi-store synchronization.

Provides:
- BatchImportEngine: rate-limited import of a remote catalog page range
- ImportProgressStream: server-sent event view of an import job
- MultiStoreSyncOrchestrator: failure-isolated fan-out across stores
- concurrency helpers for bounded batches

Usage:
    from catalogsync import BatchImportEngine, InMemoryCatalogStore

    engine = BatchImportEngine(store=InMemoryCatalogStore())
    outcome = await engine.run({"url": "shop.example.com", "startPage": 1, "endPage": 2})
"""

__version__ = "0.1.0"

from .catalog import (
    BatchImportEngine,
    DuplicateResolver,
    ImportProgressStream,
    ShopifyCatalogClient,
    platform_registry,
)
from .config import EngineConfig, get_config
from .exceptions import (
    BatchTimeoutError,
    CatalogSyncError,
    ImportCancelledError,
    IncompatibleStoreError,
    ItemProcessingError,
    RemoteFetchError,
    StoreSyncError,
    ValidationError,
)
from .models import DuplicateStrategy, ImportOutcome, ImportRequest, SyncMode, SyncOptions
from .storage import InMemoryCatalogStore, InMemoryStoreDirectory
from .sync import MultiStoreSyncOrchestrator, WooCommerceSyncer

__all__ = [
    "__version__",
    # Import
    "BatchImportEngine",
    "DuplicateResolver",
    "ImportProgressStream",
    "ShopifyCatalogClient",
    "platform_registry",
    # Sync
    "MultiStoreSyncOrchestrator",
    "WooCommerceSyncer",
    # Storage
    "InMemoryCatalogStore",
    "InMemoryStoreDirectory",
    # Config
    "EngineConfig",
    "get_config",
    # Models
    "DuplicateStrategy",
    "ImportOutcome",
    "ImportRequest",
    "SyncMode",
    "SyncOptions",
    # Errors
    "CatalogSyncError",
    "ValidationError",
    "IncompatibleStoreError",
    "RemoteFetchError",
    "ItemProcessingError",
    "StoreSyncError",
    "BatchTimeoutError",
    "ImportCancelledError",
]
