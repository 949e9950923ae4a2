"""Builds engine components from an EngineConfig."""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from .catalog.images import HttpImageArchiver
from .catalog.importer import BatchImportEngine
from .config import EngineConfig, get_config
from .models import SyncMode
from .storage.base import CatalogStore, CredentialCipher, StoreDirectory
from .storage.memory import InMemoryCatalogStore, InMemoryStoreDirectory
from .sync.orchestrator import MultiStoreSyncOrchestrator
from .sync.woocommerce import WooCommerceSyncer

logger = logging.getLogger(__name__)


def build_storage(config: Optional[EngineConfig] = None) -> Tuple[CatalogStore, StoreDirectory]:
    """PostgreSQL storage when DATABASE_URL is set, in-memory otherwise."""
    config = config or get_config()
    if config.database_url:
        from .storage.postgres import PostgresCatalogStore, PostgresStoreDirectory

        return (
            PostgresCatalogStore(config.database_url),
            PostgresStoreDirectory(config.database_url),
        )

    logger.warning("DATABASE_URL not configured, using in-memory storage")
    return InMemoryCatalogStore(), InMemoryStoreDirectory()


def build_import_engine(
    store: CatalogStore, config: Optional[EngineConfig] = None
) -> BatchImportEngine:
    config = config or get_config()
    images = HttpImageArchiver(
        base_dir=config.assets_dir,
        url_prefix=config.assets_url_prefix,
        timeout=config.importing.request_timeout,
    )
    return BatchImportEngine(store=store, images=images, settings=config.importing)


def build_orchestrator(
    store: CatalogStore,
    directory: StoreDirectory,
    config: Optional[EngineConfig] = None,
    cipher: Optional[CredentialCipher] = None,
) -> MultiStoreSyncOrchestrator:
    config = config or get_config()
    return MultiStoreSyncOrchestrator(
        directory,
        syncers={
            SyncMode.FULL: WooCommerceSyncer(store, cipher=cipher, settings=config.sync),
            SyncMode.MODIFIED_ONLY: WooCommerceSyncer(
                store, cipher=cipher, settings=config.sync, modified_only=True
            ),
        },
        concurrency=config.sync.concurrency,
    )


__all__ = ["build_storage", "build_import_engine", "build_orchestrator"]
