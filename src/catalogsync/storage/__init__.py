"""
Storage collaborators for the catalog engine.

Components:
- base: CatalogStore, StoreDirectory and CredentialCipher interfaces
- memory: in-process implementations (tests, dry runs)
- postgres: psycopg implementations over the catalog tables
"""

from .base import (
    CatalogStore,
    CredentialCipher,
    ProductDraft,
    StoredProduct,
    StoredVariant,
    StoreDirectory,
    StoreFilter,
    StoreRecord,
    VariantDraft,
)
from .memory import InMemoryCatalogStore, InMemoryStoreDirectory

__all__ = [
    "CatalogStore",
    "CredentialCipher",
    "ProductDraft",
    "StoredProduct",
    "StoredVariant",
    "StoreDirectory",
    "StoreFilter",
    "StoreRecord",
    "VariantDraft",
    "InMemoryCatalogStore",
    "InMemoryStoreDirectory",
]
