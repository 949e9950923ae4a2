"""
Collaborator interfaces the engine depends on.

The engine never talks to a database directly: it goes through a
CatalogStore (products, variants, store mappings), a StoreDirectory
(registered stores) and optionally a CredentialCipher (stored secrets).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable


@dataclass
class StoredProduct:
    """A product row as the engine sees it."""

    id: str
    title: str
    handle: Optional[str] = None
    skus: List[str] = field(default_factory=list)


@dataclass
class StoredVariant:
    """A variant row joined with its owning product."""

    id: str
    product_id: str
    sku: Optional[str]
    product_title: str
    product_handle: Optional[str] = None


@dataclass
class ProductDraft:
    """Fields written when a product is created or updated."""

    title: str
    handle: Optional[str] = None
    description: Optional[str] = None
    vendor: Optional[str] = None
    options: Optional[List[Dict[str, Any]]] = None
    categories: List[str] = field(default_factory=list)
    images: List[str] = field(default_factory=list)
    raw_payload: Dict[str, Any] = field(default_factory=dict)
    brand_id: Optional[str] = None
    is_shared: bool = True


@dataclass
class VariantDraft:
    sku: Optional[str] = None
    price: Optional[Decimal] = None
    compare_at_price: Optional[Decimal] = None
    currency: str = "USD"
    featured_image: Optional[str] = None
    options: List[str] = field(default_factory=list)
    raw_payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StoreRecord:
    """A registered store."""

    id: str
    name: str
    platform: str
    domain: str
    is_active: bool = True
    consumer_key: Optional[str] = None
    consumer_secret: Optional[str] = None
    currency: Optional[str] = None
    settings: Dict[str, Any] = field(default_factory=dict)

    def resolve_currency(self, default: str = "USD") -> str:
        """Currency from settings, then the store column, then the default."""
        return (self.settings or {}).get("currency") or self.currency or default


@dataclass(frozen=True)
class StoreFilter:
    """Selection predicate for StoreDirectory.list_stores()."""

    platform: Optional[str] = "WOO"
    active_only: bool = True

    def matches(self, store: StoreRecord) -> bool:
        if self.platform and store.platform != self.platform:
            return False
        if self.active_only and not store.is_active:
            return False
        return True


@runtime_checkable
class CatalogStore(Protocol):
    """Persistence for products, variants and store/product mappings."""

    async def find_by_handle(self, handle: str) -> Optional[StoredProduct]: ...

    async def find_by_handles(self, handles: Sequence[str]) -> List[StoredProduct]: ...

    async def find_by_sku(self, sku: str) -> Optional[StoredProduct]: ...

    async def find_variants_by_skus(self, skus: Sequence[str]) -> List[StoredVariant]: ...

    async def find_by_title_keywords(
        self, keywords: Sequence[str], limit: int = 50
    ) -> List[StoredProduct]: ...

    async def create_product(self, draft: ProductDraft) -> StoredProduct: ...

    async def update_product(self, product_id: str, draft: ProductDraft) -> StoredProduct: ...

    async def delete_variants(self, product_id: str) -> int: ...

    async def create_variants(self, product_id: str, variants: Sequence[VariantDraft]) -> int: ...

    async def upsert_variant_by_sku(self, product_id: str, variant: VariantDraft) -> None: ...

    async def upsert_store_mapping(
        self,
        store_id: str,
        product_id: str,
        external_id: str,
        is_active: bool = True,
        synced_at: Optional[datetime] = None,
        source: str = "WOO",
    ) -> None: ...

    async def last_synced_at(self, store_id: str) -> Optional[datetime]: ...


@runtime_checkable
class StoreDirectory(Protocol):
    """Lookup of registered stores."""

    async def list_stores(self, store_filter: StoreFilter) -> List[StoreRecord]: ...

    async def get_store(self, store_id: str) -> Optional[StoreRecord]: ...


@runtime_checkable
class CredentialCipher(Protocol):
    """Reverses the at-rest encryption of store secrets."""

    def decrypt(self, value: str) -> str: ...


__all__ = [
    "StoredProduct",
    "StoredVariant",
    "ProductDraft",
    "VariantDraft",
    "StoreRecord",
    "StoreFilter",
    "CatalogStore",
    "StoreDirectory",
    "CredentialCipher",
]
