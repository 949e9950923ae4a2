"""In-process implementations of the storage interfaces.

Used by tests and by the CLI when no DATABASE_URL is configured.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from .base import (
    ProductDraft,
    StoredProduct,
    StoredVariant,
    StoreFilter,
    StoreRecord,
    VariantDraft,
)


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class _VariantRow:
    id: str
    product_id: str
    draft: VariantDraft


@dataclass
class _MappingRow:
    store_id: str
    product_id: str
    external_id: str
    is_active: bool
    synced_at: datetime
    source: str


@dataclass
class InMemoryCatalogStore:
    """CatalogStore backed by dicts."""

    products: Dict[str, ProductDraft] = field(default_factory=dict)
    variants: Dict[str, _VariantRow] = field(default_factory=dict)
    mappings: Dict[tuple, _MappingRow] = field(default_factory=dict)

    def _stored(self, product_id: str) -> StoredProduct:
        draft = self.products[product_id]
        return StoredProduct(
            id=product_id,
            title=draft.title,
            handle=draft.handle,
            skus=[v.draft.sku for v in self.variants_of(product_id) if v.draft.sku],
        )

    def variants_of(self, product_id: str) -> List[_VariantRow]:
        return [v for v in self.variants.values() if v.product_id == product_id]

    async def find_by_handle(self, handle: str) -> Optional[StoredProduct]:
        for product_id, draft in self.products.items():
            if draft.handle == handle:
                return self._stored(product_id)
        return None

    async def find_by_handles(self, handles: Sequence[str]) -> List[StoredProduct]:
        wanted = set(handles)
        return [self._stored(pid) for pid, d in self.products.items() if d.handle in wanted]

    async def find_by_sku(self, sku: str) -> Optional[StoredProduct]:
        for row in self.variants.values():
            if row.draft.sku == sku:
                return self._stored(row.product_id)
        return None

    async def find_variants_by_skus(self, skus: Sequence[str]) -> List[StoredVariant]:
        wanted = set(skus)
        found = []
        for row in self.variants.values():
            if row.draft.sku in wanted:
                product = self.products[row.product_id]
                found.append(
                    StoredVariant(
                        id=row.id,
                        product_id=row.product_id,
                        sku=row.draft.sku,
                        product_title=product.title,
                        product_handle=product.handle,
                    )
                )
        return found

    async def find_by_title_keywords(
        self, keywords: Sequence[str], limit: int = 50
    ) -> List[StoredProduct]:
        wanted = [k.lower() for k in keywords]
        found = [
            self._stored(pid)
            for pid, d in self.products.items()
            if any(k in d.title.lower() for k in wanted)
        ]
        return found[:limit]

    async def create_product(self, draft: ProductDraft) -> StoredProduct:
        product_id = _new_id()
        self.products[product_id] = replace(draft)
        return self._stored(product_id)

    async def update_product(self, product_id: str, draft: ProductDraft) -> StoredProduct:
        if product_id not in self.products:
            raise KeyError(f"Product not found: {product_id}")
        current = self.products[product_id]
        self.products[product_id] = replace(
            draft,
            handle=draft.handle or current.handle,
            brand_id=current.brand_id,
            is_shared=current.is_shared,
        )
        return self._stored(product_id)

    async def delete_variants(self, product_id: str) -> int:
        doomed = [vid for vid, row in self.variants.items() if row.product_id == product_id]
        for vid in doomed:
            del self.variants[vid]
        return len(doomed)

    async def create_variants(self, product_id: str, variants: Sequence[VariantDraft]) -> int:
        for draft in variants:
            vid = _new_id()
            self.variants[vid] = _VariantRow(id=vid, product_id=product_id, draft=draft)
        return len(variants)

    async def upsert_variant_by_sku(self, product_id: str, variant: VariantDraft) -> None:
        for row in self.variants.values():
            if variant.sku and row.draft.sku == variant.sku:
                row.product_id = product_id
                row.draft = variant
                return
        await self.create_variants(product_id, [variant])

    async def upsert_store_mapping(
        self,
        store_id: str,
        product_id: str,
        external_id: str,
        is_active: bool = True,
        synced_at: Optional[datetime] = None,
        source: str = "WOO",
    ) -> None:
        self.mappings[(store_id, external_id)] = _MappingRow(
            store_id=store_id,
            product_id=product_id,
            external_id=external_id,
            is_active=is_active,
            synced_at=synced_at or datetime.now(timezone.utc),
            source=source,
        )

    async def last_synced_at(self, store_id: str) -> Optional[datetime]:
        times = [m.synced_at for m in self.mappings.values() if m.store_id == store_id]
        return max(times) if times else None


class InMemoryStoreDirectory:
    """StoreDirectory over a fixed list of stores."""

    def __init__(self, stores: Iterable[StoreRecord] = ()):
        self._stores: Dict[str, StoreRecord] = {s.id: s for s in stores}

    def add(self, store: StoreRecord) -> None:
        self._stores[store.id] = store

    async def list_stores(self, store_filter: StoreFilter) -> List[StoreRecord]:
        return [s for s in self._stores.values() if store_filter.matches(s)]

    async def get_store(self, store_id: str) -> Optional[StoreRecord]:
        return self._stores.get(store_id)


__all__ = ["InMemoryCatalogStore", "InMemoryStoreDirectory"]
