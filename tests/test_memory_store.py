"""
Tests for the in-memory storage implementations.
"""

from datetime import datetime, timedelta, timezone

import pytest

from catalogsync.storage.base import CatalogStore, ProductDraft, StoreFilter, VariantDraft
from catalogsync.storage.memory import InMemoryCatalogStore, InMemoryStoreDirectory

from conftest import make_store


class TestInMemoryCatalogStore:
    """Test InMemoryCatalogStore semantics."""

    def test_satisfies_protocol(self, catalog_store):
        assert isinstance(catalog_store, CatalogStore)

    @pytest.mark.asyncio
    async def test_update_keeps_handle_and_ownership(self, catalog_store):
        """Updates without a handle keep the old one; brand and sharing never change."""
        product = await catalog_store.create_product(
            ProductDraft(title="Tee", handle="tee", brand_id="b-1", is_shared=False)
        )
        await catalog_store.update_product(product.id, ProductDraft(title="Tee v2"))

        stored = catalog_store.products[product.id]
        assert stored.title == "Tee v2"
        assert stored.handle == "tee"
        assert stored.brand_id == "b-1"
        assert stored.is_shared is False

    @pytest.mark.asyncio
    async def test_update_missing_product(self, catalog_store):
        with pytest.raises(KeyError):
            await catalog_store.update_product("nope", ProductDraft(title="x"))

    @pytest.mark.asyncio
    async def test_upsert_variant_moves_sku(self, catalog_store):
        """Upserting an existing SKU rewrites that row, even across products."""
        first = await catalog_store.create_product(ProductDraft(title="A", handle="a"))
        second = await catalog_store.create_product(ProductDraft(title="B", handle="b"))
        await catalog_store.upsert_variant_by_sku(first.id, VariantDraft(sku="X", currency="USD"))
        await catalog_store.upsert_variant_by_sku(second.id, VariantDraft(sku="X", currency="EUR"))

        [row] = catalog_store.variants.values()
        assert row.product_id == second.id
        assert row.draft.currency == "EUR"
        assert (await catalog_store.find_by_sku("X")).id == second.id

    @pytest.mark.asyncio
    async def test_variants_without_sku_never_merge(self, catalog_store):
        product = await catalog_store.create_product(ProductDraft(title="A", handle="a"))
        await catalog_store.upsert_variant_by_sku(product.id, VariantDraft(sku=None))
        await catalog_store.upsert_variant_by_sku(product.id, VariantDraft(sku=None))

        assert len(catalog_store.variants) == 2
        assert (await catalog_store.find_by_handle("a")).skus == []

    @pytest.mark.asyncio
    async def test_delete_variants(self, catalog_store):
        product = await catalog_store.create_product(ProductDraft(title="A", handle="a"))
        await catalog_store.create_variants(product.id, [VariantDraft(sku="1"), VariantDraft(sku="2")])

        assert await catalog_store.delete_variants(product.id) == 2
        assert catalog_store.variants == {}

    @pytest.mark.asyncio
    async def test_last_synced_at(self, catalog_store):
        """The most recent mapping time per store."""
        now = datetime.now(timezone.utc)
        await catalog_store.upsert_store_mapping("s1", "p1", "1", synced_at=now - timedelta(days=2))
        await catalog_store.upsert_store_mapping("s1", "p2", "2", synced_at=now)
        await catalog_store.upsert_store_mapping("s2", "p3", "3", synced_at=now + timedelta(days=1))

        assert await catalog_store.last_synced_at("s1") == now
        assert await catalog_store.last_synced_at("unknown") is None

    @pytest.mark.asyncio
    async def test_find_by_title_keywords(self, catalog_store):
        """Any keyword matches, case-insensitively, up to the limit."""
        for i, title in enumerate(["Linen SHIRT", "Cotton Shirt", "Wool Socks"]):
            await catalog_store.create_product(ProductDraft(title=title, handle=f"h-{i}"))

        found = await catalog_store.find_by_title_keywords(["shirt", "wool"])
        assert sorted(p.title for p in found) == ["Cotton Shirt", "Linen SHIRT", "Wool Socks"]
        assert len(await catalog_store.find_by_title_keywords(["shirt"], limit=1)) == 1
        assert await catalog_store.find_by_title_keywords(["hoodie"]) == []


class TestInMemoryStoreDirectory:
    """Test store selection."""

    @pytest.mark.asyncio
    async def test_filter(self):
        directory = InMemoryStoreDirectory(
            [make_store("a"), make_store("b", active=False), make_store("c", platform="SHOPIFY")]
        )

        assert [s.id for s in await directory.list_stores(StoreFilter())] == ["a"]
        assert [s.id for s in await directory.list_stores(StoreFilter(platform=None))] == ["a", "c"]
        assert [
            s.id for s in await directory.list_stores(StoreFilter(active_only=False))
        ] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_get_and_add(self):
        directory = InMemoryStoreDirectory()
        directory.add(make_store("a"))

        assert (await directory.get_store("a")).name == "a"
        assert await directory.get_store("b") is None

    def test_currency_resolution(self):
        assert make_store("a", settings={"currency": "UAH"}, currency="EUR").resolve_currency() == "UAH"
        assert make_store("a", currency="EUR").resolve_currency() == "EUR"
        assert make_store("a").resolve_currency("GBP") == "GBP"
