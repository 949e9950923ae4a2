"""
Shared fakes for catalogsync tests.
"""

from typing import Dict, List, Optional

import pytest

from catalogsync.catalog.platforms import PlatformAdapter
from catalogsync.config import ImportSettings
from catalogsync.models import CatalogItem, SyncResult
from catalogsync.storage.base import StoreRecord
from catalogsync.storage.memory import InMemoryCatalogStore


def make_item(item_id, handle=None, skus=(), images=(), title=None) -> CatalogItem:
    return CatalogItem.model_validate(
        {
            "id": item_id,
            "title": title or f"Product {item_id}",
            "handle": handle if handle is not None else f"product-{item_id}",
            "body_html": "<p>desc</p>",
            "vendor": "Acme",
            "product_type": "Shirts",
            "tags": "summer, sale",
            "images": [{"src": url} for url in images],
            "variants": [
                {"id": n, "sku": sku, "price": "10.00"} for n, sku in enumerate(skus, 1)
            ],
        }
    )


class FakeAdapter(PlatformAdapter):
    """In-memory PlatformAdapter.

    pages maps page number to items, or to an exception to raise.
    """

    def __init__(self, pages: Optional[Dict[int, object]] = None, compatible: bool = True):
        self.pages = pages or {}
        self.compatible = compatible
        self.verified: List[str] = []
        self.fetched: List[int] = []

    async def verify_compatible(self, base_url: str) -> bool:
        self.verified.append(base_url)
        return self.compatible

    async def fetch_page(self, base_url, page, page_size=None):
        self.fetched.append(page)
        result = self.pages.get(page, [])
        if isinstance(result, Exception):
            raise result
        return list(result)


class FakeArchiver:
    """ImageArchiver that pretends every download succeeds."""

    def __init__(self):
        self.calls = []
        self.closed = False

    async def download_images(self, urls, owner_id, delay_ms=500):
        self.calls.append((list(urls), owner_id, delay_ms))
        return [f"/assets/products/{owner_id}/image-{i + 1}.jpg" for i in range(len(urls))]

    async def close(self):
        self.closed = True


class FakeSyncer:
    """Syncer returning canned results (or raising) per store id."""

    def __init__(self, outcomes: Optional[Dict[str, object]] = None):
        self.outcomes = outcomes or {}
        self.calls = []

    async def sync(self, store, options):
        self.calls.append((store.id, options))
        outcome = self.outcomes.get(store.id, SyncResult())
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_store(store_id, name=None, platform="WOO", active=True, **kwargs) -> StoreRecord:
    return StoreRecord(
        id=store_id,
        name=name or store_id,
        platform=platform,
        domain=kwargs.pop("domain", f"{store_id}.example.com"),
        is_active=active,
        consumer_key=kwargs.pop("consumer_key", "ck_test"),
        consumer_secret=kwargs.pop("consumer_secret", "cs_test"),
        **kwargs,
    )


@pytest.fixture
def fast_settings():
    return ImportSettings(batch_size=10, batch_delay_sec=0, page_delay_sec=0, image_delay_ms=0)


@pytest.fixture
def catalog_store():
    return InMemoryCatalogStore()


@pytest.fixture
def two_page_adapter():
    return FakeAdapter(
        pages={
            1: [make_item(1, skus=["A-1"]), make_item(2, skus=["B-1", "B-2"]), make_item(3)],
            2: [make_item(4), make_item(5, skus=["E-1"]), make_item(6)],
        }
    )
