"""
Tests for BatchImportEngine.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from catalogsync.catalog.images import HttpImageArchiver
from catalogsync.catalog.importer import BatchImportEngine
from catalogsync.config import ImportSettings
from catalogsync.exceptions import (
    ImportCancelledError,
    IncompatibleStoreError,
    ItemProcessingError,
    RemoteFetchError,
    ValidationError,
)
from catalogsync.models import CatalogItem, ItemStatus, JobState

from conftest import FakeAdapter, FakeArchiver, make_item


def request(strategy="skip", start=1, end=3):
    return {
        "url": "shop.example.com",
        "startPage": start,
        "endPage": end,
        "duplicateStrategy": strategy,
    }


class TestImportCounters:
    """Test counters across duplicate strategies."""

    @pytest.mark.asyncio
    async def test_duplicate_free_catalog(self, catalog_store, two_page_adapter, fast_settings):
        """Every item is imported once, nothing skipped."""
        engine = BatchImportEngine(catalog_store, adapter=two_page_adapter, settings=fast_settings)
        outcome = await engine.run(request())

        assert outcome.total == 6
        assert outcome.skipped == 0
        assert outcome.success + outcome.failed == outcome.total
        assert outcome.success == 6
        assert len(catalog_store.products) == 6

    @pytest.mark.asyncio
    async def test_skip_rerun_skips_everything(self, catalog_store, two_page_adapter, fast_settings):
        """Re-running with skip imports nothing new."""
        engine = BatchImportEngine(catalog_store, adapter=two_page_adapter, settings=fast_settings)
        await engine.run(request())
        outcome = await engine.run(request("skip"))

        assert outcome.success == 0
        assert outcome.skipped == outcome.total == 6
        assert len(catalog_store.products) == 6

    @pytest.mark.asyncio
    async def test_keepboth_reruns_never_collide(self, catalog_store, two_page_adapter, fast_settings):
        """keepboth creates copies under unique handles."""
        engine = BatchImportEngine(catalog_store, adapter=two_page_adapter, settings=fast_settings)
        await engine.run(request())
        await engine.run(request("keepboth"))
        await engine.run(request("keepboth"))

        handles = [p.handle for p in catalog_store.products.values()]
        assert len(handles) == 18
        assert len(set(handles)) == 18
        copies = [p for p in catalog_store.products.values() if "(Copy " in p.title]
        assert len(copies) == 12

    @pytest.mark.asyncio
    async def test_overwrite_replaces_variants(self, catalog_store, fast_settings):
        """overwrite purges old variants before writing new ones."""
        adapter = FakeAdapter(pages={1: [make_item(1, skus=["X-1", "X-2"])]})
        engine = BatchImportEngine(catalog_store, adapter=adapter, settings=fast_settings)
        await engine.run(request(end=1))

        adapter.pages[1] = [make_item(1, skus=["Y-1"], title="Renamed")]
        outcome = await engine.run(request("overwrite", end=1))

        assert outcome.success == 1
        assert len(catalog_store.products) == 1
        product = next(iter(catalog_store.products.values()))
        assert product.title == "Renamed"
        assert [v.draft.sku for v in catalog_store.variants.values()] == ["Y-1"]
        assert outcome.items[0].status == ItemStatus.UPDATED

    @pytest.mark.asyncio
    async def test_item_without_handle_is_always_created(self, catalog_store, fast_settings):
        """Items without a handle skip the collision check."""
        adapter = FakeAdapter(pages={1: [make_item(1, handle="")]})
        engine = BatchImportEngine(catalog_store, adapter=adapter, settings=fast_settings)
        await engine.run(request(end=1))
        outcome = await engine.run(request(end=1))

        assert outcome.success == 1
        assert len(catalog_store.products) == 2


class TestFetching:
    """Test page fetching."""

    @pytest.mark.asyncio
    async def test_empty_page_stops_fetching(self, catalog_store, fast_settings):
        """An empty page before end_page ends fetching; earlier pages import."""
        adapter = FakeAdapter(pages={1: [make_item(1)], 2: [], 3: [make_item(3)]})
        engine = BatchImportEngine(catalog_store, adapter=adapter, settings=fast_settings)
        outcome = await engine.run(request(end=3))

        assert adapter.fetched == [1, 2]
        assert outcome.total == 1
        assert outcome.success == 1
        assert any("Page 2 is empty" in line for line in outcome.logs)

    @pytest.mark.asyncio
    async def test_page_error_is_logged_and_skipped(self, catalog_store, fast_settings):
        """A failing page is logged and the next page is still fetched."""
        adapter = FakeAdapter(
            pages={1: RemoteFetchError("Failed to fetch page 1: HTTP 503"), 2: [make_item(2)]}
        )
        engine = BatchImportEngine(catalog_store, adapter=adapter, settings=fast_settings)
        outcome = await engine.run(request(end=2))

        assert adapter.fetched == [1, 2]
        assert outcome.total == 1
        assert any("Error fetching page 1" in line and "503" in line for line in outcome.logs)

    @pytest.mark.asyncio
    async def test_page_delay_between_fetches(self, catalog_store):
        """Page fetches are separated by the configured pause."""
        adapter = FakeAdapter(pages={1: [make_item(1)], 2: [make_item(2)], 3: [make_item(3)]})
        settings = ImportSettings(page_delay_sec=1.0, batch_delay_sec=0, image_delay_ms=0)
        engine = BatchImportEngine(catalog_store, adapter=adapter, settings=settings)

        with patch("catalogsync.catalog.importer.asyncio.sleep", new=AsyncMock()) as sleep:
            await engine.run(request(end=3))

        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 1.0]


class TestValidationAndVerification:
    """Test failures before any item is written."""

    @pytest.mark.asyncio
    async def test_invalid_range_rejected_before_network(self, catalog_store, two_page_adapter):
        """end_page < start_page raises before the compatibility check."""
        engine = BatchImportEngine(catalog_store, adapter=two_page_adapter)
        with pytest.raises(ValidationError):
            await engine.run(request(start=3, end=1))
        assert two_page_adapter.verified == []

    @pytest.mark.asyncio
    async def test_zero_start_page_rejected(self, catalog_store, two_page_adapter):
        """Pages are 1-based."""
        engine = BatchImportEngine(catalog_store, adapter=two_page_adapter)
        with pytest.raises(ValidationError):
            await engine.run(request(start=0, end=1))

    @pytest.mark.asyncio
    async def test_unknown_strategy_rejected(self, catalog_store, two_page_adapter):
        """Strategies outside skip/overwrite/keepboth are rejected."""
        engine = BatchImportEngine(catalog_store, adapter=two_page_adapter)
        with pytest.raises(ValidationError):
            await engine.run(request(strategy="merge"))

    @pytest.mark.asyncio
    async def test_incompatible_store_aborts(self, catalog_store, fast_settings):
        """A failed compatibility check raises and nothing is fetched or written."""
        adapter = FakeAdapter(pages={1: [make_item(1)]}, compatible=False)
        engine = BatchImportEngine(catalog_store, adapter=adapter, settings=fast_settings)
        snapshots = []

        with pytest.raises(IncompatibleStoreError, match="Not a valid shopify store"):
            await engine.run(request(), on_progress=snapshots.append)

        assert adapter.fetched == []
        assert catalog_store.products == {}
        assert snapshots[-1].state == JobState.FAILED


class TestItemProcessing:
    """Test per-item behaviour."""

    @pytest.mark.asyncio
    async def test_item_failure_is_isolated(self, catalog_store, two_page_adapter, fast_settings):
        """One failing item is counted and the rest continue."""
        original = catalog_store.create_product

        async def flaky_create(draft):
            if draft.handle == "product-2":
                raise RuntimeError("disk full")
            return await original(draft)

        catalog_store.create_product = flaky_create
        engine = BatchImportEngine(catalog_store, adapter=two_page_adapter, settings=fast_settings)
        outcome = await engine.run(request())

        assert outcome.failed == 1
        assert outcome.success == 5
        failed = [r for r in outcome.items if r.status == ItemStatus.FAILED]
        assert len(failed) == 1
        assert isinstance(failed[0].error, ItemProcessingError)
        assert "disk full" in str(failed[0].error)
        assert any("Failed: Product 2 - disk full" in line for line in outcome.logs)

    @pytest.mark.asyncio
    async def test_images_archived_under_remote_id(self, catalog_store, fast_settings):
        """Images are downloaded with owner id <platform>-<remote id>."""
        archiver = FakeArchiver()
        adapter = FakeAdapter(pages={1: [make_item(42, images=["https://cdn/a.png", "https://cdn/b.jpg"])]})
        engine = BatchImportEngine(
            catalog_store, images=archiver, adapter=adapter, settings=fast_settings
        )
        await engine.run(request(end=1))

        urls, owner_id, _ = archiver.calls[0]
        assert owner_id == "shopify-42"
        assert urls == ["https://cdn/a.png", "https://cdn/b.jpg"]
        product = next(iter(catalog_store.products.values()))
        assert product.images == [
            "/assets/products/shopify-42/image-1.jpg",
            "/assets/products/shopify-42/image-2.jpg",
        ]
        assert product.categories == ["summer", "sale", "Shirts"]

    @pytest.mark.asyncio
    async def test_remote_id_cannot_leave_archive(self, catalog_store, fast_settings, tmp_path):
        """Path segments in a remote id never place images outside the archive root."""
        archive_root = tmp_path / "assets"
        archiver = HttpImageArchiver(
            base_dir=archive_root,
            client=httpx.AsyncClient(
                transport=httpx.MockTransport(lambda r: httpx.Response(200, content=b"img"))
            ),
        )
        item = make_item("../../../escaped", images=["https://cdn/a.jpg"])
        engine = BatchImportEngine(
            catalog_store,
            images=archiver,
            adapter=FakeAdapter(pages={1: [item]}),
            settings=fast_settings,
        )
        outcome = await engine.run(request(end=1))

        assert outcome.success == 1
        assert not (tmp_path / "escaped").exists()
        written = [p for p in tmp_path.rglob("*") if p.is_file()]
        assert len(written) == 1
        assert archive_root in written[0].parents

    @pytest.mark.asyncio
    async def test_variant_options_stored(self, catalog_store, fast_settings):
        """Variant option values reach the stored variant."""
        item = CatalogItem.model_validate(
            {
                "id": 7,
                "title": "Tee",
                "handle": "tee",
                "variants": [{"id": 1, "sku": "TEE-S-RED", "option1": "S", "option2": "Red"}],
            }
        )
        engine = BatchImportEngine(
            catalog_store, adapter=FakeAdapter(pages={1: [item]}), settings=fast_settings
        )
        await engine.run(request(end=1))

        [row] = catalog_store.variants.values()
        assert row.draft.options == ["S", "Red"]


class TestClose:
    """Test resource release."""

    @pytest.mark.asyncio
    async def test_close_releases_archiver(self, catalog_store):
        archiver = FakeArchiver()
        engine = BatchImportEngine(catalog_store, images=archiver, adapter=FakeAdapter())

        await engine.close()

        assert archiver.closed is True

    @pytest.mark.asyncio
    async def test_close_without_resources(self, catalog_store):
        await BatchImportEngine(catalog_store).close()


class TestBatching:
    """Test batch pacing and state transitions."""

    @pytest.mark.asyncio
    async def test_waits_between_batches_only(self, catalog_store):
        """5 items in batches of 2 wait twice, not after the last batch."""
        adapter = FakeAdapter(pages={1: [make_item(i) for i in range(1, 6)]})
        settings = ImportSettings(batch_size=2, batch_delay_sec=180, page_delay_sec=0, image_delay_ms=0)
        engine = BatchImportEngine(catalog_store, adapter=adapter, settings=settings)

        with patch("catalogsync.catalog.importer.asyncio.sleep", new=AsyncMock()) as sleep:
            outcome = await engine.run(request(end=1))

        assert [c.args[0] for c in sleep.await_args_list] == [180, 180]
        assert outcome.success == 5

    @pytest.mark.asyncio
    async def test_state_transitions_published(self, catalog_store, fast_settings):
        """Snapshots walk through the job states in order."""
        adapter = FakeAdapter(pages={1: [make_item(i) for i in range(1, 4)]})
        settings = fast_settings.model_copy(update={"batch_size": 2})
        engine = BatchImportEngine(catalog_store, adapter=adapter, settings=settings)
        snapshots = []
        await engine.run(request(end=1), on_progress=snapshots.append)

        states = []
        for snap in snapshots:
            if not states or states[-1] != snap.state:
                states.append(snap.state)
        assert states == [
            JobState.VERIFYING,
            JobState.FETCHING,
            JobState.IMPORTING,
            JobState.WAITING,
            JobState.IMPORTING,
            JobState.COMPLETED,
        ]

    @pytest.mark.asyncio
    async def test_snapshots_are_immutable_copies(self, catalog_store, two_page_adapter, fast_settings):
        """Earlier snapshots do not change as the job advances."""
        engine = BatchImportEngine(catalog_store, adapter=two_page_adapter, settings=fast_settings)
        snapshots = []
        await engine.run(request(), on_progress=snapshots.append)

        assert len(snapshots[0].logs) < len(snapshots[-1].logs)
        assert snapshots[0].current == 0
        assert snapshots[-1].current == 6


class TestCancellation:
    """Test cancellation through the job's event."""

    @pytest.mark.asyncio
    async def test_cancel_before_fetch(self, catalog_store, two_page_adapter, fast_settings):
        """A set event stops the job at the first suspension point."""
        engine = BatchImportEngine(catalog_store, adapter=two_page_adapter, settings=fast_settings)
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(ImportCancelledError):
            await engine.run(request(), cancel_event=cancel)

        assert two_page_adapter.fetched == []
        assert catalog_store.products == {}

    @pytest.mark.asyncio
    async def test_cancel_during_batch_wait(self, catalog_store):
        """Cancelling during the inter-batch wait wakes the job immediately."""
        adapter = FakeAdapter(pages={1: [make_item(i) for i in range(1, 5)]})
        settings = ImportSettings(batch_size=2, batch_delay_sec=3600, page_delay_sec=0, image_delay_ms=0)
        engine = BatchImportEngine(catalog_store, adapter=adapter, settings=settings)
        cancel = asyncio.Event()

        def on_progress(snapshot):
            if snapshot.state == JobState.WAITING:
                cancel.set()

        with pytest.raises(ImportCancelledError):
            await asyncio.wait_for(
                engine.run(request(end=1), on_progress=on_progress, cancel_event=cancel),
                timeout=5,
            )

        assert len(catalog_store.products) == 2

    @pytest.mark.asyncio
    async def test_concurrent_jobs_do_not_share_progress(self, fast_settings):
        """Two jobs on one engine keep separate counters."""
        from catalogsync.storage.memory import InMemoryCatalogStore

        store = InMemoryCatalogStore()
        adapter = FakeAdapter(pages={1: [make_item(i) for i in range(1, 4)]})
        engine = BatchImportEngine(store, adapter=adapter, settings=fast_settings)

        first, second = await asyncio.gather(
            engine.run(request("keepboth", end=1)),
            engine.run(request("keepboth", end=1)),
        )

        assert first.total == second.total == 3
        assert first.success + first.skipped == 3
        assert second.success + second.skipped == 3
