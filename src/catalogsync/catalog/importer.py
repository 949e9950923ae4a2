"""
Batch import engine.

Runs one import job through VERIFYING -> FETCHING -> IMPORTING -> WAITING
-> ... -> COMPLETED (or FAILED), publishing a ProgressSnapshot after every
transition and item sub-step.

Usage:
    engine = BatchImportEngine(store=catalog_store, images=archiver)
    outcome = await engine.run(
        {"url": "shop.example.com", "startPage": 1, "endPage": 3},
        on_progress=print,
    )
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, List, Mapping, Optional, Union

from ..config import ImportSettings
from ..exceptions import (
    ImportCancelledError,
    IncompatibleStoreError,
    ItemProcessingError,
)
from ..models import (
    CatalogItem,
    DuplicateStrategy,
    ImportOutcome,
    ImportProgress,
    ImportRequest,
    ItemResult,
    ItemStatus,
    JobState,
    ProgressSnapshot,
)
from ..storage.base import CatalogStore, ProductDraft, VariantDraft
from .duplicates import DuplicateResolver, ResolutionAction
from .images import ImageArchiver
from .platforms import PlatformAdapter, platform_registry

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressSnapshot], Any]


class BatchImportEngine:
    """Imports a page range of a remote catalog in rate-limited batches.

    Every call to run() owns a fresh ImportProgress; the engine itself holds
    no per-job state and can serve concurrent jobs.
    """

    def __init__(
        self,
        store: CatalogStore,
        images: Optional[ImageArchiver] = None,
        adapter: Optional[PlatformAdapter] = None,
        resolver: Optional[DuplicateResolver] = None,
        settings: Optional[ImportSettings] = None,
    ):
        self.store = store
        self.images = images
        self.adapter = adapter
        self.resolver = resolver or DuplicateResolver()
        self.settings = settings or ImportSettings()

    async def run(
        self,
        request: Union[ImportRequest, Mapping[str, Any]],
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ImportOutcome:
        """Run one import job.

        Raises:
            ValidationError: bad request, before any network call.
            IncompatibleStoreError: the store failed the compatibility check.
            ImportCancelledError: cancel_event was set.
        """
        if not isinstance(request, ImportRequest):
            request = ImportRequest.parse(**request)

        adapter = self.adapter
        owns_adapter = adapter is None
        if adapter is None:
            adapter = platform_registry.create(
                request.platform,
                page_size=self.settings.page_size,
                timeout=self.settings.request_timeout,
            )

        job = _ImportJob(self, adapter, request, on_progress, cancel_event)
        try:
            return await job.run()
        finally:
            if owns_adapter:
                await adapter.close()

    async def close(self) -> None:
        """Release the archiver and any injected adapter."""
        for resource in (self.images, self.adapter):
            close = getattr(resource, "close", None)
            if close is not None:
                await close()


class _ImportJob:
    """State of a single run()."""

    def __init__(
        self,
        engine: BatchImportEngine,
        adapter: PlatformAdapter,
        request: ImportRequest,
        on_progress: Optional[ProgressCallback],
        cancel_event: Optional[asyncio.Event],
    ):
        self.engine = engine
        self.settings = engine.settings
        self.adapter = adapter
        self.request = request
        self.on_progress = on_progress
        self.cancel_event = cancel_event
        self.progress = ImportProgress()
        self.results: List[ItemResult] = []

    def publish(self, message: Optional[str] = None) -> None:
        if message is not None:
            self.progress.log(message)
        if self.on_progress:
            self.on_progress(self.progress.snapshot())

    def check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise ImportCancelledError("Import cancelled")

    async def pause(self, seconds: float) -> None:
        """Suspend this job only; wakes early when cancelled."""
        if seconds <= 0:
            self.check_cancelled()
            return
        if self.cancel_event is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(self.cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        self.check_cancelled()

    async def run(self) -> ImportOutcome:
        progress = self.progress
        try:
            await self.verify()
            items = await self.fetch_all()
            await self.import_all(items)
        except ImportCancelledError:
            progress.state = JobState.FAILED
            self.publish("Import cancelled")
            logger.info(f"Import of {self.request.store_url} cancelled")
            raise

        progress.state = JobState.COMPLETED
        progress.current_item = None
        progress.log("=== Import Complete ===")
        progress.log(f"Success: {progress.success}")
        progress.log(f"Skipped: {progress.skipped}")
        progress.log(f"Failed: {progress.failed}")
        self.publish(f"Total: {progress.total}")
        logger.info(
            f"Import of {self.request.store_url} complete: "
            f"{progress.success} ok, {progress.skipped} skipped, {progress.failed} failed"
        )
        return progress.outcome(tuple(self.results))

    async def verify(self) -> None:
        url = self.request.store_url
        self.progress.state = JobState.VERIFYING
        self.publish(f"Verifying {self.request.platform} store: {url}")

        if not await self.adapter.verify_compatible(url):
            self.progress.state = JobState.FAILED
            self.publish(f"Error: Not a valid {self.request.platform} store")
            raise IncompatibleStoreError(url, self.request.platform)

        self.publish("Store verified")

    async def fetch_all(self) -> List[CatalogItem]:
        request = self.request
        self.progress.state = JobState.FETCHING
        self.publish()

        items: List[CatalogItem] = []
        for page in range(request.start_page, request.end_page + 1):
            self.check_cancelled()
            self.publish(f"Fetching page {page}...")
            try:
                batch = await self.adapter.fetch_page(
                    request.store_url, page, self.settings.page_size
                )
            except Exception as e:
                logger.warning(f"Page {page} of {request.store_url} failed: {e}")
                self.publish(f"Error fetching page {page}: {e}")
                continue

            if not batch:
                self.publish(f"Page {page} is empty, stopping...")
                break

            items.extend(batch)
            self.progress.total = len(items)
            self.publish(f"Fetched {len(batch)} products from page {page}")

            if page < request.end_page:
                await self.pause(self.settings.page_delay_sec)

        self.progress.total = len(items)
        return items

    async def import_all(self, items: List[CatalogItem]) -> None:
        size = self.settings.batch_size
        delay = self.settings.batch_delay_sec
        self.progress.log(f"Total products to import: {len(items)}")
        self.publish(f"Importing {size} products every {delay:g} seconds...")

        for start in range(0, len(items), size):
            batch = items[start : start + size]
            self.progress.state = JobState.IMPORTING
            self.publish(
                f"--- Batch {start // size + 1} "
                f"(Products {start + 1}-{start + len(batch)}) ---"
            )

            for item in batch:
                self.check_cancelled()
                self.results.append(await self.import_item(item))

            if start + size < len(items):
                self.progress.state = JobState.WAITING
                self.publish(f"Waiting {delay:g} seconds before next batch...")
                await self.pause(delay)

    async def import_item(self, item: CatalogItem) -> ItemResult:
        """Import one item. Failures become a FAILED ItemResult."""
        progress = self.progress
        store = self.engine.store
        progress.current += 1
        progress.current_item = item.title

        try:
            self.publish(f"[{progress.current}/{progress.total}] Importing: {item.title}")

            image_paths: List[str] = []
            if item.images and self.engine.images is not None:
                self.publish(f"  Downloading {len(item.images)} images...")
                image_paths = await self.engine.images.download_images(
                    item.images,
                    f"{self.request.platform}-{item.id}",
                    self.settings.image_delay_ms,
                )
                self.publish(f"  Downloaded {len(image_paths)}/{len(item.images)} images")

            existing = await store.find_by_handle(item.handle) if item.handle else None
            resolution = self.engine.resolver.resolve(
                item, existing, self.request.duplicate_strategy
            )

            if resolution.action == ResolutionAction.SKIP:
                progress.skipped += 1
                self.publish(
                    f'  Skipped: Product with handle "{item.handle}" already exists'
                )
                return ItemResult(item.title, ItemStatus.SKIPPED, product_id=resolution.target_id)

            draft = ProductDraft(
                title=resolution.title or item.title,
                handle=resolution.handle,
                description=item.description,
                vendor=item.vendor,
                options=item.options or None,
                categories=item.categories,
                images=image_paths,
                raw_payload=item.raw_payload,
            )

            if resolution.action == ResolutionAction.OVERWRITE:
                self.publish(f'  Overwriting existing product: "{existing.title}"...')
                await store.delete_variants(resolution.target_id)
                product = await store.update_product(resolution.target_id, draft)
                status = ItemStatus.UPDATED
            else:
                if self.request.duplicate_strategy == DuplicateStrategy.KEEP_BOTH and existing:
                    self.publish(f'  Creating duplicate with new handle: "{resolution.handle}"...')
                else:
                    self.publish(f'  Saving product: "{item.title}"...')
                product = await store.create_product(draft)
                status = ItemStatus.CREATED

            self.publish(f'  Product saved: "{draft.title}" (ID: {product.id})')

            if item.variants:
                self.publish(f"  Creating {len(item.variants)} variants...")
                await store.create_variants(
                    product.id,
                    [
                        VariantDraft(
                            sku=v.sku,
                            price=v.price,
                            compare_at_price=v.compare_at_price,
                            featured_image=v.featured_image,
                            options=v.options,
                            raw_payload=v.raw_payload,
                        )
                        for v in item.variants
                    ],
                )
                self.publish(f'  All variants created for "{item.title}"')

            progress.success += 1
            self.publish(f'Import completed for: "{item.title}"')
            return ItemResult(item.title, status, product_id=product.id)

        except Exception as e:
            error = ItemProcessingError(item.title, e)
            progress.failed += 1
            logger.warning(f"Import of item {item.id} failed: {e}")
            self.publish(f"  Failed: {item.title} - {e}")
            return ItemResult(item.title, ItemStatus.FAILED, error=error)


__all__ = ["BatchImportEngine", "ProgressCallback"]
