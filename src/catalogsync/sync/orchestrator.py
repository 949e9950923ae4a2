"""
Multi-store sync orchestrator.

Runs the per-store syncer for every store the directory selects, isolating
failures so one broken store never stops the others, and aggregates the
outcomes into a summary.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Protocol, Union

from ..concurrency import run_with_progress
from ..exceptions import ValidationError
from ..models import (
    StoreSyncOutcome,
    SyncAllResult,
    SyncMode,
    SyncOptions,
    SyncResult,
    SyncSummary,
)
from ..storage.base import StoreDirectory, StoreFilter, StoreRecord

logger = logging.getLogger(__name__)


class Syncer(Protocol):
    async def sync(self, store: StoreRecord, options: SyncOptions) -> SyncResult: ...


class MultiStoreSyncOrchestrator:
    """Fans a sync out across stores.

    Stores run sequentially unless concurrency > 1, in which case they run
    in groups of that size. Outcomes always follow the directory order.
    """

    def __init__(
        self,
        directory: StoreDirectory,
        syncers: Mapping[SyncMode, Syncer],
        concurrency: int = 1,
    ):
        if concurrency < 1:
            raise ValidationError(f"concurrency must be at least 1, got {concurrency}")
        self.directory = directory
        self.syncers = dict(syncers)
        self.concurrency = concurrency

    async def sync_all(
        self,
        mode: Union[SyncMode, str] = SyncMode.FULL,
        options: Union[SyncOptions, Dict[str, Any], None] = None,
        store_filter: Optional[StoreFilter] = None,
    ) -> SyncAllResult:
        """Sync every selected store.

        Raises:
            ValidationError: bad options or unknown mode, before any store is contacted.
        """
        options = SyncOptions.parse(options)
        try:
            mode = SyncMode(mode)
        except ValueError as e:
            raise ValidationError(f"Unknown sync mode: {mode}") from e
        syncer = self.syncers.get(mode)
        if syncer is None:
            raise ValidationError(f"No syncer registered for mode '{mode.value}'")

        stores = await self.directory.list_stores(store_filter or StoreFilter())
        if not stores:
            logger.info("No stores matched the sync filter")
            return SyncAllResult(outcomes=[], summary=SyncSummary())

        logger.info(f"Starting {mode.value} sync for {len(stores)} stores")

        def report(done: int, total: int) -> None:
            logger.info(f"Synced {done}/{total} stores")

        outcomes = await run_with_progress(
            [lambda store=store: self._sync_store(syncer, store, options) for store in stores],
            batch_size=self.concurrency,
            on_progress=report,
        )

        summary = SyncSummary.from_outcomes(outcomes)
        logger.info(
            f"Sync completed for {summary.successful_stores}/{summary.total_stores} stores"
        )
        return SyncAllResult(outcomes=outcomes, summary=summary)

    async def _sync_store(
        self, syncer: Syncer, store: StoreRecord, options: SyncOptions
    ) -> StoreSyncOutcome:
        logger.info(f"Syncing store: {store.name}")
        try:
            result = await syncer.sync(store, options)
        except Exception as e:
            logger.error(f"Failed to sync store {store.name}: {e}")
            return StoreSyncOutcome(
                store_id=store.id, store_name=store.name, success=False, error=str(e)
            )
        return StoreSyncOutcome(
            store_id=store.id, store_name=store.name, success=True, result=result
        )

    async def close(self) -> None:
        """Close syncers that hold network resources."""
        for syncer in {id(s): s for s in self.syncers.values()}.values():
            close = getattr(syncer, "close", None)
            if close is not None:
                await close()


__all__ = ["Syncer", "MultiStoreSyncOrchestrator"]
