"""
Scheduler for periodic multi-store syncs.

Uses APScheduler to run sync_all on a fixed interval (modified-only by
default).
"""

import asyncio
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .config import EngineConfig, SyncSettings
from .models import SyncAllResult, SyncMode, SyncOptions
from .sync.orchestrator import MultiStoreSyncOrchestrator

logger = logging.getLogger(__name__)

JOB_ID = "catalog_sync_all"


class SyncScheduler:
    """Runs sync_all for every matching store on an interval."""

    def __init__(
        self,
        orchestrator: MultiStoreSyncOrchestrator,
        settings: Optional[SyncSettings] = None,
    ):
        self.orchestrator = orchestrator
        self.settings = settings or SyncSettings()
        self.scheduler = AsyncIOScheduler()

    @property
    def mode(self) -> SyncMode:
        return SyncMode.MODIFIED_ONLY if self.settings.modified_only else SyncMode.FULL

    def start(self):
        """Start the scheduler."""
        self.scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(seconds=self.settings.interval_sec),
            id=JOB_ID,
            name="Catalog Sync All Stores",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.start()
        logger.info(
            f"Sync scheduler started. Running {self.mode.value} sync "
            f"every {self.settings.interval_sec}s"
        )

    async def stop(self):
        """Stop the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        await self.orchestrator.close()
        logger.info("Sync scheduler stopped")

    async def run_once(self) -> Optional[SyncAllResult]:
        """One scheduled sync. Errors are logged, never raised."""
        try:
            result = await self.orchestrator.sync_all(
                mode=self.mode,
                options=SyncOptions(
                    page_size=self.settings.page_size,
                    max_pages=self.settings.max_pages,
                ),
            )
        except Exception as e:
            logger.exception(f"Scheduled sync failed: {e}")
            return None

        logger.info(f"Scheduled sync summary: {result.summary.to_dict()}")
        return result


# CLI entry point
async def run_scheduler(config: EngineConfig, orchestrator: MultiStoreSyncOrchestrator):
    """Run the scheduler until interrupted."""
    scheduler = SyncScheduler(orchestrator, config.sync)

    try:
        scheduler.start()
        while True:
            await asyncio.sleep(3600)
    finally:
        await scheduler.stop()


__all__ = ["SyncScheduler", "run_scheduler", "JOB_ID"]
