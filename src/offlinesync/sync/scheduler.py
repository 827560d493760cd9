"""Scheduler for periodic sync passes.

This module provides:
- SyncScheduler: Fixed-interval sync timer and optional connectivity probe
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from offlinesync.core.config import DEFAULT_SYNC_INTERVAL

if TYPE_CHECKING:
    from offlinesync.sync.connectivity import ConnectivityMonitor
    from offlinesync.sync.coordinator import SyncOrchestrator

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Runs a sync pass every sync_interval seconds while online.

    When probe_interval is set and the monitor has a probe, connectivity is
    also polled on that interval.
    """

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        connectivity: ConnectivityMonitor,
        sync_interval: float = DEFAULT_SYNC_INTERVAL,
        probe_interval: float | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            orchestrator: Orchestrator whose passes are triggered.
            connectivity: Monitor consulted (and probed) before each pass.
            sync_interval: Seconds between sync passes.
            probe_interval: Seconds between connectivity probes (None = off).
        """
        self._orchestrator = orchestrator
        self._connectivity = connectivity
        self._sync_interval = sync_interval
        self._probe_interval = probe_interval
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        """Check if the scheduler is started."""
        return self._scheduler is not None

    async def _sync_job(self) -> None:
        """Job function for the periodic sync pass.

        A tick during a running pass is folded into that pass's rerun.
        """
        if not self._connectivity.is_online():
            return
        try:
            await self._orchestrator.trigger_sync()
        except Exception:
            logger.exception("Error during scheduled sync pass")

    async def _probe_job(self) -> None:
        """Job function for the connectivity probe."""
        await self._connectivity.check_now()

    def start(self) -> None:
        """Start the scheduler on the running event loop."""
        if self._scheduler is not None:
            return  # Already running

        self._scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop())

        self._scheduler.add_job(
            self._sync_job,
            trigger=IntervalTrigger(seconds=self._sync_interval),
            id="periodic_sync",
            name="Periodic sync pass",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        if self._probe_interval is not None and self._connectivity.has_probe:
            self._scheduler.add_job(
                self._probe_job,
                trigger=IntervalTrigger(seconds=self._probe_interval),
                id="connectivity_probe",
                name="Connectivity probe",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )

        self._scheduler.start()
        logger.info("Sync scheduler started (every %.0fs)", self._sync_interval)

    def stop(self) -> None:
        """Stop the scheduler."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Sync scheduler stopped")

    def job_ids(self) -> list[str]:
        """List ids of scheduled jobs."""
        if self._scheduler is None:
            return []
        return [job.id for job in self._scheduler.get_jobs()]
