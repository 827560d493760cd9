"""Sync orchestrator for replaying offline work against the remote store.

This module provides:
- SyncOrchestrator: Runs sync passes, at most one at a time

A pass:
    1. Returns immediately if offline or if a pass is already running
    2. Drains the sync queue against the remote store
    3. Pushes offline records with synced=False (create/overwrite)
    4. Sweeps expired cache entries
    5. Records last_sync_at

Re-entry:
    | Trigger arrives while | Action                                   |
    |-----------------------|------------------------------------------|
    | IDLE                  | Start a pass                             |
    | SYNCING               | Remember it; run one more pass afterward |

    Any number of triggers during a pass collapse into a single extra pass.

Failures are isolated per item. A pass where every remote call failed with
a network error is reported as a total failure and retried on the next tick.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

from offlinesync.core.config import DEFAULT_MAX_RETRIES, DEFAULT_REMOTE_TIMEOUT
from offlinesync.store import StorageUnavailable
from offlinesync.sync.retry import call_with_timeout, describe_error, is_network_error
from offlinesync.sync.types import (
    OrchestratorState,
    OrchestratorStats,
    RemoteApplyFailed,
    SyncOperation,
    SyncPassResult,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from offlinesync.cache import CacheManager
    from offlinesync.records import OfflineRecordManager
    from offlinesync.remote import RemoteStore
    from offlinesync.store import LocalStore
    from offlinesync.sync.queue import SyncQueue

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Drives sync passes and guarantees a single pass in flight.

    Usage:
        orchestrator = SyncOrchestrator(store, queue, records, cache, remote, monitor.is_online)

        result = await orchestrator.trigger_sync()   # run a pass now
        orchestrator.request_sync()                  # fire-and-forget
        await orchestrator.wait_idle()
    """

    def __init__(
        self,
        store: LocalStore,
        queue: SyncQueue,
        records: OfflineRecordManager,
        cache: CacheManager,
        remote: RemoteStore | None,
        is_online: Callable[[], bool],
        remote_timeout: float = DEFAULT_REMOTE_TIMEOUT,
        max_record_retries: int = DEFAULT_MAX_RETRIES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: Local store (for last_sync_at and the exhausted counter).
            queue: Sync queue to drain.
            records: Offline records to reconcile.
            cache: Cache to sweep.
            remote: Remote document store (None disables syncing).
            is_online: Returns the published connectivity status.
            remote_timeout: Timeout in seconds for each remote call.
            max_record_retries: Attempts after which an unsynced record is
                reported as stuck (it keeps being retried).
            clock: Time source returning seconds since the epoch.
        """
        self._store = store
        self._queue = queue
        self._records = records
        self._cache = cache
        self._remote = remote
        self._is_online = is_online
        self._remote_timeout = remote_timeout
        self._max_record_retries = max_record_retries
        self._clock = clock

        # State
        self._state = OrchestratorState.IDLE
        self._rerun_requested = False
        self._last_result: SyncPassResult | None = None
        self._last_error: str | None = None
        self._last_sync_at: float | None = None
        try:
            self._last_sync_at = store.get_last_sync_at()
        except StorageUnavailable as e:
            logger.warning("Cannot read last sync time: %s", e)

        # Background passes started by request_sync()
        self._tasks: set[asyncio.Task[SyncPassResult | None]] = set()

        # Cleared while any pass runs, whoever started it
        self._idle = asyncio.Event()
        self._idle.set()

        # Stats
        self._stats = OrchestratorStats()

        # Callbacks
        self._on_pass_complete: Callable[[SyncPassResult], None] | None = None

    @property
    def state(self) -> OrchestratorState:
        """Get current orchestrator state."""
        return self._state

    @property
    def in_progress(self) -> bool:
        """Check if a pass is running."""
        return self._state == OrchestratorState.SYNCING

    @property
    def stats(self) -> OrchestratorStats:
        """Get orchestrator statistics."""
        return self._stats

    @property
    def last_result(self) -> SyncPassResult | None:
        """Get the result of the last completed pass."""
        return self._last_result

    @property
    def last_error(self) -> str | None:
        """Get the failure reported by the last pass, if any."""
        return self._last_error

    @property
    def last_sync_at(self) -> float | None:
        """Get timestamp of the last pass that ran to completion."""
        return self._last_sync_at

    def set_on_pass_complete(self, callback: Callable[[SyncPassResult], None]) -> None:
        """Set callback for pass completion."""
        self._on_pass_complete = callback

    # === Remote application ===

    async def apply_to_remote(
        self,
        operation: SyncOperation,
        collection: str,
        doc_id: str,
        payload: Any,
    ) -> None:
        """Apply one mutation to the remote store.

        Raises:
            RemoteApplyFailed: If the call failed or timed out.
        """
        if self._remote is None:
            raise RuntimeError("No remote store configured")

        if operation == SyncOperation.CREATE:
            call = self._remote.remote_create(collection, doc_id, payload)
        elif operation == SyncOperation.UPDATE:
            call = self._remote.remote_update(collection, doc_id, payload)
        elif operation == SyncOperation.DELETE:
            call = self._remote.remote_delete(collection, doc_id)
        else:
            raise ValueError(f"Unknown operation: {operation}")

        try:
            await call_with_timeout(call, timeout=self._remote_timeout)
        except Exception as e:
            raise RemoteApplyFailed(collection, doc_id, e) from e

        logger.debug("Sync item processed: %s %s/%s", operation.value, collection, doc_id)

    # === Triggers ===

    async def trigger_sync(self) -> SyncPassResult | None:
        """Run a sync pass now, or schedule one after the pass in flight.

        Returns:
            Result of the last pass run by this call, or None if no pass
            ran (offline, no remote store, or coalesced into the running pass).
        """
        if self._remote is None:
            logger.debug("Sync skipped: no remote store configured")
            return None
        if not self._is_online():
            logger.debug("Sync skipped: offline")
            return None
        if self._state == OrchestratorState.SYNCING:
            self._rerun_requested = True
            self._stats.triggers_coalesced += 1
            logger.debug("Sync already in progress, will run again afterwards")
            return None

        self._state = OrchestratorState.SYNCING
        self._idle.clear()
        result: SyncPassResult | None = None
        try:
            while True:
                self._rerun_requested = False
                result = await self._run_pass()
                if not (self._rerun_requested and self._is_online()):
                    break
                logger.debug("Running coalesced sync pass")
        finally:
            self._state = OrchestratorState.IDLE
            self._rerun_requested = False
            self._idle.set()
        return result

    def request_sync(self) -> asyncio.Task[SyncPassResult | None] | None:
        """Ask for a pass without waiting for it.

        Safe to call from synchronous callbacks running on the event loop.

        Returns:
            The task running the pass, or None if nothing was started.
        """
        if self._state == OrchestratorState.SYNCING:
            if self._is_online():
                self._rerun_requested = True
                self._stats.triggers_coalesced += 1
            return None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, leaving sync to the periodic timer")
            return None

        task = loop.create_task(self.trigger_sync(), name="offlinesync-pass")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait until no pass is running or scheduled by request_sync()."""
        while self._tasks or not self._idle.is_set():
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await self._idle.wait()

    # === Pass ===

    async def _run_pass(self) -> SyncPassResult:
        """Run one complete pass."""
        result = SyncPassResult(started_at=self._clock())
        remote_errors: list[BaseException] = []
        logger.info("Starting offline data sync")

        async def apply(
            operation: SyncOperation, collection: str, doc_id: str, payload: Any
        ) -> None:
            try:
                await self.apply_to_remote(operation, collection, doc_id, payload)
            except RemoteApplyFailed as e:
                remote_errors.append(e.cause)
                raise

        try:
            result.drain = await self._queue.drain(apply)
            await self._reconcile_records(result, remote_errors)
            result.expired_cache_entries = self._cache.clear_expired_cache()
        except Exception as e:
            result.error = describe_error(e)
            logger.exception("Sync pass failed")

        succeeded = bool(result.drain.succeeded or result.records_synced)
        if (
            result.error is None
            and remote_errors
            and not succeeded
            and all(is_network_error(e) for e in remote_errors)
        ):
            result.error = f"Remote store unreachable: {describe_error(remote_errors[-1])}"
            logger.warning("Sync pass failed, will retry on next tick: %s", result.error)

        result.finished_at = self._clock()
        self._finish_pass(result)
        return result

    async def _reconcile_records(
        self,
        result: SyncPassResult,
        remote_errors: list[BaseException],
    ) -> None:
        """Push every unsynced offline record (create/overwrite)."""
        for record in self._records.list_unsynced():
            try:
                await self.apply_to_remote(
                    SyncOperation.CREATE, record.collection, record.doc_id, record.payload
                )
            except RemoteApplyFailed as e:
                remote_errors.append(e.cause)
                attempts = self._records.record_sync_failure(record)
                result.records_failed.append(record.key)
                if attempts == self._max_record_retries:
                    logger.error(
                        "Offline record %s/%s still unsynced after %d attempts: %s",
                        record.collection,
                        record.doc_id,
                        attempts,
                        describe_error(e.cause),
                    )
                else:
                    logger.warning(
                        "Failed to sync offline item %s/%s: %s",
                        record.collection,
                        record.doc_id,
                        describe_error(e.cause),
                    )
                continue

            if self._records.mark_synced(record):
                result.records_synced.append(record.key)

    def _finish_pass(self, result: SyncPassResult) -> None:
        """Update counters, persisted state and listeners after a pass."""
        drain = result.drain
        self._stats.items_applied += len(drain.succeeded)
        self._stats.items_failed += len(drain.failed)
        self._stats.items_exhausted += len(drain.exhausted)
        self._stats.records_synced += len(result.records_synced)

        try:
            self._store.add_exhausted(len(drain.exhausted))
            if result.error is None:
                self._store.set_last_sync_at(result.finished_at)
        except StorageUnavailable as e:
            logger.warning("Cannot persist sync state: %s", e)

        if result.error is None:
            self._stats.passes_completed += 1
            self._last_sync_at = result.finished_at
            logger.info(
                "Offline data sync completed in %.2fs",
                result.finished_at - result.started_at,
            )
        else:
            self._stats.passes_failed += 1

        if result.error is not None:
            self._last_error = result.error
        elif drain.exhausted:
            self._last_error = f"{len(drain.exhausted)} queued item(s) dropped after retries"
        else:
            self._last_error = None

        self._last_result = result
        if self._on_pass_complete:
            try:
                self._on_pass_complete(result)
            except Exception:
                logger.exception("Error in pass completion callback")
