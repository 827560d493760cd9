"""Offline-first engine assembling storage, queue, connectivity and sync.

This module provides:
- OfflineEngine: The caller-facing API of the offline subsystem

Architecture:
    ConnectivityMonitor ──(online / visible)──┐
    SyncScheduler ──────(every 30s)───────────┼─► SyncOrchestrator ─► RemoteStore
    enqueue() while online ───────────────────┘        │
                                                       ├─ SyncQueue.drain()
                                                       ├─ OfflineRecordManager (unsynced)
                                                       └─ CacheManager.clear_expired_cache()

    All components share one LocalStore. If it cannot be opened, the engine
    falls back to an in-memory store and reports persistent=False in its
    status.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from offlinesync.cache import CacheManager, CacheStats
from offlinesync.core.config import EngineConfig
from offlinesync.records import OfflineRecordManager
from offlinesync.store import LocalStore, StorageUnavailable
from offlinesync.sync.connectivity import ConnectivityEvent, ConnectivityMonitor
from offlinesync.sync.coordinator import SyncOrchestrator
from offlinesync.sync.queue import SyncQueue
from offlinesync.sync.scheduler import SyncScheduler
from offlinesync.sync.types import SyncOperation, SyncPassResult, SyncQueueItem, SyncStatus

if TYPE_CHECKING:
    from collections.abc import Callable

    from offlinesync.remote import RemoteStore
    from offlinesync.sync.types import StatusCallback

logger = logging.getLogger(__name__)


class OfflineEngine:
    """Offline-first cache, mutation queue and sync engine.

    Usage:
        monitor = ConnectivityMonitor(initial_online=False)
        engine = OfflineEngine(remote, EngineConfig(db_path=path), connectivity=monitor)

        async with engine:
            engine.enqueue("update", "expenses", "e1", {"amount": 10})
            monitor.set_online(True)   # triggers a sync pass
            status = engine.get_sync_status()
    """

    def __init__(
        self,
        remote: RemoteStore | None = None,
        config: EngineConfig | None = None,
        *,
        connectivity: ConnectivityMonitor | None = None,
        store: LocalStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the engine.

        Args:
            remote: Remote document store (None: local-only, sync disabled).
            config: Engine configuration.
            connectivity: Connectivity monitor fed by the host platform.
            store: Pre-opened local store (default: opened from config.db_path).
            clock: Time source returning seconds since the epoch.
        """
        self._config = config or EngineConfig()
        self._remote = remote
        self._connectivity = connectivity or ConnectivityMonitor()
        self._store = store if store is not None else self._open_store()

        self._cache = CacheManager(self._store, self._config.cache_ttl, clock)
        self._queue = SyncQueue(
            self._store,
            max_retries=self._config.max_retries,
            clock=clock,
            on_enqueue=self._on_enqueue,
        )
        self._records = OfflineRecordManager(
            self._store,
            cache=self._cache,
            remote=remote,
            is_online=self._connectivity.is_online,
            remote_timeout=self._config.remote_timeout,
            cache_prefix=self._config.offline_cache_prefix,
            clock=clock,
        )
        self._orchestrator = SyncOrchestrator(
            self._store,
            self._queue,
            self._records,
            self._cache,
            remote,
            is_online=self._connectivity.is_online,
            remote_timeout=self._config.remote_timeout,
            max_record_retries=self._config.max_retries,
            clock=clock,
        )
        self._scheduler = SyncScheduler(
            self._orchestrator,
            self._connectivity,
            sync_interval=self._config.sync_interval,
            probe_interval=self._config.probe_interval,
        )

        self._status_listeners: list[StatusCallback] = []
        self._unsubscribers = [
            self._connectivity.subscribe(ConnectivityEvent.ONLINE, self._on_online),
            self._connectivity.subscribe(ConnectivityEvent.OFFLINE, self._publish_status),
            self._connectivity.subscribe(ConnectivityEvent.VISIBLE, self._on_visible),
        ]
        self._orchestrator.set_on_pass_complete(self._on_pass_complete)

    def _open_store(self) -> LocalStore:
        """Open the configured store, falling back to memory."""
        try:
            return LocalStore(self._config.db_path)
        except StorageUnavailable as e:
            logger.warning("Local store unavailable, continuing without persistence: %s", e)
            return LocalStore(None)

    # === Components ===

    @property
    def config(self) -> EngineConfig:
        """Get engine configuration."""
        return self._config

    @property
    def store(self) -> LocalStore:
        """Get the local store."""
        return self._store

    @property
    def cache(self) -> CacheManager:
        """Get the cache manager."""
        return self._cache

    @property
    def queue(self) -> SyncQueue:
        """Get the sync queue."""
        return self._queue

    @property
    def records(self) -> OfflineRecordManager:
        """Get the offline record manager."""
        return self._records

    @property
    def connectivity(self) -> ConnectivityMonitor:
        """Get the connectivity monitor."""
        return self._connectivity

    @property
    def orchestrator(self) -> SyncOrchestrator:
        """Get the sync orchestrator."""
        return self._orchestrator

    @property
    def scheduler(self) -> SyncScheduler:
        """Get the sync scheduler."""
        return self._scheduler

    # === Lifecycle ===

    async def start(self) -> None:
        """Start the periodic sync timer on the running event loop."""
        self._scheduler.start()
        if self._connectivity.is_online():
            self._orchestrator.request_sync()

    async def stop(self) -> None:
        """Stop the timer and wait for any pass still running."""
        self._scheduler.stop()
        await self._orchestrator.wait_idle()

    def close(self) -> None:
        """Detach from the connectivity monitor and close the store."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self._store.close()

    async def __aenter__(self) -> OfflineEngine:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.stop()
        self.close()

    # === Cache ===

    def cache_data(self, key: str, data: Any, ttl: float | None = None) -> None:
        """Cache a value (ttl in seconds, default from config)."""
        self._cache.cache_data(key, data, ttl)

    def get_cached_data(self, key: str) -> Any | None:
        """Get a cached value, or None on miss/expiry."""
        return self._cache.get_cached_data(key)

    def clear_expired_cache(self) -> int:
        """Delete expired cache entries now."""
        return self._cache.clear_expired_cache()

    def cache_stats(self) -> CacheStats:
        """Get cache hit/miss statistics."""
        return self._cache.stats

    # === Offline records ===

    def store_offline_data(self, collection: str, doc_id: str, payload: Any) -> None:
        """Store a document snapshot to be pushed on the next sync pass."""
        self._records.store_offline_data(collection, doc_id, payload)

    def get_offline_data(self, collection: str, doc_id: str) -> Any | None:
        """Get an offline document payload, or None."""
        return self._records.get_offline_data(collection, doc_id)

    def get_all_offline_data(self, collection: str) -> list[dict[str, Any]]:
        """Get every offline document of a collection, each with its "id"."""
        return self._records.get_all_offline_data(collection)

    def is_data_available_offline(self, collection: str) -> bool:
        """Check if a collection has offline documents."""
        return self._records.is_data_available_offline(collection)

    async def download_for_offline(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch a collection for offline reads.

        Raises:
            NotOnline: If called while disconnected.
        """
        return await self._records.download_for_offline(collection, filters)

    def clear_all_offline_data(self) -> None:
        """Remove every offline record and every queued mutation."""
        self._records.clear_all_offline_data()
        self._publish_status()

    # === Queue ===

    def enqueue(
        self,
        operation: SyncOperation | str,
        collection: str,
        doc_id: str,
        payload: Any = None,
    ) -> SyncQueueItem | None:
        """Record a mutation for the remote store.

        Returns:
            The queued item, or None if it could not be stored.
        """
        return self._queue.enqueue(operation, collection, doc_id, payload)

    add_to_sync_queue = enqueue

    def _on_enqueue(self, item: SyncQueueItem) -> None:
        """Try to sync right away when online."""
        if self._connectivity.is_online():
            self._orchestrator.request_sync()

    # === Sync ===

    async def trigger_sync(self) -> SyncPassResult | None:
        """Run a sync pass now (or once more after the pass in flight)."""
        return await self._orchestrator.trigger_sync()

    def _on_online(self) -> None:
        self._publish_status()
        self._orchestrator.request_sync()

    def _on_visible(self) -> None:
        self._orchestrator.request_sync()

    def _on_pass_complete(self, result: SyncPassResult) -> None:
        self._publish_status()

    # === Status ===

    def get_sync_status(self) -> SyncStatus:
        """Get a snapshot of connectivity, queue and sync state."""
        try:
            exhausted_total = self._store.get_exhausted_total()
        except StorageUnavailable as e:
            logger.error("Failed to read exhausted count: %s", e)
            exhausted_total = 0

        return SyncStatus(
            is_online=self._connectivity.is_online(),
            sync_in_progress=self._orchestrator.in_progress,
            queue_size=self._queue.size(),
            offline_data_size=self._records.count(),
            unsynced_records=self._records.count_unsynced(),
            last_sync_at=self._orchestrator.last_sync_at,
            exhausted_total=exhausted_total,
            last_error=self._orchestrator.last_error,
            persistent=self._store.is_persistent,
        )

    def add_status_listener(self, callback: StatusCallback) -> Callable[[], None]:
        """Call callback with a fresh status after passes and transitions.

        Returns:
            Function that removes the listener again.
        """
        self._status_listeners.append(callback)

        def remove() -> None:
            if callback in self._status_listeners:
                self._status_listeners.remove(callback)

        return remove

    def _publish_status(self) -> None:
        if not self._status_listeners:
            return
        status = self.get_sync_status()
        for callback in list(self._status_listeners):
            try:
                callback(status)
            except Exception:
                logger.exception("Error in status listener")
