"""Offline snapshots of remote documents.

This module provides:
- OfflineRecord: A locally persisted document with its sync flag
- OfflineRecordManager: Store, read, download and reconcile offline records

There is one record per (collection, doc_id); the last write wins. Records
written locally start with synced=False and are pushed to the remote store
by the sync orchestrator. Records fetched by download_for_offline() are
already synced.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from offlinesync.core.config import DEFAULT_REMOTE_TIMEOUT
from offlinesync.store import StorageUnavailable, Table
from offlinesync.sync.retry import call_with_timeout
from offlinesync.sync.types import NotOnline

if TYPE_CHECKING:
    from collections.abc import Callable

    from offlinesync.cache import CacheManager
    from offlinesync.remote import RemoteStore
    from offlinesync.store import LocalStore

logger = logging.getLogger(__name__)


@dataclass
class OfflineRecord:
    """A locally stored document snapshot.

    Attributes:
        collection: Collection name.
        doc_id: Document id within the collection.
        payload: Document data.
        timestamp: When the record was last written.
        synced: Whether the remote store has confirmed this version.
        sync_attempts: Failed reconciliation attempts for this version.
        version: Write counter of the stored record, bumped by every store.
    """

    collection: str
    doc_id: str
    payload: Any
    timestamp: float
    synced: bool = False
    sync_attempts: int = 0
    version: int = 0

    @property
    def key(self) -> tuple[str, str]:
        """Get the (collection, doc_id) primary key."""
        return (self.collection, self.doc_id)

    def to_record(self) -> dict[str, Any]:
        """Convert to a store record.

        The version is left out; the store assigns the next one on write.

        Raises:
            TypeError: If the payload is not JSON-serializable.
            ValueError: If the payload contains a circular reference.
        """
        return {
            "collection": self.collection,
            "doc_id": self.doc_id,
            "payload": json.dumps(self.payload),
            "timestamp": self.timestamp,
            "synced": int(self.synced),
            "sync_attempts": self.sync_attempts,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> OfflineRecord:
        """Create OfflineRecord from a store record."""
        return cls(
            collection=record["collection"],
            doc_id=record["doc_id"],
            payload=json.loads(record["payload"]),
            timestamp=record["timestamp"],
            synced=bool(record["synced"]),
            sync_attempts=record["sync_attempts"],
            version=record.get("version", 0),
        )

    def to_offline_dict(self) -> dict[str, Any]:
        """Flatten the payload into a dict carrying the document id."""
        if isinstance(self.payload, dict):
            return {"id": self.doc_id, **self.payload}
        return {"id": self.doc_id, "data": self.payload}


class OfflineRecordManager:
    """Typed view over the offline-record table."""

    def __init__(
        self,
        store: LocalStore,
        cache: CacheManager | None = None,
        remote: RemoteStore | None = None,
        is_online: Callable[[], bool] = lambda: True,
        remote_timeout: float = DEFAULT_REMOTE_TIMEOUT,
        cache_prefix: str = "offline_",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the manager.

        Args:
            store: Local store holding the offline-record table.
            cache: Cache warmed by download_for_offline().
            remote: Remote store queried by download_for_offline().
            is_online: Returns the published connectivity status.
            remote_timeout: Timeout in seconds for remote queries.
            cache_prefix: Prefix of the cache key warmed per collection.
            clock: Time source returning seconds since the epoch.
        """
        self._store = store
        self._cache = cache
        self._remote = remote
        self._is_online = is_online
        self._remote_timeout = remote_timeout
        self._cache_prefix = cache_prefix
        self._clock = clock

    def store_offline_data(
        self,
        collection: str,
        doc_id: str,
        payload: Any,
        *,
        synced: bool = False,
    ) -> None:
        """Store (or overwrite) a document snapshot.

        Args:
            collection: Collection name.
            doc_id: Document id.
            payload: Document data (JSON-serializable). Other payloads are
                logged and not stored.
            synced: Whether the remote store already has this version.
        """
        record = OfflineRecord(
            collection=collection,
            doc_id=doc_id,
            payload=payload,
            timestamp=self._clock(),
            synced=synced,
        )
        try:
            row = record.to_record()
        except (TypeError, ValueError) as e:
            logger.error("Cannot store offline data %s/%s: %s", collection, doc_id, e)
            return
        try:
            self._store.put(Table.OFFLINE_DATA, row)
        except StorageUnavailable as e:
            logger.error("Failed to store offline data %s/%s: %s", collection, doc_id, e)
            return
        logger.debug("Data stored offline: %s/%s (synced=%s)", collection, doc_id, synced)

    def get_record(self, collection: str, doc_id: str) -> OfflineRecord | None:
        """Get a full offline record, or None if absent or unreadable."""
        try:
            record = self._store.get(Table.OFFLINE_DATA, (collection, doc_id))
        except StorageUnavailable as e:
            logger.error("Failed to get offline data %s/%s: %s", collection, doc_id, e)
            return None
        return OfflineRecord.from_record(record) if record else None

    def get_offline_data(self, collection: str, doc_id: str) -> Any | None:
        """Get the payload of an offline document, or None."""
        record = self.get_record(collection, doc_id)
        return record.payload if record else None

    def get_all_offline_data(self, collection: str) -> list[dict[str, Any]]:
        """Get every offline document of a collection, each with its "id"."""
        try:
            records = self._store.get_all_by_index(Table.OFFLINE_DATA, collection)
        except StorageUnavailable as e:
            logger.error("Failed to get offline data for %s: %s", collection, e)
            return []
        return [OfflineRecord.from_record(r).to_offline_dict() for r in records]

    def is_data_available_offline(self, collection: str) -> bool:
        """Check if at least one document of the collection is stored."""
        try:
            return bool(self._store.get_all_by_index(Table.OFFLINE_DATA, collection))
        except StorageUnavailable as e:
            logger.error("Failed to check offline availability of %s: %s", collection, e)
            return False

    async def download_for_offline(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch a collection from the remote store for offline reads.

        Every fetched document is stored as a synced offline record and the
        whole list is cached under "<cache_prefix><collection>".

        Args:
            collection: Collection name.
            filters: Optional {"where": {"field", "operator", "value"}} filter.

        Returns:
            Fetched documents, each with its "id".

        Raises:
            NotOnline: If called while disconnected.
            RuntimeError: If no remote store is configured.
        """
        if not self._is_online():
            raise NotOnline(f"Cannot download {collection} for offline use while offline")
        if self._remote is None:
            raise RuntimeError("No remote store configured")

        documents = await call_with_timeout(
            self._remote.remote_query(collection, filters),
            timeout=self._remote_timeout,
        )
        data = [document.to_offline_dict() for document in documents]

        for document in documents:
            self.store_offline_data(collection, document.doc_id, document.data, synced=True)

        if self._cache is not None:
            self._cache.cache_data(f"{self._cache_prefix}{collection}", data)

        logger.info("Data downloaded for offline use: %s (%d documents)", collection, len(data))
        return data

    # === Reconciliation ===

    def list_unsynced(self) -> list[OfflineRecord]:
        """List records the remote store has not confirmed yet."""
        return [
            OfflineRecord.from_record(r)
            for r in self._store.scan(Table.OFFLINE_DATA, {"synced": 0})
        ]

    def mark_synced(self, record: OfflineRecord) -> bool:
        """Flag a record as synced if it was not rewritten meanwhile.

        Returns:
            True if the stored record was flagged.
        """
        updated = self._store.update(
            Table.OFFLINE_DATA,
            record.key,
            match={"version": record.version},
            synced=1,
            sync_attempts=0,
        )
        if not updated:
            logger.debug(
                "Offline record %s/%s changed during sync, keeping it unsynced",
                record.collection,
                record.doc_id,
            )
        return updated

    def record_sync_failure(self, record: OfflineRecord) -> int:
        """Count a failed reconciliation attempt.

        Returns:
            Attempts made so far for this record.
        """
        record.sync_attempts += 1
        self._store.update(
            Table.OFFLINE_DATA,
            record.key,
            match={"version": record.version},
            sync_attempts=record.sync_attempts,
        )
        return record.sync_attempts

    # === Counts and clearing ===

    def count(self) -> int:
        """Get number of stored records (0 if storage is unavailable)."""
        try:
            return self._store.count(Table.OFFLINE_DATA)
        except StorageUnavailable as e:
            logger.error("Failed to count offline data: %s", e)
            return 0

    def count_unsynced(self) -> int:
        """Get number of records waiting for reconciliation."""
        try:
            return len(self._store.scan(Table.OFFLINE_DATA, {"synced": 0}))
        except StorageUnavailable as e:
            logger.error("Failed to count unsynced offline data: %s", e)
            return 0

    def clear_all_offline_data(self) -> None:
        """Remove every offline record and every queued mutation.

        This is a deliberate destructive action: pending mutations are lost.
        """
        try:
            removed = self._store.clear_many([Table.OFFLINE_DATA, Table.SYNC_QUEUE])
        except StorageUnavailable as e:
            logger.error("Failed to clear offline data: %s", e)
            return
        logger.info(
            "All offline data cleared (%d records, %d queued items)",
            removed[Table.OFFLINE_DATA],
            removed[Table.SYNC_QUEUE],
        )
