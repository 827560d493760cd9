"""Durable sync queue of pending mutations.

This module provides:
- SyncQueue: FIFO queue of create/update/delete operations with a
  bounded retry budget per item

Items are stored in the LocalStore and replayed in insertion order by
drain(). Nothing is coalesced: two updates of the same document are two
remote calls, applied in the order they were enqueued.

Retry accounting:
    - Success: the item is deleted.
    - Failure: retry_count is incremented and the item stays queued.
    - retry_count reaching max_retries: the item is deleted and reported
      in DrainResult.exhausted. This is a data-loss boundary, so it is
      logged as an error and counted in the engine status.

    When an item fails, later items for the same document are deferred to
    the next drain so that a document never sees its operations out of order.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from offlinesync.core.config import DEFAULT_MAX_RETRIES
from offlinesync.store import StorageUnavailable, Table
from offlinesync.sync.retry import describe_error
from offlinesync.sync.types import (
    DrainResult,
    RetryExhausted,
    SyncOperation,
    SyncQueueItem,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from offlinesync.store import LocalStore
    from offlinesync.sync.types import ApplyFunction

logger = logging.getLogger(__name__)


class SyncQueue:
    """Persistent FIFO queue of mutations waiting for the remote store.

    Usage:
        queue = SyncQueue(store)
        queue.enqueue(SyncOperation.UPDATE, "expenses", "e1", {"amount": 10})

        result = await queue.drain(apply_to_remote)
        for exhausted in result.exhausted:
            ...
    """

    def __init__(
        self,
        store: LocalStore,
        max_retries: int = DEFAULT_MAX_RETRIES,
        clock: Callable[[], float] = time.time,
        on_enqueue: Callable[[SyncQueueItem], None] | None = None,
    ) -> None:
        """Initialize the sync queue.

        Args:
            store: Local store holding the queue table.
            max_retries: Failed attempts before an item is dropped.
            clock: Time source returning seconds since the epoch.
            on_enqueue: Called after each successful enqueue.
        """
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        self._store = store
        self._max_retries = max_retries
        self._clock = clock
        self._on_enqueue = on_enqueue

    @property
    def max_retries(self) -> int:
        """Get the retry budget per item."""
        return self._max_retries

    def set_on_enqueue(self, callback: Callable[[SyncQueueItem], None] | None) -> None:
        """Set callback for new items."""
        self._on_enqueue = callback

    def enqueue(
        self,
        operation: SyncOperation | str,
        collection: str,
        doc_id: str,
        payload: Any = None,
    ) -> SyncQueueItem | None:
        """Append a mutation to the queue.

        Args:
            operation: Mutation kind (SyncOperation or its value).
            collection: Target collection.
            doc_id: Target document.
            payload: Document data. Ignored for DELETE.

        Returns:
            The queued item, or None if it could not be stored or its
            payload is not JSON-serializable.

        Raises:
            ValueError: If operation is unknown or CREATE/UPDATE has no payload.
        """
        operation = SyncOperation(operation)
        if operation == SyncOperation.DELETE:
            payload = None
        elif payload is None:
            raise ValueError(f"{operation.value} of {collection}/{doc_id} needs a payload")

        item = SyncQueueItem(
            id=0,
            operation=operation,
            collection=collection,
            doc_id=doc_id,
            payload=payload,
            enqueued_at=self._clock(),
        )
        try:
            record = item.to_record()
        except (TypeError, ValueError) as e:
            logger.error(
                "Cannot queue %s %s/%s: %s", operation.value, collection, doc_id, e
            )
            return None
        try:
            item.id = self._store.put(Table.SYNC_QUEUE, record)
        except StorageUnavailable as e:
            logger.error(
                "Failed to queue %s %s/%s: %s", operation.value, collection, doc_id, e
            )
            return None

        logger.debug("Queued %r", item)

        if self._on_enqueue:
            self._on_enqueue(item)
        return item

    def list_pending(self) -> list[SyncQueueItem]:
        """List queued items in the order they will be applied."""
        try:
            records = self._store.scan(Table.SYNC_QUEUE)
        except StorageUnavailable as e:
            logger.error("Failed to list sync queue: %s", e)
            return []
        return [SyncQueueItem.from_record(record) for record in records]

    def size(self) -> int:
        """Get number of queued items (0 if storage is unavailable)."""
        try:
            return self._store.count(Table.SYNC_QUEUE)
        except StorageUnavailable as e:
            logger.error("Failed to count sync queue: %s", e)
            return 0

    def __len__(self) -> int:
        """Get number of queued items."""
        return self.size()

    def clear(self) -> int:
        """Remove all queued items.

        Returns:
            Number of items removed.
        """
        try:
            count = self._store.clear(Table.SYNC_QUEUE)
        except StorageUnavailable as e:
            logger.error("Failed to clear sync queue: %s", e)
            return 0
        logger.info("Cleared %d items from sync queue", count)
        return count

    async def drain(self, apply_fn: ApplyFunction) -> DrainResult:
        """Apply every queued item once, in insertion order.

        Only items present when the drain starts are processed.

        Args:
            apply_fn: Coroutine function (operation, collection, doc_id, payload).

        Returns:
            What happened to each item.

        Raises:
            StorageUnavailable: If the queue cannot be read or updated.
        """
        result = DrainResult()
        blocked: set[tuple[str, str]] = set()

        for record in self._store.scan(Table.SYNC_QUEUE):
            item = SyncQueueItem.from_record(record)

            if item.document_key in blocked:
                result.deferred.append(item)
                continue

            try:
                await apply_fn(item.operation, item.collection, item.doc_id, item.payload)
            except Exception as e:
                if not self._record_failure(item, e, result):
                    blocked.add(item.document_key)
                continue

            self._store.delete(Table.SYNC_QUEUE, item.id)
            result.succeeded.append(item)
            logger.debug("Applied %r", item)

        if result.attempted or result.deferred:
            logger.info(
                "Sync queue drained: %d applied, %d failed, %d exhausted, %d deferred",
                len(result.succeeded),
                len(result.failed),
                len(result.exhausted),
                len(result.deferred),
            )
        return result

    def _record_failure(
        self,
        item: SyncQueueItem,
        error: Exception,
        result: DrainResult,
    ) -> bool:
        """Count a failed attempt and drop the item once its budget is spent.

        Returns:
            True if the item was dropped.
        """
        item.retry_count += 1
        item.last_error = describe_error(error)

        if item.retry_count >= self._max_retries:
            self._store.delete(Table.SYNC_QUEUE, item.id)
            result.exhausted.append(RetryExhausted(item, item.last_error))
            logger.error(
                "Max retries reached, dropping %s %s/%s (id=%d): %s",
                item.operation.value,
                item.collection,
                item.doc_id,
                item.id,
                item.last_error,
            )
            return True

        self._store.update(
            Table.SYNC_QUEUE,
            item.id,
            retry_count=item.retry_count,
            last_error=item.last_error,
        )
        result.failed.append(item)
        logger.warning(
            "Attempt %d/%d failed for %s %s/%s: %s",
            item.retry_count,
            self._max_retries,
            item.operation.value,
            item.collection,
            item.doc_id,
            item.last_error,
        )
        return False
