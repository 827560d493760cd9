"""Shared types and dataclasses for sync operations.

This module provides:
- SyncError, NotOnline, RemoteApplyFailed, RetryExhausted: Exception classes
- SyncOperation: Kinds of queued mutations
- SyncQueueItem: A pending mutation in the sync queue
- DrainResult: Outcome of draining the queue once
- SyncPassResult: Outcome of one orchestrator pass
- OrchestratorState, OrchestratorStats: Orchestrator state
- SyncStatus: Snapshot reported to callers
- Type aliases for callbacks
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum, IntEnum, auto
from typing import Any

from offlinesync.core.types import SyncState


class SyncError(Exception):
    """Base exception for sync errors."""


class NotOnline(SyncError):
    """An operation that needs connectivity was called while offline."""


class RemoteApplyFailed(SyncError):
    """Applying a mutation to the remote store failed or timed out.

    Attributes:
        collection: Target collection
        doc_id: Target document
        cause: Underlying exception
    """

    def __init__(self, collection: str, doc_id: str, cause: BaseException) -> None:
        self.collection = collection
        self.doc_id = doc_id
        self.cause = cause
        super().__init__(f"Remote apply failed for {collection}/{doc_id}: {cause!r}")


class RetryExhausted(SyncError):
    """A queued item reached the retry limit and was dropped.

    Instances are reported in DrainResult.exhausted rather than raised.

    Attributes:
        item: The dropped queue item (with its final retry count)
        last_error: Description of the last failure
    """

    def __init__(self, item: SyncQueueItem, last_error: str | None) -> None:
        self.item = item
        self.last_error = last_error
        super().__init__(
            f"Dropped {item.operation.value} {item.collection}/{item.doc_id} "
            f"after {item.retry_count} attempts: {last_error}"
        )


class SyncOperation(str, Enum):
    """Kind of mutation recorded in the sync queue."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class SyncQueueItem:
    """A pending mutation.

    Attributes:
        id: Store-assigned id, increasing with insertion order
        operation: Mutation kind
        collection: Target collection
        doc_id: Target document
        payload: Document data (None only for DELETE)
        enqueued_at: Unix timestamp of the enqueue
        retry_count: Failed apply attempts so far
        last_error: Description of the last failure, if any
    """

    id: int
    operation: SyncOperation
    collection: str
    doc_id: str
    payload: Any
    enqueued_at: float
    retry_count: int = 0
    last_error: str | None = None

    @property
    def document_key(self) -> tuple[str, str]:
        """Get the (collection, doc_id) pair this item targets."""
        return (self.collection, self.doc_id)

    def to_record(self) -> dict[str, Any]:
        """Convert to a store record (id omitted for new items)."""
        record: dict[str, Any] = {
            "operation": self.operation.value,
            "collection": self.collection,
            "doc_id": self.doc_id,
            "payload": None if self.payload is None else json.dumps(self.payload),
            "enqueued_at": self.enqueued_at,
            "retry_count": self.retry_count,
            "last_error": self.last_error,
        }
        if self.id:
            record["id"] = self.id
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> SyncQueueItem:
        """Create SyncQueueItem from a store record."""
        payload = record["payload"]
        return cls(
            id=record["id"],
            operation=SyncOperation(record["operation"]),
            collection=record["collection"],
            doc_id=record["doc_id"],
            payload=json.loads(payload) if payload is not None else None,
            enqueued_at=record["enqueued_at"],
            retry_count=record["retry_count"],
            last_error=record["last_error"],
        )

    def __repr__(self) -> str:
        """Human-readable representation."""
        return (
            f"SyncQueueItem(#{self.id} {self.operation.name} "
            f"{self.collection}/{self.doc_id}, retries={self.retry_count})"
        )


# Type alias for the function drain() applies each item with
ApplyFunction = Callable[[SyncOperation, str, str, Any], Awaitable[None]]


@dataclass
class DrainResult:
    """Result of draining the sync queue once.

    Attributes:
        succeeded: Items applied and removed
        failed: Items that failed and stay queued with a higher retry count
        exhausted: Items dropped at the retry limit
        deferred: Items skipped because an earlier item for the same
            document failed in this drain
    """

    succeeded: list[SyncQueueItem] = field(default_factory=list)
    failed: list[SyncQueueItem] = field(default_factory=list)
    exhausted: list[RetryExhausted] = field(default_factory=list)
    deferred: list[SyncQueueItem] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        """Number of items an apply was attempted for."""
        return len(self.succeeded) + len(self.failed) + len(self.exhausted)


@dataclass
class SyncPassResult:
    """Result of one sync orchestrator pass."""

    drain: DrainResult = field(default_factory=DrainResult)
    records_synced: list[tuple[str, str]] = field(default_factory=list)
    records_failed: list[tuple[str, str]] = field(default_factory=list)
    expired_cache_entries: int = 0
    started_at: float = 0.0
    finished_at: float = 0.0
    error: str | None = None

    @property
    def ok(self) -> bool:
        """Check if the pass ran to completion without losing data."""
        return self.error is None and not self.drain.exhausted


class OrchestratorState(IntEnum):
    """State of the sync orchestrator."""

    IDLE = auto()
    SYNCING = auto()


@dataclass
class OrchestratorStats:
    """Statistics for the sync orchestrator."""

    passes_completed: int = 0
    passes_failed: int = 0
    triggers_coalesced: int = 0
    items_applied: int = 0
    items_failed: int = 0
    items_exhausted: int = 0
    records_synced: int = 0


@dataclass
class SyncStatus:
    """Snapshot of engine state for callers.

    Attributes:
        is_online: Published connectivity status
        sync_in_progress: Whether a pass is running
        queue_size: Pending mutations
        offline_data_size: Stored offline records
        unsynced_records: Offline records not yet confirmed remotely
        last_sync_at: Unix timestamp of the last completed pass
        exhausted_total: Queue items ever dropped at the retry limit
        last_error: Failure of the last pass, if any
        persistent: Whether storage survives restarts
    """

    is_online: bool
    sync_in_progress: bool
    queue_size: int
    offline_data_size: int
    unsynced_records: int = 0
    last_sync_at: float | None = None
    exhausted_total: int = 0
    last_error: str | None = None
    persistent: bool = True

    @property
    def state(self) -> SyncState:
        """Derive the overall sync state."""
        if not self.is_online:
            return SyncState.OFFLINE
        if self.sync_in_progress:
            return SyncState.SYNCING
        if self.last_error:
            return SyncState.ERROR
        return SyncState.IDLE

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary."""
        return {
            "state": self.state.value,
            "is_online": self.is_online,
            "sync_in_progress": self.sync_in_progress,
            "queue_size": self.queue_size,
            "offline_data_size": self.offline_data_size,
            "unsynced_records": self.unsynced_records,
            "last_sync_at": self.last_sync_at,
            "exhausted_total": self.exhausted_total,
            "last_error": self.last_error,
            "persistent": self.persistent,
        }


# Type alias for status listeners
StatusCallback = Callable[[SyncStatus], None]
