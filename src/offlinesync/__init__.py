"""offlinesync - Offline-first cache, mutation queue and sync engine."""

__version__ = "0.1.0"

from offlinesync.cache import CacheEntry, CacheManager, CacheStats
from offlinesync.core.config import EngineConfig, ServerConfig
from offlinesync.core.types import SyncState
from offlinesync.engine import OfflineEngine
from offlinesync.records import OfflineRecord, OfflineRecordManager
from offlinesync.remote import HTTPRemoteStore, RemoteDocument, RemoteStore
from offlinesync.store import LocalStore, StorageUnavailable, Table
from offlinesync.sync import (
    ConnectivityEvent,
    ConnectivityMonitor,
    DrainResult,
    NotOnline,
    RemoteApplyFailed,
    RetryExhausted,
    SyncOperation,
    SyncOrchestrator,
    SyncQueue,
    SyncQueueItem,
    SyncStatus,
)

__all__ = [
    "__version__",
    # Engine
    "OfflineEngine",
    "EngineConfig",
    "ServerConfig",
    # Storage
    "LocalStore",
    "StorageUnavailable",
    "Table",
    "CacheEntry",
    "CacheManager",
    "CacheStats",
    "OfflineRecord",
    "OfflineRecordManager",
    # Sync
    "ConnectivityEvent",
    "ConnectivityMonitor",
    "DrainResult",
    "NotOnline",
    "RemoteApplyFailed",
    "RetryExhausted",
    "SyncOperation",
    "SyncOrchestrator",
    "SyncQueue",
    "SyncQueueItem",
    "SyncState",
    "SyncStatus",
    # Remote
    "HTTPRemoteStore",
    "RemoteDocument",
    "RemoteStore",
]
