"""Sync machinery for the offline engine.

Architecture:
    ConnectivityMonitor / SyncScheduler → SyncOrchestrator → RemoteStore

Components:
- **SyncQueue**: Durable FIFO of pending mutations with a retry budget
- **SyncOrchestrator**: Runs passes (drain queue, push offline records,
  sweep cache), at most one at a time
- **ConnectivityMonitor**: Online/offline state fed by the host platform
- **SyncScheduler**: Fixed-interval timer for passes and connectivity probes
"""

from offlinesync.sync.connectivity import ConnectivityEvent, ConnectivityMonitor
from offlinesync.sync.coordinator import SyncOrchestrator
from offlinesync.sync.queue import SyncQueue
from offlinesync.sync.retry import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_REMOTE_TIMEOUT,
    NETWORK_EXCEPTIONS,
    call_with_timeout,
    describe_error,
    is_network_error,
)
from offlinesync.sync.scheduler import SyncScheduler
from offlinesync.sync.types import (
    ApplyFunction,
    DrainResult,
    NotOnline,
    OrchestratorState,
    OrchestratorStats,
    RemoteApplyFailed,
    RetryExhausted,
    StatusCallback,
    SyncError,
    SyncOperation,
    SyncPassResult,
    SyncQueueItem,
    SyncStatus,
)

__all__ = [
    # Retry functions and constants
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_REMOTE_TIMEOUT",
    "NETWORK_EXCEPTIONS",
    "call_with_timeout",
    "describe_error",
    "is_network_error",
    # Types and dataclasses
    "ApplyFunction",
    "DrainResult",
    "NotOnline",
    "RemoteApplyFailed",
    "RetryExhausted",
    "StatusCallback",
    "SyncError",
    "SyncOperation",
    "SyncPassResult",
    "SyncQueueItem",
    "SyncStatus",
    # Queue & Orchestrator
    "SyncQueue",
    "SyncOrchestrator",
    "OrchestratorState",
    "OrchestratorStats",
    # Connectivity & scheduling
    "ConnectivityEvent",
    "ConnectivityMonitor",
    "SyncScheduler",
]
