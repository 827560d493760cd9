"""Core module - Shared configuration and types."""

from offlinesync.core.config import (
    DEFAULT_CACHE_TTL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REMOTE_TIMEOUT,
    DEFAULT_SYNC_INTERVAL,
    EngineConfig,
    ServerConfig,
)
from offlinesync.core.types import SyncState

__all__ = [
    # Config
    "DEFAULT_CACHE_TTL",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_REMOTE_TIMEOUT",
    "DEFAULT_SYNC_INTERVAL",
    "EngineConfig",
    "ServerConfig",
    # Types
    "SyncState",
]
