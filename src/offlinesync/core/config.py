"""Shared configuration classes for offlinesync.

This module defines:
- EngineConfig: Tunables for the offline engine (storage, TTL, retries, timers)
- ServerConfig: Connection settings for the remote document store
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

DEFAULT_CACHE_TTL = 24 * 60 * 60.0  # 24 hours
DEFAULT_MAX_RETRIES = 3
DEFAULT_SYNC_INTERVAL = 30.0
DEFAULT_REMOTE_TIMEOUT = 10.0


@dataclass
class EngineConfig:
    """Configuration for an OfflineEngine instance.

    Attributes:
        db_path: SQLite database file. None keeps everything in memory.
        cache_ttl: Default cache time-to-live in seconds.
        max_retries: Failed apply attempts before a queued item is dropped.
        sync_interval: Seconds between periodic sync passes.
        remote_timeout: Timeout in seconds applied to each remote call.
        probe_interval: Seconds between connectivity probes (None = disabled).
        offline_cache_prefix: Prefix of the cache key warmed by downloads.
    """

    db_path: Path | None = None
    cache_ttl: float = DEFAULT_CACHE_TTL
    max_retries: int = DEFAULT_MAX_RETRIES
    sync_interval: float = DEFAULT_SYNC_INTERVAL
    remote_timeout: float = DEFAULT_REMOTE_TIMEOUT
    probe_interval: float | None = None
    offline_cache_prefix: str = "offline_"

    def __post_init__(self) -> None:
        """Normalize paths and reject unusable values."""
        if self.db_path is not None:
            self.db_path = Path(self.db_path).expanduser()
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {self.max_retries}")
        if self.sync_interval <= 0:
            raise ValueError(f"sync_interval must be positive, got {self.sync_interval}")
        if self.remote_timeout <= 0:
            raise ValueError(f"remote_timeout must be positive, got {self.remote_timeout}")
        if self.probe_interval is not None and self.probe_interval <= 0:
            raise ValueError(f"probe_interval must be positive, got {self.probe_interval}")


@dataclass
class ServerConfig:
    """Configuration for connecting to a remote document store.

    Attributes:
        server_url: Base URL of the server (e.g., "https://docs.example.com").
        token: Authentication token.
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    server_url: str
    token: str
    timeout: float = 30.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize server URL."""
        self.server_url = self.server_url.rstrip("/")

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS."""
        return self.server_url.startswith("https://")
