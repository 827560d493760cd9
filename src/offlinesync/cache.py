"""TTL cache built on the local store.

This module provides:
- CacheManager: put/get with expiration and a bulk expiry sweep
- CacheEntry: A cached value with its lifetime
- CacheStats: Hit/miss counters

Expired entries are removed lazily on read and in bulk by
clear_expired_cache(), which the sync orchestrator runs once per pass.
Storage failures never propagate: reads degrade to a miss, writes to a
logged no-op.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from offlinesync.core.config import DEFAULT_CACHE_TTL
from offlinesync.store import StorageUnavailable, Table

if TYPE_CHECKING:
    from collections.abc import Callable

    from offlinesync.store import LocalStore

logger = logging.getLogger(__name__)

ENCODING_JSON = "json"
ENCODING_BYTES = "bytes"


@dataclass
class CacheEntry:
    """A cached value.

    Attributes:
        key: Caller-defined cache key.
        data: Cached value (bytes or any JSON-serializable value).
        created_at: When the entry was written.
        expires_at: When the entry stops being served.
    """

    key: str
    data: Any
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        """Check if the entry is past its expiry time."""
        return now > self.expires_at

    def to_record(self) -> dict[str, Any]:
        """Convert to a store record."""
        if isinstance(self.data, (bytes, bytearray)):
            encoding, data = ENCODING_BYTES, bytes(self.data)
        else:
            encoding, data = ENCODING_JSON, json.dumps(self.data)
        return {
            "key": self.key,
            "data": data,
            "encoding": encoding,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> CacheEntry:
        """Create CacheEntry from a store record."""
        data = record["data"]
        if record["encoding"] == ENCODING_JSON:
            data = json.loads(data)
        return cls(
            key=record["key"],
            data=data,
            created_at=record["created_at"],
            expires_at=record["expires_at"],
        )


@dataclass
class CacheStats:
    """Counters for cache activity since the manager was created."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    expired: int = 0

    @property
    def hit_rate(self) -> float:
        """Get hit percentage over all lookups."""
        lookups = self.hits + self.misses
        if lookups == 0:
            return 0.0
        return (self.hits / lookups) * 100


class CacheManager:
    """Key/value cache with per-entry expiration."""

    def __init__(
        self,
        store: LocalStore,
        default_ttl: float = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the cache manager.

        Args:
            store: Local store holding the cache table.
            default_ttl: TTL in seconds used when cache_data() gets none.
            clock: Time source returning seconds since the epoch.
        """
        self._store = store
        self._default_ttl = default_ttl
        self._clock = clock
        self._stats = CacheStats()

    @property
    def stats(self) -> CacheStats:
        """Get cache statistics."""
        return self._stats

    def cache_data(self, key: str, data: Any, ttl: float | None = None) -> None:
        """Cache a value with expiration.

        A non-positive TTL means the value is already stale: nothing is
        stored and any previous entry for the key is dropped.

        Args:
            key: Cache key.
            data: Value to cache (bytes or JSON-serializable). Other values
                are logged and not cached.
            ttl: Time to live in seconds (default: manager's default TTL).
        """
        ttl = self._default_ttl if ttl is None else ttl
        try:
            if ttl <= 0:
                self._store.delete(Table.CACHE, key)
                logger.debug("Not caching %s: ttl=%s", key, ttl)
                return

            now = self._clock()
            entry = CacheEntry(key=key, data=data, created_at=now, expires_at=now + ttl)
            try:
                record = entry.to_record()
            except (TypeError, ValueError) as e:
                logger.error("Cannot cache data for %s: %s", key, e)
                return
            self._store.put(Table.CACHE, record)
            self._stats.sets += 1
            logger.debug("Data cached: %s (ttl=%.0fs)", key, ttl)
        except StorageUnavailable as e:
            logger.error("Failed to cache data for %s: %s", key, e)

    def get_cached_data(self, key: str) -> Any | None:
        """Get a cached value.

        Args:
            key: Cache key.

        Returns:
            The cached value, or None if absent, expired or unreadable.
        """
        try:
            record = self._store.get(Table.CACHE, key)
            if record is None:
                self._stats.misses += 1
                return None

            entry = CacheEntry.from_record(record)
            if entry.is_expired(self._clock()):
                self._store.delete(Table.CACHE, key)
                self._stats.misses += 1
                self._stats.expired += 1
                logger.debug("Cache entry expired: %s", key)
                return None
        except StorageUnavailable as e:
            logger.error("Failed to get cached data for %s: %s", key, e)
            self._stats.misses += 1
            return None

        self._stats.hits += 1
        return entry.data

    def clear_expired_cache(self) -> int:
        """Delete every entry past its expiry time.

        Returns:
            Number of entries removed.
        """
        try:
            count = self._store.delete_before(Table.CACHE, "expires_at", self._clock())
        except StorageUnavailable as e:
            logger.error("Failed to clear expired cache: %s", e)
            return 0

        self._stats.expired += count
        if count > 0:
            logger.info("Cleared %d expired cache entries", count)
        return count
