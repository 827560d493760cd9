"""Tests for core configuration classes."""

from __future__ import annotations

from pathlib import Path

import pytest

from offlinesync.core.config import EngineConfig, ServerConfig
from offlinesync.core.types import SyncState


class TestEngineConfig:
    """Tests for EngineConfig class."""

    def test_defaults(self) -> None:
        """Should default to 24h TTL, 3 retries and a 30s interval."""
        config = EngineConfig()
        assert config.db_path is None
        assert config.cache_ttl == 86400.0
        assert config.max_retries == 3
        assert config.sync_interval == 30.0
        assert config.probe_interval is None
        assert config.offline_cache_prefix == "offline_"

    def test_db_path_is_expanded(self) -> None:
        """Should convert db_path strings to expanded Paths."""
        config = EngineConfig(db_path="~/offline.db")  # type: ignore[arg-type]
        assert isinstance(config.db_path, Path)
        assert "~" not in str(config.db_path)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_retries": 0},
            {"sync_interval": 0},
            {"remote_timeout": -1},
            {"probe_interval": 0},
        ],
    )
    def test_rejects_unusable_values(self, kwargs: dict) -> None:
        """Should reject values the engine cannot run with."""
        with pytest.raises(ValueError):
            EngineConfig(**kwargs)


class TestServerConfig:
    """Tests for ServerConfig class."""

    def test_init_basic(self) -> None:
        """Should initialize with required fields."""
        config = ServerConfig(server_url="https://example.com", token="test-token")
        assert config.server_url == "https://example.com"
        assert config.token == "test-token"
        assert config.timeout == 30.0
        assert config.verify_ssl is True

    def test_init_custom_timeout(self) -> None:
        """Should accept custom timeout."""
        config = ServerConfig(
            server_url="https://example.com",
            token="test-token",
            timeout=60.0,
        )
        assert config.timeout == 60.0

    def test_url_trailing_slash_removed(self) -> None:
        """Should strip trailing slash from server URL."""
        config = ServerConfig(server_url="https://example.com/", token="test-token")
        assert config.server_url == "https://example.com"

    def test_is_secure(self) -> None:
        """Should detect HTTPS URLs."""
        assert ServerConfig(server_url="https://example.com", token="t").is_secure
        assert not ServerConfig(server_url="http://localhost:8000", token="t").is_secure


class TestSyncState:
    """Tests for SyncState enum."""

    def test_values(self) -> None:
        """State values are stable strings."""
        assert {s.value for s in SyncState} == {"idle", "syncing", "error", "offline"}
