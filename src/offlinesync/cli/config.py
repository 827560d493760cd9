"""Configuration utilities for the offlinesync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
from pathlib import Path

from offlinesync.core.config import ServerConfig


def get_config_dir() -> Path:
    """Get the configuration directory for offlinesync.

    Returns:
        Path to ~/.offlinesync or equivalent.
    """
    return Path.home() / ".offlinesync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, str]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, str]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def get_db_path() -> Path:
    """Get the local store path.

    Returns:
        Path to the database (configured or default ~/.offlinesync/offline.db).
    """
    config = load_config()
    if config.get("db_path"):
        return Path(config["db_path"]).expanduser().resolve()
    return get_config_dir() / "offline.db"


def get_server_config() -> ServerConfig | None:
    """Get the remote store configuration.

    Returns:
        ServerConfig if a server is configured, None otherwise.
    """
    config = load_config()
    if not config.get("server_url") or not config.get("auth_token"):
        return None
    return ServerConfig(server_url=config["server_url"], token=config["auth_token"])
