"""Shared types for offlinesync.

This module defines enums used across the engine and its status reporting.
"""

from __future__ import annotations

from enum import Enum


class SyncState(str, Enum):
    """Sync state of an engine instance, as reported to callers."""

    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"
    OFFLINE = "offline"
