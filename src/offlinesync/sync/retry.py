"""Retry budget and per-call timeout handling.

This module provides:
- call_with_timeout: Await a remote call, converting timeouts into failures
- describe_error: Short description of a failure for logs and the queue
- is_network_error: Whether a failure looks like lost connectivity

Retries themselves are not looped here: a failed item stays in the queue
with a higher retry count and is attempted again on the next sync pass.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

import httpx

from offlinesync.core.config import DEFAULT_MAX_RETRIES, DEFAULT_REMOTE_TIMEOUT

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Network-related exceptions that indicate connectivity issues
NETWORK_EXCEPTIONS: tuple[type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
    OSError,
    httpx.TransportError,
)

__all__ = [
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_REMOTE_TIMEOUT",
    "NETWORK_EXCEPTIONS",
    "call_with_timeout",
    "describe_error",
    "is_network_error",
]


async def call_with_timeout(
    awaitable: Awaitable[T],
    timeout: float = DEFAULT_REMOTE_TIMEOUT,
) -> T:
    """Await a remote call with a deadline.

    Args:
        awaitable: The remote call.
        timeout: Seconds to wait before giving up.

    Returns:
        Result of the call.

    Raises:
        TimeoutError: If the call did not finish in time.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        # asyncio.TimeoutError is only an alias of TimeoutError on 3.11+
        raise TimeoutError(f"Remote call timed out after {timeout:.1f}s") from e


def describe_error(error: BaseException) -> str:
    """Describe a failure in one line."""
    message = str(error)
    name = type(error).__name__
    return f"{name}: {message}" if message else name


def is_network_error(error: BaseException) -> bool:
    """Check if an error indicates lost connectivity rather than a bad request."""
    return isinstance(error, NETWORK_EXCEPTIONS)
