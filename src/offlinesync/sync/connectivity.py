"""Connectivity tracking for the offline engine.

This module provides:
- ConnectivityMonitor: Two-state (online/offline) monitor fed by the host
- ConnectivityEvent: Events listeners can subscribe to

State machine:
    | From    | Signal          | To      | Listeners notified |
    |---------|-----------------|---------|--------------------|
    | OFFLINE | set_online(T)   | ONLINE  | ONLINE             |
    | ONLINE  | set_online(F)   | OFFLINE | OFFLINE            |
    | ONLINE  | notify_visible  | ONLINE  | VISIBLE            |
    | OFFLINE | notify_visible  | OFFLINE | (none)             |

    Repeating the current state is a no-op. The host platform feeds the
    monitor directly, or through an optional probe polled by check_now().
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from enum import IntEnum, auto

logger = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[bool]]
Listener = Callable[[], None]


class ConnectivityEvent(IntEnum):
    """Connectivity events published by the monitor."""

    ONLINE = auto()  # Offline -> online transition
    OFFLINE = auto()  # Online -> offline transition
    VISIBLE = auto()  # Window/tab regained focus while online


class ConnectivityMonitor:
    """Tracks online/offline transitions and focus regain.

    Usage:
        monitor = ConnectivityMonitor(initial_online=False)
        unsubscribe = monitor.subscribe(ConnectivityEvent.ONLINE, on_reconnect)

        monitor.set_online(True)   # on_reconnect() is called
        unsubscribe()
    """

    def __init__(
        self,
        initial_online: bool = True,
        probe: Probe | None = None,
    ) -> None:
        """Initialize the monitor.

        Args:
            initial_online: Connectivity status at startup.
            probe: Optional coroutine function returning current connectivity.
        """
        self._online = initial_online
        self._probe = probe
        self._listeners: dict[ConnectivityEvent, list[Listener]] = {
            event: [] for event in ConnectivityEvent
        }

    def is_online(self) -> bool:
        """Get the published connectivity status."""
        return self._online

    @property
    def has_probe(self) -> bool:
        """Check if a connectivity probe is configured."""
        return self._probe is not None

    def subscribe(self, event: ConnectivityEvent, callback: Listener) -> Callable[[], None]:
        """Register a listener for an event.

        Returns:
            Function that removes the listener again.
        """
        self._listeners[event].append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners[event]:
                self._listeners[event].remove(callback)

        return unsubscribe

    def set_online(self, online: bool) -> None:
        """Feed the host platform's connectivity signal."""
        if online == self._online:
            return

        self._online = online
        if online:
            logger.info("Connection restored")
            self._notify(ConnectivityEvent.ONLINE)
        else:
            logger.info("Connection lost - switching to offline mode")
            self._notify(ConnectivityEvent.OFFLINE)

    def notify_visible(self) -> None:
        """Feed the host platform's "became visible/focused" signal."""
        if not self._online:
            logger.debug("Became visible while offline, ignoring")
            return
        self._notify(ConnectivityEvent.VISIBLE)

    async def check_now(self) -> bool:
        """Run the probe (if any) and publish its result.

        Returns:
            Connectivity status after the check.
        """
        if self._probe is None:
            return self._online

        try:
            online = bool(await self._probe())
        except Exception as e:
            logger.debug("Connectivity probe failed: %s", e)
            online = False

        self.set_online(online)
        return online

    def _notify(self, event: ConnectivityEvent) -> None:
        """Call every listener of an event, isolating their failures."""
        for callback in list(self._listeners[event]):
            try:
                callback()
            except Exception:
                logger.exception("Error in %s connectivity listener", event.name)
