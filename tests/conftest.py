"""Shared fixtures: in-memory remote store, controllable clock, engines."""

from __future__ import annotations

import asyncio
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from offlinesync.cache import CacheManager
from offlinesync.core.config import EngineConfig
from offlinesync.engine import OfflineEngine
from offlinesync.remote import RemoteDocument
from offlinesync.store import LocalStore
from offlinesync.sync.connectivity import ConnectivityMonitor


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRemoteStore:
    """In-memory remote document store recording every call.

    Attributes:
        documents: (collection, doc_id) -> data
        calls: (operation, collection, doc_id, payload) in call order
        fail_all: If set, every mutating call raises it
        failing_docs: (collection, doc_id) -> exception raised for that document
        gate: If set, calls wait on it before completing
        max_active: Highest number of calls in flight at once
    """

    def __init__(self) -> None:
        self.documents: dict[tuple[str, str], Any] = {}
        self.calls: list[tuple[str, str, str, Any]] = []
        self.fail_all: Exception | None = None
        self.failing_docs: dict[tuple[str, str], Exception] = {}
        self.gate: asyncio.Event | None = None
        self.call_started = asyncio.Event()
        self.active = 0
        self.max_active = 0

    async def _call(self, operation: str, collection: str, doc_id: str, payload: Any) -> None:
        self.calls.append((operation, collection, doc_id, payload))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.call_started.set()
        try:
            if self.gate is not None:
                await self.gate.wait()
            error = self.fail_all or self.failing_docs.get((collection, doc_id))
            if error is not None:
                raise error
        finally:
            self.active -= 1

    def mutations(self) -> list[tuple[str, str, str, Any]]:
        """Get recorded calls, excluding queries."""
        return [call for call in self.calls if call[0] != "query"]

    async def remote_create(self, collection: str, doc_id: str, payload: Any) -> None:
        await self._call("create", collection, doc_id, payload)
        self.documents[(collection, doc_id)] = payload

    async def remote_update(self, collection: str, doc_id: str, payload: Any) -> None:
        await self._call("update", collection, doc_id, payload)
        current = self.documents.get((collection, doc_id), {})
        self.documents[(collection, doc_id)] = {**current, **payload}

    async def remote_delete(self, collection: str, doc_id: str) -> None:
        await self._call("delete", collection, doc_id, None)
        self.documents.pop((collection, doc_id), None)

    async def remote_query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
    ) -> list[RemoteDocument]:
        self.calls.append(("query", collection, "", filters))
        where = (filters or {}).get("where")
        results = []
        for (doc_collection, doc_id), data in self.documents.items():
            if doc_collection != collection:
                continue
            if where and data.get(where["field"]) != where["value"]:
                continue
            results.append(RemoteDocument(doc_id=doc_id, data=data))
        return results


@pytest.fixture
def clock() -> FakeClock:
    """Create a clock frozen at a fixed instant."""
    return FakeClock()


@pytest.fixture
def store() -> Generator[LocalStore, None, None]:
    """Create an in-memory LocalStore."""
    s = LocalStore(None)
    yield s
    s.close()


@pytest.fixture
def file_store(tmp_path: Path) -> Generator[LocalStore, None, None]:
    """Create a LocalStore backed by a file."""
    s = LocalStore(tmp_path / "offline.db")
    yield s
    s.close()


@pytest.fixture
def cache(store: LocalStore, clock: FakeClock) -> CacheManager:
    """Create a CacheManager on the in-memory store."""
    return CacheManager(store, clock=clock)


@pytest.fixture
def remote() -> FakeRemoteStore:
    """Create an empty fake remote store."""
    return FakeRemoteStore()


@pytest.fixture
def monitor() -> ConnectivityMonitor:
    """Create a connectivity monitor that starts online."""
    return ConnectivityMonitor(initial_online=True)


@pytest.fixture
def engine(
    remote: FakeRemoteStore,
    monitor: ConnectivityMonitor,
    clock: FakeClock,
) -> Generator[OfflineEngine, None, None]:
    """Create an engine on an in-memory store with the fake remote."""
    e = OfflineEngine(
        remote,
        EngineConfig(db_path=None, remote_timeout=2.0),
        connectivity=monitor,
        clock=clock,
    )
    yield e
    e.close()
