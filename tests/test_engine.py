"""Tests for the offline engine facade."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path

import pytest

from offlinesync.core.config import EngineConfig
from offlinesync.core.types import SyncState
from offlinesync.engine import OfflineEngine
from offlinesync.sync.connectivity import ConnectivityMonitor
from offlinesync.sync.types import NotOnline, SyncStatus

from tests.conftest import FakeClock, FakeRemoteStore


class TestEngineSetup:
    """Tests for engine construction and lifecycle."""

    def test_fallback_to_memory_when_store_unavailable(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """An unusable db_path degrades to a non-persistent store."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        engine = OfflineEngine(None, EngineConfig(db_path=blocker / "offline.db"))
        try:
            assert not engine.store.is_persistent
            assert not engine.get_sync_status().persistent
            assert "continuing without persistence" in caplog.text
            engine.cache_data("k", "v")
            assert engine.get_cached_data("k") == "v"
        finally:
            engine.close()

    def test_persistent_store(self, tmp_path: Path) -> None:
        """A file store is reported as persistent."""
        engine = OfflineEngine(None, EngineConfig(db_path=tmp_path / "offline.db"))
        try:
            assert engine.get_sync_status().persistent
        finally:
            engine.close()

    @pytest.mark.asyncio
    async def test_context_manager_starts_and_stops_timer(self, engine: OfflineEngine) -> None:
        """Entering starts the periodic timer, leaving stops it."""
        async with engine:
            assert engine.scheduler.running
            assert engine.scheduler.job_ids() == ["periodic_sync"]

        assert not engine.scheduler.running

    @pytest.mark.asyncio
    async def test_start_syncs_pending_work(
        self, engine: OfflineEngine, monitor: ConnectivityMonitor, remote: FakeRemoteStore
    ) -> None:
        """Starting while online replays work queued earlier."""
        monitor.set_online(False)
        engine.enqueue("create", "expenses", "e1", {"amount": 10})
        monitor._online = True  # come back without firing a transition

        await engine.start()
        await engine.stop()

        assert remote.documents[("expenses", "e1")] == {"amount": 10}

    @pytest.mark.asyncio
    async def test_stop_waits_for_timer_pass(
        self, engine: OfflineEngine, monitor: ConnectivityMonitor, remote: FakeRemoteStore
    ) -> None:
        """Stopping waits for a pass started by the periodic timer."""
        engine.store_offline_data("expenses", "e1", {"amount": 10})
        remote.gate = asyncio.Event()
        monitor._online = False  # start without the initial pass
        await engine.start()
        monitor._online = True

        tick = asyncio.create_task(engine.scheduler._sync_job())
        await remote.call_started.wait()
        stopping = asyncio.create_task(engine.stop())
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert not stopping.done()

        remote.gate.set()
        await stopping
        await tick

        assert not engine.orchestrator.in_progress
        assert engine.get_sync_status().unsynced_records == 0


class TestCacheFacade:
    """Tests for cache operations through the engine."""

    def test_cache_roundtrip_and_stats(self, engine: OfflineEngine, clock: FakeClock) -> None:
        """Cached values expire after their TTL."""
        engine.cache_data("profile", {"name": "Ada"}, ttl=60)

        assert engine.get_cached_data("profile") == {"name": "Ada"}
        clock.advance(61)
        assert engine.get_cached_data("profile") is None
        assert engine.cache_stats().hits == 1
        assert engine.cache_stats().misses == 1

    def test_clear_expired_cache(self, engine: OfflineEngine, clock: FakeClock) -> None:
        engine.cache_data("a", 1, ttl=1)
        clock.advance(2)

        assert engine.clear_expired_cache() == 1


class TestOfflineScenarios:
    """End-to-end scenarios across connectivity changes."""

    @pytest.mark.asyncio
    async def test_updates_made_offline_replay_in_order(
        self,
        engine: OfflineEngine,
        monitor: ConnectivityMonitor,
        remote: FakeRemoteStore,
        clock: FakeClock,
    ) -> None:
        """Two offline updates reach the server in order once back online."""
        monitor.set_online(False)
        engine.store_offline_data("expenses", "e1", {"amount": 10})
        engine.enqueue("update", "expenses", "e1", {"amount": 10})
        clock.advance(1)
        engine.store_offline_data("expenses", "e1", {"amount": 12})
        engine.enqueue("update", "expenses", "e1", {"amount": 12})

        status = engine.get_sync_status()
        assert status.queue_size == 2
        assert status.state == SyncState.OFFLINE
        assert remote.calls == []

        monitor.set_online(True)
        await engine.orchestrator.wait_idle()

        assert remote.mutations()[:2] == [
            ("update", "expenses", "e1", {"amount": 10}),
            ("update", "expenses", "e1", {"amount": 12}),
        ]
        assert remote.documents[("expenses", "e1")] == {"amount": 12}
        assert engine.get_offline_data("expenses", "e1") == {"amount": 12}
        status = engine.get_sync_status()
        assert status.queue_size == 0
        assert status.unsynced_records == 0
        assert status.state == SyncState.IDLE
        assert status.last_sync_at == clock.now

    @pytest.mark.asyncio
    async def test_enqueue_while_online_syncs_immediately(
        self, engine: OfflineEngine, remote: FakeRemoteStore
    ) -> None:
        """Mutations made online are pushed without waiting for the timer."""
        engine.add_to_sync_queue("create", "expenses", "e1", {"amount": 10})
        await engine.orchestrator.wait_idle()

        assert remote.documents[("expenses", "e1")] == {"amount": 10}
        assert engine.get_sync_status().queue_size == 0

    @pytest.mark.asyncio
    async def test_downloaded_data_readable_offline(
        self,
        engine: OfflineEngine,
        monitor: ConnectivityMonitor,
        remote: FakeRemoteStore,
    ) -> None:
        """Documents downloaded online stay readable with connectivity off."""
        remote.documents[("expenses", "e1")] = {"amount": 10}
        remote.documents[("expenses", "e2")] = {"amount": 20}

        downloaded = await engine.download_for_offline("expenses")
        monitor.set_online(False)

        assert len(downloaded) == 2
        assert engine.is_data_available_offline("expenses")
        assert sorted(d["id"] for d in engine.get_all_offline_data("expenses")) == ["e1", "e2"]
        assert engine.get_cached_data("offline_expenses") == downloaded

        with pytest.raises(NotOnline):
            await engine.download_for_offline("expenses")

    @pytest.mark.asyncio
    async def test_visibility_triggers_sync(
        self, engine: OfflineEngine, monitor: ConnectivityMonitor, remote: FakeRemoteStore
    ) -> None:
        """Regaining focus while online runs a pass."""
        monitor.set_online(False)
        engine.store_offline_data("expenses", "e1", {"amount": 10})
        monitor._online = True  # come back without firing a transition

        monitor.notify_visible()
        await engine.orchestrator.wait_idle()

        assert remote.mutations() == [("create", "expenses", "e1", {"amount": 10})]

    def test_clear_all_offline_data(
        self, engine: OfflineEngine, monitor: ConnectivityMonitor
    ) -> None:
        """Clearing removes every record and queued item but not the cache."""
        monitor.set_online(False)
        engine.store_offline_data("expenses", "e1", {"amount": 10})
        engine.store_offline_data("budgets", "b1", {"limit": 5})
        engine.enqueue("delete", "expenses", "e9")
        engine.cache_data("profile", {"name": "Ada"})

        engine.clear_all_offline_data()

        status = engine.get_sync_status()
        assert status.queue_size == 0
        assert status.offline_data_size == 0
        assert not engine.is_data_available_offline("expenses")
        assert engine.get_cached_data("profile") == {"name": "Ada"}

    def test_unserializable_writes_do_not_raise(
        self, engine: OfflineEngine, monitor: ConnectivityMonitor
    ) -> None:
        """Writes json cannot encode are dropped instead of raising."""
        monitor.set_online(False)

        engine.cache_data("k", {"when": datetime(2024, 1, 1)})
        engine.enqueue("update", "expenses", "e1", {"amount": {1, 2}})
        engine.store_offline_data("items", "i1", {"b": b"raw"})

        status = engine.get_sync_status()
        assert engine.get_cached_data("k") is None
        assert status.queue_size == 0
        assert status.offline_data_size == 0

    @pytest.mark.asyncio
    async def test_trigger_sync_offline_returns_none(
        self, engine: OfflineEngine, monitor: ConnectivityMonitor
    ) -> None:
        monitor.set_online(False)

        assert await engine.trigger_sync() is None

    @pytest.mark.asyncio
    async def test_concurrent_triggers_run_one_pass_at_a_time(
        self, engine: OfflineEngine, remote: FakeRemoteStore
    ) -> None:
        """Concurrent sync requests never overlap."""
        remote.gate = asyncio.Event()
        engine.enqueue("create", "expenses", "e1", {"amount": 10})
        await remote.call_started.wait()

        results = await asyncio.gather(engine.trigger_sync(), engine.trigger_sync())
        remote.gate.set()
        await engine.orchestrator.wait_idle()

        assert results == [None, None]
        assert remote.max_active == 1
        assert engine.orchestrator.stats.passes_completed == 2


class TestSyncStatus:
    """Tests for status reporting and listeners."""

    def test_status_snapshot(self, engine: OfflineEngine) -> None:
        """A fresh engine is online, idle and empty."""
        status = engine.get_sync_status()

        assert status.is_online
        assert not status.sync_in_progress
        assert status.queue_size == 0
        assert status.offline_data_size == 0
        assert status.last_sync_at is None
        assert status.state == SyncState.IDLE
        assert status.to_dict()["state"] == "idle"

    @pytest.mark.asyncio
    async def test_status_reports_errors(
        self, engine: OfflineEngine, remote: FakeRemoteStore
    ) -> None:
        """A failed pass is reported as an error state."""
        remote.fail_all = ConnectionError("connection refused")
        engine.store_offline_data("expenses", "e1", {"amount": 10})

        await engine.trigger_sync()

        status = engine.get_sync_status()
        assert status.state == SyncState.ERROR
        assert status.last_error is not None
        assert status.unsynced_records == 1

    @pytest.mark.asyncio
    async def test_listeners_get_transitions_and_passes(
        self, engine: OfflineEngine, monitor: ConnectivityMonitor
    ) -> None:
        """Listeners hear about connectivity changes and completed passes."""
        seen: list[SyncStatus] = []
        remove = engine.add_status_listener(seen.append)

        monitor.set_online(False)
        monitor.set_online(True)
        await engine.orchestrator.wait_idle()

        assert [s.is_online for s in seen[:2]] == [False, True]
        assert len(seen) == 3
        assert seen[-1].last_sync_at is not None

        remove()
        monitor.set_online(False)
        assert len(seen) == 3

    def test_failing_listener_is_isolated(
        self, engine: OfflineEngine, monitor: ConnectivityMonitor
    ) -> None:
        """A raising listener does not stop the others."""
        seen: list[SyncStatus] = []

        def broken(status: SyncStatus) -> None:
            raise RuntimeError("listener bug")

        engine.add_status_listener(broken)
        engine.add_status_listener(seen.append)

        monitor.set_online(False)

        assert len(seen) == 1

    def test_status_survives_restart(self, tmp_path: Path) -> None:
        """Queued work and the exhausted count persist across restarts."""
        db_path = tmp_path / "offline.db"
        offline = ConnectivityMonitor(initial_online=False)
        engine = OfflineEngine(None, EngineConfig(db_path=db_path), connectivity=offline)
        engine.enqueue("update", "expenses", "e1", {"amount": 10})
        engine.store.add_exhausted(1)
        engine.close()

        engine = OfflineEngine(None, EngineConfig(db_path=db_path), connectivity=offline)
        try:
            status = engine.get_sync_status()
            assert status.queue_size == 1
            assert status.exhausted_total == 1
        finally:
            engine.close()
