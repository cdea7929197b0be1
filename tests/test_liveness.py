"""Tests for the liveness sweep: throttling, single offline notification, retention GC."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from src.config.settings import SyncSettings
from src.sync.liveness import LivenessMonitor, SweepThrottle
from src.sync.state import SyncState


def _make_monitor(clock, stale: list[SyncState] | None = None):
    store = AsyncMock()
    store.get_stale_online.return_value = stale or []
    store.mark_offline_notified.return_value = True
    commands = AsyncMock()
    commands.purge_expired.return_value = 0
    ledger = AsyncMock()
    ledger.purge_expired.return_value = 0
    dispatcher = AsyncMock()
    monitor = LivenessMonitor(
        store=store,
        commands=commands,
        ledger=ledger,
        dispatcher=dispatcher,
        clock=clock,
        settings=SyncSettings(),
    )
    return monitor, store, commands, ledger, dispatcher


class TestSweepThrottle:
    def test_first_call_admitted(self, clock) -> None:
        assert SweepThrottle(clock, 60_000).try_acquire() is True

    def test_second_call_within_interval_rejected(self, clock) -> None:
        throttle = SweepThrottle(clock, 60_000)
        throttle.try_acquire()
        clock.advance(59_999)
        assert throttle.try_acquire() is False

    def test_admitted_after_interval(self, clock) -> None:
        throttle = SweepThrottle(clock, 60_000)
        throttle.try_acquire()
        clock.advance(60_000)
        assert throttle.try_acquire() is True


class TestRunSweep:
    @pytest.mark.asyncio
    async def test_stale_agent_notified_then_marked(self, clock) -> None:
        stale = SyncState(user_id=4, is_online=True, current_anime={"title": "Dororo"})
        monitor, store, _, _, dispatcher = _make_monitor(clock, [stale])

        report = await monitor.run_sweep()

        store.get_stale_online.assert_awaited_once_with(600_000)
        dispatcher.send.assert_awaited_once_with(4, "script_offline", {"title": "Dororo"})
        store.mark_offline_notified.assert_awaited_once_with(4, 600_000)
        assert report.offline_marked == 1

    @pytest.mark.asyncio
    async def test_heartbeat_after_selection_is_not_overwritten(self, clock) -> None:
        stale = SyncState(user_id=4, is_online=True)
        monitor, store, _, _, _ = _make_monitor(clock, [stale])
        store.mark_offline_notified.return_value = False

        report = await monitor.run_sweep()

        assert report.offline_marked == 0

    @pytest.mark.asyncio
    async def test_one_user_failure_does_not_stop_the_rest(self, clock) -> None:
        stale = [SyncState(user_id=4, is_online=True), SyncState(user_id=5, is_online=True)]
        monitor, store, _, _, dispatcher = _make_monitor(clock, stale)
        store.mark_offline_notified.side_effect = [TimeoutError(), True]

        report = await monitor.run_sweep()

        assert dispatcher.send.await_count == 2
        store.mark_offline_notified.assert_awaited_with(5, 600_000)
        assert report.offline_marked == 1

    @pytest.mark.asyncio
    async def test_no_stale_agents_no_notification(self, clock) -> None:
        monitor, store, _, _, dispatcher = _make_monitor(clock)

        await monitor.run_sweep()

        dispatcher.send.assert_not_awaited()
        store.mark_offline_notified.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retention_gc(self, clock) -> None:
        monitor, _, commands, ledger, _ = _make_monitor(clock)
        commands.purge_expired.return_value = 3
        ledger.purge_expired.return_value = 2

        report = await monitor.run_sweep()

        commands.purge_expired.assert_awaited_once_with(3_600_000)
        ledger.purge_expired.assert_awaited_once_with(86_400_000)
        assert report.commands_purged == 3
        assert report.notifications_purged == 2

    @pytest.mark.asyncio
    async def test_detection_failure_still_runs_gc(self, clock) -> None:
        monitor, store, commands, _, _ = _make_monitor(clock)
        store.get_stale_online.side_effect = TimeoutError()

        report = await monitor.run_sweep()

        commands.purge_expired.assert_awaited_once()
        assert report.offline_marked == 0

    @pytest.mark.asyncio
    async def test_gc_failure_never_raises(self, clock) -> None:
        monitor, _, commands, _, _ = _make_monitor(clock)
        commands.purge_expired.side_effect = RuntimeError("db gone")

        report = await monitor.run_sweep()

        assert report.commands_purged == 0


class TestTrigger:
    @pytest.mark.asyncio
    async def test_trigger_throttled(self, clock) -> None:
        monitor, store, _, _, _ = _make_monitor(clock)

        first = monitor.trigger()
        second = monitor.trigger()
        await monitor.wait_idle()

        assert first is not None
        assert second is None
        store.get_stale_online.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_trigger_runs_again_after_interval(self, clock) -> None:
        monitor, store, _, _, _ = _make_monitor(clock)

        monitor.trigger()
        await monitor.wait_idle()
        clock.advance(60_000)
        monitor.trigger()
        await monitor.wait_idle()

        assert store.get_stale_online.await_count == 2

    @pytest.mark.asyncio
    async def test_overlapping_sweeps_are_all_awaited(self, clock) -> None:
        monitor, store, _, _, _ = _make_monitor(clock)
        release = asyncio.Event()

        async def slow_stale(threshold_ms):
            await release.wait()
            return []

        store.get_stale_online.side_effect = slow_stale
        first = monitor.trigger()
        clock.advance(60_000)
        second = monitor.trigger()
        release.set()
        await monitor.wait_idle()

        assert first.done() and second.done()
        assert store.get_stale_online.await_count == 2
