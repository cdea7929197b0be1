"""Liveness monitor: opportunistic, throttled offline detection plus retention GC.

There is no scheduler. Every inbound API request calls trigger(); the
throttle lets at most one sweep body start per interval in this process.
Sweeps in other processes may overlap: the stale-row query and the purges
are idempotent, and notified_offline keeps script_offline from re-firing.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from src.infra.clock import Clock

if TYPE_CHECKING:
    from src.config.settings import SyncSettings
    from src.notify.dispatcher import NotificationDispatcher
    from src.store.command_channel import CommandChannel
    from src.store.notification_log import NotificationLedger
    from src.store.sync_store import SyncStore

logger = structlog.get_logger()


class SweepThrottle:
    """Admit at most one caller per interval_ms. Not shared across processes."""

    def __init__(self, clock: Clock, interval_ms: int) -> None:
        self._clock = clock
        self._interval_ms = interval_ms
        self._last_run: int | None = None

    def try_acquire(self) -> bool:
        now = self._clock.now_ms()
        if self._last_run is not None and now - self._last_run < self._interval_ms:
            return False
        self._last_run = now
        return True


@dataclass
class SweepReport:
    offline_marked: int = 0
    commands_purged: int = 0
    notifications_purged: int = 0


class LivenessMonitor:
    def __init__(
        self,
        *,
        store: SyncStore,
        commands: CommandChannel,
        ledger: NotificationLedger,
        dispatcher: NotificationDispatcher,
        clock: Clock,
        settings: SyncSettings,
    ) -> None:
        self._store = store
        self._commands = commands
        self._ledger = ledger
        self._dispatcher = dispatcher
        self._throttle = SweepThrottle(clock, settings.sweep_interval_s * 1000)
        self._offline_after_ms = settings.offline_after_s * 1000
        self._command_retention_ms = settings.command_retention_s * 1000
        self._notification_retention_ms = settings.notification_retention_s * 1000
        self._tasks: set[asyncio.Task] = set()

    def trigger(self) -> asyncio.Task | None:
        """Start a detached sweep if the throttle window has elapsed."""
        if not self._throttle.try_acquire():
            return None
        task = asyncio.create_task(self.run_sweep(), name="liveness_sweep")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run_sweep(self) -> SweepReport:
        """One unthrottled sweep. Never raises."""
        report = SweepReport()

        try:
            stale = await self._store.get_stale_online(self._offline_after_ms)
        except Exception:
            logger.exception("liveness_offline_detection_failed")
            stale = []

        for state in stale:
            try:
                await self._dispatcher.send(
                    state.user_id, "script_offline", {"title": state.anime_title}
                )
                # No-op if a heartbeat arrived since the stale query.
                if await self._store.mark_offline_notified(
                    state.user_id, self._offline_after_ms
                ):
                    report.offline_marked += 1
            except Exception:
                logger.exception("liveness_offline_mark_failed", user_id=state.user_id)

        try:
            report.commands_purged = await self._commands.purge_expired(
                self._command_retention_ms
            )
            report.notifications_purged = await self._ledger.purge_expired(
                self._notification_retention_ms
            )
        except Exception:
            logger.exception("liveness_retention_gc_failed")

        if report.offline_marked or report.commands_purged or report.notifications_purged:
            logger.info(
                "liveness_sweep_done",
                offline_marked=report.offline_marked,
                commands_purged=report.commands_purged,
                notifications_purged=report.notifications_purged,
            )
        return report

    async def wait_idle(self) -> None:
        """Wait for every triggered sweep still running (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
