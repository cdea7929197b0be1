"""Best-effort outbound notifications with per-category opt-in and cooldown.

Notifications are side effects, never part of a request's success contract:
send() logs and swallows every failure, and send_background() detaches the
send from the caller entirely.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from src.notify.templates import NOTIFY_SETTING, Action, render

if TYPE_CHECKING:
    from src.store.notification_log import NotificationLedger
    from src.store.sync_store import SyncStore

logger = structlog.get_logger()

DEFAULT_COOLDOWN_MS = 300_000


class NotificationSink(Protocol):
    async def send_message(
        self, chat_id: int, text: str, actions: list[list[Action]] | None = None
    ) -> None: ...


class NotificationDispatcher:
    def __init__(
        self,
        store: SyncStore,
        ledger: NotificationLedger,
        sink: NotificationSink | None,
        *,
        cooldown_ms: int = DEFAULT_COOLDOWN_MS,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._sink = sink
        self._cooldown_ms = cooldown_ms
        self._tasks: set[asyncio.Task] = set()

    async def send(self, user_id: int, type_: str, payload: Any = None) -> bool:
        """Deliver one templated notification. Returns True only if it was sent."""
        try:
            user = await self._store.get_user(user_id)
            if user is None:
                return False

            setting = NOTIFY_SETTING.get(type_)
            if setting and not getattr(user, setting):
                logger.debug("notification_opted_out", user_id=user_id, type=type_)
                return False

            if await self._ledger.sent_within(user_id, type_, self._cooldown_ms):
                logger.debug("notification_cooldown", user_id=user_id, type=type_)
                return False

            message = render(type_, payload, user_id)
            if message is None:
                logger.warning("notification_unknown_type", user_id=user_id, type=type_)
                return False

            if self._sink is None:
                logger.info("notification_sink_disabled", user_id=user_id, type=type_)
                return False

            await self._sink.send_message(user.telegram_id, message.text, message.actions)
            await self._ledger.record(user_id, type_)
            logger.info("notification_sent", user_id=user_id, type=type_)
            return True
        except Exception:
            logger.exception("notification_failed", user_id=user_id, type=type_)
            return False

    async def send_text(self, chat_id: int, text: str) -> bool:
        """Plain chat message outside the templated categories. No opt-in, no cooldown."""
        if self._sink is None:
            return False
        try:
            await self._sink.send_message(chat_id, text)
            return True
        except Exception:
            logger.exception("chat_message_failed", chat_id=chat_id)
            return False

    def send_background(self, user_id: int, type_: str, payload: Any = None) -> asyncio.Task:
        return self._spawn(self.send(user_id, type_, payload), name=f"notify_{type_}")

    def send_text_background(self, chat_id: int, text: str) -> asyncio.Task:
        return self._spawn(self.send_text(chat_id, text), name="notify_text")

    async def drain(self) -> None:
        """Wait for in-flight background sends (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _spawn(self, coro: Coroutine[Any, Any, bool], *, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        # Strong ref until done
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
