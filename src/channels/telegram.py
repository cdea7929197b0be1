"""Telegram adapter: notification sink plus the chat-side control plane.

Single-worker long-polling design. Group messages are silently ignored.
Inline buttons carry "action:user_id[:extra]" and are only honoured when
pressed by the Telegram account that owns user_id.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from aiogram import Bot, Dispatcher
from aiogram.client.session.aiohttp import AiohttpSession
from aiogram.enums import ChatType, ParseMode
from aiogram.types import (
    CallbackQuery,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    Message,
    WebAppInfo,
)

from src.channels.telegram_render import (
    HELP_TEXT,
    QUEUED_HINT,
    pairing_code_message,
    render_marathon,
    render_stats,
    render_status,
    welcome_message,
)
from src.infra.errors import ChannelError
from src.notify.templates import Action
from src.sync.commands import CommandType
from src.sync.state import is_reachable

if TYPE_CHECKING:
    from src.auth.pairing import PairingService
    from src.config.settings import SyncSettings, TelegramSettings
    from src.infra.clock import Clock
    from src.store.command_channel import CommandChannel
    from src.store.sync_store import SyncStore
    from src.sync.marathon import MarathonController
    from src.sync.state import User

logger = structlog.get_logger()


def create_bot(settings: TelegramSettings) -> Bot:
    """Bot with a bounded per-request timeout."""
    session = AiohttpSession(timeout=settings.request_timeout_s)
    return Bot(token=settings.bot_token, session=session)


def build_keyboard(actions: list[list[Action]] | None) -> InlineKeyboardMarkup | None:
    if not actions:
        return None
    rows = [
        [
            InlineKeyboardButton(text=a.text, web_app=WebAppInfo(url=a.web_app_url))
            if a.web_app_url
            else InlineKeyboardButton(text=a.text, callback_data=a.callback_data)
            for a in row
        ]
        for row in actions
    ]
    return InlineKeyboardMarkup(inline_keyboard=rows)


def parse_callback_data(data: str) -> tuple[str, int | None, str]:
    """'action:uid[:extra]' -> (action, uid or None, extra)."""
    parts = data.split(":", 2)
    action = parts[0]
    try:
        user_id = int(parts[1]) if len(parts) > 1 else None
    except ValueError:
        user_id = None
    extra = parts[2] if len(parts) > 2 else ""
    return action, user_id, extra


class TelegramSink:
    """NotificationSink over the Bot API. Raises ChannelError on delivery failure."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(
        self, chat_id: int, text: str, actions: list[list[Action]] | None = None
    ) -> None:
        try:
            await self._bot.send_message(
                chat_id,
                text,
                parse_mode=ParseMode.MARKDOWN,
                reply_markup=build_keyboard(actions),
            )
        except Exception as exc:
            raise ChannelError(f"Telegram send failed: {exc}") from exc


class TelegramAdapter:
    """Chat commands and inline-button callbacks, mapped onto the sync core."""

    def __init__(
        self,
        bot: Bot,
        *,
        telegram_settings: TelegramSettings,
        sync_settings: SyncSettings,
        store: SyncStore,
        commands: CommandChannel,
        marathon: MarathonController,
        pairing: PairingService,
        clock: Clock,
    ) -> None:
        self._bot = bot
        self._dp = Dispatcher()
        self._settings = telegram_settings
        self._store = store
        self._commands = commands
        self._marathon = marathon
        self._pairing = pairing
        self._clock = clock
        self._reachable_window_ms = sync_settings.reachable_window_s * 1000
        self._bot_username: str = ""

        self._dp.message.register(self._handle_message)
        self._dp.callback_query.register(self._handle_callback)

    async def check_ready(self) -> None:
        """Verify bot token and connectivity via getMe. Raises ChannelError on failure."""
        try:
            me = await self._bot.get_me()
            self._bot_username = me.username or ""
            logger.info("telegram_bot_ready", username=self._bot_username)
        except Exception as exc:
            raise ChannelError(
                f"Telegram bot token verification failed: {exc}",
                code="TELEGRAM_AUTH_FAILED",
            ) from exc

    async def start_polling(self) -> None:
        """Start long-polling. Blocks until stopped or fatal error."""
        logger.info("telegram_polling_started", username=self._bot_username)
        await self._dp.start_polling(self._bot, handle_signals=False)

    async def stop(self) -> None:
        """Gracefully stop polling and close bot session."""
        try:
            await self._dp.stop_polling()
        except RuntimeError:
            pass  # polling never started
        await self._bot.session.close()
        logger.info("telegram_polling_stopped")

    # ── Messages ──

    async def _handle_message(self, message: Message) -> None:
        if message.chat.type != ChatType.PRIVATE:
            return
        tg_user = message.from_user
        if tg_user is None or not message.text:
            return

        user = await self._store.get_or_create_user(
            tg_user.id, tg_user.username or tg_user.first_name or ""
        )
        chat_id = message.chat.id
        command = message.text.strip().split()[0].lower().split("@")[0]

        try:
            if command == "/start":
                welcome = welcome_message(user.id, self._settings.webapp_url)
                await self._send(chat_id, welcome.text, welcome.actions)
            elif command == "/connect":
                await self._send_pairing_code(chat_id, user)
            elif command == "/status":
                await self._send_status(chat_id, user)
            elif command == "/marathon":
                await self._send_marathon(chat_id, user)
            elif command == "/stats":
                await self._send(chat_id, render_stats(await self._store.get_state(user.id)))
            elif command == "/help":
                await self._send(chat_id, HELP_TEXT)
        except Exception:
            logger.exception("telegram_command_failed", user_id=user.id, command=command)

    async def _send_pairing_code(self, chat_id: int, user: User) -> None:
        code = await self._pairing.issue_code(user.id)
        ttl_minutes = max(1, round(self._pairing.code_ttl_ms / 60_000))
        await self._send(chat_id, pairing_code_message(code, ttl_minutes))

    async def _send_status(self, chat_id: int, user: User) -> None:
        state = await self._store.get_state(user.id)
        reachable = is_reachable(state, self._clock.now_ms(), self._reachable_window_ms)
        await self._send(chat_id, render_status(state, reachable))

    async def _send_marathon(self, chat_id: int, user: User) -> None:
        state = await self._store.get_state(user.id)
        if state is None:
            await self._send(chat_id, "❌ /connect", markdown=False)
            return
        rendered = render_marathon(state, user.id)
        await self._send(chat_id, rendered.text, rendered.actions)

    # ── Callbacks ──

    async def _handle_callback(self, callback: CallbackQuery) -> None:
        action, user_id, extra = parse_callback_data(callback.data or "")
        await callback.answer()

        if user_id is None:
            return
        user = await self._store.get_user(user_id)
        if user is None or user.telegram_id != callback.from_user.id:
            logger.warning(
                "telegram_callback_denied", user_id=user_id, from_id=callback.from_user.id
            )
            return

        chat_id = callback.from_user.id
        state = await self._store.get_state(user_id)
        reachable = is_reachable(state, self._clock.now_ms(), self._reachable_window_ms)
        hint = "" if reachable else QUEUED_HINT

        try:
            if action == "connect":
                await self._send_pairing_code(chat_id, user)
            elif action == "resume":
                await self._commands.enqueue(
                    user_id,
                    CommandType.resume,
                    {
                        "url": state.current_url if state else None,
                        "time": state.video_time if state else 0,
                    },
                )
                await self._send(chat_id, f"▶ Resuming...{hint}", markdown=False)
            elif action == "next":
                await self._commands.enqueue(user_id, CommandType.next_episode, {})
                await self._send(chat_id, f"⏭ Next episode...{hint}", markdown=False)
            elif action == "watch":
                await self._commands.enqueue(
                    user_id,
                    CommandType.navigate,
                    {"animeId": extra, "season": 1, "episode": 1},
                )
                await self._send(chat_id, f"▶ Opening...{hint}", markdown=False)
            elif action == "mstart":
                await self._marathon.start(user_id)
                await self._send(chat_id, f"▶ Marathon started!{hint}", markdown=False)
            elif action == "mstop":
                await self._marathon.stop(user_id)
                await self._send(chat_id, "⏹ Marathon stopped", markdown=False)
            elif action == "mcont":
                await self._marathon.resume(user_id)
                await self._send(chat_id, f"▶ Continuing marathon...{hint}", markdown=False)
            elif action == "mnext":
                await self._marathon.next(user_id)
                await self._send(chat_id, f"⏭ Next...{hint}", markdown=False)
            elif action == "mclear":
                await self._marathon.clear(user_id)
                await self._send(chat_id, "🗑 Marathon cleared", markdown=False)
            elif action in ("mnew", "search", "menu"):
                if self._settings.webapp_url:
                    await self._send(
                        chat_id,
                        "🎬 Open:",
                        [[Action("🎬 AniPilot", web_app_url=self._settings.webapp_url)]],
                        markdown=False,
                    )
            elif action == "check":
                await self._send(
                    chat_id,
                    "🟢 Script is online!" if reachable else "🔴 Script is offline. Open the player site",
                    markdown=False,
                )
            elif action == "stats":
                await self._send(chat_id, render_stats(state))
        except Exception:
            logger.exception("telegram_callback_failed", user_id=user_id, action=action)

    async def _send(
        self,
        chat_id: int,
        text: str,
        actions: list[list[Action]] | None = None,
        *,
        markdown: bool = True,
    ) -> None:
        await self._bot.send_message(
            chat_id,
            text,
            parse_mode=ParseMode.MARKDOWN if markdown else None,
            reply_markup=build_keyboard(actions),
        )
