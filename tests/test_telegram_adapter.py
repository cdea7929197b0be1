"""Tests for TelegramAdapter: chat commands, callback ownership, queued hints, lifecycle."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.channels.telegram import (
    TelegramAdapter,
    TelegramSink,
    build_keyboard,
    parse_callback_data,
)
from src.channels.telegram_render import HELP_TEXT, QUEUED_HINT
from src.config.settings import SyncSettings, TelegramSettings
from src.infra.errors import ChannelError
from src.notify.templates import Action
from src.sync.commands import CommandType
from src.sync.state import SyncState, User

OWNER_TG = 111
OWNER = User(id=1, telegram_id=OWNER_TG, username="owner")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_adapter(clock, *, state: SyncState | None = None, webapp_url: str = ""):
    bot = AsyncMock()
    store = AsyncMock()
    store.get_or_create_user.return_value = OWNER
    store.get_user.return_value = OWNER
    store.get_state.return_value = state
    commands = AsyncMock()
    marathon = AsyncMock()
    pairing = AsyncMock()
    pairing.code_ttl_ms = 300_000
    pairing.issue_code.return_value = "ABC-DEF"
    adapter = TelegramAdapter(
        bot,
        telegram_settings=TelegramSettings(bot_token="1:x", webapp_url=webapp_url),
        sync_settings=SyncSettings(),
        store=store,
        commands=commands,
        marathon=marathon,
        pairing=pairing,
        clock=clock,
    )
    return adapter, bot, store, commands, marathon, pairing


def _make_message(text: str, *, user_id: int = OWNER_TG, chat_type: str = "private") -> MagicMock:
    msg = MagicMock()
    msg.from_user = MagicMock()
    msg.from_user.id = user_id
    msg.from_user.username = "owner"
    msg.text = text
    msg.chat = MagicMock()
    msg.chat.id = user_id
    msg.chat.type = chat_type
    return msg


def _make_callback(data: str, *, from_id: int = OWNER_TG) -> AsyncMock:
    cb = AsyncMock()
    cb.data = data
    cb.from_user = MagicMock()
    cb.from_user.id = from_id
    return cb


def _sent_text(bot: AsyncMock) -> str:
    return bot.send_message.await_args.args[1]


def _online(clock) -> SyncState:
    return SyncState(user_id=1, is_online=True, last_heartbeat=clock.now)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


class TestParseCallbackData:
    def test_with_extra(self):
        assert parse_callback_data("watch:5:anime-9") == ("watch", 5, "anime-9")

    def test_extra_may_contain_colons(self):
        assert parse_callback_data("watch:5:a:b") == ("watch", 5, "a:b")

    def test_bad_user_id(self):
        assert parse_callback_data("resume:abc") == ("resume", None, "")

    def test_bare_action(self):
        assert parse_callback_data("menu") == ("menu", None, "")


class TestBuildKeyboard:
    def test_none(self):
        assert build_keyboard(None) is None

    def test_callback_and_webapp_buttons(self):
        markup = build_keyboard([
            [Action("Open", web_app_url="https://example.org/app")],
            [Action("Go", callback_data="resume:1")],
        ])
        assert markup.inline_keyboard[0][0].web_app.url == "https://example.org/app"
        assert markup.inline_keyboard[1][0].callback_data == "resume:1"


class TestTelegramSink:
    @pytest.mark.asyncio
    async def test_send_failure_wrapped(self):
        bot = AsyncMock()
        bot.send_message.side_effect = RuntimeError("Forbidden")
        with pytest.raises(ChannelError, match="Telegram send failed"):
            await TelegramSink(bot).send_message(1, "hi")


# ---------------------------------------------------------------------------
# Chat commands
# ---------------------------------------------------------------------------


class TestChatCommands:
    @pytest.mark.asyncio
    async def test_group_message_ignored(self, clock):
        adapter, bot, store, *_ = _make_adapter(clock)

        await adapter._handle_message(_make_message("/status", chat_type="group"))

        store.get_or_create_user.assert_not_awaited()
        bot.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_start_creates_user_and_welcomes(self, clock):
        adapter, bot, store, *_ = _make_adapter(clock, webapp_url="https://example.org/app")

        await adapter._handle_message(_make_message("/start"))

        store.get_or_create_user.assert_awaited_once_with(OWNER_TG, "owner")
        markup = bot.send_message.await_args.kwargs["reply_markup"]
        assert markup.inline_keyboard[0][0].web_app.url == "https://example.org/app"
        assert markup.inline_keyboard[1][0].callback_data == "connect:1"

    @pytest.mark.asyncio
    async def test_connect_issues_pairing_code(self, clock):
        adapter, bot, _, _, _, pairing = _make_adapter(clock)

        await adapter._handle_message(_make_message("/connect"))

        pairing.issue_code.assert_awaited_once_with(1)
        assert "`ABC-DEF`" in _sent_text(bot)
        assert "5 minutes" in _sent_text(bot)

    @pytest.mark.asyncio
    async def test_command_with_bot_suffix(self, clock):
        adapter, bot, *_ = _make_adapter(clock)

        await adapter._handle_message(_make_message("/help@AniPilotBot"))

        assert _sent_text(bot) == HELP_TEXT

    @pytest.mark.asyncio
    async def test_status_not_linked(self, clock):
        adapter, bot, *_ = _make_adapter(clock, state=None)

        await adapter._handle_message(_make_message("/status"))

        assert "/connect" in _sent_text(bot)

    @pytest.mark.asyncio
    async def test_status_uses_heartbeat_freshness(self, clock):
        state = SyncState(
            user_id=1,
            is_online=True,
            last_heartbeat=clock.now - 200_000,
            current_anime={"title": "Hyouka"},
            current_season=1,
            current_episode=2,
        )
        adapter, bot, *_ = _make_adapter(clock, state=state)

        await adapter._handle_message(_make_message("/status"))

        text = _sent_text(bot)
        assert "offline" in text
        assert "Hyouka S1E2" in text

    @pytest.mark.asyncio
    async def test_marathon_listing(self, clock):
        state = SyncState(
            user_id=1,
            marathon_on=True,
            marathon_idx=1,
            marathon_queue=[{"id": "a", "title": "A"}, {"id": "b", "title": "B", "ep": 4}],
        )
        adapter, bot, *_ = _make_adapter(clock, state=state)

        await adapter._handle_message(_make_message("/marathon"))

        text = _sent_text(bot)
        assert "1. A S1E1" in text
        assert "▶ 2. B S1E4" in text
        markup = bot.send_message.await_args.kwargs["reply_markup"]
        assert [b.callback_data for b in markup.inline_keyboard[0]] == ["mnext:1", "mstop:1"]

    @pytest.mark.asyncio
    async def test_handler_failure_logged_not_raised(self, clock):
        adapter, bot, store, *_ = _make_adapter(clock)
        store.get_state.side_effect = TimeoutError()

        await adapter._handle_message(_make_message("/stats"))

        bot.send_message.assert_not_awaited()


# ---------------------------------------------------------------------------
# Callbacks
# ---------------------------------------------------------------------------


class TestCallbacks:
    @pytest.mark.asyncio
    async def test_foreign_account_ignored(self, clock):
        adapter, bot, _, commands, *_ = _make_adapter(clock)

        await adapter._handle_callback(_make_callback("next:1", from_id=999))

        commands.enqueue.assert_not_awaited()
        bot.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_user_ignored(self, clock):
        adapter, _, store, commands, *_ = _make_adapter(clock)
        store.get_user.return_value = None

        await adapter._handle_callback(_make_callback("next:42"))

        commands.enqueue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_callback_always_answered(self, clock):
        adapter, *_ = _make_adapter(clock)
        cb = _make_callback("garbage")

        await adapter._handle_callback(cb)

        cb.answer.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_next_while_offline_adds_queued_hint(self, clock):
        adapter, bot, _, commands, *_ = _make_adapter(clock, state=None)

        await adapter._handle_callback(_make_callback("next:1"))

        commands.enqueue.assert_awaited_once_with(1, CommandType.next_episode, {})
        assert _sent_text(bot).endswith(QUEUED_HINT)

    @pytest.mark.asyncio
    async def test_next_while_online_no_hint(self, clock):
        adapter, bot, *_ = _make_adapter(clock, state=_online(clock))

        await adapter._handle_callback(_make_callback("next:1"))

        assert QUEUED_HINT not in _sent_text(bot)

    @pytest.mark.asyncio
    async def test_resume_uses_last_position(self, clock):
        state = _online(clock)
        state.current_url = "https://player.example/watch/9"
        state.video_time = 321.0
        adapter, _, _, commands, *_ = _make_adapter(clock, state=state)

        await adapter._handle_callback(_make_callback("resume:1"))

        commands.enqueue.assert_awaited_once_with(
            1, CommandType.resume, {"url": "https://player.example/watch/9", "time": 321.0}
        )

    @pytest.mark.asyncio
    async def test_watch_navigates(self, clock):
        adapter, _, _, commands, *_ = _make_adapter(clock)

        await adapter._handle_callback(_make_callback("watch:1:anime-7"))

        commands.enqueue.assert_awaited_once_with(
            1, CommandType.navigate, {"animeId": "anime-7", "season": 1, "episode": 1}
        )

    @pytest.mark.parametrize(
        ("data", "method"),
        [
            ("mstart:1", "start"),
            ("mstop:1", "stop"),
            ("mcont:1", "resume"),
            ("mnext:1", "next"),
            ("mclear:1", "clear"),
        ],
    )
    @pytest.mark.asyncio
    async def test_marathon_buttons(self, clock, data, method):
        adapter, _, _, _, marathon, _ = _make_adapter(clock)

        await adapter._handle_callback(_make_callback(data))

        getattr(marathon, method).assert_awaited_once_with(1)

    @pytest.mark.asyncio
    async def test_check_reports_reachability(self, clock):
        adapter, bot, *_ = _make_adapter(clock, state=_online(clock))

        await adapter._handle_callback(_make_callback("check:1"))

        assert "online" in _sent_text(bot)


# ---------------------------------------------------------------------------
# Readiness check
# ---------------------------------------------------------------------------


class TestReadinessCheck:
    @pytest.mark.asyncio
    async def test_check_ready_success(self, clock):
        adapter, bot, *_ = _make_adapter(clock)
        bot.get_me.return_value = MagicMock(username="anipilot_bot")

        await adapter.check_ready()

        assert adapter._bot_username == "anipilot_bot"

    @pytest.mark.asyncio
    async def test_check_ready_failure_raises(self, clock):
        adapter, bot, *_ = _make_adapter(clock)
        bot.get_me.side_effect = Exception("network error")

        with pytest.raises(ChannelError, match="Telegram bot token verification failed"):
            await adapter.check_ready()
