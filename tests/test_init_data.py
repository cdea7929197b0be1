"""Tests for Telegram Mini App initData validation."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock
from urllib.parse import urlencode

import pytest

from src.auth.init_data import (
    InitDataAuthenticator,
    extract_user,
    sign_init_data,
    validate_init_data,
)
from src.infra.errors import AuthError
from src.sync.state import User

BOT_TOKEN = "123456:TEST-token"


def make_init_data(user: dict | None, *, bot_token: str = BOT_TOKEN, **extra: str) -> str:
    pairs = [("auth_date", "1700000000"), ("query_id", "AAE")]
    if user is not None:
        pairs.append(("user", json.dumps(user)))
    pairs.extend(extra.items())
    pairs.append(("hash", sign_init_data(pairs, bot_token)))
    return urlencode(pairs)


class TestValidateInitData:
    def test_valid(self) -> None:
        assert validate_init_data(make_init_data({"id": 1}), BOT_TOKEN) is True

    def test_signed_with_other_bot(self) -> None:
        assert validate_init_data(make_init_data({"id": 1}, bot_token="9:other"), BOT_TOKEN) is False

    def test_tampered_field(self) -> None:
        data = make_init_data({"id": 1}).replace("1700000000", "1700000001")
        assert validate_init_data(data, BOT_TOKEN) is False

    def test_missing_hash(self) -> None:
        assert validate_init_data("auth_date=1&user=%7B%7D", BOT_TOKEN) is False

    def test_empty(self) -> None:
        assert validate_init_data("", BOT_TOKEN) is False

    def test_no_bot_token_configured(self) -> None:
        assert validate_init_data(make_init_data({"id": 1}), "") is False


class TestExtractUser:
    def test_user_json(self) -> None:
        assert extract_user(make_init_data({"id": 42, "username": "u"}))["id"] == 42

    def test_malformed_json(self) -> None:
        assert extract_user("user=%7Bnope") is None

    def test_absent(self) -> None:
        assert extract_user("auth_date=1") is None


class TestInitDataAuthenticator:
    @pytest.mark.asyncio
    async def test_creates_user_on_first_contact(self) -> None:
        store = AsyncMock()
        store.get_or_create_user.return_value = User(id=1, telegram_id=42, username="kumo")
        auth = InitDataAuthenticator(store, BOT_TOKEN)

        user = await auth.authenticate(make_init_data({"id": 42, "username": "kumo"}))

        assert user.telegram_id == 42
        store.get_or_create_user.assert_awaited_once_with(42, "kumo")

    @pytest.mark.asyncio
    async def test_first_name_fallback(self) -> None:
        store = AsyncMock()
        auth = InitDataAuthenticator(store, BOT_TOKEN)

        await auth.authenticate(make_init_data({"id": 42, "first_name": "Kumo"}))

        store.get_or_create_user.assert_awaited_once_with(42, "Kumo")

    @pytest.mark.parametrize(
        ("init_data", "code"),
        [
            (None, "NO_INIT_DATA"),
            ("", "NO_INIT_DATA"),
            ("auth_date=1&hash=deadbeef", "INVALID_INIT_DATA"),
        ],
    )
    @pytest.mark.asyncio
    async def test_rejections(self, init_data, code) -> None:
        auth = InitDataAuthenticator(AsyncMock(), BOT_TOKEN)
        with pytest.raises(AuthError) as exc_info:
            await auth.authenticate(init_data)
        assert exc_info.value.code == code

    @pytest.mark.asyncio
    async def test_signed_without_user(self) -> None:
        store = AsyncMock()
        auth = InitDataAuthenticator(store, BOT_TOKEN)
        with pytest.raises(AuthError) as exc_info:
            await auth.authenticate(make_init_data(None))
        assert exc_info.value.code == "NO_USER"
        store.get_or_create_user.assert_not_awaited()
