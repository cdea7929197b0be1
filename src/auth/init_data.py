"""Telegram Mini App initData validation (stateless HMAC check, never cached)."""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qsl

from src.infra.errors import AuthError

if TYPE_CHECKING:
    from src.store.sync_store import SyncStore
    from src.sync.state import User


def _secret_key(bot_token: str) -> bytes:
    return hmac.new(b"WebAppData", bot_token.encode(), hashlib.sha256).digest()


def data_check_string(pairs: list[tuple[str, str]]) -> str:
    """Canonical form: every field except hash, sorted by key, as key=value lines."""
    return "\n".join(f"{k}={v}" for k, v in sorted(pairs) if k != "hash")


def sign_init_data(pairs: list[tuple[str, str]], bot_token: str) -> str:
    return hmac.new(
        _secret_key(bot_token), data_check_string(pairs).encode(), hashlib.sha256
    ).hexdigest()


def validate_init_data(init_data: str, bot_token: str) -> bool:
    if not init_data or not bot_token:
        return False
    pairs = parse_qsl(init_data, keep_blank_values=True)
    received = dict(pairs).get("hash")
    if not received:
        return False
    return hmac.compare_digest(sign_init_data(pairs, bot_token), received)


def extract_user(init_data: str) -> dict[str, Any] | None:
    raw = dict(parse_qsl(init_data, keep_blank_values=True)).get("user")
    if not raw:
        return None
    try:
        user = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return user if isinstance(user, dict) else None


class InitDataAuthenticator:
    """Authenticate control-plane (Mini App) requests; creates the account on first contact."""

    def __init__(self, store: SyncStore, bot_token: str) -> None:
        self._store = store
        self._bot_token = bot_token

    async def authenticate(self, init_data: str | None) -> User:
        if not init_data:
            raise AuthError("No initData", code="NO_INIT_DATA")
        if not validate_init_data(init_data, self._bot_token):
            raise AuthError("Invalid initData", code="INVALID_INIT_DATA")
        tg_user = extract_user(init_data)
        if not tg_user or not isinstance(tg_user.get("id"), int):
            raise AuthError("No user", code="NO_USER")
        username = tg_user.get("username") or tg_user.get("first_name") or ""
        return await self._store.get_or_create_user(tg_user["id"], str(username))
