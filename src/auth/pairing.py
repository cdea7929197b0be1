"""Pairing: a short-lived code issued in chat is exchanged once for a durable credential."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from src.auth.tokens import generate_pairing_code, normalize_pairing_code
from src.infra.errors import NotFoundError, ValidationError

if TYPE_CHECKING:
    from src.auth.cache import CredentialCache
    from src.auth.tokens import TokenSigner
    from src.infra.clock import Clock
    from src.notify.dispatcher import NotificationDispatcher
    from src.store.sync_store import SyncStore
    from src.sync.state import User

logger = structlog.get_logger()

LINKED_MESSAGE = "✅ *Script linked!*\nAniPilot is connected to Telegram."


@dataclass(frozen=True)
class PairingResult:
    token: str
    user: User

    def to_wire(self) -> dict:
        return {
            "ok": True,
            "token": self.token,
            "telegramId": self.user.telegram_id,
            "username": self.user.username,
        }


class PairingService:
    def __init__(
        self,
        *,
        store: SyncStore,
        signer: TokenSigner,
        cache: CredentialCache,
        dispatcher: NotificationDispatcher,
        clock: Clock,
        code_ttl_ms: int = 300_000,
    ) -> None:
        self._store = store
        self._signer = signer
        self._cache = cache
        self._dispatcher = dispatcher
        self._clock = clock
        self._code_ttl_ms = code_ttl_ms

    @property
    def code_ttl_ms(self) -> int:
        return self._code_ttl_ms

    async def issue_code(self, user_id: int) -> str:
        code = generate_pairing_code()
        await self._store.set_pairing_code(
            user_id, code, self._clock.now_ms() + self._code_ttl_ms
        )
        logger.info("pairing_code_issued", user_id=user_id)
        return code

    async def verify(self, raw_code: str | None) -> PairingResult:
        """Consume a pairing code and return the new credential.

        The previous credential (if any) stops working immediately in this
        process and within one cache TTL everywhere else.
        """
        code = normalize_pairing_code(raw_code or "")
        if not code:
            raise ValidationError("No code")

        redeemed = await self._store.redeem_pairing_code(
            code, lambda u: self._signer.sign(u.id, u.telegram_id)
        )
        if redeemed is None:
            raise NotFoundError("Invalid or expired code")

        user, previous = redeemed
        if previous:
            self._cache.invalidate(previous)

        self._dispatcher.send_text_background(user.telegram_id, LINKED_MESSAGE)
        logger.info("agent_paired", user_id=user.id)
        return PairingResult(token=user.token, user=user)
