"""Bearer-credential authentication for the playback agent."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from src.infra.errors import AuthError

if TYPE_CHECKING:
    from src.auth.cache import CredentialCache
    from src.auth.tokens import TokenSigner
    from src.store.sync_store import SyncStore
    from src.sync.state import User

logger = structlog.get_logger()


def parse_bearer(authorization: str | None) -> str:
    if not authorization:
        return ""
    value = authorization.strip()
    if value.lower().startswith("bearer "):
        value = value[7:]
    return value.strip()


class CredentialAuthenticator:
    """Resolve an agent's bearer token to its user.

    Cache hit within TTL short-circuits. On a miss the signature is verified,
    the user reloaded, and the stored credential must equal the presented
    one, so rotating the stored credential revokes older tokens.
    """

    def __init__(self, store: SyncStore, signer: TokenSigner, cache: CredentialCache) -> None:
        self._store = store
        self._signer = signer
        self._cache = cache

    async def authenticate(self, authorization: str | None) -> User:
        token = parse_bearer(authorization)
        if not token:
            raise AuthError("No token", code="NO_TOKEN")

        cached = self._cache.get(token)
        if cached is not None:
            return cached

        claims = self._signer.verify(token)
        if claims is None:
            raise AuthError("Bad token", code="BAD_TOKEN")

        user = await self._store.get_user(claims["uid"])
        if user is None or user.token != token:
            logger.info("credential_revoked", user_id=claims["uid"])
            raise AuthError("Revoked", code="REVOKED")

        self._cache.put(token, user)
        return user
