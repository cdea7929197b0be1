"""Agent credentials: pairing codes and signed bearer tokens."""

from __future__ import annotations

import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

PAIRING_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # no 0/O, 1/I
_JWT_ALGORITHM = "HS256"


def generate_pairing_code() -> str:
    """Six random characters formatted as XXX-XXX."""
    code = "".join(secrets.choice(PAIRING_ALPHABET) for _ in range(6))
    return f"{code[:3]}-{code[3:]}"


def normalize_pairing_code(raw: str) -> str:
    """Users type codes by hand: ignore case and whitespace."""
    return "".join(raw.split()).upper()


class TokenSigner:
    """HS256 JWTs carrying the user id (uid) and Telegram id (tg).

    A valid signature is necessary but not sufficient: the caller must also
    check the token against the user's stored credential.
    """

    def __init__(self, secret: str, *, ttl_days: int = 30) -> None:
        self._secret = secret
        self._ttl = timedelta(days=ttl_days)

    def sign(self, user_id: int, telegram_id: int) -> str:
        now = datetime.now(UTC)
        return jwt.encode(
            {"uid": user_id, "tg": telegram_id, "iat": now, "exp": now + self._ttl},
            self._secret,
            algorithm=_JWT_ALGORITHM,
        )

    def verify(self, token: str) -> dict[str, Any] | None:
        """Decoded claims, or None for a bad signature, expiry or malformed token."""
        try:
            claims = jwt.decode(token, self._secret, algorithms=[_JWT_ALGORITHM])
        except jwt.PyJWTError:
            return None
        if not isinstance(claims.get("uid"), int):
            return None
        return claims
