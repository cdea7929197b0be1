"""Short-TTL cache of validated bearer credentials.

Agents poll every few seconds; the cache keeps most polls from touching the
users table. Entries are only ever added after a full validation, so a stale
or duplicate entry costs a redundant lookup at worst.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.infra.clock import Clock
from src.sync.state import User


@dataclass
class _Entry:
    user: User
    cached_at: int


class CredentialCache:
    def __init__(
        self,
        clock: Clock,
        *,
        ttl_ms: int = 60_000,
        sweep_interval_ms: int = 120_000,
    ) -> None:
        self._clock = clock
        self._ttl_ms = ttl_ms
        self._sweep_interval_ms = sweep_interval_ms
        self._entries: dict[str, _Entry] = {}
        self._last_sweep = clock.now_ms()

    def get(self, token: str) -> User | None:
        now = self._clock.now_ms()
        self._maybe_sweep(now)
        entry = self._entries.get(token)
        if entry is None or now - entry.cached_at >= self._ttl_ms:
            return None
        return entry.user

    def put(self, token: str, user: User) -> None:
        now = self._clock.now_ms()
        self._maybe_sweep(now)
        self._entries[token] = _Entry(user=user, cached_at=now)

    def invalidate(self, token: str) -> None:
        self._entries.pop(token, None)

    def sweep(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        now = self._clock.now_ms()
        self._last_sweep = now
        expired = [k for k, v in self._entries.items() if now - v.cached_at >= self._ttl_ms]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def _maybe_sweep(self, now: int) -> None:
        if now - self._last_sweep >= self._sweep_interval_ms:
            self.sweep()
