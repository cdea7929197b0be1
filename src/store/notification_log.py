"""Write-once ledger of sent notifications, used only for cooldown checks."""

from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.infra.clock import Clock
from src.store.models import NotificationLogRecord

DEFAULT_RETENTION_MS = 86_400_000


class NotificationLedger:
    def __init__(
        self,
        db_session_factory: async_sessionmaker[AsyncSession],
        clock: Clock,
    ) -> None:
        self._db = db_session_factory
        self._clock = clock

    async def sent_within(self, user_id: int, type_: str, window_ms: int) -> bool:
        """True if a notification of this type reached the user in the last window_ms."""
        since = self._clock.now_ms() - window_ms
        async with self._db() as db_session:
            result = await db_session.execute(
                select(NotificationLogRecord.id)
                .where(
                    NotificationLogRecord.user_id == user_id,
                    NotificationLogRecord.type == type_,
                    NotificationLogRecord.sent_at > since,
                )
                .limit(1)
            )
            return result.first() is not None

    async def record(self, user_id: int, type_: str) -> None:
        async with self._db() as db_session:
            db_session.add(
                NotificationLogRecord(
                    user_id=user_id, type=type_, sent_at=self._clock.now_ms()
                )
            )
            await db_session.commit()

    async def purge_expired(self, max_age_ms: int = DEFAULT_RETENTION_MS) -> int:
        cutoff = self._clock.now_ms() - max_age_ms
        async with self._db() as db_session:
            result = await db_session.execute(
                delete(NotificationLogRecord).where(NotificationLogRecord.sent_at < cutoff)
            )
            await db_session.commit()
        return result.rowcount or 0
