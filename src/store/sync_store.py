"""Durable per-user records: accounts, pairing codes and the sync_state row.

PostgreSQL is the sole consistency arbiter. Writes to sync_state are
single-statement upserts (INSERT ... ON CONFLICT DO UPDATE) so concurrent
heartbeats and control-plane actions serialize on the row without any
application-level locking.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import replace
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.infra.clock import Clock
from src.store.models import SyncStateRecord, UserRecord
from src.sync.state import SyncState, User, build_heartbeat_patch

logger = structlog.get_logger()

SETTINGS_FIELDS = ("notify_crash", "notify_marathon", "notify_offline", "notify_digest")


def _to_user(record: UserRecord) -> User:
    return User(
        id=record.id,
        telegram_id=record.telegram_id,
        username=record.username or "",
        token=record.token,
        notify_crash=bool(record.notify_crash),
        notify_marathon=bool(record.notify_marathon),
        notify_offline=bool(record.notify_offline),
        notify_digest=bool(record.notify_digest),
        connect_code=record.connect_code,
        code_expires=record.code_expires or 0,
    )


def _to_state(record: SyncStateRecord) -> SyncState:
    return SyncState(
        user_id=record.user_id,
        is_online=bool(record.is_online),
        last_heartbeat=record.last_heartbeat or 0,
        notified_offline=bool(record.notified_offline),
        current_url=record.current_url,
        current_anime=record.current_anime,
        current_season=record.current_season,
        current_episode=record.current_episode,
        video_time=record.video_time or 0.0,
        video_duration=record.video_duration or 0.0,
        is_playing=bool(record.is_playing),
        marathon_on=bool(record.marathon_on),
        marathon_idx=record.marathon_idx or 0,
        marathon_queue=list(record.marathon_queue or []),
        history=list(record.history or []),
        binge_today=record.binge_today or 0,
        binge_date=record.binge_date,
        watch_minutes=record.watch_minutes or 0,
    )


class SyncStore:
    """User accounts and per-user sync state backed by PostgreSQL."""

    def __init__(
        self,
        db_session_factory: async_sessionmaker[AsyncSession],
        clock: Clock,
        *,
        history_max_items: int = 50,
    ) -> None:
        self._db = db_session_factory
        self._clock = clock
        self._history_max_items = history_max_items

    # ── Users ──

    async def get_user(self, user_id: int) -> User | None:
        async with self._db() as db_session:
            record = await db_session.get(UserRecord, user_id)
            return _to_user(record) if record is not None else None

    async def get_or_create_user(self, telegram_id: int, username: str = "") -> User:
        """Return the account for a Telegram user, creating it and its state row on first contact."""
        async with self._db() as db_session:
            await db_session.execute(
                pg_insert(UserRecord)
                .values(
                    telegram_id=telegram_id,
                    username=username or "",
                    created_at=self._clock.now_ms(),
                )
                .on_conflict_do_nothing(index_elements=["telegram_id"])
            )
            result = await db_session.execute(
                select(UserRecord).where(UserRecord.telegram_id == telegram_id)
            )
            record = result.scalar_one()
            await db_session.execute(
                pg_insert(SyncStateRecord)
                .values(user_id=record.id)
                .on_conflict_do_nothing(index_elements=["user_id"])
            )
            await db_session.commit()
            return _to_user(record)

    async def set_pairing_code(self, user_id: int, code: str, expires_ms: int) -> None:
        async with self._db() as db_session:
            await db_session.execute(
                update(UserRecord)
                .where(UserRecord.id == user_id)
                .values(connect_code=code, code_expires=expires_ms)
            )
            await db_session.commit()

    async def redeem_pairing_code(
        self, code: str, issue_token: Callable[[User], str]
    ) -> tuple[User, str | None] | None:
        """Consume an unexpired pairing code and store a fresh credential for its owner.

        The user row is locked for the whole exchange, so a code is redeemed
        at most once even when several requests present it concurrently; the
        losers re-check the row after the winner commits and find no code.
        Returns the user carrying the new token plus the token it replaced,
        or None if the code is unknown, expired or already used.
        """
        async with self._db() as db_session:
            result = await db_session.execute(
                select(UserRecord)
                .where(
                    UserRecord.connect_code == code,
                    UserRecord.code_expires > self._clock.now_ms(),
                )
                .with_for_update()
            )
            record = result.scalars().first()
            if record is None:
                await db_session.rollback()
                return None

            previous = record.token
            user = _to_user(record)
            token = issue_token(user)
            await db_session.execute(
                update(UserRecord)
                .where(UserRecord.id == record.id)
                .values(token=token, connect_code=None, code_expires=0)
            )
            await db_session.commit()

        logger.info("credential_rotated", user_id=user.id, had_previous=previous is not None)
        return replace(user, token=token), previous

    async def update_settings(self, user_id: int, fields: Mapping[str, bool]) -> None:
        values = {k: bool(v) for k, v in fields.items() if k in SETTINGS_FIELDS}
        if not values:
            return
        async with self._db() as db_session:
            await db_session.execute(
                update(UserRecord).where(UserRecord.id == user_id).values(**values)
            )
            await db_session.commit()

    # ── Sync state ──

    async def get_state(self, user_id: int) -> SyncState | None:
        async with self._db() as db_session:
            record = await db_session.get(SyncStateRecord, user_id)
            return _to_state(record) if record is not None else None

    async def upsert_state(self, user_id: int, fields: Mapping[str, Any]) -> None:
        """Patch the given columns, creating the row if missing. Other columns are untouched."""
        if not fields:
            return
        async with self._db() as db_session:
            await db_session.execute(
                pg_insert(SyncStateRecord)
                .values(user_id=user_id, **fields)
                .on_conflict_do_update(index_elements=["user_id"], set_=dict(fields))
            )
            await db_session.commit()

    async def record_heartbeat(
        self, user_id: int, partial: Mapping[str, Any] | None
    ) -> dict[str, Any]:
        """Merge an agent heartbeat into the state row. Returns the applied patch."""
        patch = build_heartbeat_patch(
            partial,
            now_ms=self._clock.now_ms(),
            history_max_items=self._history_max_items,
        )
        await self.upsert_state(user_id, patch)
        return patch

    async def declare_offline(self, user_id: int) -> None:
        """Clean agent shutdown: only the online flag changes."""
        await self.upsert_state(user_id, {"is_online": False})

    async def get_stale_online(self, threshold_ms: int) -> list[SyncState]:
        """Rows still flagged online whose last heartbeat is older than threshold_ms."""
        cutoff = self._clock.now_ms() - threshold_ms
        async with self._db() as db_session:
            result = await db_session.execute(
                select(SyncStateRecord).where(
                    SyncStateRecord.is_online.is_(True),
                    SyncStateRecord.notified_offline.is_(False),
                    SyncStateRecord.last_heartbeat < cutoff,
                )
            )
            return [_to_state(r) for r in result.scalars().all()]

    async def mark_offline_notified(self, user_id: int, threshold_ms: int) -> bool:
        """Flip a still-stale row to offline+notified.

        Returns False when the row was refreshed by a heartbeat (or already
        handled by another sweep) after it was selected.
        """
        cutoff = self._clock.now_ms() - threshold_ms
        async with self._db() as db_session:
            result = await db_session.execute(
                update(SyncStateRecord)
                .where(
                    SyncStateRecord.user_id == user_id,
                    SyncStateRecord.is_online.is_(True),
                    SyncStateRecord.notified_offline.is_(False),
                    SyncStateRecord.last_heartbeat < cutoff,
                )
                .values(is_online=False, notified_offline=True)
            )
            await db_session.commit()
        return result.rowcount > 0
