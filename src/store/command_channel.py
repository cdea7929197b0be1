"""Per-user FIFO of pending agent commands.

Delivery is at-most-once: acknowledging a command deletes its row, so a
command fetched but never acknowledged (agent crash) is simply lost once
it ages out. Commands are designed to be safe to re-issue.

Single consumer per user is assumed. Two pollers for the same user may
both receive a command before either acknowledges it; there is no
per-command claiming.
"""

from __future__ import annotations

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.infra.clock import Clock
from src.store.models import CommandRecord
from src.sync.commands import Command, JSONValue

logger = structlog.get_logger()

DEFAULT_POLL_LIMIT = 10
DEFAULT_RETENTION_MS = 3_600_000


def _to_command(record: CommandRecord) -> Command:
    return Command(
        id=record.id,
        user_id=record.user_id,
        type=record.type,
        payload=record.payload,
        created_at=record.created_at,
    )


class CommandChannel:
    """Pull queue of commands from the control plane to a user's agent."""

    def __init__(
        self,
        db_session_factory: async_sessionmaker[AsyncSession],
        clock: Clock,
        *,
        retention_ms: int = DEFAULT_RETENTION_MS,
    ) -> None:
        self._db = db_session_factory
        self._clock = clock
        self._retention_ms = retention_ms

    async def enqueue(self, user_id: int, type_: str, payload: JSONValue = None) -> int:
        """Append a command for the user's agent. Returns the command id."""
        record = CommandRecord(
            user_id=user_id,
            type=type_,
            payload=payload if payload is not None else {},
            created_at=self._clock.now_ms(),
        )
        async with self._db() as db_session:
            db_session.add(record)
            await db_session.commit()
        logger.info("command_enqueued", user_id=user_id, command_id=record.id, type=type_)
        return record.id

    async def poll_pending(
        self, user_id: int, limit: int = DEFAULT_POLL_LIMIT
    ) -> list[Command]:
        """Oldest-first pending commands for this user only.

        Commands past retention are treated as gone even before the sweep deletes them.
        """
        cutoff = self._clock.now_ms() - self._retention_ms
        async with self._db() as db_session:
            result = await db_session.execute(
                select(CommandRecord)
                .where(
                    CommandRecord.user_id == user_id,
                    CommandRecord.created_at >= cutoff,
                )
                .order_by(CommandRecord.created_at, CommandRecord.id)
                .limit(limit)
            )
            return [_to_command(r) for r in result.scalars().all()]

    async def acknowledge(self, command_id: int, user_id: int) -> bool:
        """Delete the command iff it belongs to user_id.

        Acking someone else's (or an unknown) command is a no-op, not an error.
        Returns True if a row was removed.
        """
        async with self._db() as db_session:
            result = await db_session.execute(
                delete(CommandRecord).where(
                    CommandRecord.id == command_id,
                    CommandRecord.user_id == user_id,
                )
            )
            await db_session.commit()
        removed = (result.rowcount or 0) > 0
        if not removed:
            logger.debug("command_ack_noop", user_id=user_id, command_id=command_id)
        return removed

    async def purge_expired(self, max_age_ms: int | None = None) -> int:
        """Delete commands older than max_age_ms regardless of ack state."""
        cutoff = self._clock.now_ms() - (max_age_ms or self._retention_ms)
        async with self._db() as db_session:
            result = await db_session.execute(
                delete(CommandRecord).where(CommandRecord.created_at < cutoff)
            )
            await db_session.commit()
        return result.rowcount or 0
