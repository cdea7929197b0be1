"""SQLAlchemy 2.0 async models for users, sync state, commands and the notification ledger.

Timestamps are epoch milliseconds (BIGINT), written from the injected clock.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from src.constants import DB_SCHEMA


class Base(DeclarativeBase):
    pass


class UserRecord(Base):
    __tablename__ = "users"
    __table_args__ = {"schema": DB_SCHEMA}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    telegram_id: Mapped[int] = mapped_column(BigInteger, unique=True, index=True)
    username: Mapped[str] = mapped_column(String(128), default="")
    token: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    notify_crash: Mapped[bool] = mapped_column(Boolean, default=True)
    notify_marathon: Mapped[bool] = mapped_column(Boolean, default=True)
    notify_offline: Mapped[bool] = mapped_column(Boolean, default=True)
    notify_digest: Mapped[bool] = mapped_column(Boolean, default=True)
    connect_code: Mapped[str | None] = mapped_column(String(16), nullable=True, default=None)
    code_expires: Mapped[int] = mapped_column(BigInteger, default=0)
    created_at: Mapped[int] = mapped_column(BigInteger, default=0)


class SyncStateRecord(Base):
    __tablename__ = "sync_state"
    __table_args__ = (
        Index("idx_sync_state_stale", "is_online", "notified_offline", "last_heartbeat"),
        {"schema": DB_SCHEMA},
    )

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey(f"{DB_SCHEMA}.users.id", ondelete="CASCADE"), primary_key=True
    )
    is_online: Mapped[bool] = mapped_column(Boolean, default=False)
    last_heartbeat: Mapped[int] = mapped_column(BigInteger, default=0)
    notified_offline: Mapped[bool] = mapped_column(Boolean, default=False)
    current_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    current_anime: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    current_season: Mapped[int | None] = mapped_column(Integer, nullable=True)
    current_episode: Mapped[int | None] = mapped_column(Integer, nullable=True)
    video_time: Mapped[float] = mapped_column(default=0.0)
    video_duration: Mapped[float] = mapped_column(default=0.0)
    is_playing: Mapped[bool] = mapped_column(Boolean, default=False)
    marathon_on: Mapped[bool] = mapped_column(Boolean, default=False)
    marathon_idx: Mapped[int] = mapped_column(Integer, default=0)
    marathon_queue: Mapped[list[Any]] = mapped_column(JSONB, default=list)
    history: Mapped[list[Any]] = mapped_column(JSONB, default=list)
    binge_today: Mapped[int] = mapped_column(Integer, default=0)
    binge_date: Mapped[str | None] = mapped_column(String(16), nullable=True)
    watch_minutes: Mapped[int] = mapped_column(Integer, default=0)


class CommandRecord(Base):
    __tablename__ = "commands"
    __table_args__ = (
        Index("idx_commands_user_created", "user_id", "created_at"),
        {"schema": DB_SCHEMA},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey(f"{DB_SCHEMA}.users.id", ondelete="CASCADE")
    )
    type: Mapped[str] = mapped_column(String(64))
    payload: Mapped[Any] = mapped_column(JSONB, default=dict)
    created_at: Mapped[int] = mapped_column(BigInteger, index=True)


class NotificationLogRecord(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("idx_notifications_user_type_sent", "user_id", "type", "sent_at"),
        {"schema": DB_SCHEMA},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey(f"{DB_SCHEMA}.users.id", ondelete="CASCADE")
    )
    type: Mapped[str] = mapped_column(String(64))
    sent_at: Mapped[int] = mapped_column(BigInteger, index=True)
