"""Shared pytest fixtures.

Unit tests get a FakeClock. Integration tests (marked ``integration``) get a
PostgreSQL database: the one named by TEST_DATABASE_* when TEST_DATABASE_HOST is
set, otherwise a throwaway testcontainers instance.
Sync tables are truncated between tests, so only databases named ``*_test`` are accepted.
"""

from __future__ import annotations

import asyncio
import os

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config.settings import DatabaseSettings
from src.constants import DB_SCHEMA
from src.store.database import create_db_engine, ensure_schema, make_session_factory
from src.store.models import Base

SYNC_TABLES = ("notifications", "commands", "sync_state", "users")


class FakeClock:
    """Manually advanced clock in epoch milliseconds."""

    def __init__(self, now_ms: int = 1_700_000_000_000) -> None:
        self.now = now_ms

    def now_ms(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def _require_test_db(settings: DatabaseSettings) -> DatabaseSettings:
    if "_test" not in settings.name.lower():
        raise RuntimeError(
            f"Database '{settings.name}' does not look like a test database; "
            "point TEST_DATABASE_NAME at one whose name contains '_test'."
        )
    return settings


@pytest.fixture(scope="session")
def test_db_settings():
    """DatabaseSettings for the integration database, starting a container if needed."""
    if os.getenv("TEST_DATABASE_HOST") is not None:
        yield _require_test_db(
            DatabaseSettings(
                host=os.environ["TEST_DATABASE_HOST"],
                port=int(os.getenv("TEST_DATABASE_PORT", "5432")),
                user=os.getenv("TEST_DATABASE_USER", "postgres"),
                password=os.getenv("TEST_DATABASE_PASSWORD", ""),
                name=os.getenv("TEST_DATABASE_NAME", "anipilot_test"),
            )
        )
        return

    from testcontainers.postgres import PostgresContainer

    with PostgresContainer("postgres:16", dbname="anipilot_test") as container:
        yield _require_test_db(
            DatabaseSettings(
                host=container.get_container_host_ip(),
                port=int(container.get_exposed_port(5432)),
                user=container.username,
                password=container.password,
                name=container.dbname,
            )
        )


@pytest_asyncio.fixture(scope="session")
async def db_engine(test_db_settings: DatabaseSettings):
    engine = await create_db_engine(test_db_settings)
    await ensure_schema(engine)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.execute(text(f"DROP SCHEMA IF EXISTS {DB_SCHEMA} CASCADE"))
    await engine.dispose()


@pytest_asyncio.fixture(scope="session")
async def db_session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(db_engine)


@pytest_asyncio.fixture(autouse=True)
async def _integration_cleanup(request):
    """Empty the sync tables after every async integration test that touched the db."""
    yield

    if request.node.get_closest_marker("integration") is None:
        return
    if not asyncio.iscoroutinefunction(request.node.obj):
        return
    if "db_session_factory" not in request.fixturenames:
        return

    factory = request.getfixturevalue("db_session_factory")
    async with factory() as db_session:
        qualified = ", ".join(f"{DB_SCHEMA}.{t}" for t in SYNC_TABLES)
        await db_session.execute(text(f"TRUNCATE {qualified} RESTART IDENTITY CASCADE"))
        await db_session.commit()


@pytest.fixture
def sync_store(db_session_factory, clock):
    from src.store.sync_store import SyncStore

    return SyncStore(db_session_factory, clock)


@pytest.fixture
def command_channel(db_session_factory, clock):
    from src.store.command_channel import CommandChannel

    return CommandChannel(db_session_factory, clock)


@pytest.fixture
def notification_ledger(db_session_factory, clock):
    from src.store.notification_log import NotificationLedger

    return NotificationLedger(db_session_factory, clock)
