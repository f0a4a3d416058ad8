from __future__ import annotations

from datetime import datetime, timezone

import pytest
from fakeredis import FakeAsyncRedis
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from loyalty.core.config import LedgerConfig
from loyalty.db import models  # noqa: F401
from loyalty.db.models.base import Base
from loyalty.services.member_cache import clear_member_cache

UTC = timezone.utc


@pytest.fixture
async def sqlite_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite's implicit transaction handling breaks SAVEPOINT; take over BEGIN.
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(connection) -> None:
        connection.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(sqlite_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def ledger_config() -> LedgerConfig:
    return LedgerConfig()


@pytest.fixture
def now_utc() -> datetime:
    return datetime(2026, 3, 2, 10, 30, tzinfo=UTC)


@pytest.fixture
async def fake_redis():
    client = FakeAsyncRedis()
    yield client
    await client.aclose()


@pytest.fixture(autouse=True)
def _isolated_member_cache():
    clear_member_cache()
    yield
    clear_member_cache()
