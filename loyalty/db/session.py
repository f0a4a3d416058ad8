from __future__ import annotations

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from loyalty.core.config import get_settings


def _connect_args(database_url: str, *, timeout_seconds: float) -> dict[str, Any]:
    if database_url.startswith("postgresql+asyncpg"):
        return {"timeout": timeout_seconds, "command_timeout": timeout_seconds}
    return {}


settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    pool_pre_ping=True,
    connect_args=_connect_args(
        settings.database_url,
        timeout_seconds=settings.store_timeout_seconds,
    ),
)
SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def apply_lock_timeout(session: AsyncSession, *, lock_timeout_ms: int) -> None:
    if session.get_bind().dialect.name != "postgresql":
        return
    await session.execute(text(f"SET LOCAL lock_timeout = '{int(lock_timeout_ms)}ms'"))


async def dispose_engine() -> None:
    await engine.dispose()
