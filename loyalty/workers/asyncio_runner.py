from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable
from typing import TypeVar

import structlog

from loyalty.db.session import dispose_engine

T = TypeVar("T")

logger = structlog.get_logger(__name__)


async def _run_with_fresh_db_pool(awaitable: Awaitable[T], *, job_name: str) -> T:
    # Pooled asyncpg connections are bound to the loop that opened them.
    await dispose_engine()
    started_at = time.monotonic()
    try:
        result = await awaitable
    except Exception:
        logger.exception("async_job_failed", job=job_name)
        raise
    finally:
        await dispose_engine()
    logger.info(
        "async_job_finished",
        job=job_name,
        duration_ms=int((time.monotonic() - started_at) * 1000),
    )
    return result


def run_async_job(awaitable: Awaitable[T], *, job_name: str = "async_job") -> T:
    """Runs a worker coroutine on a fresh event loop with its own connection pool."""
    return asyncio.run(_run_with_fresh_db_pool(awaitable, job_name=job_name))
