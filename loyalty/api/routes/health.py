from __future__ import annotations

import asyncio
from typing import Any

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy import text

from loyalty.core.config import get_settings
from loyalty.db.repo.ledger_reconciliation_runs_repo import LedgerReconciliationRunsRepo
from loyalty.db.session import SessionLocal
from loyalty.workers.celery_app import celery_app

router = APIRouter(tags=["health"])
logger = structlog.get_logger(__name__)

Check = dict[str, Any]

CELERY_INSPECT_TIMEOUT_SECONDS = 1.0


def _failed(error: str) -> Check:
    return {"status": "failed", "error": error}


async def _check_database() -> Check:
    try:
        async with SessionLocal() as session:
            await asyncio.wait_for(
                session.execute(text("SELECT 1")),
                timeout=get_settings().store_timeout_seconds,
            )
    except Exception as exc:
        logger.warning("health_database_check_failed", error_type=type(exc).__name__)
        return _failed("database_unavailable")
    return {"status": "ok"}


async def _check_redis() -> Check:
    settings = get_settings()
    redis_client = Redis.from_url(
        settings.redis_url,
        socket_timeout=settings.redis_timeout_seconds,
        socket_connect_timeout=settings.redis_timeout_seconds,
    )
    try:
        if await redis_client.ping() is not True:
            return _failed("redis_unexpected_ping_response")
    except Exception as exc:
        logger.warning("health_redis_check_failed", error_type=type(exc).__name__)
        return _failed("redis_unavailable")
    finally:
        await redis_client.aclose()
    return {"status": "ok"}


def _check_celery_worker_sync() -> Check:
    try:
        inspector = celery_app.control.inspect(timeout=CELERY_INSPECT_TIMEOUT_SECONDS)
        replies = (inspector.ping() if inspector is not None else None) or {}
    except Exception as exc:
        logger.warning("health_celery_check_failed", error_type=type(exc).__name__)
        return _failed("celery_unavailable")
    if not replies:
        return _failed("celery_no_workers")
    return {"status": "ok", "workers": len(replies)}


async def _check_celery_worker() -> Check:
    return await asyncio.to_thread(_check_celery_worker_sync)


async def _ledger_audit_summary() -> Check:
    """Latest reconciliation run; reported on /health but never gates it."""
    try:
        async with SessionLocal() as session:
            run = await LedgerReconciliationRunsRepo.get_latest(session)
    except Exception as exc:
        logger.warning("health_ledger_audit_lookup_failed", error_type=type(exc).__name__)
        return {"status": "unknown"}
    if run is None:
        return {"status": "never_run"}
    return {
        "status": run.status,
        "diff_count": run.diff_count,
        "pending_reward_count": run.pending_reward_count,
        "finished_at": run.finished_at.isoformat() if run.finished_at is not None else None,
    }


def _checks_response(
    checks: dict[str, Check],
    *,
    passing: str,
    failing: str,
    extra: dict[str, Any] | None = None,
) -> JSONResponse:
    passed = all(check.get("status") == "ok" for check in checks.values())
    content: dict[str, Any] = {"status": passing if passed else failing, "checks": checks}
    if extra:
        content.update(extra)
    return JSONResponse(
        status_code=status.HTTP_200_OK if passed else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=content,
    )


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "live"}


@router.get("/health")
async def health() -> JSONResponse:
    database, redis, celery, ledger_audit = await asyncio.gather(
        _check_database(),
        _check_redis(),
        _check_celery_worker(),
        _ledger_audit_summary(),
    )
    return _checks_response(
        {"database": database, "redis": redis, "celery": celery},
        passing="ok",
        failing="degraded",
        extra={"ledger_audit": ledger_audit},
    )


@router.get("/ready")
async def ready() -> JSONResponse:
    # The API serves ledger actions without a worker; only the stores gate readiness.
    database, redis = await asyncio.gather(_check_database(), _check_redis())
    return _checks_response(
        {"database": database, "redis": redis},
        passing="ready",
        failing="not_ready",
    )
