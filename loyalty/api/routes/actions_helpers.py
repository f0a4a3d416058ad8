from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, TypeVar

import structlog
from fastapi import Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.core.config import LedgerConfig, Settings
from loyalty.db.session import SessionLocal, apply_lock_timeout
from loyalty.economy.errors import (
    KIND_DUPLICATE,
    KIND_INSUFFICIENT_BALANCE,
    KIND_INVALID_AMOUNT,
    KIND_NOT_FOUND,
    KIND_RATE_LIMITED,
    KIND_STORE_UNAVAILABLE,
    KIND_VALIDATION_FAILED,
    LedgerError,
    RateLimitedError,
)
from loyalty.services.internal_auth import extract_client_ip

logger = structlog.get_logger(__name__)

T = TypeVar("T")

STORE_ERRORS = (SQLAlchemyError, OSError, TimeoutError)

KIND_STATUS_CODES = {
    KIND_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    KIND_DUPLICATE: status.HTTP_409_CONFLICT,
    KIND_INSUFFICIENT_BALANCE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    KIND_INVALID_AMOUNT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    KIND_VALIDATION_FAILED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    KIND_RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    KIND_STORE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@dataclass(slots=True)
class ActionContext:
    request: Request
    settings: Settings
    ledger_config: LedgerConfig
    now_utc: datetime
    client_ip: str | None


@dataclass(slots=True)
class ActionOutcome:
    data: dict[str, Any] = field(default_factory=dict)
    degraded: bool = False
    message: str | None = None


def client_ip_for(request: Request, settings: Settings) -> str | None:
    return extract_client_ip(request, trusted_proxies=settings.trusted_proxies)


async def run_in_transaction(
    operation: Callable[[AsyncSession], Awaitable[T]],
    *,
    settings: Settings,
) -> T:
    """Runs ``operation`` in one database transaction bounded by the store timeouts."""

    async def _run() -> T:
        async with SessionLocal.begin() as session:
            await apply_lock_timeout(session, lock_timeout_ms=settings.store_lock_timeout_ms)
            return await operation(session)

    return await asyncio.wait_for(_run(), timeout=settings.store_timeout_seconds)


def to_payload(value: Any) -> Any:
    """Converts results into JSON-friendly camelCase structures."""
    if is_dataclass(value) and not isinstance(value, type):
        return {_camel(item.name): to_payload(getattr(value, item.name)) for item in fields(value)}
    if isinstance(value, dict):
        return {str(key): to_payload(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_payload(item) for item in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _camel(key: str) -> str:
    head, *tail = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in tail)


def success_response(action: str, outcome: ActionOutcome) -> JSONResponse:
    content: dict[str, Any] = {"success": True, "action": action, "data": to_payload(outcome.data)}
    if outcome.degraded:
        content["degraded"] = True
    if outcome.message:
        content["message"] = outcome.message
    return JSONResponse(status_code=status.HTTP_200_OK, content=content)


def failure_response(
    *,
    status_code: int,
    message: str,
    error: str,
    error_kind: str,
    retryable: bool,
    headers: dict[str, str] | None = None,
    extra: dict[str, Any] | None = None,
) -> JSONResponse:
    content: dict[str, Any] = {
        "success": False,
        "message": message,
        "error": error,
        "error_kind": error_kind,
        "retryable": retryable,
    }
    if extra:
        content.update(extra)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def ledger_error_response(exc: LedgerError) -> JSONResponse:
    headers: dict[str, str] | None = None
    extra: dict[str, Any] | None = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(exc.retry_after_seconds)}
        extra = {"retry_after_seconds": exc.retry_after_seconds}
    return failure_response(
        status_code=KIND_STATUS_CODES.get(exc.kind, status.HTTP_400_BAD_REQUEST),
        message=exc.message,
        error=exc.code,
        error_kind=exc.kind,
        retryable=exc.retryable,
        headers=headers,
        extra=extra,
    )


def bad_request_response(*, error: str, message: str) -> JSONResponse:
    return failure_response(
        status_code=status.HTTP_400_BAD_REQUEST,
        message=message,
        error=error,
        error_kind=KIND_VALIDATION_FAILED,
        retryable=False,
    )


def forbidden_response() -> JSONResponse:
    return failure_response(
        status_code=status.HTTP_403_FORBIDDEN,
        message="internal access required",
        error="Forbidden",
        error_kind=KIND_VALIDATION_FAILED,
        retryable=False,
    )
