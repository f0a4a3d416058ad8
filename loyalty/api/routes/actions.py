from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from json import JSONDecodeError
from typing import Any
from uuid import uuid4

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from loyalty.core.config import get_ledger_config, get_settings
from loyalty.economy.errors import LedgerError, RateLimitedError, StoreUnavailableError
from loyalty.services.internal_auth import check_internal_access
from loyalty.services.rate_limiter import get_rate_limiter

from . import actions_handlers as handlers
from .actions_helpers import (
    STORE_ERRORS,
    ActionContext,
    ActionOutcome,
    bad_request_response,
    client_ip_for,
    failure_response,
    forbidden_response,
    ledger_error_response,
    success_response,
)
from .actions_models import (
    AdjustPointsRequest,
    BindReferralRequest,
    CheckUserRequest,
    EmptyRequest,
    LoginRequest,
    MemberRequest,
    PagedMemberRequest,
    PagedRequest,
    PurchaseListRequest,
    PurchaseRequest,
    PurchaseStatsRequest,
    RegisterPasswordRequest,
    RegisterRequest,
    SetCredentialsRequest,
    StatusUpdateRequest,
    TransferRequest,
    UpdateProfileRequest,
    VerifyReferralRequest,
    WithdrawalListRequest,
    WithdrawRequest,
)

router = APIRouter(tags=["actions"])
logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

ActionHandler = Callable[[Any, ActionContext], Awaitable[ActionOutcome]]


@dataclass(frozen=True, slots=True)
class ActionRoute:
    model: type[BaseModel]
    handler: ActionHandler
    internal: bool = False
    identity_field: str | None = "member_id"


ACTIONS: dict[str, ActionRoute] = {
    "register": ActionRoute(RegisterRequest, handlers.handle_register, identity_field="phone"),
    "register-password": ActionRoute(
        RegisterPasswordRequest,
        handlers.handle_register,
        identity_field="phone",
    ),
    "login": ActionRoute(LoginRequest, handlers.handle_login, identity_field="username"),
    "set-credentials": ActionRoute(SetCredentialsRequest, handlers.handle_set_credentials),
    "add-password": ActionRoute(SetCredentialsRequest, handlers.handle_set_credentials),
    "check": ActionRoute(MemberRequest, handlers.handle_check),
    "check-user": ActionRoute(CheckUserRequest, handlers.handle_check_user, identity_field="phone"),
    "profile": ActionRoute(MemberRequest, handlers.handle_profile),
    "update-profile": ActionRoute(UpdateProfileRequest, handlers.handle_update_profile),
    "verify-referral": ActionRoute(
        VerifyReferralRequest,
        handlers.handle_verify_referral,
        identity_field=None,
    ),
    "my-referrals": ActionRoute(MemberRequest, handlers.handle_my_referrals),
    "bind-referral": ActionRoute(BindReferralRequest, handlers.handle_bind_referral),
    "transfer": ActionRoute(TransferRequest, handlers.handle_transfer, identity_field="sender_id"),
    "purchase": ActionRoute(PurchaseRequest, handlers.handle_purchase),
    "withdraw": ActionRoute(WithdrawRequest, handlers.handle_withdraw),
    "transactions": ActionRoute(PagedMemberRequest, handlers.handle_transactions),
    "purchase-history": ActionRoute(PagedMemberRequest, handlers.handle_purchase_history),
    "withdrawal-history": ActionRoute(PagedMemberRequest, handlers.handle_withdrawal_history),
    "adjust-points": ActionRoute(
        AdjustPointsRequest,
        handlers.handle_adjust_points,
        internal=True,
    ),
    "admin-stats": ActionRoute(
        EmptyRequest,
        handlers.handle_admin_stats,
        internal=True,
        identity_field=None,
    ),
    "admin-members": ActionRoute(
        PagedRequest,
        handlers.handle_admin_members,
        internal=True,
        identity_field=None,
    ),
    "update-withdrawal-status": ActionRoute(
        StatusUpdateRequest,
        handlers.handle_update_withdrawal_status,
        internal=True,
        identity_field=None,
    ),
    "update-purchase-status": ActionRoute(
        StatusUpdateRequest,
        handlers.handle_update_purchase_status,
        internal=True,
        identity_field=None,
    ),
    "all-purchases": ActionRoute(
        PurchaseListRequest,
        handlers.handle_all_purchases,
        internal=True,
        identity_field=None,
    ),
    "all-withdrawals": ActionRoute(
        WithdrawalListRequest,
        handlers.handle_all_withdrawals,
        internal=True,
        identity_field=None,
    ),
    "purchase-stats": ActionRoute(
        PurchaseStatsRequest,
        handlers.handle_purchase_stats,
        internal=True,
        identity_field=None,
    ),
    "referral-stats": ActionRoute(
        EmptyRequest,
        handlers.handle_referral_stats,
        internal=True,
        identity_field=None,
    ),
}


def _rate_limit_identity(route: ActionRoute, payload: BaseModel, client_ip: str | None) -> str:
    if route.identity_field is not None:
        value = getattr(payload, route.identity_field, None)
        if value:
            return str(value)
    return client_ip or "anonymous"


def _validation_error_response(exc: ValidationError) -> JSONResponse:
    first_error = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first_error.get("loc", ()))
    message = first_error.get("msg", "invalid request")
    if location:
        message = f"{location}: {message}"
    return failure_response(
        status_code=422,
        message=message,
        error="ValidationFailed",
        error_kind="ValidationFailed",
        retryable=False,
    )


async def _dispatch(request: Request, raw_body: dict[str, Any]) -> JSONResponse:
    action = str(raw_body.get("action") or "").strip()
    route = ACTIONS.get(action)
    if route is None:
        logger.info("action_unknown", requested_action=action or None)
        return bad_request_response(error="UnknownAction", message=f"unknown action: {action!r}")

    settings = get_settings()
    if route.internal:
        access = check_internal_access(request, settings=settings)
        if not access.allowed:
            logger.warning(
                "internal_action_forbidden",
                denial=access.denial.value if access.denial is not None else None,
                client_ip=access.client_ip,
            )
            return forbidden_response()

    try:
        payload = route.model.model_validate(raw_body)
    except ValidationError as exc:
        return _validation_error_response(exc)

    client_ip = client_ip_for(request, settings)
    decision = await get_rate_limiter().allow(
        _rate_limit_identity(route, payload, client_ip),
        action,
    )
    if not decision.allowed:
        logger.info("action_rate_limited", limit=decision.limit, count=decision.count)
        return ledger_error_response(
            RateLimitedError(retry_after_seconds=decision.retry_after_seconds)
        )

    context = ActionContext(
        request=request,
        settings=settings,
        ledger_config=get_ledger_config(),
        now_utc=datetime.now(timezone.utc),
        client_ip=client_ip,
    )
    try:
        outcome = await route.handler(payload, context)
    except LedgerError as exc:
        logger.info("action_failed", error=exc.code, error_kind=exc.kind)
        return ledger_error_response(exc)
    except STORE_ERRORS as exc:
        logger.exception("action_store_unavailable", error_type=type(exc).__name__)
        return ledger_error_response(StoreUnavailableError())

    if outcome.degraded:
        logger.warning("action_completed_degraded")
    return success_response(action, outcome)


@router.post("/api/actions")
async def post_action(request: Request) -> JSONResponse:
    structlog.contextvars.bind_contextvars(
        request_id=request.headers.get(REQUEST_ID_HEADER) or uuid4().hex,
    )
    try:
        try:
            raw_body = await request.json()
        except (JSONDecodeError, UnicodeDecodeError):
            return bad_request_response(error="MalformedBody", message="request body must be JSON")
        if not isinstance(raw_body, dict):
            return bad_request_response(
                error="MalformedBody",
                message="request body must be a JSON object",
            )
        structlog.contextvars.bind_contextvars(action=str(raw_body.get("action") or ""))
        return await _dispatch(request, raw_body)
    finally:
        structlog.contextvars.clear_contextvars()
