from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.core.config import LedgerConfig
from loyalty.core.identifiers import new_purchase_order_number
from loyalty.core.validation import clean_message, require_identity, require_positive_points
from loyalty.db.models.purchases import Purchase
from loyalty.db.repo.orders_repo import PurchasesRepo
from loyalty.economy.errors import (
    InvalidAmountError,
    RecordNotFoundError,
    ValidationFailedError,
)
from loyalty.economy.ledger.postings import (
    Party,
    append_transaction,
    apply_balance_change,
    ensure_active,
    find_replay,
)
from loyalty.economy.ledger.types import (
    PaymentMethod,
    ProcessingStatus,
    PurchaseResult,
    ReferralEventKind,
    TransactionType,
)
from loyalty.services.member_cache import invalidate_after_write

from .referral_rewards import lock_member_with_referrer, reward_referrer_or_flag

logger = structlog.get_logger(__name__)

DEFAULT_PAYMENT_STATUS = "paid"
MAX_PAYMENT_STATUS_LENGTH = 32
MAX_INVOICE_NUMBER_LENGTH = 64


def parse_payment_method(raw_method: str | None) -> PaymentMethod:
    if not raw_method:
        return PaymentMethod.MANUAL
    try:
        return PaymentMethod(raw_method.strip().lower())
    except ValueError as exc:
        raise ValidationFailedError(f"unsupported payment method: {raw_method}") from exc


def resolve_purchase_amount(
    points: int,
    amount: Decimal | str | int | None,
    *,
    config: LedgerConfig,
) -> Decimal:
    if amount is None:
        return (Decimal(points) * config.purchase_unit_price).quantize(Decimal("0.01"))
    try:
        money = Decimal(str(amount))
    except InvalidOperation as exc:
        raise InvalidAmountError("amount must be a number") from exc
    if not money.is_finite() or money <= 0:
        raise InvalidAmountError("amount must be positive")
    return money.quantize(Decimal("0.01"))


def _as_result(purchase: Purchase, *, idempotent_replay: bool, tier: str) -> PurchaseResult:
    return PurchaseResult(
        order_number=purchase.order_number,
        member_id=purchase.member_id,
        points=purchase.points,
        amount=purchase.amount,
        balance_before=purchase.balance_before,
        new_balance=purchase.balance_after,
        tier=tier,
        transaction_id=purchase.transaction_id,
        referrer_id=purchase.referrer_id,
        referrer_reward=purchase.referrer_reward,
        referrer_reward_status=purchase.referrer_reward_status,
        idempotent_replay=idempotent_replay,
    )


async def purchase(
    session: AsyncSession,
    *,
    config: LedgerConfig,
    member_id: str,
    points: int,
    now_utc: datetime,
    payment_method: str | None = None,
    amount: Decimal | str | int | None = None,
    payment_status: str | None = None,
    invoice_number: str | None = None,
    notes: str | None = None,
    payment_meta: dict[str, Any] | None = None,
    client_ip: str | None = None,
    idempotency_key: str | None = None,
) -> PurchaseResult:
    clean_member_id = require_identity(member_id)
    require_positive_points(points)
    method = parse_payment_method(payment_method)
    money_amount = resolve_purchase_amount(points, amount, config=config)
    clean_status = (payment_status or DEFAULT_PAYMENT_STATUS).strip()[:MAX_PAYMENT_STATUS_LENGTH]
    clean_invoice = (invoice_number or "").strip()[:MAX_INVOICE_NUMBER_LENGTH] or None
    clean_notes = clean_message(notes) or None

    member, referrer = await lock_member_with_referrer(session, member_id=clean_member_id)

    replay = await find_replay(
        session,
        idempotency_key=idempotency_key,
        transaction_type=TransactionType.PURCHASE,
        member_id=member.id,
    )
    if replay is not None:
        existing = await PurchasesRepo.get_by_transaction_id(session, replay.transaction_id)
        if existing is None:
            raise RecordNotFoundError
        return _as_result(existing, idempotent_replay=True, tier=member.tier)

    ensure_active(member, role="purchaser")

    balance_before = member.points
    apply_balance_change(member, delta=points, config=config, now_utc=now_utc)
    order_number = new_purchase_order_number(now_utc)
    transaction = await append_transaction(
        session,
        transaction_type=TransactionType.PURCHASE,
        member=member,
        points=points,
        now_utc=now_utc,
        message=f"Purchase {order_number}: {points} points via {method.value}",
        receiver=Party.of(member),
        idempotency_key=idempotency_key or None,
    )
    record = await PurchasesRepo.create(
        session,
        purchase=Purchase(
            order_number=order_number,
            member_id=member.id,
            member_name=member.display_name,
            points=points,
            amount=money_amount,
            unit_price=config.purchase_unit_price,
            payment_method=method.value,
            payment_status=clean_status,
            invoice_number=clean_invoice,
            client_ip=client_ip,
            payment_meta=dict(payment_meta or {}),
            referrer_id=referrer.referrer_id if referrer is not None else None,
            referrer_name=referrer.referrer_name if referrer is not None else None,
            referrer_reward=0,
            referrer_reward_status="NONE",
            balance_before=balance_before,
            balance_after=member.points,
            status=ProcessingStatus.COMPLETED.value,
            transaction_id=transaction.transaction_id,
            notes=clean_notes,
            created_at=now_utc,
            updated_at=now_utc,
            completed_at=now_utc,
        ),
    )

    reward_result, reward_status = await reward_referrer_or_flag(
        session,
        config=config,
        referee_id=member.id,
        referrer=referrer,
        amount_points=points,
        event_kind=ReferralEventKind.PURCHASE,
        source_order_number=order_number,
        now_utc=now_utc,
    )
    record.referrer_reward = reward_result.reward_points
    record.referrer_reward_status = reward_status.value
    await session.flush()
    invalidate_after_write(session, member.id)

    logger.info(
        "points_purchased",
        member_id=member.id,
        order_number=order_number,
        points=points,
        referrer_reward=record.referrer_reward,
        referrer_reward_status=record.referrer_reward_status,
    )
    return _as_result(record, idempotent_replay=False, tier=member.tier)
