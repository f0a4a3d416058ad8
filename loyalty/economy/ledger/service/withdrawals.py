from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.core.config import LedgerConfig
from loyalty.core.identifiers import new_withdrawal_order_number
from loyalty.core.validation import (
    clean_message,
    mask_account_number,
    require_identity,
    require_positive_points,
)
from loyalty.db.models.withdrawals import Withdrawal
from loyalty.db.repo.orders_repo import WithdrawalsRepo
from loyalty.economy.errors import (
    BelowMinimumWithdrawalError,
    InsufficientBalanceError,
    RecordNotFoundError,
)
from loyalty.economy.ledger.postings import (
    Party,
    append_transaction,
    apply_balance_change,
    ensure_active,
    find_replay,
    floor_points,
)
from loyalty.economy.ledger.types import (
    ProcessingStatus,
    ReferralEventKind,
    TransactionStatus,
    TransactionType,
    WithdrawResult,
)
from loyalty.services.member_cache import invalidate_after_write

from .referral_rewards import lock_member_with_referrer, reward_referrer_or_flag

logger = structlog.get_logger(__name__)

MAX_BANK_FIELD_LENGTH = 64


@dataclass(frozen=True, slots=True)
class WithdrawalQuote:
    points: int
    amount_before_fee: int
    fee: int
    payout_amount: int
    exchange_rate: Decimal


def quote_withdrawal(points: int, *, config: LedgerConfig) -> WithdrawalQuote:
    """``floor(points * exchange_rate) - fee``; 10,000 points at 0.7 and 15 pays 6,985."""
    require_positive_points(points)
    if points < config.min_withdrawal:
        raise BelowMinimumWithdrawalError(
            f"withdrawals start at {config.min_withdrawal} points"
        )
    amount_before_fee = floor_points(Decimal(points) * config.exchange_rate)
    payout_amount = amount_before_fee - config.withdrawal_fee
    if payout_amount <= 0:
        raise BelowMinimumWithdrawalError("withdrawal does not cover the processing fee")
    return WithdrawalQuote(
        points=points,
        amount_before_fee=amount_before_fee,
        fee=config.withdrawal_fee,
        payout_amount=payout_amount,
        exchange_rate=config.exchange_rate,
    )


def _clean_bank_field(value: str | None) -> str | None:
    return (value or "").strip()[:MAX_BANK_FIELD_LENGTH] or None


def _as_result(withdrawal: Withdrawal, *, idempotent_replay: bool, tier: str) -> WithdrawResult:
    return WithdrawResult(
        order_number=withdrawal.order_number,
        member_id=withdrawal.member_id,
        points=withdrawal.points,
        amount_before_fee=withdrawal.amount_before_fee,
        fee=withdrawal.fee,
        payout_amount=withdrawal.payout_amount,
        balance_before=withdrawal.balance_before,
        new_balance=withdrawal.balance_after,
        tier=tier,
        status=withdrawal.status,
        transaction_id=withdrawal.transaction_id,
        referrer_id=withdrawal.referrer_id,
        referrer_reward=withdrawal.referrer_reward,
        referrer_reward_status=withdrawal.referrer_reward_status,
        idempotent_replay=idempotent_replay,
    )


async def withdraw(
    session: AsyncSession,
    *,
    config: LedgerConfig,
    member_id: str,
    points: int,
    now_utc: datetime,
    bank_name: str | None = None,
    bank_code: str | None = None,
    bank_account: str | None = None,
    account_holder: str | None = None,
    notes: str | None = None,
    client_ip: str | None = None,
    idempotency_key: str | None = None,
) -> WithdrawResult:
    clean_member_id = require_identity(member_id)
    quote = quote_withdrawal(points, config=config)
    clean_account = _clean_bank_field(bank_account)
    clean_notes = clean_message(notes) or None

    member, referrer = await lock_member_with_referrer(session, member_id=clean_member_id)

    replay = await find_replay(
        session,
        idempotency_key=idempotency_key,
        transaction_type=TransactionType.WITHDRAW,
        member_id=member.id,
    )
    if replay is not None:
        existing = await WithdrawalsRepo.get_by_transaction_id(session, replay.transaction_id)
        if existing is None:
            raise RecordNotFoundError
        return _as_result(existing, idempotent_replay=True, tier=member.tier)

    ensure_active(member, role="withdrawing member")
    if not config.allow_negative_balance and member.points < points:
        raise InsufficientBalanceError

    balance_before = member.points
    apply_balance_change(member, delta=-points, config=config, now_utc=now_utc)
    order_number = new_withdrawal_order_number(now_utc)
    masked_account = mask_account_number(clean_account)
    transaction = await append_transaction(
        session,
        transaction_type=TransactionType.WITHDRAW,
        member=member,
        points=-points,
        now_utc=now_utc,
        message=(
            f"Withdrawal {order_number}: {points} points, payout {quote.payout_amount} "
            f"to account {masked_account or '-'}"
        ),
        status=TransactionStatus.PENDING,
        sender=Party.of(member),
        idempotency_key=idempotency_key or None,
    )
    record = await WithdrawalsRepo.create(
        session,
        withdrawal=Withdrawal(
            order_number=order_number,
            member_id=member.id,
            member_name=member.display_name,
            points=points,
            amount_before_fee=quote.amount_before_fee,
            fee=quote.fee,
            payout_amount=quote.payout_amount,
            exchange_rate=quote.exchange_rate,
            bank_name=_clean_bank_field(bank_name),
            bank_code=_clean_bank_field(bank_code),
            bank_account=clean_account,
            account_holder=_clean_bank_field(account_holder),
            client_ip=client_ip,
            referrer_id=referrer.referrer_id if referrer is not None else None,
            referrer_name=referrer.referrer_name if referrer is not None else None,
            referrer_reward=0,
            referrer_reward_status="NONE",
            balance_before=balance_before,
            balance_after=member.points,
            status=ProcessingStatus.PENDING.value,
            transaction_id=transaction.transaction_id,
            notes=clean_notes,
            created_at=now_utc,
            updated_at=now_utc,
            completed_at=None,
        ),
    )

    reward_result, reward_status = await reward_referrer_or_flag(
        session,
        config=config,
        referee_id=member.id,
        referrer=referrer,
        amount_points=points,
        event_kind=ReferralEventKind.WITHDRAW,
        source_order_number=order_number,
        now_utc=now_utc,
    )
    record.referrer_reward = reward_result.reward_points
    record.referrer_reward_status = reward_status.value
    await session.flush()
    invalidate_after_write(session, member.id)

    logger.info(
        "withdrawal_requested",
        member_id=member.id,
        order_number=order_number,
        points=points,
        payout_amount=quote.payout_amount,
        referrer_reward_status=record.referrer_reward_status,
    )
    return _as_result(record, idempotent_replay=False, tier=member.tier)
