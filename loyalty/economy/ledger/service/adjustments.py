from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.core.config import LedgerConfig
from loyalty.core.validation import clean_message, require_identity, require_nonzero_delta
from loyalty.economy.errors import NegativeResultingBalanceError
from loyalty.economy.ledger.postings import (
    Party,
    append_transaction,
    apply_balance_change,
    lock_member,
)
from loyalty.economy.ledger.types import AdjustResult, TransactionType
from loyalty.services.member_cache import invalidate_after_write

logger = structlog.get_logger(__name__)


async def admin_adjust(
    session: AsyncSession,
    *,
    config: LedgerConfig,
    member_id: str,
    delta: int,
    reason: str | None,
    now_utc: datetime,
) -> AdjustResult:
    clean_member_id = require_identity(member_id)
    require_nonzero_delta(delta)
    note = clean_message(reason)

    # Adjustments apply to members in any account status.
    member = await lock_member(session, clean_member_id)
    old_balance = member.points
    old_tier = member.tier
    if not config.allow_negative_balance and old_balance + delta < 0:
        raise NegativeResultingBalanceError

    apply_balance_change(member, delta=delta, config=config, now_utc=now_utc)
    is_credit = delta > 0
    transaction = await append_transaction(
        session,
        transaction_type=TransactionType.ADMIN_ADD if is_credit else TransactionType.ADMIN_DEDUCT,
        member=member,
        points=delta,
        now_utc=now_utc,
        message=note,
        sender=None if is_credit else Party.of(member),
        receiver=Party.of(member) if is_credit else None,
    )
    invalidate_after_write(session, member.id)

    logger.info(
        "points_adjusted",
        member_id=member.id,
        delta=delta,
        old_balance=old_balance,
        new_balance=member.points,
    )
    return AdjustResult(
        member_id=member.id,
        delta=delta,
        old_balance=old_balance,
        new_balance=member.points,
        old_tier=old_tier,
        new_tier=member.tier,
        transaction_id=transaction.transaction_id,
    )
