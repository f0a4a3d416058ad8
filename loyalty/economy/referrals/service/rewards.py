from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.core.config import LedgerConfig
from loyalty.db.models.referral_events import ReferralEvent
from loyalty.db.repo.referrals_repo import ReferralEventsRepo, ReferralsRepo
from loyalty.economy.errors import ReferrerNotFoundError
from loyalty.economy.ledger.postings import (
    Party,
    append_transaction,
    apply_balance_change,
    floor_points,
    lock_member,
)
from loyalty.economy.ledger.types import (
    REWARD_TRANSACTION_TYPES,
    ReferralEventKind,
    RewardResult,
)
from loyalty.services.member_cache import invalidate_after_write

logger = structlog.get_logger(__name__)

REWARD_REASON_NO_REFERRER = "NO_REFERRER"
REWARD_REASON_ZERO_REWARD = "ZERO_REWARD"
REWARD_REASON_GRANTED = "GRANTED"


def compute_referral_reward(amount_points: int, *, config: LedgerConfig) -> int:
    return max(0, floor_points(Decimal(amount_points) * config.reward_rate))


def _reward_message(
    *,
    referee_name: str,
    referee_id: str,
    event_kind: ReferralEventKind,
    amount_points: int,
) -> str:
    return (
        f"Referral reward: {referee_name} ({referee_id}) "
        f"{event_kind.value} of {amount_points} points"
    )


async def get_referrer_id(session: AsyncSession, *, referee_id: str) -> str | None:
    referral = await ReferralsRepo.get_by_referee_id(session, referee_id=referee_id)
    return referral.referrer_id if referral is not None else None


async def reward(
    session: AsyncSession,
    *,
    config: LedgerConfig,
    referee_id: str,
    amount_points: int,
    event_kind: ReferralEventKind,
    now_utc: datetime,
    source_order_number: str | None = None,
) -> RewardResult:
    """Pays the referee's referrer ``floor(amount_points * reward_rate)`` points.

    Members without a referrer, and rewards that floor to zero, are no-ops. The
    referee never receives anything here.
    """
    referral = await ReferralsRepo.get_by_referee_id(session, referee_id=referee_id)
    if referral is None:
        return RewardResult(granted=False, reason=REWARD_REASON_NO_REFERRER)

    reward_points = compute_referral_reward(amount_points, config=config)
    if reward_points <= 0:
        return RewardResult(
            granted=False,
            reason=REWARD_REASON_ZERO_REWARD,
            referrer_id=referral.referrer_id,
            referrer_name=referral.referrer_name,
        )

    referrer = await lock_member(session, referral.referrer_id, not_found=ReferrerNotFoundError)
    balance_before = referrer.points
    apply_balance_change(referrer, delta=reward_points, config=config, now_utc=now_utc)

    transaction = await append_transaction(
        session,
        transaction_type=REWARD_TRANSACTION_TYPES[event_kind],
        member=referrer,
        points=reward_points,
        now_utc=now_utc,
        message=_reward_message(
            referee_name=referral.referee_name,
            referee_id=referral.referee_id,
            event_kind=event_kind,
            amount_points=amount_points,
        ),
        sender=Party(referral.referee_id, referral.referee_name),
        receiver=Party.of(referrer),
    )
    await ReferralEventsRepo.create(
        session,
        event=ReferralEvent(
            referral_id=referral.id,
            referrer_id=referrer.id,
            referrer_name=referrer.display_name,
            referee_id=referral.referee_id,
            referee_name=referral.referee_name,
            event_kind=event_kind.value,
            source_points=amount_points,
            reward_rate=config.reward_rate,
            reward_points=reward_points,
            referrer_balance_before=balance_before,
            referrer_balance_after=referrer.points,
            transaction_id=transaction.transaction_id,
            source_order_number=source_order_number,
            created_at=now_utc,
        ),
    )
    invalidate_after_write(session, referrer.id)

    logger.info(
        "referral_reward_granted",
        referrer_id=referrer.id,
        referee_id=referral.referee_id,
        event_kind=event_kind.value,
        reward_points=reward_points,
        transaction_id=transaction.transaction_id,
    )
    return RewardResult(
        granted=True,
        reason=REWARD_REASON_GRANTED,
        referrer_id=referrer.id,
        referrer_name=referrer.display_name,
        reward_points=reward_points,
        referrer_balance=referrer.points,
        transaction_id=transaction.transaction_id,
    )
