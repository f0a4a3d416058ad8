from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.core.config import LedgerConfig
from loyalty.db.models.members import Member
from loyalty.db.repo.members_repo import MembersRepo
from loyalty.economy.errors import MemberNotFoundError
from loyalty.economy.ledger.types import ReferralEventKind, ReferralRewardStatus, RewardResult
from loyalty.economy.referrals.service import ReferralService
from loyalty.economy.referrals.types import ReferrerInfo

logger = structlog.get_logger(__name__)

STORE_ERRORS = (SQLAlchemyError, OSError, TimeoutError)
REWARD_REASON_STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


async def reward_referrer_or_flag(
    session: AsyncSession,
    *,
    config: LedgerConfig,
    referee_id: str,
    referrer: ReferrerInfo | None,
    amount_points: int,
    event_kind: ReferralEventKind,
    source_order_number: str,
    now_utc: datetime,
) -> tuple[RewardResult, ReferralRewardStatus]:
    """Runs the referral reward inside a SAVEPOINT.

    A store failure rolls back only the reward; the caller's own debit or credit
    stays in place and the order is flagged for manual reconciliation.
    """
    if referrer is None:
        return RewardResult(granted=False, reason="NO_REFERRER"), ReferralRewardStatus.NONE

    try:
        async with session.begin_nested():
            result = await ReferralService.reward(
                session,
                config=config,
                referee_id=referee_id,
                amount_points=amount_points,
                event_kind=event_kind,
                now_utc=now_utc,
                source_order_number=source_order_number,
            )
    except STORE_ERRORS as exc:
        logger.warning(
            "referral_reward_reconciliation_needed",
            referee_id=referee_id,
            referrer_id=referrer.referrer_id,
            event_kind=event_kind.value,
            amount_points=amount_points,
            source_order_number=source_order_number,
            error_type=type(exc).__name__,
        )
        pending = RewardResult(
            granted=False,
            reason=REWARD_REASON_STORE_UNAVAILABLE,
            referrer_id=referrer.referrer_id,
            referrer_name=referrer.referrer_name,
            reward_points=ReferralService.compute_referral_reward(amount_points, config=config),
        )
        return pending, ReferralRewardStatus.PENDING_RECONCILIATION

    if result.granted:
        return result, ReferralRewardStatus.GRANTED
    return result, ReferralRewardStatus.NONE


def _referrer_id(referrer: ReferrerInfo | None) -> str | None:
    return referrer.referrer_id if referrer is not None else None


def _lock_ids(member_id: str, referrer: ReferrerInfo | None) -> list[str]:
    if referrer is None:
        return [member_id]
    return [member_id, referrer.referrer_id]


async def lock_member_with_referrer(
    session: AsyncSession,
    *,
    member_id: str,
) -> tuple[Member, ReferrerInfo | None]:
    """Locks the member and its referrer, in ascending id order.

    The referrer read before locking can be stale because a bind may commit in
    between. ``bind`` locks the referee row, so the read taken under the member
    lock is authoritative. When it differs, the savepoint holding the locks is
    rolled back and both rows are locked again in order.
    """
    referrer = await ReferralService.get_referrer(session, member_id=member_id)
    savepoint = await session.begin_nested()
    locked = await MembersRepo.list_by_ids_for_update(session, _lock_ids(member_id, referrer))
    member = locked.get(member_id)
    if member is None:
        await savepoint.commit()
        raise MemberNotFoundError

    bound = await ReferralService.get_referrer(session, member_id=member_id)
    if _referrer_id(bound) == _referrer_id(referrer):
        await savepoint.commit()
        return member, bound

    await savepoint.rollback()
    logger.info(
        "referrer_bound_before_lock",
        member_id=member_id,
        referrer_id=_referrer_id(bound),
    )
    # Referrals are write-once, so the re-read referrer cannot change again.
    locked = await MembersRepo.list_by_ids_for_update(session, _lock_ids(member_id, bound))
    member = locked.get(member_id)
    if member is None:
        raise MemberNotFoundError
    return member, bound
