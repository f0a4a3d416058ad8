from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.db.models.referrals import Referral
from loyalty.db.repo.members_repo import MembersRepo
from loyalty.db.repo.referrals_repo import ReferralsRepo
from loyalty.economy.errors import (
    AlreadyBoundError,
    InvalidReferralCodeError,
    MemberNotFoundError,
    SelfReferralError,
)
from loyalty.economy.referrals.types import BindResult
from loyalty.services.member_cache import invalidate_after_write
from loyalty.services.member_directory import MemberDirectory

logger = structlog.get_logger(__name__)

REFERRAL_STATUS_ACTIVE = "ACTIVE"


async def bind(
    session: AsyncSession,
    *,
    referee_id: str,
    referral_code: str,
    now_utc: datetime,
) -> BindResult:
    """Binds the referee to the owner of ``referral_code``; the first bind wins.

    The referee row is locked for the check-then-insert, and the unique index on
    ``referrals.referee_id`` rejects any bind that slips past the lock.
    """
    referee = await MembersRepo.get_by_id_for_update(session, referee_id)
    if referee is None:
        raise MemberNotFoundError

    referrer = await MemberDirectory.find_by_referral_code(session, referral_code)
    if referrer is None:
        raise InvalidReferralCodeError
    if referrer.id == referee.id:
        raise SelfReferralError

    existing = await ReferralsRepo.get_by_referee_id(session, referee_id=referee.id)
    if existing is not None or referee.referred_by:
        raise AlreadyBoundError

    referral = Referral(
        referral_code=referrer.referral_code,
        referrer_id=referrer.id,
        referrer_name=referrer.display_name,
        referee_id=referee.id,
        referee_name=referee.display_name,
        referrer_reward=0,
        referee_reward=0,
        status=REFERRAL_STATUS_ACTIVE,
        created_at=now_utc,
    )
    try:
        async with session.begin_nested():
            await ReferralsRepo.create(session, referral=referral)
    except IntegrityError as exc:
        raise AlreadyBoundError from exc

    referee.referred_by = referrer.referral_code
    referee.updated_at = now_utc
    await session.flush()
    invalidate_after_write(session, referee.id)

    logger.info(
        "referral_bound",
        referral_id=referral.id,
        referrer_id=referrer.id,
        referee_id=referee.id,
    )
    return BindResult(
        referral_id=referral.id,
        referral_code=referral.referral_code,
        referrer_id=referrer.id,
        referrer_name=referrer.display_name,
        referee_id=referee.id,
        referee_name=referee.display_name,
        created_at=referral.created_at,
    )
