from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.db.repo.members_repo import MembersRepo
from loyalty.db.repo.referrals_repo import ReferralEventsRepo, ReferralsRepo
from loyalty.economy.errors import InvalidReferralCodeError, MemberNotFoundError
from loyalty.economy.referrals.types import (
    RecentReferral,
    RefereeSummary,
    ReferralOverview,
    ReferralProgramStats,
    ReferrerInfo,
    ReferrerRanking,
)
from loyalty.services.member_directory import MemberDirectory

MAX_LISTED_REFEREES = 100
TOP_REFERRERS_LIMIT = 10
RECENT_REFERRALS_LIMIT = 20


async def get_referrer(session: AsyncSession, *, member_id: str) -> ReferrerInfo | None:
    referral = await ReferralsRepo.get_by_referee_id(session, referee_id=member_id)
    if referral is None:
        return None
    return ReferrerInfo(
        referrer_id=referral.referrer_id,
        referrer_name=referral.referrer_name,
        referral_code=referral.referral_code,
    )


async def verify_referral_code(session: AsyncSession, *, referral_code: str) -> ReferrerInfo:
    referrer = await MemberDirectory.find_by_referral_code(session, referral_code)
    if referrer is None:
        raise InvalidReferralCodeError
    return ReferrerInfo(
        referrer_id=referrer.id,
        referrer_name=referrer.display_name,
        referral_code=referrer.referral_code,
    )


async def get_overview(session: AsyncSession, *, member_id: str) -> ReferralOverview:
    member = await MembersRepo.get_by_id(session, member_id)
    if member is None:
        raise MemberNotFoundError

    referrals = await ReferralsRepo.list_for_referrer(
        session,
        referrer_id=member.id,
        limit=MAX_LISTED_REFEREES,
    )
    referee_count = await ReferralsRepo.count_for_referrer(session, referrer_id=member.id)
    rewards_by_referee = await ReferralEventsRepo.sum_rewards_by_referee(
        session,
        referrer_id=member.id,
    )
    referees = [
        RefereeSummary(
            referee_id=referral.referee_id,
            referee_name=referral.referee_name,
            bound_at=referral.created_at,
            total_reward=rewards_by_referee.get(referral.referee_id, 0),
        )
        for referral in referrals
    ]
    return ReferralOverview(
        member_id=member.id,
        referral_code=member.referral_code,
        referred_by=await get_referrer(session, member_id=member.id),
        referees=referees,
        referee_count=referee_count,
        total_reward=sum(rewards_by_referee.values()),
    )


async def get_program_stats(session: AsyncSession) -> ReferralProgramStats:
    """Program-wide referral totals, the top referrers by referee count and the latest binds."""
    total_referrals = await ReferralsRepo.count(session)
    active_referrers = await ReferralsRepo.count_referrers(session)
    top = await ReferralsRepo.top_referrers(session, limit=TOP_REFERRERS_LIMIT)
    rewards_by_referrer = await ReferralEventsRepo.sum_rewards_by_referrer(
        session,
        referrer_ids=[referrer_id for referrer_id, _, _, _ in top],
    )
    recent = await ReferralsRepo.list_recent(session, limit=RECENT_REFERRALS_LIMIT)
    return ReferralProgramStats(
        total_referrals=total_referrals,
        active_referrers=active_referrers,
        average_referrals=round(total_referrals / active_referrers, 1) if active_referrers else 0.0,
        total_rewards=await ReferralEventsRepo.sum_rewards(session),
        top_referrers=[
            ReferrerRanking(
                referrer_id=referrer_id,
                referrer_name=name,
                referral_code=code,
                referee_count=count,
                total_reward=rewards_by_referrer.get(referrer_id, 0),
            )
            for referrer_id, name, code, count in top
        ],
        recent_referrals=[
            RecentReferral(
                referrer_id=referral.referrer_id,
                referrer_name=referral.referrer_name,
                referee_id=referral.referee_id,
                referee_name=referral.referee_name,
                bound_at=referral.created_at,
            )
            for referral in recent
        ],
    )
