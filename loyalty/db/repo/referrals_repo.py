from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.db.models.referral_events import ReferralEvent
from loyalty.db.models.referrals import Referral


class ReferralsRepo:
    @staticmethod
    async def get_by_referee_id(session: AsyncSession, *, referee_id: str) -> Referral | None:
        stmt = select(Referral).where(Referral.referee_id == referee_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(session: AsyncSession, *, referral: Referral) -> Referral:
        session.add(referral)
        await session.flush()
        return referral

    @staticmethod
    async def list_for_referrer(
        session: AsyncSession,
        *,
        referrer_id: str,
        limit: int = 100,
    ) -> list[Referral]:
        stmt = (
            select(Referral)
            .where(Referral.referrer_id == referrer_id)
            .order_by(Referral.created_at.desc(), Referral.id.desc())
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def count_for_referrer(session: AsyncSession, *, referrer_id: str) -> int:
        stmt = select(func.count(Referral.id)).where(Referral.referrer_id == referrer_id)
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def count(session: AsyncSession) -> int:
        result = await session.execute(select(func.count(Referral.id)))
        return int(result.scalar_one() or 0)

    @staticmethod
    async def count_referrers(session: AsyncSession) -> int:
        stmt = select(func.count(func.distinct(Referral.referrer_id)))
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def top_referrers(
        session: AsyncSession,
        *,
        limit: int,
    ) -> list[tuple[str, str, str, int]]:
        """(referrer_id, referrer_name, referral_code, referee_count), most referees first."""
        referee_count = func.count(Referral.id)
        stmt = (
            select(
                Referral.referrer_id,
                func.max(Referral.referrer_name),
                func.max(Referral.referral_code),
                referee_count,
            )
            .group_by(Referral.referrer_id)
            .order_by(referee_count.desc(), Referral.referrer_id.asc())
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return [
            (str(referrer_id), str(name), str(code), int(count))
            for referrer_id, name, code, count in result.all()
        ]

    @staticmethod
    async def list_recent(session: AsyncSession, *, limit: int) -> list[Referral]:
        stmt = (
            select(Referral)
            .order_by(Referral.created_at.desc(), Referral.id.desc())
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())


class ReferralEventsRepo:
    @staticmethod
    async def create(session: AsyncSession, *, event: ReferralEvent) -> ReferralEvent:
        session.add(event)
        await session.flush()
        return event

    @staticmethod
    async def sum_rewards_by_referee(
        session: AsyncSession,
        *,
        referrer_id: str,
    ) -> dict[str, int]:
        stmt = (
            select(ReferralEvent.referee_id, func.coalesce(func.sum(ReferralEvent.reward_points), 0))
            .where(ReferralEvent.referrer_id == referrer_id)
            .group_by(ReferralEvent.referee_id)
        )
        result = await session.execute(stmt)
        return {str(referee_id): int(total) for referee_id, total in result.all()}

    @staticmethod
    async def sum_rewards(session: AsyncSession) -> int:
        stmt = select(func.coalesce(func.sum(ReferralEvent.reward_points), 0))
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def sum_rewards_by_referrer(
        session: AsyncSession,
        *,
        referrer_ids: Sequence[str],
    ) -> dict[str, int]:
        if not referrer_ids:
            return {}
        stmt = (
            select(ReferralEvent.referrer_id, func.coalesce(func.sum(ReferralEvent.reward_points), 0))
            .where(ReferralEvent.referrer_id.in_(list(referrer_ids)))
            .group_by(ReferralEvent.referrer_id)
        )
        result = await session.execute(stmt)
        return {str(referrer_id): int(total) for referrer_id, total in result.all()}
