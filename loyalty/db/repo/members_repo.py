from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.db.models.members import Member
from loyalty.db.models.transactions import Transaction


class MembersRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, member_id: str) -> Member | None:
        return await session.get(Member, member_id)

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, member_id: str) -> Member | None:
        stmt = (
            select(Member)
            .where(Member.id == member_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_by_ids_for_update(
        session: AsyncSession,
        member_ids: Sequence[str],
    ) -> dict[str, Member]:
        locked: dict[str, Member] = {}
        # Ascending id order so concurrent writers never wait on each other in a cycle.
        for member_id in sorted(set(member_ids)):
            member = await MembersRepo.get_by_id_for_update(session, member_id)
            if member is not None:
                locked[member_id] = member
        return locked

    @staticmethod
    async def get_by_phone(session: AsyncSession, phone: str) -> Member | None:
        stmt = select(Member).where(Member.phone == phone)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_referral_code(session: AsyncSession, referral_code: str) -> Member | None:
        stmt = select(Member).where(Member.referral_code == referral_code)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_login_name(session: AsyncSession, login_name: str) -> Member | None:
        stmt = select(Member).where(Member.login_name == login_name)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def referral_code_exists(session: AsyncSession, referral_code: str) -> bool:
        stmt = select(Member.id).where(Member.referral_code == referral_code).limit(1)
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def create(session: AsyncSession, *, member: Member) -> Member:
        session.add(member)
        await session.flush()
        return member

    @staticmethod
    async def list_page(
        session: AsyncSession,
        *,
        offset: int,
        limit: int,
    ) -> list[Member]:
        stmt = (
            select(Member)
            .order_by(Member.created_at.desc(), Member.id.desc())
            .offset(max(0, int(offset)))
            .limit(max(1, min(100, int(limit))))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def count(session: AsyncSession) -> int:
        stmt = select(func.count(Member.id))
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def sum_points(session: AsyncSession) -> int:
        stmt = select(func.coalesce(func.sum(Member.points), 0))
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def count_by_tier(session: AsyncSession) -> dict[str, int]:
        stmt = select(Member.tier, func.count(Member.id)).group_by(Member.tier)
        result = await session.execute(stmt)
        return {str(tier): int(count) for tier, count in result.all()}

    @staticmethod
    async def count_created_since(session: AsyncSession, *, since_utc: datetime) -> int:
        stmt = select(func.count(Member.id)).where(Member.created_at >= since_utc)
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def list_balances_with_ledger_sums_after(
        session: AsyncSession,
        *,
        after_member_id: str | None,
        limit: int,
    ) -> list[tuple[str, int, int]]:
        """(member_id, stored balance, sum of ledger rows), read in one statement."""
        ledger_sum = (
            select(func.coalesce(func.sum(Transaction.points), 0))
            .where(Transaction.member_id == Member.id)
            .correlate(Member)
            .scalar_subquery()
        )
        stmt = (
            select(Member.id, Member.points, ledger_sum)
            .order_by(Member.id.asc())
            .limit(max(1, int(limit)))
        )
        if after_member_id is not None:
            stmt = stmt.where(Member.id > after_member_id)
        result = await session.execute(stmt)
        return [
            (str(member_id), int(points), int(total))
            for member_id, points, total in result.all()
        ]
