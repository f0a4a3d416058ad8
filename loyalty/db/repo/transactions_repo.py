from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.db.models.transactions import Transaction


class TransactionsRepo:
    @staticmethod
    async def create(session: AsyncSession, *, transaction: Transaction) -> Transaction:
        session.add(transaction)
        await session.flush()
        return transaction

    @staticmethod
    async def get_by_transaction_id(
        session: AsyncSession,
        transaction_id: str,
    ) -> Transaction | None:
        stmt = select(Transaction).where(Transaction.transaction_id == transaction_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_idempotency_key(
        session: AsyncSession,
        idempotency_key: str,
    ) -> Transaction | None:
        stmt = select(Transaction).where(Transaction.idempotency_key == idempotency_key)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_for_member(
        session: AsyncSession,
        *,
        member_id: str,
        offset: int,
        limit: int,
    ) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.member_id == member_id)
            .order_by(Transaction.seq.desc())
            .offset(max(0, int(offset)))
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def count_for_member(session: AsyncSession, *, member_id: str) -> int:
        stmt = select(func.count(Transaction.seq)).where(Transaction.member_id == member_id)
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def count(session: AsyncSession) -> int:
        stmt = select(func.count(Transaction.seq))
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def sum_points_between(
        session: AsyncSession,
        *,
        from_utc: datetime,
        to_utc: datetime,
    ) -> tuple[int, int]:
        issued = func.coalesce(
            func.sum(Transaction.points).filter(Transaction.points > 0),
            0,
        )
        redeemed = func.coalesce(
            func.sum(-Transaction.points).filter(Transaction.points < 0),
            0,
        )
        stmt = select(issued, redeemed).where(
            Transaction.created_at >= from_utc,
            Transaction.created_at < to_utc,
            Transaction.transaction_type.not_in(("transfer_in", "transfer_out")),
        )
        result = await session.execute(stmt)
        row = result.one()
        return int(row[0] or 0), int(row[1] or 0)
