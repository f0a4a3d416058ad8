from __future__ import annotations

from decimal import Decimal

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.db.models.purchases import Purchase
from loyalty.db.models.withdrawals import Withdrawal


def _purchase_filters(
    *,
    status: str | None,
    payment_status: str | None,
) -> list[ColumnElement[bool]]:
    conditions: list[ColumnElement[bool]] = []
    if status:
        conditions.append(Purchase.status == status)
    if payment_status:
        conditions.append(Purchase.payment_status == payment_status)
    return conditions


class PurchasesRepo:
    @staticmethod
    async def create(session: AsyncSession, *, purchase: Purchase) -> Purchase:
        session.add(purchase)
        await session.flush()
        return purchase

    @staticmethod
    async def get_by_transaction_id(session: AsyncSession, transaction_id: str) -> Purchase | None:
        stmt = select(Purchase).where(Purchase.transaction_id == transaction_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_order_number_for_update(
        session: AsyncSession,
        order_number: str,
    ) -> Purchase | None:
        stmt = select(Purchase).where(Purchase.order_number == order_number).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_for_member(
        session: AsyncSession,
        *,
        member_id: str,
        offset: int,
        limit: int,
    ) -> list[Purchase]:
        stmt = (
            select(Purchase)
            .where(Purchase.member_id == member_id)
            .order_by(Purchase.created_at.desc(), Purchase.id.desc())
            .offset(max(0, int(offset)))
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def count_for_member(session: AsyncSession, *, member_id: str) -> int:
        stmt = select(func.count(Purchase.id)).where(Purchase.member_id == member_id)
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def count_by_reward_status(session: AsyncSession, *, reward_status: str) -> int:
        stmt = select(func.count(Purchase.id)).where(
            Purchase.referrer_reward_status == reward_status
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def list_page(
        session: AsyncSession,
        *,
        offset: int,
        limit: int,
        status: str | None = None,
        payment_status: str | None = None,
    ) -> list[Purchase]:
        stmt = (
            select(Purchase)
            .where(*_purchase_filters(status=status, payment_status=payment_status))
            .order_by(Purchase.created_at.desc(), Purchase.id.desc())
            .offset(max(0, int(offset)))
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def count_filtered(
        session: AsyncSession,
        *,
        status: str | None = None,
        payment_status: str | None = None,
    ) -> int:
        stmt = select(func.count(Purchase.id)).where(
            *_purchase_filters(status=status, payment_status=payment_status)
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def totals_by_payment_method(
        session: AsyncSession,
        *,
        status: str,
        payment_status: str,
        member_id: str | None = None,
    ) -> list[tuple[str, int, Decimal, int]]:
        """(payment_method, order_count, amount, points) per method."""
        conditions = _purchase_filters(status=status, payment_status=payment_status)
        if member_id is not None:
            conditions.append(Purchase.member_id == member_id)
        stmt = (
            select(
                Purchase.payment_method,
                func.count(Purchase.id),
                func.coalesce(func.sum(Purchase.amount), 0),
                func.coalesce(func.sum(Purchase.points), 0),
            )
            .where(*conditions)
            .group_by(Purchase.payment_method)
            .order_by(Purchase.payment_method.asc())
        )
        result = await session.execute(stmt)
        return [
            (str(method), int(count), Decimal(str(amount)), int(points))
            for method, count, amount, points in result.all()
        ]


class WithdrawalsRepo:
    @staticmethod
    async def create(session: AsyncSession, *, withdrawal: Withdrawal) -> Withdrawal:
        session.add(withdrawal)
        await session.flush()
        return withdrawal

    @staticmethod
    async def get_by_transaction_id(
        session: AsyncSession,
        transaction_id: str,
    ) -> Withdrawal | None:
        stmt = select(Withdrawal).where(Withdrawal.transaction_id == transaction_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_order_number_for_update(
        session: AsyncSession,
        order_number: str,
    ) -> Withdrawal | None:
        stmt = select(Withdrawal).where(Withdrawal.order_number == order_number).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_for_member(
        session: AsyncSession,
        *,
        member_id: str,
        offset: int,
        limit: int,
    ) -> list[Withdrawal]:
        stmt = (
            select(Withdrawal)
            .where(Withdrawal.member_id == member_id)
            .order_by(Withdrawal.created_at.desc(), Withdrawal.id.desc())
            .offset(max(0, int(offset)))
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def count_for_member(session: AsyncSession, *, member_id: str) -> int:
        stmt = select(func.count(Withdrawal.id)).where(Withdrawal.member_id == member_id)
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def count_by_reward_status(session: AsyncSession, *, reward_status: str) -> int:
        stmt = select(func.count(Withdrawal.id)).where(
            Withdrawal.referrer_reward_status == reward_status
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def list_page(
        session: AsyncSession,
        *,
        offset: int,
        limit: int,
        status: str | None = None,
    ) -> list[Withdrawal]:
        stmt = select(Withdrawal)
        if status:
            stmt = stmt.where(Withdrawal.status == status)
        stmt = (
            stmt.order_by(Withdrawal.created_at.desc(), Withdrawal.id.desc())
            .offset(max(0, int(offset)))
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def count_filtered(session: AsyncSession, *, status: str | None = None) -> int:
        stmt = select(func.count(Withdrawal.id))
        if status:
            stmt = stmt.where(Withdrawal.status == status)
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)
