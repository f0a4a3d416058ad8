from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.db.models.ledger_reconciliation_runs import LedgerReconciliationRun


class LedgerReconciliationRunsRepo:
    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        started_at: datetime,
        finished_at: datetime | None,
        status: str,
        members_checked: int,
        diff_count: int,
        pending_reward_count: int,
        drifted_member_ids: list[str],
    ) -> LedgerReconciliationRun:
        run = LedgerReconciliationRun(
            started_at=started_at,
            finished_at=finished_at,
            status=status,
            members_checked=members_checked,
            diff_count=diff_count,
            pending_reward_count=pending_reward_count,
            drifted_member_ids=drifted_member_ids,
        )
        session.add(run)
        await session.flush()
        return run

    @staticmethod
    async def get_latest(session: AsyncSession) -> LedgerReconciliationRun | None:
        stmt = (
            select(LedgerReconciliationRun)
            .order_by(LedgerReconciliationRun.started_at.desc(), LedgerReconciliationRun.id.desc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()
