from __future__ import annotations

from datetime import datetime, timezone

import structlog
from celery.schedules import crontab

from loyalty.db.repo.ledger_reconciliation_runs_repo import LedgerReconciliationRunsRepo
from loyalty.db.repo.members_repo import MembersRepo
from loyalty.db.repo.orders_repo import PurchasesRepo, WithdrawalsRepo
from loyalty.db.session import SessionLocal
from loyalty.economy.ledger.types import ReferralRewardStatus
from loyalty.services.ledger_reconciliation import compute_balance_drift, reconciliation_status
from loyalty.workers.asyncio_runner import run_async_job
from loyalty.workers.celery_app import LEDGER_QUEUE, celery_app

logger = structlog.get_logger(__name__)

MAX_REPORTED_MEMBER_IDS = 100


async def run_ledger_reconciliation_async(*, batch_size: int = 500) -> dict[str, int | str]:
    """Compares every stored balance with the sum of its ledger rows. Read-only on balances."""
    started_at = datetime.now(timezone.utc)
    members_checked = 0
    drifted_member_ids: list[str] = []

    after_member_id: str | None = None
    while True:
        async with SessionLocal.begin() as session:
            rows = await MembersRepo.list_balances_with_ledger_sums_after(
                session,
                after_member_id=after_member_id,
                limit=batch_size,
            )
        if not rows:
            break

        members_checked += len(rows)
        drifted_member_ids.extend(compute_balance_drift(rows))
        after_member_id = rows[-1][0]
        if len(rows) < batch_size:
            break

    pending = ReferralRewardStatus.PENDING_RECONCILIATION.value
    async with SessionLocal.begin() as session:
        pending_purchases = await PurchasesRepo.count_by_reward_status(
            session,
            reward_status=pending,
        )
        pending_withdrawals = await WithdrawalsRepo.count_by_reward_status(
            session,
            reward_status=pending,
        )
        diff_count = len(drifted_member_ids)
        status = reconciliation_status(diff_count)
        await LedgerReconciliationRunsRepo.create(
            session,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            status=status,
            members_checked=members_checked,
            diff_count=diff_count,
            pending_reward_count=pending_purchases + pending_withdrawals,
            drifted_member_ids=drifted_member_ids[:MAX_REPORTED_MEMBER_IDS],
        )

    result: dict[str, int | str] = {
        "members_checked": members_checked,
        "diff_count": diff_count,
        "pending_purchase_rewards": pending_purchases,
        "pending_withdrawal_rewards": pending_withdrawals,
        "status": status,
    }
    if diff_count > 0:
        logger.warning(
            "ledger_reconciliation_drift_detected",
            drifted_member_ids=drifted_member_ids[:MAX_REPORTED_MEMBER_IDS],
            **result,
        )
    else:
        logger.info("ledger_reconciliation_finished", **result)
    return result


@celery_app.task(name="loyalty.workers.tasks.ledger_reconciliation.run_ledger_reconciliation")
def run_ledger_reconciliation(batch_size: int = 500) -> dict[str, int | str]:
    return run_async_job(
        run_ledger_reconciliation_async(batch_size=batch_size),
        job_name="ledger_reconciliation",
    )


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "ledger-reconciliation-hourly": {
            "task": "loyalty.workers.tasks.ledger_reconciliation.run_ledger_reconciliation",
            "schedule": 3600.0,
            "options": {"queue": LEDGER_QUEUE},
        },
        "ledger-reconciliation-daily-0330-utc": {
            "task": "loyalty.workers.tasks.ledger_reconciliation.run_ledger_reconciliation",
            "schedule": crontab(hour=3, minute=30),
            "options": {"queue": LEDGER_QUEUE},
        },
    }
)
