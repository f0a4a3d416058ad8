from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.core.validation import clean_message
from loyalty.db.models.purchases import Purchase
from loyalty.db.models.withdrawals import Withdrawal
from loyalty.db.repo.orders_repo import PurchasesRepo, WithdrawalsRepo
from loyalty.economy.errors import RecordNotFoundError, ValidationFailedError
from loyalty.economy.ledger.types import ProcessingStatus, StatusUpdateResult, ensure_transition

logger = structlog.get_logger(__name__)


def parse_processing_status(raw_status: str | None) -> ProcessingStatus:
    try:
        return ProcessingStatus((raw_status or "").strip().lower())
    except ValueError as exc:
        raise ValidationFailedError(f"unknown status: {raw_status}") from exc


def _append_note(existing: str | None, note: str, *, now_utc: datetime) -> str | None:
    if not note:
        return existing
    stamped = f"[{now_utc:%Y-%m-%d %H:%M:%S}] {note}"
    return f"{existing}\n{stamped}" if existing else stamped


def _transition(
    record: Purchase | Withdrawal,
    *,
    target: ProcessingStatus,
    note: str,
    now_utc: datetime,
) -> StatusUpdateResult:
    previous = ProcessingStatus(record.status)
    ensure_transition(previous, target)

    record.status = target.value
    record.updated_at = now_utc
    if target == ProcessingStatus.COMPLETED:
        record.completed_at = now_utc
    record.notes = _append_note(record.notes, note, now_utc=now_utc)
    return StatusUpdateResult(
        order_number=record.order_number,
        previous_status=previous.value,
        status=record.status,
        completed_at=record.completed_at,
        notes=record.notes,
    )


async def update_withdrawal_status(
    session: AsyncSession,
    *,
    order_number: str,
    status: str,
    now_utc: datetime,
    notes: str | None = None,
) -> StatusUpdateResult:
    """Moves a withdrawal along its processing lifecycle; balances are never touched."""
    target = parse_processing_status(status)
    note = clean_message(notes)
    withdrawal = await WithdrawalsRepo.get_by_order_number_for_update(
        session,
        (order_number or "").strip(),
    )
    if withdrawal is None:
        raise RecordNotFoundError
    result = _transition(withdrawal, target=target, note=note, now_utc=now_utc)
    await session.flush()
    logger.info(
        "withdrawal_status_updated",
        order_number=withdrawal.order_number,
        previous_status=result.previous_status,
        status=result.status,
    )
    return result


async def update_purchase_status(
    session: AsyncSession,
    *,
    order_number: str,
    status: str,
    now_utc: datetime,
    notes: str | None = None,
) -> StatusUpdateResult:
    target = parse_processing_status(status)
    note = clean_message(notes)
    purchase = await PurchasesRepo.get_by_order_number_for_update(
        session,
        (order_number or "").strip(),
    )
    if purchase is None:
        raise RecordNotFoundError
    result = _transition(purchase, target=target, note=note, now_utc=now_utc)
    await session.flush()
    logger.info(
        "purchase_status_updated",
        order_number=purchase.order_number,
        previous_status=result.previous_status,
        status=result.status,
    )
    return result
