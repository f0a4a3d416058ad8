from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.core.validation import require_identity
from loyalty.db.repo.orders_repo import PurchasesRepo, WithdrawalsRepo
from loyalty.economy.ledger.types import Page, ProcessingStatus

from .back_office import parse_processing_status
from .history import normalize_paging, purchase_to_dict, withdrawal_to_dict
from .purchases import DEFAULT_PAYMENT_STATUS, MAX_PAYMENT_STATUS_LENGTH

MONEY_QUANTUM = Decimal("0.01")


def _status_filter(raw_status: str | None) -> str | None:
    if not (raw_status or "").strip():
        return None
    return parse_processing_status(raw_status).value


def _payment_status_filter(raw_status: str | None) -> str | None:
    return (raw_status or "").strip()[:MAX_PAYMENT_STATUS_LENGTH] or None


async def list_all_purchases(
    session: AsyncSession,
    *,
    page: int | None = None,
    page_size: int | None = None,
    status: str | None = None,
    payment_status: str | None = None,
) -> Page:
    """Purchases across all members, newest first, optionally filtered."""
    resolved_page, resolved_size = normalize_paging(page, page_size)
    filters = {
        "status": _status_filter(status),
        "payment_status": _payment_status_filter(payment_status),
    }
    rows = await PurchasesRepo.list_page(
        session,
        offset=(resolved_page - 1) * resolved_size,
        limit=resolved_size,
        **filters,
    )
    total = await PurchasesRepo.count_filtered(session, **filters)
    return Page(
        items=[
            {"memberId": row.member_id, "memberName": row.member_name, **purchase_to_dict(row)}
            for row in rows
        ],
        page=resolved_page,
        page_size=resolved_size,
        total=total,
    )


async def list_all_withdrawals(
    session: AsyncSession,
    *,
    page: int | None = None,
    page_size: int | None = None,
    status: str | None = None,
) -> Page:
    """Withdrawals across all members, newest first; ``status="pending"`` is the payout queue."""
    resolved_page, resolved_size = normalize_paging(page, page_size)
    status_filter = _status_filter(status)
    rows = await WithdrawalsRepo.list_page(
        session,
        offset=(resolved_page - 1) * resolved_size,
        limit=resolved_size,
        status=status_filter,
    )
    total = await WithdrawalsRepo.count_filtered(session, status=status_filter)
    return Page(
        items=[
            {"memberId": row.member_id, "memberName": row.member_name, **withdrawal_to_dict(row)}
            for row in rows
        ],
        page=resolved_page,
        page_size=resolved_size,
        total=total,
    )


async def purchase_stats(
    session: AsyncSession,
    *,
    member_id: str | None = None,
) -> dict[str, object]:
    """Totals over completed, paid purchases, program-wide or for one member."""
    clean_member_id = require_identity(member_id) if member_id is not None else None
    rows = await PurchasesRepo.totals_by_payment_method(
        session,
        status=ProcessingStatus.COMPLETED.value,
        payment_status=DEFAULT_PAYMENT_STATUS,
        member_id=clean_member_id,
    )
    total_purchases = sum(count for _, count, _, _ in rows)
    total_amount = sum((amount for _, _, amount, _ in rows), Decimal("0"))
    total_points = sum(points for _, _, _, points in rows)

    average_amount = Decimal("0")
    average_points = 0
    if total_purchases:
        average_amount = total_amount / total_purchases
        average_points = int(
            (Decimal(total_points) / total_purchases).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        )
    return {
        "memberId": clean_member_id,
        "totalPurchases": total_purchases,
        "totalAmount": str(total_amount.quantize(MONEY_QUANTUM)),
        "totalPoints": total_points,
        "averageAmount": str(average_amount.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)),
        "averagePoints": average_points,
        "paymentMethods": {method: count for method, count, _, _ in rows},
    }
