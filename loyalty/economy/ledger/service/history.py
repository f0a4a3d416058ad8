from __future__ import annotations

from datetime import datetime, time, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.core.validation import require_identity
from loyalty.db.models.purchases import Purchase
from loyalty.db.models.transactions import Transaction
from loyalty.db.models.withdrawals import Withdrawal
from loyalty.db.repo.members_repo import MembersRepo
from loyalty.db.repo.orders_repo import PurchasesRepo, WithdrawalsRepo
from loyalty.db.repo.transactions_repo import TransactionsRepo
from loyalty.economy.errors import MemberNotFoundError, ValidationFailedError
from loyalty.economy.ledger.types import MemberSnapshot, Page
from loyalty.services.member_directory import to_snapshot

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def normalize_paging(page: int | None, page_size: int | None) -> tuple[int, int]:
    resolved_page = 1 if page is None else int(page)
    resolved_size = DEFAULT_PAGE_SIZE if page_size is None else int(page_size)
    if resolved_page < 1:
        raise ValidationFailedError("page must be at least 1")
    if not 1 <= resolved_size <= MAX_PAGE_SIZE:
        raise ValidationFailedError(f"pageSize must be between 1 and {MAX_PAGE_SIZE}")
    return resolved_page, resolved_size


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def transaction_to_dict(transaction: Transaction) -> dict[str, object]:
    return {
        "transactionId": transaction.transaction_id,
        "type": transaction.transaction_type,
        "memberId": transaction.member_id,
        "senderId": transaction.sender_id,
        "senderName": transaction.sender_name,
        "receiverId": transaction.receiver_id,
        "receiverName": transaction.receiver_name,
        "points": transaction.points,
        "balanceAfter": transaction.balance_after,
        "counterpartyBalanceAfter": transaction.counterparty_balance_after,
        "message": transaction.message,
        "status": transaction.status,
        "createdAt": _iso(transaction.created_at),
    }


def purchase_to_dict(purchase: Purchase) -> dict[str, object]:
    return {
        "orderNumber": purchase.order_number,
        "points": purchase.points,
        "amount": str(purchase.amount),
        "unitPrice": str(purchase.unit_price),
        "paymentMethod": purchase.payment_method,
        "paymentStatus": purchase.payment_status,
        "invoiceNumber": purchase.invoice_number,
        "referrerId": purchase.referrer_id,
        "referrerName": purchase.referrer_name,
        "referrerReward": purchase.referrer_reward,
        "referrerRewardStatus": purchase.referrer_reward_status,
        "balanceBefore": purchase.balance_before,
        "balanceAfter": purchase.balance_after,
        "status": purchase.status,
        "notes": purchase.notes,
        "createdAt": _iso(purchase.created_at),
        "completedAt": _iso(purchase.completed_at),
    }


def withdrawal_to_dict(withdrawal: Withdrawal) -> dict[str, object]:
    return {
        "orderNumber": withdrawal.order_number,
        "points": withdrawal.points,
        "amountBeforeFee": withdrawal.amount_before_fee,
        "fee": withdrawal.fee,
        "payoutAmount": withdrawal.payout_amount,
        "exchangeRate": str(withdrawal.exchange_rate),
        "bankName": withdrawal.bank_name,
        "bankCode": withdrawal.bank_code,
        "bankAccount": withdrawal.bank_account,
        "accountHolder": withdrawal.account_holder,
        "referrerId": withdrawal.referrer_id,
        "referrerName": withdrawal.referrer_name,
        "referrerReward": withdrawal.referrer_reward,
        "referrerRewardStatus": withdrawal.referrer_reward_status,
        "balanceBefore": withdrawal.balance_before,
        "balanceAfter": withdrawal.balance_after,
        "status": withdrawal.status,
        "notes": withdrawal.notes,
        "createdAt": _iso(withdrawal.created_at),
        "completedAt": _iso(withdrawal.completed_at),
    }


async def _require_member(session: AsyncSession, member_id: str) -> str:
    clean_member_id = require_identity(member_id)
    if await MembersRepo.get_by_id(session, clean_member_id) is None:
        raise MemberNotFoundError
    return clean_member_id


async def list_transactions(
    session: AsyncSession,
    *,
    member_id: str,
    page: int | None = None,
    page_size: int | None = None,
) -> Page:
    """Newest first, in the order the ledger applied them."""
    resolved_page, resolved_size = normalize_paging(page, page_size)
    clean_member_id = require_identity(member_id)
    rows = await TransactionsRepo.list_for_member(
        session,
        member_id=clean_member_id,
        offset=(resolved_page - 1) * resolved_size,
        limit=resolved_size,
    )
    total = await TransactionsRepo.count_for_member(session, member_id=clean_member_id)
    return Page(
        items=[transaction_to_dict(row) for row in rows],
        page=resolved_page,
        page_size=resolved_size,
        total=total,
    )


async def list_purchases(
    session: AsyncSession,
    *,
    member_id: str,
    page: int | None = None,
    page_size: int | None = None,
) -> Page:
    resolved_page, resolved_size = normalize_paging(page, page_size)
    clean_member_id = await _require_member(session, member_id)
    rows = await PurchasesRepo.list_for_member(
        session,
        member_id=clean_member_id,
        offset=(resolved_page - 1) * resolved_size,
        limit=resolved_size,
    )
    total = await PurchasesRepo.count_for_member(session, member_id=clean_member_id)
    return Page(
        items=[purchase_to_dict(row) for row in rows],
        page=resolved_page,
        page_size=resolved_size,
        total=total,
    )


async def list_withdrawals(
    session: AsyncSession,
    *,
    member_id: str,
    page: int | None = None,
    page_size: int | None = None,
) -> Page:
    resolved_page, resolved_size = normalize_paging(page, page_size)
    clean_member_id = await _require_member(session, member_id)
    rows = await WithdrawalsRepo.list_for_member(
        session,
        member_id=clean_member_id,
        offset=(resolved_page - 1) * resolved_size,
        limit=resolved_size,
    )
    total = await WithdrawalsRepo.count_for_member(session, member_id=clean_member_id)
    return Page(
        items=[withdrawal_to_dict(row) for row in rows],
        page=resolved_page,
        page_size=resolved_size,
        total=total,
    )


async def admin_stats(session: AsyncSession, *, now_utc: datetime) -> dict[str, object]:
    utc_date = now_utc.astimezone(timezone.utc).date()
    day_start = datetime.combine(utc_date, time.min, tzinfo=timezone.utc)
    issued_today, redeemed_today = await TransactionsRepo.sum_points_between(
        session,
        from_utc=day_start,
        to_utc=day_start + timedelta(days=1),
    )
    return {
        "memberCount": await MembersRepo.count(session),
        "newMembersToday": await MembersRepo.count_created_since(session, since_utc=day_start),
        "totalPoints": await MembersRepo.sum_points(session),
        "tierDistribution": await MembersRepo.count_by_tier(session),
        "transactionCount": await TransactionsRepo.count(session),
        "pointsIssuedToday": issued_today,
        "pointsRedeemedToday": redeemed_today,
    }


async def admin_members(
    session: AsyncSession,
    *,
    page: int | None = None,
    page_size: int | None = None,
) -> Page:
    resolved_page, resolved_size = normalize_paging(page, page_size)
    members = await MembersRepo.list_page(
        session,
        offset=(resolved_page - 1) * resolved_size,
        limit=resolved_size,
    )
    total = await MembersRepo.count(session)
    return Page(
        items=[snapshot_to_dict(to_snapshot(member)) for member in members],
        page=resolved_page,
        page_size=resolved_size,
        total=total,
    )


def snapshot_to_dict(snapshot: MemberSnapshot) -> dict[str, object]:
    return {
        "memberId": snapshot.member_id,
        "name": snapshot.display_name,
        "phone": snapshot.phone,
        "email": snapshot.email,
        "points": snapshot.points,
        "tier": snapshot.tier,
        "lifetimeEarned": snapshot.lifetime_earned,
        "lifetimeSpent": snapshot.lifetime_spent,
        "referralCode": snapshot.referral_code,
        "referredBy": snapshot.referred_by,
        "status": snapshot.status,
        "username": snapshot.login_name,
        "createdAt": _iso(snapshot.created_at),
        "updatedAt": _iso(snapshot.updated_at),
        "lastLoginAt": _iso(snapshot.last_login_at),
    }
