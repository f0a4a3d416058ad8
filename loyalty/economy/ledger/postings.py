from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.core.config import LedgerConfig
from loyalty.core.identifiers import new_transaction_id
from loyalty.db.models.members import Member
from loyalty.db.models.transactions import Transaction
from loyalty.db.repo.members_repo import MembersRepo
from loyalty.db.repo.transactions_repo import TransactionsRepo
from loyalty.economy.errors import (
    MemberNotActiveError,
    MemberNotFoundError,
    ValidationFailedError,
)
from loyalty.economy.ledger.tiers import compute_tier
from loyalty.economy.ledger.types import MemberStatus, TransactionStatus, TransactionType
from loyalty.services.member_directory import MemberDirectory


@dataclass(frozen=True, slots=True)
class Party:
    member_id: str
    name: str

    @classmethod
    def of(cls, member: Member) -> Party:
        return cls(member.id, member.display_name)


def floor_points(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def ensure_active(member: Member, *, role: str = "member") -> None:
    if member.status != MemberStatus.ACTIVE.value:
        raise MemberNotActiveError(f"{role} account is not active")


async def lock_member(
    session: AsyncSession,
    member_id: str,
    *,
    not_found: type[MemberNotFoundError] = MemberNotFoundError,
) -> Member:
    member = await MembersRepo.get_by_id_for_update(session, member_id)
    if member is None:
        raise not_found
    return member


def apply_balance_change(
    member: Member,
    *,
    delta: int,
    config: LedgerConfig,
    now_utc: datetime,
    count_as_spent: bool | None = None,
) -> int:
    """Moves a locked member's balance by ``delta`` and returns the new balance.

    Credits count toward lifetime earned and debits toward lifetime spent unless
    ``count_as_spent`` overrides the direction.
    """
    new_balance = member.points + delta
    spent_side = delta < 0 if count_as_spent is None else count_as_spent
    MemberDirectory.update_balance_fields(
        member,
        points=new_balance,
        tier=compute_tier(new_balance, config.tier_thresholds),
        now_utc=now_utc,
        earned=0 if spent_side else abs(delta),
        spent=abs(delta) if spent_side else 0,
    )
    return new_balance


async def append_transaction(
    session: AsyncSession,
    *,
    transaction_type: TransactionType,
    member: Member,
    points: int,
    now_utc: datetime,
    message: str = "",
    status: TransactionStatus = TransactionStatus.COMPLETED,
    sender: Party | None = None,
    receiver: Party | None = None,
    counterparty: Member | None = None,
    idempotency_key: str | None = None,
) -> Transaction:
    return await TransactionsRepo.create(
        session,
        transaction=Transaction(
            transaction_id=new_transaction_id(),
            transaction_type=transaction_type.value,
            member_id=member.id,
            counterparty_id=counterparty.id if counterparty is not None else None,
            sender_id=sender.member_id if sender is not None else None,
            sender_name=sender.name if sender is not None else None,
            receiver_id=receiver.member_id if receiver is not None else None,
            receiver_name=receiver.name if receiver is not None else None,
            points=points,
            balance_after=member.points,
            counterparty_balance_after=counterparty.points if counterparty is not None else None,
            message=message,
            status=status.value,
            idempotency_key=idempotency_key,
            created_at=now_utc,
        ),
    )


async def find_replay(
    session: AsyncSession,
    *,
    idempotency_key: str | None,
    transaction_type: TransactionType,
    member_id: str | None,
) -> Transaction | None:
    if not idempotency_key:
        return None
    existing = await TransactionsRepo.get_by_idempotency_key(session, idempotency_key)
    if existing is None:
        return None
    if existing.transaction_type != transaction_type.value or (
        member_id is not None and existing.member_id != member_id
    ):
        raise ValidationFailedError("idempotency key was already used for a different request")
    return existing
