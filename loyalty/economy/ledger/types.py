from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

from loyalty.economy.errors import InvalidStatusTransitionError


class MemberStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    BLOCKED = "blocked"


class TransactionType(str, Enum):
    REGISTER = "register"
    TRANSFER_OUT = "transfer_out"
    TRANSFER_IN = "transfer_in"
    ADMIN_ADD = "admin_add"
    ADMIN_DEDUCT = "admin_deduct"
    PURCHASE = "purchase"
    WITHDRAW = "withdraw"
    REFERRAL_PURCHASE_REWARD = "referral_purchase_reward"
    REFERRAL_WITHDRAW_REWARD = "referral_withdraw_reward"


class TransactionStatus(str, Enum):
    COMPLETED = "completed"
    PENDING = "pending"


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REJECTED = "rejected"


class ReferralRewardStatus(str, Enum):
    NONE = "NONE"
    GRANTED = "GRANTED"
    PENDING_RECONCILIATION = "PENDING_RECONCILIATION"


class ReferralEventKind(str, Enum):
    PURCHASE = "purchase"
    WITHDRAW = "withdraw"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    BANK_TRANSFER = "bank_transfer"
    LINE_PAY = "line_pay"
    MANUAL = "manual"
    OTHER = "other"


PROCESSING_TRANSITIONS: dict[ProcessingStatus, frozenset[ProcessingStatus]] = {
    ProcessingStatus.PENDING: frozenset({ProcessingStatus.PROCESSING, ProcessingStatus.REJECTED}),
    ProcessingStatus.PROCESSING: frozenset({ProcessingStatus.COMPLETED, ProcessingStatus.REJECTED}),
    ProcessingStatus.COMPLETED: frozenset(),
    ProcessingStatus.REJECTED: frozenset(),
}

REWARD_TRANSACTION_TYPES: dict[ReferralEventKind, TransactionType] = {
    ReferralEventKind.PURCHASE: TransactionType.REFERRAL_PURCHASE_REWARD,
    ReferralEventKind.WITHDRAW: TransactionType.REFERRAL_WITHDRAW_REWARD,
}


def ensure_transition(current: ProcessingStatus, target: ProcessingStatus) -> None:
    if target not in PROCESSING_TRANSITIONS[current]:
        raise InvalidStatusTransitionError(
            f"cannot move from {current.value} to {target.value}"
        )


@dataclass(slots=True)
class MemberSnapshot:
    member_id: str
    display_name: str
    phone: str
    email: str | None
    points: int
    tier: str
    lifetime_earned: int
    lifetime_spent: int
    referral_code: str
    referred_by: str | None
    status: str
    login_name: str | None
    created_at: datetime
    updated_at: datetime
    last_login_at: datetime | None


@dataclass(slots=True)
class RegisterResult:
    member: MemberSnapshot
    transaction_id: str
    referrer_id: str | None
    idempotent_replay: bool = False


@dataclass(slots=True)
class TransferResult:
    sender_id: str
    receiver_id: str
    points: int
    sender_balance: int
    receiver_balance: int
    sender_tier: str
    receiver_tier: str
    out_transaction_id: str
    in_transaction_id: str


@dataclass(slots=True)
class AdjustResult:
    member_id: str
    delta: int
    old_balance: int
    new_balance: int
    old_tier: str
    new_tier: str
    transaction_id: str


@dataclass(slots=True)
class RewardResult:
    """Outcome of a referral reward attempt; ``granted`` is False for no-ops."""

    granted: bool
    reason: str
    referrer_id: str | None = None
    referrer_name: str | None = None
    reward_points: int = 0
    referrer_balance: int | None = None
    transaction_id: str | None = None


@dataclass(slots=True)
class PurchaseResult:
    order_number: str
    member_id: str
    points: int
    amount: Decimal
    balance_before: int
    new_balance: int
    tier: str
    transaction_id: str
    referrer_id: str | None
    referrer_reward: int
    referrer_reward_status: str
    idempotent_replay: bool = False

    @property
    def degraded(self) -> bool:
        return self.referrer_reward_status == ReferralRewardStatus.PENDING_RECONCILIATION.value


@dataclass(slots=True)
class WithdrawResult:
    order_number: str
    member_id: str
    points: int
    amount_before_fee: int
    fee: int
    payout_amount: int
    balance_before: int
    new_balance: int
    tier: str
    status: str
    transaction_id: str
    referrer_id: str | None
    referrer_reward: int
    referrer_reward_status: str
    idempotent_replay: bool = False

    @property
    def degraded(self) -> bool:
        return self.referrer_reward_status == ReferralRewardStatus.PENDING_RECONCILIATION.value


@dataclass(slots=True)
class StatusUpdateResult:
    order_number: str
    previous_status: str
    status: str
    completed_at: datetime | None
    notes: str | None


@dataclass(slots=True)
class Page:
    items: list[dict[str, object]]
    page: int
    page_size: int
    total: int
    has_more: bool = field(init=False)

    def __post_init__(self) -> None:
        self.has_more = self.page * self.page_size < self.total
