from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from loyalty.db.models.base import Base, BigIntPK


class Withdrawal(Base):
    __tablename__ = "withdrawals"
    __table_args__ = (
        CheckConstraint("points > 0", name="ck_withdrawals_points_positive"),
        CheckConstraint("payout_amount > 0", name="ck_withdrawals_payout_positive"),
        CheckConstraint(
            "status IN ('pending','processing','completed','rejected')",
            name="ck_withdrawals_status",
        ),
        CheckConstraint(
            "referrer_reward_status IN ('NONE','GRANTED','PENDING_RECONCILIATION')",
            name="ck_withdrawals_referrer_reward_status",
        ),
        Index("idx_withdrawals_member_created", "member_id", "created_at"),
        Index("idx_withdrawals_status_created", "status", "created_at"),
        Index("idx_withdrawals_reward_status", "referrer_reward_status"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    order_number: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    member_id: Mapped[str] = mapped_column(String(64), ForeignKey("members.id"), nullable=False)
    member_name: Mapped[str] = mapped_column(String(64), nullable=False)
    points: Mapped[int] = mapped_column(BigInteger, nullable=False)
    amount_before_fee: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fee: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payout_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    exchange_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    bank_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    bank_code: Mapped[str | None] = mapped_column(String(16), nullable=True)
    bank_account: Mapped[str | None] = mapped_column(String(64), nullable=True)
    account_holder: Mapped[str | None] = mapped_column(String(64), nullable=True)
    client_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    referrer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    referrer_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    referrer_reward: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    referrer_reward_status: Mapped[str] = mapped_column(String(32), nullable=False)
    balance_before: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    transaction_id: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
