from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from loyalty.db.models.base import Base, BigIntPK, JSONPayload


class Purchase(Base):
    __tablename__ = "purchases"
    __table_args__ = (
        CheckConstraint("points > 0", name="ck_purchases_points_positive"),
        CheckConstraint(
            "status IN ('pending','processing','completed','rejected')",
            name="ck_purchases_status",
        ),
        CheckConstraint(
            "payment_method IN ('cash','credit_card','bank_transfer','line_pay','manual','other')",
            name="ck_purchases_payment_method",
        ),
        CheckConstraint(
            "referrer_reward_status IN ('NONE','GRANTED','PENDING_RECONCILIATION')",
            name="ck_purchases_referrer_reward_status",
        ),
        Index("idx_purchases_member_created", "member_id", "created_at"),
        Index("idx_purchases_status_created", "status", "created_at"),
        Index("idx_purchases_reward_status", "referrer_reward_status"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    order_number: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    member_id: Mapped[str] = mapped_column(String(64), ForeignKey("members.id"), nullable=False)
    member_name: Mapped[str] = mapped_column(String(64), nullable=False)
    points: Mapped[int] = mapped_column(BigInteger, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False)
    payment_status: Mapped[str] = mapped_column(String(32), nullable=False)
    invoice_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    client_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payment_meta: Mapped[dict[str, object]] = mapped_column(JSONPayload, nullable=False, default=dict)
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
