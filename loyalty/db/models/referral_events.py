from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from loyalty.db.models.base import Base, BigIntPK


class ReferralEvent(Base):
    __tablename__ = "referral_events"
    __table_args__ = (
        CheckConstraint("event_kind IN ('purchase','withdraw')", name="ck_referral_events_kind"),
        CheckConstraint("reward_points > 0", name="ck_referral_events_reward_positive"),
        Index("idx_referral_events_referrer_created", "referrer_id", "created_at"),
        Index("idx_referral_events_referee", "referee_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    referral_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("referrals.id"), nullable=False
    )
    referrer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    referrer_name: Mapped[str] = mapped_column(String(64), nullable=False)
    referee_id: Mapped[str] = mapped_column(String(64), nullable=False)
    referee_name: Mapped[str] = mapped_column(String(64), nullable=False)
    event_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    source_points: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reward_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    reward_points: Mapped[int] = mapped_column(BigInteger, nullable=False)
    referrer_balance_before: Mapped[int] = mapped_column(BigInteger, nullable=False)
    referrer_balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    transaction_id: Mapped[str] = mapped_column(String(40), nullable=False)
    source_order_number: Mapped[str | None] = mapped_column(String(40), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
