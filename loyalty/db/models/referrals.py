from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from loyalty.db.models.base import Base, BigIntPK


class Referral(Base):
    __tablename__ = "referrals"
    __table_args__ = (
        CheckConstraint("status IN ('ACTIVE')", name="ck_referrals_status"),
        CheckConstraint("referrer_id <> referee_id", name="ck_referrals_no_self_referral"),
        Index("idx_referrals_referrer_created", "referrer_id", "created_at"),
        Index("idx_referrals_code", "referral_code"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    referral_code: Mapped[str] = mapped_column(String(16), nullable=False)
    referrer_id: Mapped[str] = mapped_column(String(64), ForeignKey("members.id"), nullable=False)
    referrer_name: Mapped[str] = mapped_column(String(64), nullable=False)
    referee_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("members.id"),
        unique=True,
        nullable=False,
    )
    referee_name: Mapped[str] = mapped_column(String(64), nullable=False)
    referrer_reward: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    referee_reward: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="ACTIVE")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
