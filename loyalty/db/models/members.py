from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from loyalty.db.models.base import Base


class Member(Base):
    __tablename__ = "members"
    __table_args__ = (
        CheckConstraint(
            "status IN ('active','inactive','suspended','blocked')",
            name="ck_members_status",
        ),
        CheckConstraint("lifetime_earned >= 0", name="ck_members_lifetime_earned_non_negative"),
        CheckConstraint("lifetime_spent >= 0", name="ck_members_lifetime_spent_non_negative"),
        Index("idx_members_referred_by", "referred_by"),
        Index("idx_members_created_at", "created_at"),
        Index("idx_members_tier", "tier"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(64), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    email: Mapped[str | None] = mapped_column(String(254), nullable=True)
    points: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    tier: Mapped[str] = mapped_column(String(32), nullable=False)
    lifetime_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    lifetime_spent: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    referral_code: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    referred_by: Mapped[str | None] = mapped_column(String(16), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    login_name: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
