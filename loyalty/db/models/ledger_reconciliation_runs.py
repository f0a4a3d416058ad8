from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from loyalty.db.models.base import Base, BigIntPK, JSONPayload


class LedgerReconciliationRun(Base):
    __tablename__ = "ledger_reconciliation_runs"
    __table_args__ = (Index("idx_ledger_reconciliation_runs_started_at", "started_at"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    members_checked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    diff_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pending_reward_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    drifted_member_ids: Mapped[list[str]] = mapped_column(JSONPayload, nullable=False, default=list)
