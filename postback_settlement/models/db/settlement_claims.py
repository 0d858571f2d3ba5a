from __future__ import annotations
"""SQLAlchemy model for per-day settlement claims.

The unique ``settlement_date`` makes claiming a day an atomic insert: only one
invocation can hold the claim for a reference-timezone date.
"""
from datetime import date, datetime
from sqlalchemy import Integer, Date, DateTime, Enum
from sqlalchemy.orm import Mapped, mapped_column

from postback_settlement.database import Base
from postback_settlement.utils.time import utc_now
from .enums import ClaimStatus, TriggerPath

class SettlementClaim(Base):
    __tablename__ = "settlement_claims"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    settlement_date: Mapped[date] = mapped_column(Date, nullable=False, unique=True)
    trigger: Mapped[TriggerPath] = mapped_column(Enum(TriggerPath), nullable=False)
    status: Mapped[ClaimStatus] = mapped_column(Enum(ClaimStatus), default=ClaimStatus.IN_PROGRESS, nullable=False)
    claimed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
