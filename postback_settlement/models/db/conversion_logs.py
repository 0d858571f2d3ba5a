from __future__ import annotations
"""SQLAlchemy model for the settlement audit log.

One row per state transition of a trigger or of the settlement engine. The
duplicate-run detector reads this table, so rows are never updated.
"""
from datetime import datetime
from decimal import Decimal
from sqlalchemy import Integer, String, Text, DateTime, Numeric, Enum
from sqlalchemy.orm import Mapped, mapped_column

from postback_settlement.database import Base
from postback_settlement.utils.time import utc_now
from .enums import AuditAction, TriggerPath

class ConversionLog(Base):
    __tablename__ = "conversion_logs"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    # Representative clickid for engine rows, trigger sentinel otherwise
    clickid: Mapped[str] = mapped_column(String, nullable=False)
    trigger: Mapped[TriggerPath] = mapped_column(Enum(TriggerPath), nullable=False, index=True)
    action: Mapped[AuditAction] = mapped_column(Enum(AuditAction), nullable=False, index=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    cached_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    total_sent: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)
