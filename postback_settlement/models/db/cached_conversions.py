from __future__ import annotations
"""SQLAlchemy model for conversions awaiting the daily settlement postback.

Rows are written by the upstream conversion tracking flow and are only ever
read in aggregate and deleted in bulk by the settlement engine.
"""
from datetime import datetime
from decimal import Decimal
from sqlalchemy import Integer, String, DateTime, Numeric, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from postback_settlement.database import Base
from postback_settlement.utils.time import utc_now

class CachedConversion(Base):
    __tablename__ = "cached_conversions"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    clickid: Mapped[str] = mapped_column(String, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="cached_conversion_amount_non_negative"),
    )
