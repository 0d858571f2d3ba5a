from __future__ import annotations
"""SQLAlchemy model for postback attempts (append-only)."""
from datetime import datetime
from decimal import Decimal
from sqlalchemy import Integer, String, Text, DateTime, Numeric, Boolean, Enum
from sqlalchemy.orm import Mapped, mapped_column

from postback_settlement.database import Base
from postback_settlement.utils.time import utc_now
from .enums import TriggerPath

class PostbackAttempt(Base):
    __tablename__ = "postback_history"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    clickid: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, index=True)
    response_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    trigger: Mapped[TriggerPath | None] = mapped_column(Enum(TriggerPath), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)
