"""
Pydantic schemas for settlement history and status.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, ConfigDict
from postback_settlement.models.db.enums import AuditAction, TriggerPath

class PostbackAttemptRead(BaseModel):
    """One outbound postback attempt as recorded in postback_history."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    clickid: str
    amount: Decimal
    url: str
    success: bool
    response_body: Optional[str] = None
    error_message: Optional[str] = None
    trigger: Optional[TriggerPath] = None
    created_at: datetime

class ConversionLogRead(BaseModel):
    """Audit log entry."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    clickid: str
    trigger: TriggerPath
    action: AuditAction
    message: str
    cached_amount: Optional[Decimal] = None
    total_sent: Optional[Decimal] = None
    created_at: datetime

class SettlementStatus(BaseModel):
    pending_total: Decimal = Field(description="Current aggregate of cached conversions")
    pending_count: int
    settled_today: bool = Field(description="A confirmed settlement exists in today's audit log (reference timezone)")
    reference_date: str
    last_attempt: Optional[PostbackAttemptRead] = None
    scheduler: Optional[Dict[str, Any]] = None
