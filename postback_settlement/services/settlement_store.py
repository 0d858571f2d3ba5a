"""Narrow data access layer over the pending-conversion store.

Reads (aggregate total, representative clickid) and the destructive clear
propagate their errors to the caller. The two append-only writers
(``record_attempt`` and ``log_event``) never raise: a failed audit write is
rolled back and reported through the application logger only, so it can
never mask the outcome of a settlement.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from postback_settlement.models.db.cached_conversions import CachedConversion
from postback_settlement.models.db.conversion_logs import ConversionLog
from postback_settlement.models.db.postback_history import PostbackAttempt
from postback_settlement.models.db.enums import AuditAction, TriggerPath
from postback_settlement.utils import get_logger

logger = get_logger(__name__)

CENTS = Decimal("0.01")


def to_amount(value: object) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENTS)


class SettlementStore:
    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------ reads
    def get_aggregate_total(self) -> Decimal:
        """Sum of all pending amounts; 0 when nothing is pending."""
        total = self.session.execute(select(func.sum(CachedConversion.amount))).scalar_one_or_none()
        return to_amount(total)

    def pick_representative_clickid(self, fallback: str) -> str:
        """Clickid of the most recently created pending record, else ``fallback``."""
        stmt = (
            select(CachedConversion.clickid)
            .order_by(CachedConversion.created_at.desc(), CachedConversion.id.desc())
            .limit(1)
        )
        clickid = self.session.execute(stmt).scalar_one_or_none()
        return clickid or fallback

    def latest_pending_created_at(self) -> datetime | None:
        return self.session.execute(select(func.max(CachedConversion.created_at))).scalar_one_or_none()

    def pending_count(self) -> int:
        return int(self.session.execute(select(func.count(CachedConversion.id))).scalar_one())

    def recent_attempts(self, limit: int = 50) -> List[PostbackAttempt]:
        stmt = select(PostbackAttempt).order_by(PostbackAttempt.created_at.desc(), PostbackAttempt.id.desc()).limit(limit)
        return list(self.session.execute(stmt).scalars())

    def recent_events(self, limit: int = 50, action: Optional[AuditAction] = None) -> List[ConversionLog]:
        stmt = select(ConversionLog)
        if action is not None:
            stmt = stmt.where(ConversionLog.action == action)
        stmt = stmt.order_by(ConversionLog.created_at.desc(), ConversionLog.id.desc()).limit(limit)
        return list(self.session.execute(stmt).scalars())

    # ------------------------------------------------------------ destructive
    def clear_all_pending(self, watermark: datetime | None = None) -> int:
        """Delete pending records and return how many were removed.

        With ``watermark`` only records created at or before it are deleted.
        """
        stmt = delete(CachedConversion)
        if watermark is not None:
            stmt = stmt.where(CachedConversion.created_at <= watermark)
        result = self.session.execute(stmt)
        self.session.commit()
        return int(result.rowcount or 0)

    # ------------------------------------------------------------ append-only
    def record_attempt(
        self,
        clickid: str,
        amount: Decimal,
        url: str,
        success: bool,
        response_body: str | None,
        error_message: str | None,
        *,
        trigger: TriggerPath | None = None,
    ) -> None:
        try:
            self.session.add(PostbackAttempt(
                clickid=clickid,
                amount=amount,
                url=url,
                success=success,
                response_body=response_body,
                error_message=error_message,
                trigger=trigger,
            ))
            self.session.commit()
        except Exception as e:
            self._discard("Failed to record postback attempt", e, clickid=clickid, success=success)

    def log_event(
        self,
        trigger: TriggerPath,
        action: AuditAction,
        message: str,
        *,
        clickid: str | None = None,
        cached_amount: Decimal | None = None,
        total_sent: Decimal | None = None,
    ) -> None:
        try:
            self.session.add(ConversionLog(
                clickid=clickid or trigger.value,
                trigger=trigger,
                action=action,
                message=message,
                cached_amount=cached_amount,
                total_sent=total_sent,
            ))
            self.session.commit()
        except Exception as e:
            self._discard("Failed to write audit entry", e, action=action.value, trigger=trigger.value)

    def _discard(self, message: str, error: Exception, **fields) -> None:
        logger.error(message, error=str(error), **fields)
        try:
            self.session.rollback()
        except Exception as rollback_error:  # pragma: no cover
            logger.error("Rollback after failed audit write also failed", error=str(rollback_error))


__all__ = ["SettlementStore", "to_amount"]
