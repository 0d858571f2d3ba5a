"""Atomic per-day settlement claims.

Claiming inserts a ``settlement_claims`` row keyed by the reference date; the
unique constraint turns a concurrent second claim into an ``IntegrityError``.
An ``IN_PROGRESS`` claim left behind by a crashed process can be taken over
once it is older than ``claim_stale_after_seconds`` (conditional UPDATE, so
only one contender wins the takeover).

Lifecycle: acquire before PREPARE, ``complete`` after CLEAR, ``release``
(delete) after a no-op, a failed postback or an error so the next window can
try again.
"""
from __future__ import annotations

from datetime import date, timedelta

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from postback_settlement.config import SETTLEMENT_SETTINGS
from postback_settlement.models.db.enums import ClaimStatus, TriggerPath
from postback_settlement.models.db.settlement_claims import SettlementClaim
from postback_settlement.utils import get_logger
from postback_settlement.utils.time import utc_now

logger = get_logger(__name__)


class SettlementClaimGuard:
    def __init__(self, session: Session, *, stale_after_seconds: int | None = None):
        self.session = session
        self.stale_after = timedelta(seconds=int(
            stale_after_seconds if stale_after_seconds is not None else SETTLEMENT_SETTINGS["claim_stale_after_seconds"]
        ))

    def acquire(self, day: date, trigger: TriggerPath) -> bool:
        try:
            self.session.add(SettlementClaim(settlement_date=day, trigger=trigger, status=ClaimStatus.IN_PROGRESS))
            self.session.commit()
            logger.info("Settlement claim acquired", settlement_date=day.isoformat(), trigger=trigger.value)
            return True
        except IntegrityError:
            self.session.rollback()
        return self._take_over_stale(day, trigger)

    def _take_over_stale(self, day: date, trigger: TriggerPath) -> bool:
        now = utc_now()
        stmt = (
            update(SettlementClaim)
            .where(
                SettlementClaim.settlement_date == day,
                SettlementClaim.status == ClaimStatus.IN_PROGRESS,
                SettlementClaim.claimed_at < now - self.stale_after,
            )
            .values(trigger=trigger, claimed_at=now)
        )
        result = self.session.execute(stmt)
        self.session.commit()
        if result.rowcount == 1:
            logger.warning("Took over stale settlement claim", settlement_date=day.isoformat(), trigger=trigger.value)
            return True
        logger.info("Settlement already claimed for date", settlement_date=day.isoformat(), trigger=trigger.value)
        return False

    def complete(self, day: date) -> None:
        try:
            self.session.execute(
                update(SettlementClaim)
                .where(SettlementClaim.settlement_date == day)
                .values(status=ClaimStatus.COMPLETED, completed_at=utc_now())
            )
            self.session.commit()
        except Exception as e:
            # Settlement already happened; the audit log still dedups the day
            logger.error("Failed to mark settlement claim completed", settlement_date=day.isoformat(), error=str(e))
            self.session.rollback()

    def release(self, day: date) -> None:
        try:
            self.session.execute(
                delete(SettlementClaim).where(
                    SettlementClaim.settlement_date == day,
                    SettlementClaim.status == ClaimStatus.IN_PROGRESS,
                )
            )
            self.session.commit()
        except Exception as e:
            # Left IN_PROGRESS; becomes eligible for takeover once stale
            logger.error("Failed to release settlement claim", settlement_date=day.isoformat(), error=str(e))
            self.session.rollback()


__all__ = ["SettlementClaimGuard"]
