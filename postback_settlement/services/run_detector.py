"""Duplicate-run detection.

Two tiers:
* ``DailyRunMarker``: in-process date marker, no I/O. Only meaningful inside
  one long-lived process, so only the timer path consults it.
* ``has_run_successfully_today``: authoritative check against the audit log,
  valid across restarts and across trigger paths (used by the cron path).

The persisted check fails OPEN. When the audit log cannot be queried the day
is reported as "not yet run" so an observability outage never blocks
settlement permanently; the price is a possible duplicate postback during a
store outage.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from postback_settlement.models.db.conversion_logs import ConversionLog
from postback_settlement.models.db.enums import CONFIRMED_SUCCESS_ACTIONS
from postback_settlement.utils import get_logger

logger = get_logger(__name__)


@dataclass
class DailyRunMarker:
    last_run_date: date | None = None

    def has_run_on(self, day: date) -> bool:
        return self.last_run_date == day

    def mark(self, day: date) -> None:
        self.last_run_date = day


def count_confirmed_successes(session: Session, day: date) -> int:
    """Audit rows on ``day`` (reference timezone) proving a confirmed settlement."""
    from postback_settlement.services.time_window import reference_day_bounds

    start, end = reference_day_bounds(day)
    stmt = (
        select(func.count(ConversionLog.id))
        .where(ConversionLog.action.in_(sorted(CONFIRMED_SUCCESS_ACTIONS)))
        .where(ConversionLog.created_at >= start, ConversionLog.created_at < end)
    )
    return int(session.execute(stmt).scalar_one())


def has_run_successfully_today(session: Session, now: datetime | None = None) -> bool:
    from postback_settlement.services.time_window import reference_date

    try:
        return count_confirmed_successes(session, reference_date(now)) > 0
    except Exception as e:
        logger.error("Daily run status check failed; allowing settlement", error=str(e))
        try:
            session.rollback()
        except Exception:  # pragma: no cover
            pass
        return False


__all__ = ["DailyRunMarker", "count_confirmed_successes", "has_run_successfully_today"]
