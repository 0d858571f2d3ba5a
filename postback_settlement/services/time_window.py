"""Reference-timezone clock and the daily settlement window.

The timer-triggered path may only settle during one minute of the reference
day (23:59 America/New_York by default). Everything here is a pure function
of the wall clock; ``TimeWindowGate`` additionally owns the in-process
``DailyRunMarker`` so the marker's lifetime is the gate's lifetime.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from postback_settlement.config import SETTLEMENT_SETTINGS
from postback_settlement.services.run_detector import DailyRunMarker
from postback_settlement.utils import get_logger
from postback_settlement.utils.time import day_bounds_utc

logger = get_logger(__name__)


def reference_zone() -> ZoneInfo:
    return ZoneInfo(str(SETTLEMENT_SETTINGS["reference_timezone"]))


def reference_now(now: datetime | None = None) -> datetime:
    """Current (or given) instant expressed in the reference timezone.

    Naive datetimes are interpreted as UTC. Raises if timezone data is missing.
    """
    instant = now or datetime.now(timezone.utc)
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(reference_zone())


def reference_date(now: datetime | None = None) -> date:
    return reference_now(now).date()


def reference_day_bounds(day: date) -> tuple[datetime, datetime]:
    """UTC [start, end) of ``day`` as observed in the reference timezone."""
    return day_bounds_utc(day, reference_zone())


class TimeWindowGate:
    """Eligibility check for the timer path plus its in-process run marker."""

    def __init__(
        self,
        *,
        window_hour: int | None = None,
        window_minute: int | None = None,
        marker: DailyRunMarker | None = None,
    ):
        self.window_hour = int(window_hour if window_hour is not None else SETTLEMENT_SETTINGS["window_hour"])
        self.window_minute = int(window_minute if window_minute is not None else SETTLEMENT_SETTINGS["window_minute"])
        self.marker = marker if marker is not None else DailyRunMarker()

    def is_eligible_now(self, now: datetime | None = None) -> bool:
        """True only during the designated minute (all 60 seconds of it).

        Fails closed: if the clock or timezone data cannot be used the
        window is treated as closed instead of raising.
        """
        try:
            local = reference_now(now)
        except Exception as e:
            logger.warning("Reference clock unavailable; settlement window treated as closed", error=str(e))
            return False
        return local.hour == self.window_hour and local.minute == self.window_minute

    def already_ran_today(self, now: datetime | None = None) -> bool:
        return self.marker.has_run_on(reference_date(now))

    def mark_ran_today(self, now: datetime | None = None) -> None:
        self.marker.mark(reference_date(now))


def is_eligible_now(now: datetime | None = None) -> bool:
    return TimeWindowGate().is_eligible_now(now)


__all__ = ["TimeWindowGate", "is_eligible_now", "reference_now", "reference_date", "reference_day_bounds", "reference_zone"]
