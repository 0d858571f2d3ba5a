"""Time utilities (UTC now, elapsed formatting, day bounds)."""
from __future__ import annotations
from datetime import date, datetime, time, timezone, timedelta, tzinfo

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def format_elapsed(start: datetime, end: datetime | None = None) -> str:
    end_ts = end or utc_now()
    delta: timedelta = end_ts - start
    ms = int(delta.total_seconds() * 1000)
    if ms < 1000:
        return f"{ms}ms"
    if ms < 60_000:
        return f"{ms/1000:.2f}s"
    return f"{delta.total_seconds()/60:.2f}m"

def day_bounds_utc(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """UTC [start, end) of a calendar day as observed in ``tz``."""
    start_local = datetime.combine(day, time.min, tzinfo=tz)
    end_local = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc)

__all__ = ["utc_now", "format_elapsed", "day_bounds_utc"]
