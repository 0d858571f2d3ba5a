"""Core application configuration & tunable settlement rules.

Everything that may need adjusting per deployment (postback endpoint, the
daily settlement window, scheduler cadence, cron caller identity) is
centralized here so it can be changed without touching service logic. Values
are read from the environment once at import; groups are kept as mutable
dicts so tests can monkeypatch individual keys.
"""
from __future__ import annotations

import os


def _env_flag(name: str, default: str = "false") -> bool:
	return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


# ------------------------------- Postback --------------------------------- #
POSTBACK_SETTINGS: dict[str, str | float] = {
	# Single external tracking endpoint receiving the daily aggregate.
	"base_url": os.getenv("POSTBACK_BASE_URL", "https://clks.trackthisclicks.com/postback"),
	# One attempt per invocation, bounded by this total timeout.
	"timeout_seconds": float(os.getenv("POSTBACK_TIMEOUT_SECONDS", "30")),
}

# ------------------------------- Settlement ------------------------------- #
SETTLEMENT_SETTINGS: dict[str, str | int | bool] = {
	"reference_timezone": os.getenv("SETTLEMENT_TIMEZONE", "America/New_York"),
	# The timer path may only run during this minute of the reference day.
	"window_hour": 23,
	"window_minute": 59,
	# IN_PROGRESS claims older than this are considered abandoned.
	"claim_stale_after_seconds": int(os.getenv("SETTLEMENT_CLAIM_STALE_AFTER_SECONDS", "600")),
	# Clear only records created at or before the PREPARE-time watermark.
	"clear_up_to_watermark": _env_flag("SETTLEMENT_CLEAR_UP_TO_WATERMARK"),
}

# Representative clickid used when no pending record exists (per trigger path).
SENTINEL_CLICKIDS: dict[str, str] = {
	"timer": "auto-scheduler",
	"cron": "vercel-cron",
	"manual": "manual-admin",
}

# -------------------------------- Scheduler ------------------------------- #
SCHEDULER_SETTINGS: dict[str, bool | float] = {
	"enabled": _env_flag("SCHEDULER_ENABLED", "true"),
	"tick_seconds": float(os.getenv("SCHEDULER_TICK_SECONDS", "30")),
}

# ---------------------------------- Cron ---------------------------------- #
# Platform cron calls are identified by their User-Agent header.
CRON_USER_AGENT: str = os.getenv("CRON_USER_AGENT", "vercel-cron/1.0")
CRON_SCHEDULE_DESCRIPTION = "Cron runs at 11:59 PM Eastern Time (4:59 AM UTC)"

__all__ = [
	"POSTBACK_SETTINGS",
	"SETTLEMENT_SETTINGS",
	"SENTINEL_CLICKIDS",
	"SCHEDULER_SETTINGS",
	"CRON_USER_AGENT",
	"CRON_SCHEDULE_DESCRIPTION",
]
