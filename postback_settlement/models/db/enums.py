"""Central Enum definitions for settlement domain states.

These replace per-trigger string literals (``cron_postback_success``,
``force_postback_success``...) with one closed set of action tags; the
trigger path is recorded separately on each audit row.
"""
from __future__ import annotations
import enum


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    VIEWER = "VIEWER"


class TriggerPath(str, enum.Enum):
    TIMER = "timer"
    CRON = "cron"
    MANUAL = "manual"


class AuditAction(str, enum.Enum):
    # Trigger entry
    AUTO_TRIGGER = "auto_trigger"
    CRON_TRIGGER = "cron_trigger"
    MANUAL_TRIGGER = "manual_trigger"
    # Engine transitions
    DUPLICATE_PREVENTED = "duplicate_prevented"
    NO_CACHE = "no_cache"
    POSTBACK_PREPARING = "postback_preparing"
    POSTBACK_SUCCESS = "postback_success"
    POSTBACK_FAILED = "postback_failed"
    POSTBACK_FAILED_FINAL = "postback_failed_final"
    CACHE_CLEARED = "cache_cleared"
    EXECUTION_ERROR = "execution_error"
    # Adapter-level failures
    SCHEDULER_ERROR = "scheduler_error"
    CRON_ERROR = "cron_error"
    MANUAL_TRIGGER_ERROR = "manual_trigger_error"


# Actions proving a settlement was confirmed by the tracking endpoint.
CONFIRMED_SUCCESS_ACTIONS: frozenset[AuditAction] = frozenset({
    AuditAction.POSTBACK_SUCCESS,
    AuditAction.CACHE_CLEARED,
})


class ClaimStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


__all__ = [
    "UserRole",
    "TriggerPath",
    "AuditAction",
    "CONFIRMED_SUCCESS_ACTIONS",
    "ClaimStatus",
]
