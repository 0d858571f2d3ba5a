"""Trigger adapters around the shared settlement engine.

Each adapter contributes only its own entry policy:
* ``TimerTrigger``: in-process daily marker + 23:59 window, then the engine
  with the per-day claim.
* ``CronTrigger``: platform cron call (caller identity is verified by the
  HTTP layer), engine with persisted dedup + claim.
* ``ManualTrigger``: admin override, engine with no window and no dedup.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from postback_settlement.models.db.enums import AuditAction, TriggerPath
from postback_settlement.services.settlement_engine import SettlementEngine, TriggerPolicy
from postback_settlement.services.time_window import TimeWindowGate, reference_now
from postback_settlement.utils import get_logger
from postback_settlement.utils.time import utc_now

logger = get_logger(__name__)


class TimerTrigger:
    def __init__(self, engine: SettlementEngine, gate: TimeWindowGate | None = None):
        self.engine = engine
        self.gate = gate or TimeWindowGate()
        self.policy = TriggerPolicy.timer()

    async def check_and_run(self, now: datetime | None = None) -> Dict[str, Any]:
        """Run the daily settlement if this tick falls inside the window.

        Returns ``{"skipped": True, "reason": ...}`` outside the window or when
        this process already ran today, otherwise the engine result.
        """
        try:
            local = reference_now(now)
        except Exception as e:
            logger.warning("Reference clock unavailable; skipping settlement tick", error=str(e))
            return {"skipped": True, "reason": "Reference clock unavailable"}

        try:
            if self.gate.already_ran_today(local):
                return {"skipped": True, "reason": "Already ran today"}

            if not self.gate.is_eligible_now(local):
                return {
                    "skipped": True,
                    "reason": f"Not in time window. Current NY time: {local.hour}:{local.minute:02d}",
                }

            self.gate.mark_ran_today(local)
            self.engine.audit(
                TriggerPath.TIMER,
                AuditAction.AUTO_TRIGGER,
                f"Auto-triggered daily postback at {local.isoformat()} NY time",
                clickid=self.policy.sentinel_clickid,
            )
            result = await self.engine.run(self.policy, now)
            return result.to_dict()

        except Exception as e:
            logger.error("Daily scheduler check error", error=str(e), exc_info=True)
            self.engine.audit(
                TriggerPath.TIMER,
                AuditAction.SCHEDULER_ERROR,
                f"Daily scheduler error: {e}",
                clickid=self.policy.sentinel_clickid,
            )
            return {"success": False, "error": str(e)}


class CronTrigger:
    def __init__(self, engine: SettlementEngine):
        self.engine = engine
        self.policy = TriggerPolicy.cron()

    async def run(self, now: datetime | None = None) -> Dict[str, Any]:
        self.engine.audit(
            TriggerPath.CRON,
            AuditAction.CRON_TRIGGER,
            f"Platform cron triggered daily postback at {(now or utc_now()).isoformat()}",
            clickid=self.policy.sentinel_clickid,
        )
        result = await self.engine.run(self.policy, now)
        return result.to_dict()


class ManualTrigger:
    def __init__(self, engine: SettlementEngine):
        self.engine = engine
        self.policy = TriggerPolicy.manual()

    async def run(self, *, requested_by: str | None = None, now: datetime | None = None) -> Dict[str, Any]:
        who = f" by {requested_by}" if requested_by else ""
        self.engine.audit(
            TriggerPath.MANUAL,
            AuditAction.MANUAL_TRIGGER,
            f"Admin manually triggered daily postback{who} (bypasses time window and duplicate check)",
            clickid=self.policy.sentinel_clickid,
        )
        result = await self.engine.run(self.policy, now)
        return result.to_dict()


__all__ = ["TimerTrigger", "CronTrigger", "ManualTrigger"]
