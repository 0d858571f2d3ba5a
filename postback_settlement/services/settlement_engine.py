"""Settlement execution engine.

Single public coroutine ``SettlementEngine.run(policy)`` shared by every
trigger path (timer, platform cron, manual admin):

1. Eligibility: persisted dedup check (cron) and the per-day claim (timer,
   cron). The manual path skips both.
2. Reads the aggregate pending total; ``<= 0`` ends as a no-op.
3. Picks the representative clickid (most recent pending record, else the
   trigger's sentinel) and audits PREPARING.
4. Sends the postback once through the notifier.
5. Records the attempt in ``postback_history``.
6. Clears the pending set ONLY when the postback was confirmed; on failure
   every pending record is retained for the next window.

Every transition is written to the audit log, and ``run`` never raises: any
error is audited as ``execution_error`` and returned as a failed result.

The total is read once. Records arriving between PREPARE and CLEAR are
cleared too unless ``clear_up_to_watermark`` is enabled, in which case only
records created at or before the PREPARE-time watermark are deleted.
"""
from __future__ import annotations

import enum
import time
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Protocol

from sqlalchemy.orm import Session

from postback_settlement.config import SENTINEL_CLICKIDS, SETTLEMENT_SETTINGS
from postback_settlement.models.db.enums import AuditAction, TriggerPath
from postback_settlement.services.postback_notifier import NotificationResult
from postback_settlement.services.run_detector import has_run_successfully_today
from postback_settlement.services.settlement_claims import SettlementClaimGuard
from postback_settlement.services.settlement_store import SettlementStore, to_amount
from postback_settlement.services.time_window import reference_now
from postback_settlement.utils import get_logger, log_business_event, log_performance
from postback_settlement.utils.time import format_elapsed, utc_now

logger = get_logger(__name__)


class Notifier(Protocol):
    def build_url(self, clickid: str, amount: Decimal) -> str: ...

    async def send(self, clickid: str, amount: Decimal) -> NotificationResult: ...


class SettlementOutcome(str, enum.Enum):
    SKIPPED = "SKIPPED"
    NO_OP = "NO_OP"
    SUCCESS = "SUCCESS"
    FAILURE_RETAINED = "FAILURE_RETAINED"
    ERROR = "ERROR"


@dataclass(frozen=True)
class TriggerPolicy:
    trigger: TriggerPath
    sentinel_clickid: str
    check_persisted_dedup: bool = False
    claim_day: bool = True

    @classmethod
    def timer(cls) -> "TriggerPolicy":
        return cls(TriggerPath.TIMER, SENTINEL_CLICKIDS["timer"], check_persisted_dedup=False, claim_day=True)

    @classmethod
    def cron(cls) -> "TriggerPolicy":
        return cls(TriggerPath.CRON, SENTINEL_CLICKIDS["cron"], check_persisted_dedup=True, claim_day=True)

    @classmethod
    def manual(cls) -> "TriggerPolicy":
        # Deliberately overrides both the window and duplicate-run protection
        return cls(TriggerPath.MANUAL, SENTINEL_CLICKIDS["manual"], check_persisted_dedup=False, claim_day=False)


@dataclass
class SettlementResult:
    success: bool
    message: str
    outcome: SettlementOutcome
    trigger: TriggerPath
    total_amount: Optional[Decimal] = None
    cleared_entries: Optional[int] = None
    clickid_used: Optional[str] = None
    error: Optional[str] = None
    skipped: bool = False
    reason: Optional[str] = None
    ny_time: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.total_amount is not None:
            payload["totalAmount"] = float(self.total_amount)
        if self.cleared_entries is not None:
            payload["clearedEntries"] = self.cleared_entries
        if self.clickid_used is not None:
            payload["clickidUsed"] = self.clickid_used
        if self.error is not None:
            payload["error"] = self.error
        if self.skipped:
            payload["skipped"] = True
        if self.reason is not None:
            payload["reason"] = self.reason
        if self.ny_time is not None:
            payload["nyTime"] = self.ny_time
        return payload


class SettlementEngine:
    """Guarded settle-or-skip execution over one store session per run."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        notifier: Notifier,
        *,
        clear_up_to_watermark: bool | None = None,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.clear_up_to_watermark = bool(
            clear_up_to_watermark if clear_up_to_watermark is not None else SETTLEMENT_SETTINGS["clear_up_to_watermark"]
        )

    def audit(self, trigger: TriggerPath, action: AuditAction, message: str, *, clickid: str | None = None) -> None:
        """Write one audit entry in its own session (used by trigger adapters)."""
        session = self.session_factory()
        try:
            SettlementStore(session).log_event(trigger, action, message, clickid=clickid)
        finally:
            session.close()

    async def run(self, policy: TriggerPolicy, now: datetime | None = None) -> SettlementResult:
        started_at = utc_now()
        start = time.time()
        session: Session | None = None
        try:
            session = self.session_factory()
            result = await self._run_guarded(session, SettlementStore(session), policy, now)
        except Exception as e:
            logger.error("Settlement execution error", trigger=policy.trigger.value, error=str(e), exc_info=True)
            # Without a session (factory failed) the error is only in the application log
            if session is not None:
                try:
                    session.rollback()
                except Exception:  # pragma: no cover
                    pass
                SettlementStore(session).log_event(
                    policy.trigger,
                    AuditAction.EXECUTION_ERROR,
                    f"Daily postback execution error ({policy.trigger.value}): {e}",
                    clickid=policy.sentinel_clickid,
                )
            result = SettlementResult(
                success=False,
                message="Daily postback execution error",
                outcome=SettlementOutcome.ERROR,
                trigger=policy.trigger,
                error=str(e),
            )
        finally:
            if session is not None:
                session.close()

        log_performance(
            operation="settlement_run",
            duration_ms=(time.time() - start) * 1000,
            additional_data={"trigger": policy.trigger.value, "outcome": result.outcome.value},
        )
        logger.info(
            "Settlement run finished",
            trigger=policy.trigger.value,
            outcome=result.outcome.value,
            success=result.success,
            elapsed=format_elapsed(started_at),
        )
        return result

    async def _run_guarded(
        self,
        session: Session,
        store: SettlementStore,
        policy: TriggerPolicy,
        now: datetime | None,
    ) -> SettlementResult:
        ny_now = reference_now(now)
        day = ny_now.date()

        if policy.check_persisted_dedup and has_run_successfully_today(session, ny_now):
            return self._duplicate(store, policy, day, "already processed today")

        guard = SettlementClaimGuard(session) if policy.claim_day else None
        if guard is not None and not guard.acquire(day, policy.trigger):
            return self._duplicate(store, policy, day, "settlement for this date already claimed")

        try:
            result = await self._settle(store, policy, ny_now)
        except Exception:
            if guard is not None:
                session.rollback()
                guard.release(day)
            raise

        if guard is not None:
            if result.outcome == SettlementOutcome.SUCCESS:
                guard.complete(day)
            else:
                guard.release(day)
        return result

    def _duplicate(self, store: SettlementStore, policy: TriggerPolicy, day: date, why: str) -> SettlementResult:
        store.log_event(
            policy.trigger,
            AuditAction.DUPLICATE_PREVENTED,
            f"Settlement skipped - {why} ({day.isoformat()})",
            clickid=policy.sentinel_clickid,
        )
        return SettlementResult(
            success=True,
            message="Already processed today - duplicate prevented",
            outcome=SettlementOutcome.SKIPPED,
            trigger=policy.trigger,
            skipped=True,
            reason=why,
        )

    async def _settle(self, store: SettlementStore, policy: TriggerPolicy, ny_now: datetime) -> SettlementResult:
        trigger = policy.trigger
        ny_time = ny_now.strftime("%Y-%m-%d %H:%M:%S %Z")

        total = store.get_aggregate_total()
        if total <= 0:
            store.log_event(
                trigger,
                AuditAction.NO_CACHE,
                f"No cached conversions found (total: ${total:.2f}). Daily postback completed with no action needed.",
                clickid=policy.sentinel_clickid,
            )
            return SettlementResult(
                success=True,
                message="No cached conversions to process",
                outcome=SettlementOutcome.NO_OP,
                trigger=trigger,
                total_amount=to_amount(0),
            )

        clickid = store.pick_representative_clickid(policy.sentinel_clickid)
        watermark = store.latest_pending_created_at() if self.clear_up_to_watermark else None

        store.log_event(
            trigger,
            AuditAction.POSTBACK_PREPARING,
            f"Preparing daily postback ({trigger.value}). NY Time: {ny_time}, Total cached: ${total:.2f}, using clickid: {clickid}",
            clickid=clickid,
            cached_amount=total,
            total_sent=total,
        )

        try:
            notification = await self.notifier.send(clickid, total)
        except Exception as e:
            # The request may already have left; keep a durable record of the attempt
            store.record_attempt(
                clickid,
                total,
                self.notifier.build_url(clickid, total),
                False,
                None,
                f"Postback send raised: {e}",
                trigger=trigger,
            )
            raise

        if notification.success:
            store.log_event(
                trigger,
                AuditAction.POSTBACK_SUCCESS,
                f"Daily postback successful. Amount: ${total:.2f}, Response: {notification.response_body}",
                clickid=clickid,
                cached_amount=total,
                total_sent=total,
            )
        else:
            store.log_event(
                trigger,
                AuditAction.POSTBACK_FAILED,
                f"Daily postback failed. Amount: ${total:.2f}, Error: {notification.error_message}",
                clickid=clickid,
                cached_amount=total,
                total_sent=total,
            )

        store.record_attempt(
            clickid,
            total,
            notification.url,
            notification.success,
            notification.response_body,
            notification.error_message,
            trigger=trigger,
        )

        if not notification.success:
            store.log_event(
                trigger,
                AuditAction.POSTBACK_FAILED_FINAL,
                f"Daily postback failed. Cache NOT cleared. Amount: ${total:.2f}, Error: {notification.error_message}",
                clickid=clickid,
            )
            log_business_event(
                event_type="settlement_failed",
                details={"trigger": trigger.value, "amount": str(total), "clickid": clickid, "error": notification.error_message},
            )
            return SettlementResult(
                success=False,
                message="Daily postback failed - cache not cleared",
                outcome=SettlementOutcome.FAILURE_RETAINED,
                trigger=trigger,
                total_amount=total,
                clickid_used=clickid,
                error=notification.error_message,
                ny_time=ny_time,
            )

        cleared = store.clear_all_pending(watermark)
        store.log_event(
            trigger,
            AuditAction.CACHE_CLEARED,
            f"Daily postback completed successfully. Cache cleared: {cleared} entries. Total sent: ${total:.2f}",
            clickid=clickid,
        )
        log_business_event(
            event_type="settlement_completed",
            details={"trigger": trigger.value, "amount": str(total), "clickid": clickid, "cleared_entries": cleared},
        )
        return SettlementResult(
            success=True,
            message="Daily postback sent successfully and cache cleared",
            outcome=SettlementOutcome.SUCCESS,
            trigger=trigger,
            total_amount=total,
            cleared_entries=cleared,
            clickid_used=clickid,
            ny_time=ny_time,
        )


__all__ = ["SettlementEngine", "SettlementResult", "SettlementOutcome", "TriggerPolicy", "Notifier"]
