"""
Administrative settlement endpoints: manual trigger and read-only history.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
import time
from postback_settlement.api.deps import get_db, get_current_user, require_admin, get_settlement_engine
from postback_settlement.models.db import User
from postback_settlement.models.db.enums import AuditAction, TriggerPath
from postback_settlement.models.schemas import ResponseBase, PostbackAttemptRead, ConversionLogRead, SettlementStatus
from postback_settlement.services.run_detector import has_run_successfully_today
from postback_settlement.services.settlement_engine import SettlementEngine
from postback_settlement.services.settlement_store import SettlementStore
from postback_settlement.services.time_window import reference_date
from postback_settlement.services.triggers import ManualTrigger
from postback_settlement.utils import get_logger, log_business_event, log_performance
from postback_settlement.utils.time import utc_now

router = APIRouter()
logger = get_logger(__name__)

@router.post(
    "/run",
    summary="Force the daily settlement now"
)
async def force_settlement(
    request: Request,
    admin: User = Depends(require_admin),
    engine: SettlementEngine = Depends(get_settlement_engine),
) -> JSONResponse:
    """Run the settlement immediately.

    Bypasses both the 23:59 window and the duplicate-run protection. Responds
    200 when the run succeeded (including no-op) and 500 otherwise.
    """
    start_time = time.time()
    request_id = getattr(request.state, "request_id", "unknown")

    logger.info("Manual settlement triggered", admin_id=admin.id, request_id=request_id)

    try:
        result = await ManualTrigger(engine).run(requested_by=admin.name)
    except Exception as e:
        logger.error("Manual settlement trigger failed", error=str(e), request_id=request_id, exc_info=True)
        engine.audit(TriggerPath.MANUAL, AuditAction.MANUAL_TRIGGER_ERROR, f"Manual trigger error: {e}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": str(e), "message": "Failed to trigger manual daily postback"},
        )

    log_business_event(
        event_type="manual_settlement_triggered",
        details={"success": result.get("success"), "total_amount": result.get("totalAmount")},
        user_id=admin.id,
        request_id=request_id,
    )
    log_performance(
        operation="force_settlement",
        duration_ms=(time.time() - start_time) * 1000,
    )
    return JSONResponse(
        status_code=200 if result.get("success") else 500,
        content={"forced": True, "timestamp": utc_now().isoformat(), **result},
    )

@router.get(
    "/status",
    response_model=ResponseBase,
    summary="Current pending total and today's settlement state"
)
async def settlement_status(
    request: Request,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ResponseBase:
    store = SettlementStore(db)
    attempts = store.recent_attempts(limit=1)
    scheduler = getattr(request.app.state, "settlement_scheduler", None)  # type: ignore[attr-defined]

    status_payload = SettlementStatus(
        pending_total=store.get_aggregate_total(),
        pending_count=store.pending_count(),
        settled_today=has_run_successfully_today(db),
        reference_date=reference_date().isoformat(),
        last_attempt=PostbackAttemptRead.model_validate(attempts[0]) if attempts else None,
        scheduler=scheduler.snapshot() if scheduler is not None else None,
    )
    return ResponseBase(
        success=True,
        message="Settlement status",
        data=status_payload.model_dump(mode="json"),
    )

@router.get(
    "/attempts",
    response_model=List[PostbackAttemptRead],
    summary="Recent postback attempts"
)
async def list_attempts(
    limit: int = Query(50, ge=1, le=500),
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> List[PostbackAttemptRead]:
    return [PostbackAttemptRead.model_validate(a) for a in SettlementStore(db).recent_attempts(limit=limit)]

@router.get(
    "/logs",
    response_model=List[ConversionLogRead],
    summary="Recent settlement audit entries"
)
async def list_logs(
    limit: int = Query(50, ge=1, le=500),
    action: Optional[AuditAction] = Query(None),
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> List[ConversionLogRead]:
    return [ConversionLogRead.model_validate(e) for e in SettlementStore(db).recent_events(limit=limit, action=action)]
