"""
Platform cron endpoint for the daily settlement.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from postback_settlement.api.deps import get_settlement_engine, verify_cron_caller
from postback_settlement.config import CRON_SCHEDULE_DESCRIPTION
from postback_settlement.models.db.enums import AuditAction, TriggerPath
from postback_settlement.services.settlement_engine import SettlementEngine
from postback_settlement.services.triggers import CronTrigger
from postback_settlement.utils import get_logger
from postback_settlement.utils.time import utc_now

router = APIRouter()
logger = get_logger(__name__)

@router.get(
    "/daily-postback",
    summary="Platform cron: run the daily settlement"
)
async def cron_daily_postback(
    request: Request,
    _: bool = Depends(verify_cron_caller),
    engine: SettlementEngine = Depends(get_settlement_engine),
) -> JSONResponse:
    """Run the daily settlement for the platform scheduler.

    Deduplicated against today's audit log and the per-day claim, since each
    cron call may land in a fresh process.
    """
    request_id = getattr(request.state, "request_id", "unknown")
    logger.info("Cron daily postback triggered", request_id=request_id)

    try:
        result = await CronTrigger(engine).run()
    except Exception as e:
        logger.error("Cron daily postback error", error=str(e), request_id=request_id, exc_info=True)
        engine.audit(TriggerPath.CRON, AuditAction.CRON_ERROR, f"Platform cron error: {e}")
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": str(e),
                "timestamp": utc_now().isoformat(),
            },
        )

    return JSONResponse(
        status_code=200,
        content={
            "success": True,
            "timestamp": utc_now().isoformat(),
            "timezone": CRON_SCHEDULE_DESCRIPTION,
            **result,
        },
    )
