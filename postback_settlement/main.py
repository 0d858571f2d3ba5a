"""
FastAPI application main module.
Wires the settlement API, the timer-driven scheduler, middleware and error handling.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import time
import os
import uuid
from contextlib import asynccontextmanager
from postback_settlement.api.v1 import api_router
from postback_settlement.utils import setup_logging, get_logger
from postback_settlement.database import Base, engine, SessionLocal
from postback_settlement.config import SCHEDULER_SETTINGS
from postback_settlement.jobs.scheduler import SettlementScheduler
from postback_settlement.services.postback_notifier import PostbackNotifier
from postback_settlement.services.settlement_engine import SettlementEngine
from postback_settlement.services.triggers import TimerTrigger
import postback_settlement.models.db  # noqa: F401  (register tables on Base.metadata)

# Setup logging before creating the app
setup_logging(
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    log_file=os.getenv("LOG_FILE", "logs/app.log"),
    enable_console=True
)

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Creates tables and runs the settlement scheduler for the app's lifetime.
    """
    logger.info("Application startup initiated")

    scheduler: SettlementScheduler | None = None
    try:
        logger.info("Creating database tables")
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")

        if SCHEDULER_SETTINGS.get("enabled", True):
            # The in-process daily marker lives as long as this trigger
            timer = TimerTrigger(SettlementEngine(SessionLocal, PostbackNotifier()))
            scheduler = SettlementScheduler(timer)
            scheduler.start()
        else:
            logger.info("Settlement scheduler disabled; relying on cron and manual triggers")
        app.state.settlement_scheduler = scheduler  # type: ignore[attr-defined]

        logger.info("Application startup completed successfully")
        yield
    except Exception as e:  # pragma: no cover
        logger.error("Application startup failed", error=str(e), exc_info=True)
        raise
    finally:
        logger.info("Application shutdown initiated")
        if scheduler is not None:
            await scheduler.stop()
        logger.info("Application shutdown completed")

app = FastAPI(
    title="Daily Postback Settlement Service",
    description="""
    Settles the running total of cached conversions once per day.

    ## Triggers
    * **Timer** - in-process scheduler, runs at 23:59 America/New_York
    * **Platform cron** - `GET /api/v1/cron/daily-postback` (cron User-Agent required)
    * **Manual** - `POST /api/v1/admin/settlement/run` (admin API key, bypasses window and dedup)

    The cache is cleared only after the tracking endpoint confirms the postback.

    ## Authentication
    Admin endpoints use Bearer token authentication:
    ```
    Authorization: Bearer <api_key>
    ```
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/api/v1/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.middleware("http")
async def add_request_context_and_logging(request: Request, call_next):
    """
    Add request ID, timing, and request/response logging.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    request.state.request_id = request_id
    request.state.start_time = time.time()

    logger.info(
        "Request started",
        method=request.method,
        url=str(request.url),
        user_agent=request.headers.get("User-Agent"),
        remote_addr=request.client.host if request.client else "unknown",
        request_id=request_id
    )

    response = await call_next(request)

    process_time = time.time() - request.state.start_time

    response.headers[REQUEST_ID_HEADER] = request_id
    response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))
    response.headers["X-Content-Type-Options"] = "nosniff"

    logger.info(
        "Request completed",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        process_time_ms=round(process_time * 1000, 2),
        request_id=request_id
    )

    return response

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.warning(
        "Request validation failed",
        errors=exc.errors(),
        request_id=request_id,
        url=str(request.url),
        method=request.method
    )

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "message": "Request validation failed",
            "details": exc.errors(),
            "request_id": request_id
        }
    )

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.warning(
        "HTTP exception",
        status_code=exc.status_code,
        detail=exc.detail,
        request_id=request_id,
        url=str(request.url),
        method=request.method
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": exc.detail,
            "request_id": request_id
        },
        headers=getattr(exc, "headers", None)
    )

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.error(
        "Unhandled exception",
        error=str(exc),
        error_type=type(exc).__name__,
        request_id=request_id,
        url=str(request.url),
        method=request.method,
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": "Internal server error",
            "request_id": request_id
        }
    )

@app.get("/health", tags=["health"], summary="Basic health check")
async def health_check():
    """Basic health check endpoint for load balancers."""
    return {
        "status": "healthy",
        "service": "postback-settlement",
        "version": "1.0.0",
        "timestamp": time.time(),
    }

@app.get("/health/detailed", tags=["health"], summary="Detailed health check")
async def detailed_health_check():
    """Detailed health check with database and scheduler status."""
    health_status = {
        "status": "healthy",
        "service": "postback-settlement",
        "version": "1.0.0",
        "timestamp": time.time(),
        "checks": {}
    }

    try:
        from postback_settlement import database
        from sqlalchemy import text
        db = database.SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
        health_status["checks"]["database"] = "healthy"
    except Exception as e:
        health_status["checks"]["database"] = f"unhealthy: {str(e)}"
        health_status["status"] = "degraded"

    scheduler = getattr(app.state, "settlement_scheduler", None)  # type: ignore[attr-defined]
    if scheduler is None:
        health_status["checks"]["scheduler"] = "disabled"
    else:
        health_status["checks"]["scheduler"] = "running" if scheduler.running else "stopped"
        if not scheduler.running:
            health_status["status"] = "degraded"

    return health_status

@app.get("/", tags=["root"])
async def root():
    """API root endpoint with basic information."""
    return {
        "message": "Daily Postback Settlement API",
        "version": "1.0.0",
        "documentation": "/docs",
        "health_check": "/health",
        "api_base": "/api/v1"
    }

app.include_router(api_router, prefix="/api/v1")

if __name__ == "__main__":
    import uvicorn

    logger.info("Starting development server")

    uvicorn.run(
        "postback_settlement.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        reload_dirs=["postback_settlement"],
        log_level="info",
        access_log=True
    )
