"""
Centralized logging configuration.
Structured (JSON) logs for settlement outcomes, run timings and request tracing.
"""
import logging
import logging.config
import json
import sys
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from pathlib import Path

LOGGER_NAMESPACE = "postback_settlement"

# Levels for third-party loggers routed through our handlers
_LIBRARY_LEVELS: Dict[str, str] = {
    "uvicorn": "INFO",
    "sqlalchemy.engine": "WARNING",  # SQL statements only when debugging
    "aiohttp.client": "WARNING",
}

class JSONFormatter(logging.Formatter):
    """One JSON object per line; structured fields are merged at top level."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "process_id": record.process,
        }
        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            log_entry.update(extra_data)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        # Decimal amounts and datetimes are rendered via str()
        return json.dumps(log_entry, ensure_ascii=False, default=str)

class StructuredLogger:
    """
    Thin wrapper: ``logger.info("Postback accepted", status_code=200)``.
    Keyword arguments become structured fields (``None`` values dropped);
    ``exc_info`` is forwarded to the stdlib logger.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def _emit(self, level: int, message: str, exc_info: bool = False, **fields):
        extra_data = {k: v for k, v in fields.items() if v is not None}
        self.logger.log(level, message, exc_info=exc_info, extra={"extra_data": extra_data})

    def debug(self, message: str, **fields):
        self._emit(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields):
        self._emit(logging.INFO, message, **fields)

    def warning(self, message: str, **fields):
        self._emit(logging.WARNING, message, **fields)

    def error(self, message: str, **fields):
        self._emit(logging.ERROR, message, **fields)

def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    enable_console: bool = True
) -> None:
    """
    Configure the service and library loggers.

    Args:
        log_level: Level for the service namespace and the root logger
        log_file: Rotating JSON log file; parent directories are created
        enable_console: Also log human-readable lines to stdout
    """
    handlers: Dict[str, Dict[str, Any]] = {}
    if enable_console:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "stream": sys.stdout,
            "formatter": "standard",
            "level": log_level,
        }
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": log_file,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "formatter": "json",
            "level": log_level,
        }
    handler_names = list(handlers)

    loggers = {
        name: {"level": level, "handlers": handler_names, "propagate": False}
        for name, level in _LIBRARY_LEVELS.items()
    }
    loggers[LOGGER_NAMESPACE] = {"level": log_level, "handlers": handler_names, "propagate": False}

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": JSONFormatter},
            "standard": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": handlers,
        "loggers": loggers,
        "root": {"level": log_level, "handlers": handler_names},
    })

def get_logger(name: str) -> StructuredLogger:
    """Structured logger under the service namespace (``__name__`` is fine)."""
    if name == LOGGER_NAMESPACE or name.startswith(f"{LOGGER_NAMESPACE}."):
        return StructuredLogger(name)
    return StructuredLogger(f"{LOGGER_NAMESPACE}.{name}")

def log_business_event(
    event_type: str,
    details: Dict[str, Any],
    user_id: Optional[int] = None,
    request_id: Optional[str] = None
) -> None:
    """
    Record a settlement-level business event (``settlement_completed``,
    ``settlement_failed``, ``manual_settlement_triggered``) on the audit logger.
    """
    get_logger("audit").info(
        f"Business event: {event_type}",
        event_type=event_type,
        user_id=user_id,
        request_id=request_id,
        **details
    )

def log_performance(
    operation: str,
    duration_ms: float,
    additional_data: Optional[Dict[str, Any]] = None
) -> None:
    """Record how long an operation took, in milliseconds."""
    fields: Dict[str, Any] = dict(additional_data or {})
    fields["duration_ms"] = round(duration_ms, 2)
    get_logger("performance").info(f"Performance: {operation}", operation=operation, **fields)
