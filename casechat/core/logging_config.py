"""
Structured logging for the case backend (structlog on top of stdlib logging).

- Console renderer in development, JSON in production
- ERROR and above duplicated to STDERR
- Optional daily file `LOG_DIR/backend-YYYY-MM-DD.log` (JSON lines) for demos
- Correlation IDs from AccessLogMiddleware merged into every entry
- Passwords, tokens and secrets redacted, including inside chat API payloads
- httpx/httpcore/asyncio held at WARNING
"""

import logging
import logging.config
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, List
import structlog
from structlog.types import EventDict, Processor

from casechat.config import Settings

SERVICE_NAME = "case-chat-backend"
REDACTED = "***REDACTED***"
SENSITIVE_KEYS = ("password", "token", "api_key", "secret", "authorization")

# Third-party loggers and the minimum level they may emit at
QUIET_LOGGERS = {
    "httpx": "WARNING",
    "httpcore": "WARNING",
    "asyncio": "WARNING",
}


def make_app_context(settings: Settings):
    """Processor stamping each entry with service, app, version and environment."""
    context = {
        "service": SERVICE_NAME,
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
    }

    def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.update(context)
        return event_dict

    return add_app_context


def add_severity_level(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    level = event_dict.get("level")
    if level:
        event_dict["severity"] = level.upper()
    return event_dict


def add_trace_id_alias(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Copy correlation_id (or request_id) to trace_id."""
    trace_id = event_dict.get("correlation_id") or event_dict.get("request_id")
    if trace_id:
        event_dict["trace_id"] = trace_id
    return event_dict


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(word in lowered for word in SENSITIVE_KEYS)


def censor_sensitive_data(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Redact sensitive values.

    One level of nesting is inspected too: user payloads sent to the chat
    service are logged as dicts and may carry a password.
    """
    for key, value in list(event_dict.items()):
        if _is_sensitive(key):
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                k: REDACTED if _is_sensitive(str(k)) else v
                for k, v in value.items()
            }
    return event_dict


def _handlers(settings: Settings, level: str) -> Dict[str, dict]:
    handlers = {
        "default": {
            "class": "logging.StreamHandler",
            "level": level,
            "formatter": "structured",
            "stream": "ext://sys.stdout",
        },
        "error": {
            "class": "logging.StreamHandler",
            "level": "ERROR",
            "formatter": "structured",
            "stream": "ext://sys.stderr",
        },
    }
    if settings.LOG_DIR:
        os.makedirs(settings.LOG_DIR, exist_ok=True)
        day = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        handlers["file"] = {
            "class": "logging.FileHandler",
            "level": level,
            "formatter": "json",
            "filename": os.path.join(settings.LOG_DIR, f"backend-{day}.log"),
            "encoding": "utf8",
        }
    return handlers


def _loggers(app_handlers: List[str], level: str) -> Dict[str, dict]:
    loggers = {
        name: {"handlers": app_handlers, "level": level, "propagate": False}
        for name in ("", "casechat", "uvicorn.error")
    }
    loggers["uvicorn"] = {"handlers": ["default"], "level": level, "propagate": False}
    # AccessLogMiddleware writes the access log
    loggers["uvicorn.access"] = {"handlers": [], "level": "CRITICAL", "propagate": False}
    for name, quiet_level in QUIET_LOGGERS.items():
        loggers[name] = {"handlers": ["default"], "level": quiet_level, "propagate": False}
    return loggers


def setup_logging(settings: Settings) -> None:
    """Configure structlog and route stdlib logging through its formatters."""
    level = settings.LOG_LEVEL.upper()
    as_json = settings.ENVIRONMENT == "production"

    shared_processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        make_app_context(settings),
        add_severity_level,
        add_trace_id_alias,
        censor_sensitive_data,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    def formatter(renderer: Processor) -> dict:
        return {
            "()": structlog.stdlib.ProcessorFormatter,
            "processor": renderer,
            "foreign_pre_chain": shared_processors,
        }

    handlers = _handlers(settings, level)
    app_handlers = [name for name in ("default", "error", "file") if name in handlers]
    console = structlog.processors.JSONRenderer() if as_json else structlog.dev.ConsoleRenderer(colors=True)

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": formatter(console),
            "json": formatter(structlog.processors.JSONRenderer()),
        },
        "handlers": handlers,
        "loggers": _loggers(app_handlers, level),
    })

    get_logger(__name__).info(
        "logging_configured",
        log_level=level,
        environment=settings.ENVIRONMENT,
        format="json" if as_json else "console",
        log_dir=settings.LOG_DIR or None,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("case_created", case_id="case-1", participant_count=2)
    """
    return structlog.get_logger(name)


def log_step(logger: structlog.stdlib.BoundLogger, number: int, name: str, **context) -> None:
    """Log the start of a numbered workflow step."""
    logger.info("workflow_step", step=number, step_name=name, **context)


class PerformanceLogger:
    """
    Times a block and logs `operation_completed` / `operation_failed`.

    Usage:
        with PerformanceLogger("create_case", logger, case_id=case_id):
            ...
    """

    def __init__(self, operation: str, logger: structlog.stdlib.BoundLogger, **context):
        self.operation = operation
        self.logger = logger
        self.context = context
        self.started = 0.0

    def __enter__(self):
        self.started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_ms = round((time.perf_counter() - self.started) * 1000, 2)
        if exc_type is None:
            self.logger.debug(
                "operation_completed",
                operation=self.operation,
                duration_ms=duration_ms,
                **self.context
            )
        else:
            self.logger.error(
                "operation_failed",
                operation=self.operation,
                duration_ms=duration_ms,
                error_type=exc_type.__name__,
                error=str(exc_val),
                **self.context
            )
        return False
