"""
Structured logging configuration with JSON formatting and correlation IDs.

Every log line carries a correlation ID. HTTP requests get one from the
``X-Correlation-ID`` header (or a fresh UUID); scheduled cycles set their own
with :func:`new_correlation_id` so that all lines of one cycle can be grouped.
"""

import logging
import sys
import uuid
from typing import Optional
from datetime import datetime
from pythonjsonlogger import jsonlogger
from contextvars import ContextVar
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

# Context variable for correlation ID (task-local under asyncio)
correlation_id_var: ContextVar[Optional[str]] = ContextVar(
    "correlation_id", default=None
)


class CorrelationIdFilter(logging.Filter):
    """Add correlation ID to log records."""

    def filter(self, record):
        record.correlation_id = correlation_id_var.get() or "none"
        return True


class PipelineJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with the pipeline's standard fields."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.utcnow().isoformat() + "Z"
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["correlation_id"] = getattr(record, "correlation_id", "none")
        log_record["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure structured JSON logging for the application and uvicorn."""

    formatter = PipelineJsonFormatter()

    # Console handler with JSON formatting
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(CorrelationIdFilter())

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    # Route uvicorn loggers through the same handler
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.addHandler(console_handler)
        uvicorn_logger.propagate = False

    # APScheduler is chatty at INFO (one line per job run)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    pipeline_logger = logging.getLogger("sapience.pipeline")
    pipeline_logger.setLevel(level)

    return pipeline_logger


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Middleware to add correlation IDs to requests."""

    async def dispatch(self, request: Request, call_next):
        # Generate or extract correlation ID
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())

        correlation_id_var.set(correlation_id)
        request.state.correlation_id = correlation_id

        response = await call_next(request)

        response.headers["X-Correlation-ID"] = correlation_id

        return response


def new_correlation_id(prefix: str) -> str:
    """Start a new correlation scope for work not triggered by a request."""
    correlation_id = f"{prefix}-{uuid.uuid4().hex[:12]}"
    correlation_id_var.set(correlation_id)
    return correlation_id


def log_pipeline_event(
    event_type: str,
    message: str,
    level: int = logging.INFO,
    user_id: Optional[int] = None,
    feed_id: Optional[int] = None,
    article_id: Optional[int] = None,
    event_category: str = "pipeline",
    **extra_fields
):
    """
    Log a pipeline event with structured data.

    Args:
        event_type: Type of event (e.g., "feed.refresh.completed")
        message: Human-readable message
        level: Logging level (default: INFO)
        user_id: User ID if applicable
        feed_id: Feed ID if applicable
        article_id: Article ID if applicable
        event_category: Event category (default: "pipeline")
        **extra_fields: Additional fields to include
    """
    logger = logging.getLogger("sapience.pipeline")

    extra = {
        "event_type": event_type,
        "event_category": event_category,
    }

    if user_id is not None:
        extra["user_id"] = user_id
    if feed_id is not None:
        extra["feed_id"] = feed_id
    if article_id is not None:
        extra["article_id"] = article_id

    extra.update(extra_fields)

    logger.log(level, message, extra=extra)
