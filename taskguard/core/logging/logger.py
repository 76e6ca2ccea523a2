#!/usr/bin/env python3
"""
Structured Logging Module using structlog

This module provides structured logging with:
- Request ID correlation for request tracing
- Stage identifiers for each component
- JSON formatting for log aggregation
- Automatic redaction of emails, bearer tokens and IPv4 addresses
- Context processors for automatic field injection

Architectural Decision: structlog for production logging
- Context-aware logging with automatic field injection
- JSON output for log aggregation
- Async-safe via context variables
"""

import hashlib
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone

import structlog
from structlog.types import EventDict, WrappedLogger

from taskguard.core.config.settings import get_settings

# Context variable for request ID (task-local storage)
request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

_EMAIL_PATTERN = re.compile(r"\b[\w.+-]+@[\w.-]+\.\w+\b")
_JWT_PATTERN = re.compile(r"\beyJ[\w-]+\.[\w-]+\.[\w-]+\b")
_BEARER_PATTERN = re.compile(r"(?i)\bbearer\s+[\w.-]+")
_IPV4_PATTERN = re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b")


def add_request_id(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add request ID to log event from context variable.

    STAGE-L.1: Request ID injection
    """
    request_id = request_id_ctx.get()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def add_timestamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add ISO timestamp to log event.

    STAGE-L.2: Timestamp injection
    """
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    return event_dict


def redact_sensitive(text: str) -> str:
    """Replace emails, credentials and IPv4 addresses with placeholders."""
    text = _EMAIL_PATTERN.sub("[EMAIL]", text)
    text = _BEARER_PATTERN.sub("Bearer [REDACTED]", text)
    text = _JWT_PATTERN.sub("[TOKEN]", text)
    return _IPV4_PATTERN.sub("[IP]", text)


def redact_pii(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Redact PII from log messages and error strings.

    STAGE-L.3: PII redaction

    Patterns redacted:
    - Email addresses → [EMAIL]
    - JWTs / bearer credentials → [TOKEN] / [REDACTED]
    - IPv4 addresses → [IP]
    """
    for field in ("event", "error"):
        value = event_dict.get(field)
        if isinstance(value, str):
            event_dict[field] = redact_sensitive(value)
    return event_dict


def add_log_level_name(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Upper-case the log level.

    STAGE-L.4: Log level injection
    """
    if "level" in event_dict:
        event_dict["level"] = event_dict["level"].upper()
    return event_dict


def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """
    Setup structured logging with structlog.

    STAGE-L: Logging initialization

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'console')
    """
    settings = get_settings()

    log_level = log_level or settings.logging.LOG_LEVEL
    log_format = log_format or settings.logging.LOG_FORMAT

    logging.basicConfig(
        format="%(message)s", stream=sys.stdout, level=getattr(logging, log_level.upper())
    )

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_request_id,
            add_timestamp,
            structlog.stdlib.add_log_level,
            add_log_level_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_pii,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("message", key="value", stage="1.0")
    """
    return structlog.get_logger(name)


def set_request_id(request_id: str) -> None:
    """Set request ID in context for the current request."""
    request_id_ctx.set(request_id)


def get_request_id() -> str | None:
    """Get current request ID from context."""
    return request_id_ctx.get()


def clear_request_id() -> None:
    """Clear request ID from context at the end of request processing."""
    request_id_ctx.set(None)


def hash_identifier(value: str | None, length: int = 12) -> str:
    """
    Stable, non-reversible short form of an identifier for log fields.

    Raw IPs and subject IDs never reach log output; this digest still lets
    an operator correlate lines that concern the same client.
    """
    if not value:
        return "unknown"
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:length]


def log_stage(
    logger: structlog.stdlib.BoundLogger, stage: str, message: str, level: str = "info", **kwargs
) -> None:
    """
    Log a message with stage information.

    Usage:
        log_stage(logger, "1.0", "Request admitted", remaining=4)
    """
    log_func = getattr(logger, level.lower())
    log_func(message, stage=stage, **kwargs)
