"""Structured logging for the request path, with trace correlation and audit events."""

import logging
from typing import Any

import structlog
from opentelemetry import trace
from opentelemetry.trace import format_span_id, format_trace_id

from perfwatch.core.config import settings


# Keys to redact from log fields
REDACTED_KEYS = {
    "password",
    "token",
    "authorization",
    "cookie",
    "set-cookie",
    "secret",
    "api_key",
    "access_token",
    "jwt_secret",
}


def redact_sensitive_data(data: dict[str, Any]) -> dict[str, Any]:
    """
    Redact sensitive keys from log data.

    Args:
        data: Dictionary to redact

    Returns:
        Dictionary with sensitive values redacted
    """
    redacted = {}
    for key, value in data.items():
        key_lower = key.lower()
        if any(redacted_key in key_lower for redacted_key in REDACTED_KEYS):
            redacted[key] = "[REDACTED]"
        elif isinstance(value, dict):
            redacted[key] = redact_sensitive_data(value)
        elif isinstance(value, list):
            redacted[key] = [
                redact_sensitive_data(item) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            redacted[key] = value
    return redacted


def add_trace_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Add OpenTelemetry trace context to log events."""
    try:
        span = trace.get_current_span()
        if span and span.get_span_context().is_valid:
            span_context = span.get_span_context()
            event_dict["trace_id"] = format_trace_id(span_context.trace_id)
            event_dict["span_id"] = format_span_id(span_context.span_id)
    except Exception:
        # If trace context is not available, continue without it
        pass
    return event_dict


def setup_structured_logging() -> None:
    """Route structlog events through the stdlib handlers set up by core.logging."""
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_trace_context,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        service_name=settings.PROJECT_NAME,
        environment=settings.ENV,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def audit_log(
    event: str,
    actor_id: str | None = None,
    actor_role: str | None = None,
    action: str | None = None,
    **fields: Any,
) -> None:
    """
    Log an audit event (settings changes, exports).

    Args:
        event: Event name/type
        actor_id: Actor user ID
        actor_role: Actor role
        action: Action performed
        **fields: Additional fields (will be redacted)
    """
    logger = structlog.get_logger("audit")

    audit_data: dict[str, Any] = {"audit": True}
    if actor_id:
        audit_data["actor_id"] = actor_id
    if actor_role:
        audit_data["actor_role"] = actor_role
    if action:
        audit_data["action"] = action

    audit_data.update(redact_sensitive_data(fields))

    logger.warning(event, **audit_data)
