"""Structured logging configuration with correlation IDs and PII redaction."""

import logging
import re
import sys
from contextvars import ContextVar
from typing import Any

import orjson
import structlog

from storefront_realtime.config import get_settings

# Context variables for request and connection tracking
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
connection_id_var: ContextVar[str] = ContextVar("connection_id", default="")
user_id_var: ContextVar[str] = ContextVar("user_id", default="")


class PIIRedactor:
    """Redact PII from log messages."""

    EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b")
    PHONE_PATTERN = re.compile(r"\b(?:\+?1[-.]?)?\(?[0-9]{3}\)?[-.]?[0-9]{3}[-.]?[0-9]{4}\b")
    CREDIT_CARD_PATTERN = re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b")
    JWT_PATTERN = re.compile(r"\beyJ[A-Za-z0-9-_]+\.[A-Za-z0-9-_]+\.[A-Za-z0-9-_]+\b")

    @classmethod
    def redact(cls, value: Any) -> Any:
        """Redact PII from value."""
        if not isinstance(value, str):
            return value

        value = cls.JWT_PATTERN.sub("[JWT_REDACTED]", value)
        value = cls.EMAIL_PATTERN.sub("[EMAIL_REDACTED]", value)
        value = cls.CREDIT_CARD_PATTERN.sub("[CC_REDACTED]", value)
        value = cls.PHONE_PATTERN.sub("[PHONE_REDACTED]", value)

        return value


def add_context_vars(logger, method_name, event_dict):
    """Add context variables to log events."""
    if request_id := request_id_var.get():
        event_dict.setdefault("request_id", request_id)
    if connection_id := connection_id_var.get():
        event_dict.setdefault("connection_id", connection_id)
    if user_id := user_id_var.get():
        event_dict.setdefault("user_id", user_id)
    return event_dict


def redact_sensitive_data(logger, method_name, event_dict):
    """Redact sensitive data from logs."""
    for key, value in event_dict.items():
        if key in ("timestamp", "level", "logger", "request_id", "connection_id"):
            continue
        if isinstance(value, str):
            event_dict[key] = PIIRedactor.redact(value)
        elif isinstance(value, dict):
            event_dict[key] = {k: PIIRedactor.redact(v) for k, v in value.items()}

    return event_dict


def _orjson_dumps(value, **kwargs) -> str:
    return orjson.dumps(value, default=str).decode()


def setup_logging(
    level: str | None = None,
    format: str | None = None,
    redact_pii: bool = True,
) -> None:
    """Configure structured logging for the service."""
    settings = get_settings()
    log_level = level or settings.log_level
    log_format = format or settings.log_format

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_context_vars,
    ]

    # Chat text and bearer tokens stay out of production logs
    if redact_pii and settings.is_production:
        processors.append(redact_sensitive_data)

    processors.extend(
        [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
        ]
    )

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer(serializer=_orjson_dumps))
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    # Suppress noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class ConnectionLogContext:
    """Context manager binding connection identity to every log line inside it."""

    def __init__(self, connection_id: str, user_id: str | None = None):
        self.connection_id = connection_id
        self.user_id = user_id
        self.tokens = []

    def __enter__(self):
        self.tokens.append((connection_id_var, connection_id_var.set(self.connection_id)))
        if self.user_id:
            self.tokens.append((user_id_var, user_id_var.set(self.user_id)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for var, token in reversed(self.tokens):
            var.reset(token)
        self.tokens.clear()
        return False
