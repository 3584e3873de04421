"""Structured logging configuration for isahub."""

import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, Dict, Optional, Set

# Context variable for request-scoped data
request_context: ContextVar[Dict[str, Any]] = ContextVar("request_context", default={})

# Keys whose values never reach a log line in clear text
SENSITIVE_KEYS: Set[str] = {
    "authorization",
    "cookie",
    "set-cookie",
    "x-csrf-token",
    "password",
    "hashed_password",
    "access_token",
    "access_token_hash",
    "token_hash",
    "csrf_token",
}

_COOKIE_VALUE = re.compile(r"=[^;]*")


def _redact_value(value: Any) -> str:
    """Mask a secret, keeping a short prefix/suffix of long values."""
    if not isinstance(value, str):
        return "[REDACTED]"
    if len(value) < 12:
        return "<REDACTED>"
    return f"{value[:3]}***{value[-3:]}"


def redact_sensitive_data(data: Any) -> Any:
    """Recursively redact secrets from log payloads.

    Dictionaries are walked key by key. Values under a sensitive key are
    masked; cookie strings keep their names but lose their values.
    """
    if isinstance(data, dict):
        redacted = {}
        for key, value in data.items():
            key_lower = str(key).lower()
            if "cookie" in key_lower:
                if isinstance(value, str):
                    redacted[key] = _COOKIE_VALUE.sub("=<REDACTED>", value)
                else:
                    redacted[key] = "[REDACTED]"
            elif key_lower in SENSITIVE_KEYS:
                redacted[key] = _redact_value(value)
            else:
                redacted[key] = redact_sensitive_data(value)
        return redacted
    if isinstance(data, (list, tuple)):
        return [redact_sensitive_data(item) for item in data]
    return data


def _timestamp() -> datetime:
    return datetime.now(UTC)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": _timestamp().isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        ctx = request_context.get()
        if ctx:
            log_data["request_id"] = ctx.get("request_id")
            log_data["path"] = ctx.get("path")

        if getattr(record, "data", None):
            log_data["data"] = redact_sensitive_data(record.data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        timestamp = _timestamp().strftime("%Y-%m-%d %H:%M:%S")

        ctx = request_context.get()
        request_id = ctx.get("request_id", "-")[:8] if ctx else "-"

        message = (
            f"{timestamp} | {color}{record.levelname:8}{self.RESET} | "
            f"{request_id} | {record.name} | {record.getMessage()}"
        )

        if getattr(record, "data", None):
            message += f" | {redact_sensitive_data(record.data)}"

        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"

        return message


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter accepting a ``data=`` keyword for structured fields."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.get("extra", {})
        if "data" in kwargs:
            extra["data"] = kwargs.pop("data")
        kwargs["extra"] = extra
        return msg, kwargs


_loggers: Dict[str, ContextLogger] = {}


def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger."""
    if name not in _loggers:
        _loggers[name] = ContextLogger(logging.getLogger(name), {})
    return _loggers[name]


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure application logging."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(StructuredFormatter() if json_output else ConsoleFormatter())
    root_logger.addHandler(console_handler)

    # File output is always JSON
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
