"""Logging setup for the outreach engine.

Every handler installed by :func:`setup_logging` carries two filters: one
stamps the current execution/request context onto each record, the other
masks provider tokens that slipped into a message or its extra fields.
"""

import json
import logging
import re
import sys
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(module)s:%(funcName)s:%(lineno)d] - %(message)s"
REDACTED = "***"

# Context is per task so concurrent executions never share fields.
_logging_context: ContextVar[Dict[str, Any]] = ContextVar("outreach_logging_context", default={})

_SECRET_PATTERNS = (
    re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._\-]+"),
    re.compile(r"(?i)((?:access_token|encrypted_secret)[\"']?\s*[:=]\s*[\"']?)[^\s,\"'}]+"),
)
_SECRET_FIELDS = {"access_token", "encrypted_secret", "authorization", "secret"}

# Third-party loggers that are too chatty at INFO.
_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
}


def redact_secrets(text: str) -> str:
    """Mask bearer tokens and ``access_token=...`` style values in ``text``."""
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(lambda match: match.group(1) + REDACTED, text)
    return text


class StructuredFormatter(logging.Formatter):
    """Renders each record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(getattr(record, "extra_fields", {}))

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": redact_secrets(str(exc_value)),
                "traceback": traceback.format_exception(exc_type, exc_value, exc_tb),
            }

        return json.dumps(entry, default=str)


class WorkflowContextFilter(logging.Filter):
    """Copies the task-local logging context into ``record.extra_fields``."""

    def filter(self, record: logging.LogRecord) -> bool:
        fields = getattr(record, "extra_fields", None)
        if fields is None:
            fields = record.extra_fields = {}
        for key, value in _logging_context.get().items():
            fields.setdefault(key, value)
        return True


class SecretRedactingFilter(logging.Filter):
    """Masks credential material in the rendered message and extra fields."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact_secrets(message)
        if cleaned != message:
            record.msg, record.args = cleaned, None

        fields = getattr(record, "extra_fields", None)
        if fields:
            record.extra_fields = {
                key: REDACTED if key.lower() in _SECRET_FIELDS else value
                for key, value in fields.items()
            }
        return True


_context_filter = WorkflowContextFilter()
_redacting_filter = SecretRedactingFilter()


def _build_formatter(structured: bool, log_format: Optional[str]) -> logging.Formatter:
    if structured:
        return StructuredFormatter()
    return logging.Formatter(fmt=log_format or DEFAULT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")


def _attach(root: logging.Logger, handler: logging.Handler, formatter: logging.Formatter) -> None:
    handler.setFormatter(formatter)
    handler.addFilter(_context_filter)
    handler.addFilter(_redacting_filter)
    root.addHandler(handler)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    structured: bool = False,
    max_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure root logging for the service.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path of a rotating log file
        log_format: Format string for plain-text output
        structured: Emit one JSON object per line instead of plain text
        max_size: Bytes before the log file rotates
        backup_count: Rotated files to keep

    Returns:
        The root logger
    """
    formatter = _build_formatter(structured, log_format)
    numeric_level = getattr(logging, level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    _attach(root_logger, logging.StreamHandler(sys.stdout), formatter)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        _attach(root_logger, RotatingFileHandler(log_file, maxBytes=max_size, backupCount=backup_count), formatter)

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(max(quiet_level, numeric_level))
    logging.getLogger("outreach_engine").setLevel(numeric_level)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name."""
    return logging.getLogger(name)


def set_logging_context(**kwargs):
    """Add fields to every record logged from the current task."""
    _logging_context.set({**_logging_context.get(), **kwargs})


def clear_logging_context():
    _logging_context.set({})


def log_with_context(logger: logging.Logger, level: int, message: str, **context):
    """Log ``message`` with ``context`` merged into the record's extra fields."""
    logger.log(level, message, extra={"extra_fields": context})


def get_logging_context() -> Dict[str, Any]:
    """Copy of the fields currently stamped onto records from this task."""
    return dict(_logging_context.get())
