"""Structured logging for the CRSC filing engine.

Log lines are key=value pairs. Veteran identifiers never reach the log:
context fields named in SENSITIVE_FIELDS are replaced with a marker, and
anything shaped like an SSN is masked in the rendered line.
"""

import logging
import re
import sys
from typing import Any

REDACTED = "[redacted]"

SENSITIVE_FIELDS = frozenset(
    {"ssn", "ssn_encrypted", "date_of_birth", "va_file_number", "service_number"}
)

_SSN_PATTERN = re.compile(r"\b\d{3}-?\d{2}-?\d{4}\b")


def redact_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """Copy of a context dict with sensitive values replaced."""
    return {k: (REDACTED if k in SENSITIVE_FIELDS and v is not None else v) for k, v in fields.items()}


def mask_ssn(text: str) -> str:
    return _SSN_PATTERN.sub("***-**-****", text)


class StructuredFormatter(logging.Formatter):
    """Key=value structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "module": record.module,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        if hasattr(record, "user_id"):
            log_data["user_id"] = record.user_id

        if hasattr(record, "extra_data"):
            log_data.update(redact_fields(record.extra_data))

        line = " ".join(f"{k}={v}" for k, v in log_data.items())
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return mask_ssn(line)


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger writing structured lines to stdout
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)

        try:
            from app.core.config import get_settings

            logger.setLevel(logging.DEBUG if get_settings().CRSC_ENV == "dev" else logging.INFO)
        except Exception:
            # Settings unavailable (missing env); fall back to INFO
            logger.setLevel(logging.INFO)

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log with additional context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: Context fields (e.g., user_id, operation, tool)
    """
    extra: dict[str, Any] = {}
    if "user_id" in kwargs:
        extra["user_id"] = kwargs.pop("user_id")
    extra["extra_data"] = kwargs

    logger.log(level, msg, extra=extra)
