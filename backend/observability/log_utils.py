"""
Logging utilities for safe structured logging.

Provides helpers that turn arbitrary session/context values into log-safe
strings and attach them to records as structured extras.

Dependencies: logging (stdlib)
System role: Logging helper functions
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any

# LogRecord attributes that must not be overwritten through ``extra``
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}


def safe_log_value(value: Any, max_length: int = 500) -> str:
    """
    Safely convert any value to a string for logging.

    Handles enums, datetimes, collections, None, and other types safely.

    Args:
        value: Value to convert
        max_length: Maximum length before truncating

    Returns:
        str: Safe string representation
    """
    try:
        if value is None:
            return "None"
        if isinstance(value, Enum):
            val_str = str(value.value)
        elif isinstance(value, str):
            val_str = value
        elif isinstance(value, datetime):
            val_str = value.isoformat()
        elif isinstance(value, (list, tuple, set, frozenset)):
            if len(value) <= 5 and all(isinstance(v, (str, Enum)) for v in value):
                val_str = ",".join(
                    str(v.value) if isinstance(v, Enum) else v for v in value
                )
            else:
                val_str = f"{type(value).__name__}({len(value)} items)"
        elif isinstance(value, dict):
            val_str = f"dict({len(value)} keys)"
        else:
            val_str = str(value)

        if len(val_str) > max_length:
            return val_str[:max_length] + f"... (truncated, {len(val_str)} total)"
        return val_str
    except Exception as e:
        return f"<unable to log: {type(e).__name__}>"


def _safe_context(context: dict[str, Any]) -> dict[str, str]:
    """Convert context values and rename keys that clash with LogRecord fields."""
    safe: dict[str, str] = {}
    for key, val in context.items():
        if key in _RESERVED_ATTRS:
            key = f"ctx_{key}"
        safe[key] = safe_log_value(val)
    return safe


def format_context(context: dict[str, Any]) -> str:
    """Render context as ``key=value`` pairs for the plain-text formatter."""
    return " ".join(f"{k}={v}" for k, v in _safe_context(context).items())


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    **context,
) -> None:
    """
    Log a message with structured context, safely converting all values.

    The context is attached as record extras and appended to the message so
    it survives plain-text formatters.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        message: Log message
        **context: Context dict with arbitrary key-value pairs
    """
    if not logger.isEnabledFor(level):
        return
    safe_context = _safe_context(context)
    rendered = f"{message} | {format_context(context)}" if context else message
    logger.log(level, rendered, extra=safe_context)


def log_exception_with_context(
    logger: logging.Logger,
    message: str,
    exc: BaseException,
    **context,
) -> None:
    """
    Log an exception with full context.

    Args:
        logger: Logger instance
        message: Log message
        exc: Exception instance
        **context: Additional context dict
    """
    context = {**context, "error_type": type(exc).__name__, "error_msg": str(exc)}
    safe_context = _safe_context(context)
    logger.error(
        f"{message} | {format_context(context)}",
        exc_info=(type(exc), exc, exc.__traceback__),
        extra=safe_context,
    )
