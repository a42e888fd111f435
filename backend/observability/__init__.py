"""
Observability module.

Provides structured logging, correlation ID tracking and request logging
middleware.
"""

from backend.observability.correlation import (
    clear_correlation_id,
    get_correlation_id,
    set_correlation_id,
)
from backend.observability.log_utils import log_exception_with_context, log_with_context
from backend.observability.logger import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
    "log_with_context",
    "log_exception_with_context",
    "get_correlation_id",
    "set_correlation_id",
    "clear_correlation_id",
]
