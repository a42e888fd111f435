"""
Operation-scoped error handling.

Wraps a block of session/context work so that failures leave it carrying
component, operation and session metadata. Database errors are converted
into ContextStoreError; domain errors keep their type.

Dependencies: sqlalchemy, backend.core.exceptions, backend.observability
System role: Uniform error enrichment and logging for core components
"""

from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy.exc import SQLAlchemyError

from backend.core.exceptions import BIContextException, ContextStoreError
from backend.observability.log_utils import log_exception_with_context
from backend.observability.logger import get_logger

logger = get_logger(__name__)


@contextmanager
def handle_errors(
    component: str,
    operation: str,
    session_id: str | None = None,
    **metadata: Any,
) -> Iterator[None]:
    """
    Enrich and log any exception raised inside the block.

    - SQLAlchemyError -> ContextStoreError (original chained as __cause__)
    - BIContextException -> re-raised unchanged in type, details merged
    - anything else -> logged and re-raised untouched

    Args:
        component: Component name (context-store, session-manager, ...)
        operation: Operation name (create_session, ...)
        session_id: Session the operation is keyed by
        **metadata: Extra fields for the log record

    Raises:
        ContextStoreError: If the block raised a database error
    """
    try:
        yield
    except SQLAlchemyError as exc:
        log_exception_with_context(
            logger,
            f"{component}.{operation} failed",
            exc,
            component=component,
            operation=operation,
            session_id=session_id,
            **metadata,
        )
        error = ContextStoreError(
            f"{operation} failed: {exc.__class__.__name__}",
            component=component,
            operation=operation,
            session_id=session_id,
        )
        error._logged = True
        raise error from exc
    except BIContextException as exc:
        exc.details.setdefault("component", component)
        exc.details.setdefault("operation", operation)
        if session_id is not None:
            exc.details.setdefault("session_id", session_id)
        # Logged once, at the layer that first sees it
        if not getattr(exc, "_logged", False):
            log_exception_with_context(
                logger,
                f"{component}.{operation} failed",
                exc,
                component=component,
                operation=operation,
                session_id=session_id,
                **metadata,
            )
            exc._logged = True
        raise
    except Exception as exc:
        log_exception_with_context(
            logger,
            f"{component}.{operation} failed unexpectedly",
            exc,
            component=component,
            operation=operation,
            session_id=session_id,
            **metadata,
        )
        raise
