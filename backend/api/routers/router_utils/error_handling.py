"""
Context API error handling.

Decorator mapping core exceptions onto HTTP status codes so every session
endpoint reports failures the same way.

Dependencies: fastapi, backend.core.exceptions
System role: Exception-to-HTTP translation for context routes
"""

import functools
import logging
from typing import Any, Callable, TypeVar

from fastapi import HTTPException, status

from backend.core.exceptions import (
    BIContextException,
    ContextStoreError,
    SessionNotFoundError,
    ValidationError,
)
from backend.observability.log_utils import log_with_context
from backend.observability.logger import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def handle_context_errors(func: F) -> F:
    """
    Translate core exceptions raised by a route into HTTPExceptions.

    - SessionNotFoundError -> 404
    - ValidationError -> 400
    - ContextStoreError -> 503
    - other BIContextException -> 500
    """

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await func(*args, **kwargs)

        except SessionNotFoundError as e:
            log_with_context(
                logger, logging.WARNING, "Session not found", session_id=e.session_id
            )
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)

        except ValidationError as e:
            log_with_context(
                logger, logging.WARNING, "Invalid context request", error=e.message
            )
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

        except ContextStoreError as e:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Context store unavailable: {e.message}",
            )

        except BIContextException as e:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message
            )

    return wrapper  # type: ignore[return-value]
