"""
FastAPI middleware for observability.

Correlation ID and request logging middleware.

Dependencies: fastapi, starlette, backend.observability
System role: Request/response observability injection
"""

import logging
import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from backend.observability.correlation import clear_correlation_id, set_correlation_id
from backend.observability.log_utils import log_exception_with_context, log_with_context
from backend.observability.logger import get_logger

logger = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging HTTP requests and responses."""

    async def dispatch(self, request: Request, call_next):
        """
        Log HTTP request and response with timing.

        Args:
            request: FastAPI request
            call_next: Next middleware in chain

        Returns:
            Response: Response object
        """
        start_time = time.perf_counter()
        method = request.method
        path = request.url.path

        log_with_context(
            logger,
            logging.INFO,
            f"{method} {path}",
            method=method,
            path=path,
            query_string=str(request.url.query) if request.url.query else None,
            client_host=request.client.host if request.client else None,
        )

        try:
            response: Response = await call_next(request)
        except Exception as e:
            log_exception_with_context(
                logger,
                f"{method} {path} - Exception",
                e,
                method=method,
                path=path,
                process_time_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            raise

        log_with_context(
            logger,
            logging.INFO,
            f"{method} {path} - {response.status_code}",
            method=method,
            path=path,
            status_code=response.status_code,
            process_time_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        return response


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Middleware for correlation ID injection."""

    def __init__(self, app: ASGIApp, header_name: str = "X-Correlation-ID") -> None:
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next):
        """
        Bind the request's correlation ID for the duration of the request.

        The incoming header is reused when present; otherwise a new ID is
        generated. The ID is echoed back on the response.

        Args:
            request: FastAPI request
            call_next: Next middleware in chain

        Returns:
            Response: Response with correlation ID header
        """
        correlation_id = set_correlation_id(request.headers.get(self.header_name))
        try:
            response: Response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers[self.header_name] = correlation_id
        return response
