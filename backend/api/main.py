"""
FastAPI application with assembled routers.

Initializes the FastAPI app, wires observability middleware, starts the
session manager's maintenance sweep on startup and shuts it down cleanly.

Dependencies: fastapi, uvicorn, python-dotenv, backend.api.routers
System role: API entry point with router assembly and server launch
"""

from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.api import api_router
from backend.api.deps.dependencies import get_service_cache
from backend.boundary.db import dispose_engine
from backend.configs import get_settings
from backend.core.token_refresh import TokenRefresher
from backend.observability.logger import configure_logging, get_logger
from backend.observability.middleware import CorrelationMiddleware, RequestLoggingMiddleware

load_dotenv()

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Starts the session manager on startup; terminates every registered
    session and releases database connections on shutdown.
    """
    # Startup
    cache = get_service_cache()
    if cache.token_refresher is None:
        logger.warning("No token refresher configured; authenticated tokens will not be refreshed")
    manager = cache.session_manager
    manager.start()
    logger.info("Session manager started")

    yield

    # Shutdown
    await manager.shutdown()
    await dispose_engine()
    cache.clear()
    logger.info("Service cache cleared")


def create_app(token_refresher: TokenRefresher | None = None) -> FastAPI:
    """
    Create and configure FastAPI application with routers.

    Args:
        token_refresher: Auth-provider callable ``(session_id, user_id)`` that
            refreshes a session token; without one, refresh timers only log

    Returns:
        FastAPI: Configured application instance with all routers registered
    """
    settings = get_settings()
    if token_refresher is not None:
        get_service_cache().configure_token_refresher(token_refresher)
    configure_logging(settings.observability.log_level)

    app = FastAPI(
        title="BI Context API",
        description="Session and context lifecycle management for business-intelligence chat",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add observability middleware (last added runs first)
    if settings.observability.enable_request_logging:
        app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CorrelationMiddleware, header_name=settings.observability.correlation_header
    )

    # Register all routers with /api/v1 prefix for versioning
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "backend.api.main:app",
        host="0.0.0.0",
        port=8000,
    )
