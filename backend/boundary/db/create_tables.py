"""
Database table creation script.

Creates all tables defined in ORM models using SQLAlchemy metadata.

Dependencies: sqlalchemy, backend.configs
System role: Database schema initialization

Usage:
    python -m backend.boundary.db.create_tables
"""

import asyncio

from sqlalchemy.ext.asyncio import AsyncEngine

from backend.boundary.db.base import Base
from backend.boundary.db.connection import dispose_engine, get_async_engine

# Import all models to register them with Base.metadata
from backend.boundary.db.models import (  # noqa: F401
    AnalysisSessionModel,
    ContextStateModel,
    UserContextModel,
)
from backend.observability.logger import configure_logging, get_logger

logger = get_logger(__name__)


async def create_all_tables(engine: AsyncEngine | None = None) -> None:
    """
    Create all database tables from registered ORM models.

    Idempotent: calls CREATE TABLE IF NOT EXISTS for each model, so safe
    to run multiple times. Existing tables remain unchanged.

    Args:
        engine: Engine to use (defaults to the configured engine)

    Raises:
        SQLAlchemyError: If database connection fails or table creation fails
    """
    engine = engine or get_async_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Context tables created: %s", ", ".join(sorted(Base.metadata.tables)))


async def drop_all_tables(engine: AsyncEngine | None = None) -> None:
    """
    Drop all database tables and their data.

    WARNING: Irreversible data loss. Only use in development environments.

    Raises:
        SQLAlchemyError: If database connection fails or drop fails
    """
    engine = engine or get_async_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.warning("All context tables dropped")


async def _main() -> None:
    configure_logging()
    try:
        await create_all_tables()
    finally:
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(_main())
