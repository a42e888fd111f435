"""
Database connection management.

Provides the async SQLAlchemy engine and session factory used by the
context store.

Dependencies: sqlalchemy, backend.configs
System role: Database connection lifecycle management
"""

from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from backend.configs import get_settings


@lru_cache
def get_async_engine() -> AsyncEngine:
    """
    Create async SQLAlchemy engine with connection pooling.

    pool_pre_ping=True verifies connections before use to detect
    stale/broken connections early. Pool sizing is skipped for SQLite,
    which does not use a queue pool.

    Returns:
        AsyncEngine: Configured async SQLAlchemy engine (cached)

    Raises:
        ArgumentError: If database URL is invalid or engine creation fails

    Usage:
        engine = get_async_engine()
        async with engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
    """
    db_config = get_settings().database

    if db_config.is_sqlite:
        return create_async_engine(db_config.async_database_url, echo=db_config.echo_sql)

    return create_async_engine(
        db_config.async_database_url,
        echo=db_config.echo_sql,
        pool_size=db_config.pool_size,
        max_overflow=db_config.max_overflow,
        pool_timeout=db_config.pool_timeout,
        pool_pre_ping=True,
    )


def get_async_session_factory(
    engine: AsyncEngine | None = None,
) -> async_sessionmaker[AsyncSession]:
    """
    Create async session factory for database operations.

    autoflush=False and expire_on_commit=False keep ORM rows readable after
    commit, which the context store relies on when converting rows to
    domain models.

    Args:
        engine: Engine to bind (defaults to the configured engine)

    Returns:
        async_sessionmaker: Async session factory configured for manual transaction control

    Usage:
        SessionFactory = get_async_session_factory()
        async with SessionFactory() as session:
            session.add(obj)
            await session.commit()
    """
    return async_sessionmaker(
        bind=engine or get_async_engine(),
        autoflush=False,
        expire_on_commit=False,
    )


async def dispose_engine() -> None:
    """Close pooled connections of the configured engine."""
    if get_async_engine.cache_info().currsize:
        await get_async_engine().dispose()
        get_async_engine.cache_clear()
