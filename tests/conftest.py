"""
Shared test fixtures and configuration for entire test suite.

Provides: In-memory SQLite context store, virtual-time scheduler, session
manager wired to both, user context factories
Dependencies: pytest, pytest-asyncio, sqlalchemy, aiosqlite
System role: Test infrastructure and fixture management
"""

import itertools
from datetime import datetime, timedelta, timezone
from typing import Callable
from unittest.mock import AsyncMock

import pytest


START_TIME = datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def start_time() -> datetime:
    """Virtual clock origin shared by scheduler and store."""
    return START_TIME


@pytest.fixture
def scheduler(start_time: datetime):
    """Provide a virtual-time scheduler starting at ``start_time``."""
    from backend.core.scheduler import ManualScheduler

    return ManualScheduler(start=start_time)


@pytest.fixture
async def test_engine():
    """
    Create in-memory SQLite async engine with all context tables.

    Yields:
        AsyncEngine: Engine sharing one connection (StaticPool) for the test
    """
    from sqlalchemy.ext.asyncio import create_async_engine
    from sqlalchemy.pool import StaticPool

    from backend.boundary.db.base import Base

    # Use SQLite in-memory database for tests
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    """Provide session factory bound to the test engine."""
    from backend.boundary.db.connection import get_async_session_factory

    return get_async_session_factory(test_engine)


@pytest.fixture
async def test_async_db(session_factory):
    """
    Provide a single AsyncSession on the test database.

    Yields:
        AsyncSession: Test database session
    """
    async with session_factory() as session:
        yield session


@pytest.fixture
def session_settings():
    """Session settings with defaults pinned for deterministic tests."""
    from backend.configs.session import SessionSettings

    return SessionSettings(
        default_timeout_seconds=8 * 60 * 60,
        refresh_threshold_seconds=15 * 60,
        max_query_history=100,
        max_state_history=100,
        max_recovery_attempts=3,
        maintenance_interval_seconds=5 * 60,
        inactivity_threshold_seconds=60 * 60,
        recovery_start_offset_seconds=60 * 60,
        shutdown_task_timeout_seconds=5.0,
        enable_maintenance=True,
    )


@pytest.fixture
def context_store(session_factory, session_settings, scheduler):
    """Provide a context store on the test database using the virtual clock."""
    from backend.core.context_store import ContextStore

    return ContextStore(session_factory, settings=session_settings, clock=scheduler.now)


@pytest.fixture
def token_refresher() -> AsyncMock:
    """Provide mock auth-provider refresh callable."""
    return AsyncMock()


@pytest.fixture
def token_refresh_service(scheduler, session_settings, token_refresher):
    """Provide token refresh service driven by the virtual clock."""
    from backend.core.token_refresh import TokenRefreshService

    return TokenRefreshService(
        scheduler,
        refresh_threshold_seconds=session_settings.refresh_threshold_seconds,
        refresher=token_refresher,
    )


@pytest.fixture
def session_ids() -> Callable[[], str]:
    """Provide deterministic session ID generator (session-1, session-2, ...)."""
    counter = itertools.count(1)
    return lambda: f"session-{next(counter)}"


@pytest.fixture
def session_manager(
    context_store, token_refresh_service, scheduler, session_settings, session_ids
):
    """Provide session manager wired to the test store and virtual clock."""
    from backend.core.session_manager import BISessionManager

    return BISessionManager(
        context_store=context_store,
        token_refresh_service=token_refresh_service,
        scheduler=scheduler,
        settings=session_settings,
        id_factory=session_ids,
    )


@pytest.fixture
def make_user_context(start_time: datetime):
    """
    Factory for authenticated user contexts.

    Returns:
        Callable building a UserContext; keyword arguments override defaults
    """
    from backend.models.context import (
        DomainPermissions,
        PermissionMatrix,
        UserContext,
    )

    def _make(**overrides) -> UserContext:
        fields = {
            "user_id": "analyst-42",
            "session_id": "placeholder",
            "role_id": "analyst",
            "department_scope": ["cardiology", "finance"],
            "permissions": PermissionMatrix(
                clinical=DomainPermissions(read=True, query=True, export=False),
                financial=DomainPermissions(
                    read=True, query=True, export=True, departments=["finance"]
                ),
                operational=DomainPermissions(read=True, query=True, export=True),
                customer_service=DomainPermissions(read=True, query=False, export=False),
            ),
            "last_activity": start_time,
            "token_expiry": start_time + timedelta(hours=1),
            "created_at": start_time,
            "updated_at": start_time,
        }
        fields.update(overrides)
        return UserContext(**fields)

    return _make
