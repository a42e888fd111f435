"""
Test suite for the context CRUD classes.

Runs BaseCRUD and the model-specific CRUDs against an in-memory SQLite
database.

System role: Verification of the session-keyed persistence layer
"""

from datetime import timedelta

import pytest

from backend.boundary.db.CRUD import (
    AnalysisSessionCRUD,
    analysis_session_crud,
    context_state_crud,
    user_context_crud,
)
from backend.boundary.db.models import AnalysisSessionModel
from backend.models.context import ContextStatus, SessionStatus


@pytest.fixture
def context_row_fields(start_time):
    """Provide column values for a user context row."""

    def _fields(**overrides) -> dict:
        fields = {
            "user_id": "analyst-42",
            "role_id": "analyst",
            "department_scope": ["finance"],
            "permissions": {},
            "preferences": None,
            "last_activity": start_time,
            "token_expiry": start_time + timedelta(hours=1),
            "is_anonymous": False,
            "status": ContextStatus.ACTIVE,
        }
        fields.update(overrides)
        return fields

    return _fields


@pytest.fixture
def session_row_fields(start_time):
    """Provide column values for an analysis session row."""

    def _fields(**overrides) -> dict:
        fields = {
            "user_id": "analyst-42",
            "start_time": start_time,
            "query_history": [],
            "context_state": {},
            "domain_access": [],
            "status": SessionStatus.ACTIVE,
        }
        fields.update(overrides)
        return fields

    return _fields


class TestBaseCRUD:
    """Test suite for the generic session-keyed operations."""

    def test_init_should_set_model(self) -> None:
        """Test AnalysisSessionCRUD operates on AnalysisSessionModel."""
        # Act
        crud = AnalysisSessionCRUD()

        # Assert
        assert crud.model == AnalysisSessionModel

    async def test_create_should_generate_id_and_timestamps(
        self, test_async_db, context_row_fields
    ) -> None:
        """Test create fills the UUID primary key and timestamps."""
        # Act
        row = await user_context_crud.create(
            test_async_db, session_id="s1", **context_row_fields()
        )

        # Assert
        assert row.id is not None
        assert row.created_at is not None
        fetched = await user_context_crud.get_by_session_id(test_async_db, "s1")
        assert fetched.session_id == "s1"

    async def test_upsert_should_insert_then_update(
        self, test_async_db, context_row_fields
    ) -> None:
        """Test upsert creates once and updates in place afterwards."""
        # Act
        first = await user_context_crud.upsert_by_session_id(
            test_async_db, "s1", **context_row_fields()
        )
        second = await user_context_crud.upsert_by_session_id(
            test_async_db, "s1", **context_row_fields(role_id="admin")
        )

        # Assert
        assert first.id == second.id
        assert second.role_id == "admin"

    async def test_update_by_session_id_should_report_missing(
        self, test_async_db
    ) -> None:
        """Test updating an unknown session returns False."""
        # Act & Assert
        assert await user_context_crud.update_by_session_id(
            test_async_db, "missing", role_id="admin"
        ) is False

    async def test_exists_should_reflect_stored_rows(
        self, test_async_db, context_row_fields
    ) -> None:
        """Test exists is False before a row is created and True after."""
        # Arrange
        assert await user_context_crud.exists(test_async_db, "s1") is False

        # Act
        await user_context_crud.create(test_async_db, session_id="s1", **context_row_fields())

        # Assert
        assert await user_context_crud.exists(test_async_db, "s1") is True

    async def test_update_many_should_ignore_empty_ids(self, test_async_db) -> None:
        """Test an empty ID list updates nothing."""
        # Act & Assert
        assert await user_context_crud.update_many_by_session_ids(
            test_async_db, [], role_id="x"
        ) == 0


class TestUserContextCRUD:
    """Test suite for UserContextCRUD queries."""

    async def test_get_expired_active_should_filter_status_and_expiry(
        self, test_async_db, context_row_fields, start_time
    ) -> None:
        """Test only active contexts past expiry are returned."""
        # Arrange
        past = start_time - timedelta(minutes=1)
        await user_context_crud.create(
            test_async_db, session_id="expired", **context_row_fields(token_expiry=past)
        )
        await user_context_crud.create(
            test_async_db,
            session_id="done",
            **context_row_fields(token_expiry=past, status=ContextStatus.COMPLETED),
        )
        await user_context_crud.create(
            test_async_db, session_id="valid", **context_row_fields()
        )

        # Act
        rows = await user_context_crud.get_expired_active(test_async_db, start_time)

        # Assert
        assert [row.session_id for row in rows] == ["expired"]

    async def test_update_status_should_change_several_rows(
        self, test_async_db, context_row_fields, start_time
    ) -> None:
        """Test bulk status update counts affected rows."""
        # Arrange
        for session_id in ("a", "b", "c"):
            await user_context_crud.create(
                test_async_db, session_id=session_id, **context_row_fields()
            )

        # Act
        count = await user_context_crud.update_status(
            test_async_db, ["a", "b"], ContextStatus.FAILED, start_time
        )

        # Assert
        assert count == 2
        failed = await user_context_crud.get_by_status(test_async_db, ContextStatus.FAILED)
        assert sorted(row.session_id for row in failed) == ["a", "b"]


class TestAnalysisSessionCRUD:
    """Test suite for AnalysisSessionCRUD queries."""

    async def test_fail_live_sessions_should_skip_terminal_sessions(
        self, test_async_db, session_row_fields, start_time
    ) -> None:
        """Test completed sessions are left alone."""
        # Arrange
        await analysis_session_crud.create(
            test_async_db, session_id="live", **session_row_fields()
        )
        await analysis_session_crud.create(
            test_async_db,
            session_id="done",
            **session_row_fields(status=SessionStatus.COMPLETED),
        )

        # Act
        count = await analysis_session_crud.fail_live_sessions(
            test_async_db, ["live", "done"], start_time
        )

        # Assert
        assert count == 1

    async def test_fail_live_sessions_should_skip_failed_sessions(
        self, test_async_db, session_row_fields, start_time
    ) -> None:
        """Test already failed sessions are not counted again."""
        # Arrange
        await analysis_session_crud.create(
            test_async_db,
            session_id="failed",
            **session_row_fields(status=SessionStatus.FAILED),
        )

        # Act
        count = await analysis_session_crud.fail_live_sessions(
            test_async_db, ["failed"], start_time
        )

        # Assert
        assert count == 0

    async def test_fail_live_sessions_should_ignore_empty_ids(
        self, test_async_db, start_time
    ) -> None:
        """Test an empty ID list updates nothing."""
        # Act & Assert
        assert await analysis_session_crud.fail_live_sessions(test_async_db, [], start_time) == 0


class TestContextStateCRUD:
    """Test suite for ContextStateCRUD."""

    async def test_upsert_should_flag_existing_lineage(
        self, test_async_db, start_time
    ) -> None:
        """Test upserting a lineage updates the existing row in place."""
        # Arrange
        created = await context_state_crud.create(
            test_async_db,
            session_id="s1",
            state_id="state-s1",
            state_data={},
            history_stack=[],
            last_update=start_time,
        )

        # Act
        updated = await context_state_crud.upsert_by_session_id(
            test_async_db, "s1", is_corrupted=True
        )

        # Assert
        assert updated.id == created.id
        fetched = await context_state_crud.get_by_session_id(test_async_db, "s1")
        assert fetched.is_corrupted is True


class TestCreateTables:
    """Test suite for schema creation helpers."""

    async def test_create_and_drop_all_tables(self) -> None:
        """Test tables can be created on an empty database and dropped again."""
        # Arrange
        from sqlalchemy import inspect
        from sqlalchemy.ext.asyncio import create_async_engine
        from sqlalchemy.pool import StaticPool

        from backend.boundary.db.create_tables import create_all_tables, drop_all_tables

        engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)

        async def table_names() -> set[str]:
            async with engine.connect() as conn:
                return await conn.run_sync(
                    lambda sync_conn: set(inspect(sync_conn).get_table_names())
                )

        # Act
        await create_all_tables(engine)
        created = await table_names()
        await drop_all_tables(engine)
        dropped = await table_names()
        await engine.dispose()

        # Assert
        assert created == {"user_contexts", "analysis_sessions", "context_states"}
        assert dropped == set()
