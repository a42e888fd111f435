"""
Test suite for BISessionManager.

Exercises the full session lifecycle against an in-memory SQLite context
store and a virtual-time scheduler: creation, initialization, state
updates, query recording, recovery, timeouts, health, maintenance and
shutdown.

System role: Verification of the session lifecycle orchestrator
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from backend.configs.session import SessionSettings
from backend.core.context_store import ContextStore
from backend.core.exceptions import (
    ContextStoreError,
    SessionNotFoundError,
    ValidationError,
)
from backend.core.session_manager import BISessionManager
from backend.core.token_refresh import TokenRefreshService
from backend.models.context import (
    AnonymousContext,
    ContextStatus,
    DomainType,
    SessionStatus,
)
from backend.models.session import (
    QueryMetadata,
    SessionCreationOptions,
    SessionRecoveryOptions,
)


@pytest.fixture
def second_manager(context_store, scheduler, session_settings):
    """Provide another manager instance sharing the same context store."""
    return BISessionManager(
        context_store=context_store,
        token_refresh_service=TokenRefreshService(scheduler),
        scheduler=scheduler,
        settings=session_settings,
    )


class TestCreateSession:
    """Test suite for BISessionManager.create_session()."""

    async def test_create_session_should_synthesize_anonymous_context(
        self, session_manager, start_time
    ) -> None:
        """Test creating without a context yields a restricted anonymous session."""
        # Act
        result = await session_manager.create_session()

        # Assert
        context = result.context
        assert result.session.session_id == "session-1"
        assert isinstance(context, AnonymousContext)
        assert context.is_anonymous is True
        assert context.user_id == "anonymous"
        assert context.department_scope == []
        assert context.token_expiry == start_time + timedelta(hours=8)
        assert context.preferences.default_visualization == "chart"
        assert context.preferences.timezone == "UTC"
        assert context.permissions.clinical.read is False
        assert context.permissions.financial.query is False
        assert context.permissions.operational.read is True
        assert result.session.status == SessionStatus.INITIATED

    async def test_create_session_should_register_and_persist(
        self, session_manager, context_store
    ) -> None:
        """Test new session is registered and mirrored in the store."""
        # Act
        result = await session_manager.create_session()
        session_id = result.session.session_id

        # Assert
        assert session_manager.get_active_sessions() == [session_id]
        stored_session = await context_store.get_analysis_session(session_id)
        stored_context = await context_store.get_user_context(session_id)
        stored_state = await context_store.get_context_state(session_id)
        assert stored_session.status == SessionStatus.INITIATED
        assert isinstance(stored_context, AnonymousContext)
        assert stored_state is not None
        assert stored_state.is_corrupted is False
        assert len(stored_state.history_stack) == 1
        assert stored_state.history_stack[0].context_valid is True

    async def test_create_session_should_build_default_initial_state(
        self, session_manager
    ) -> None:
        """Test default state records initialization, domains and preferences."""
        # Act
        result = await session_manager.create_session(
            SessionCreationOptions(domains=[DomainType.OPERATIONAL])
        )

        # Assert
        state = result.session.context_state
        assert state["initialized"] is True
        assert state["domains"] == ["operational"]
        assert state["preferences"]["language"] == "en-US"
        assert result.session.domain_access == [DomainType.OPERATIONAL]

    async def test_create_session_should_use_supplied_initial_state(
        self, session_manager
    ) -> None:
        """Test a supplied initial state is taken as-is."""
        # Act
        result = await session_manager.create_session(
            SessionCreationOptions(initial_state={"dashboard": "sales"})
        )

        # Assert
        assert result.session.context_state == {"dashboard": "sales"}

    async def test_create_session_should_honor_custom_timeout(
        self, session_manager, start_time
    ) -> None:
        """Test custom timeout overrides the default anonymous TTL."""
        # Act
        result = await session_manager.create_session(
            SessionCreationOptions(custom_timeout=600)
        )

        # Assert
        assert result.context.token_expiry == start_time + timedelta(seconds=600)

    async def test_create_session_should_rebind_supplied_context_and_schedule_refresh(
        self, session_manager, make_user_context, token_refresh_service
    ) -> None:
        """Test a supplied context follows the new session ID and gets a refresh timer."""
        # Arrange
        user_context = make_user_context()

        # Act
        result = await session_manager.create_session(
            SessionCreationOptions(user_context=user_context)
        )

        # Assert
        assert result.context.session_id == "session-1"
        assert result.context.user_id == "analyst-42"
        assert result.session.user_id == "analyst-42"
        assert token_refresh_service.is_scheduled("session-1") is True

    async def test_create_session_should_skip_state_when_recovery_disabled(
        self, session_manager, context_store
    ) -> None:
        """Test no context state is stored when recovery is disabled."""
        # Act
        await session_manager.create_session(SessionCreationOptions(enable_recovery=False))

        # Assert
        assert await context_store.get_context_state("session-1") is None

    async def test_create_session_should_arm_timeout_timer(
        self, session_manager, scheduler
    ) -> None:
        """Test a timeout timer is scheduled at token expiry."""
        # Act
        result = await session_manager.create_session()

        # Assert
        names = [timer.name for timer in scheduler.pending]
        assert "session-timeout:session-1" in names
        assert scheduler.pending[0].due == result.context.token_expiry

    async def test_create_session_should_raise_store_error_on_database_failure(
        self, session_manager, context_store
    ) -> None:
        """Test store failures surface as ContextStoreError and nothing is registered."""
        # Arrange
        context_store.store_user_context = AsyncMock(
            side_effect=ContextStoreError("store_user_context failed")
        )

        # Act & Assert
        with pytest.raises(ContextStoreError):
            await session_manager.create_session()
        assert session_manager.get_active_sessions() == []


class TestInitializeSession:
    """Test suite for BISessionManager.initialize_session()."""

    async def test_initialize_session_should_load_stored_session(
        self, session_manager, second_manager, make_user_context
    ) -> None:
        """Test another manager instance can load a stored session."""
        # Arrange
        created = await session_manager.create_session(
            SessionCreationOptions(user_context=make_user_context())
        )
        session_id = created.session.session_id

        # Act
        result = await second_manager.initialize_session(session_id)

        # Assert
        assert result is not None
        assert result.session.session_id == session_id
        assert result.context.user_id == "analyst-42"
        assert second_manager.get_active_sessions() == [session_id]
        assert second_manager.get_recovery_attempts(session_id) == 0

    async def test_initialize_session_should_return_none_when_missing(
        self, session_manager
    ) -> None:
        """Test unknown session without fallback returns None."""
        # Act
        result = await session_manager.initialize_session("missing")

        # Assert
        assert result is None
        assert session_manager.get_active_sessions() == []

    async def test_initialize_session_should_fall_back_to_anonymous_under_same_id(
        self, session_manager
    ) -> None:
        """Test unknown session with fallback creates an anonymous session for that ID."""
        # Act
        result = await session_manager.initialize_session(
            "missing", SessionRecoveryOptions(fallback_to_anonymous=True)
        )

        # Assert
        assert result is not None
        assert result.session.session_id == "missing"
        assert result.context.is_anonymous is True
        assert session_manager.get_active_sessions() == ["missing"]

    async def test_initialize_session_should_recover_failed_context(
        self, session_manager, second_manager, context_store, make_user_context
    ) -> None:
        """Test a stored context that is no longer active is recovered on load."""
        # Arrange
        created = await session_manager.create_session(
            SessionCreationOptions(user_context=make_user_context())
        )
        session_id = created.session.session_id
        await context_store.store_user_context(
            created.context.model_copy(update={"status": ContextStatus.FAILED})
        )

        # Act
        result = await second_manager.initialize_session(session_id)

        # Assert
        assert result is not None
        assert result.context.status == ContextStatus.ACTIVE
        assert result.session.status == SessionStatus.ACTIVE
        assert second_manager.get_recovery_attempts(session_id) == 1

    async def test_initialize_session_should_skip_recovery_when_reconstruction_disabled(
        self, session_manager, second_manager, context_store
    ) -> None:
        """Test failed sessions load unchanged when reconstruction is disabled."""
        # Arrange
        created = await session_manager.create_session()
        session_id = created.session.session_id
        await context_store.store_analysis_session(
            created.session.model_copy(update={"status": SessionStatus.FAILED})
        )

        # Act
        result = await second_manager.initialize_session(
            session_id, SessionRecoveryOptions(reconstruct_from_history=False)
        )

        # Assert
        assert result.session.status == SessionStatus.FAILED
        state = await context_store.get_context_state(session_id)
        assert state.is_corrupted is False


class TestUpdateSessionState:
    """Test suite for BISessionManager.update_session_state()."""

    async def test_update_session_state_should_shallow_merge(
        self, session_manager
    ) -> None:
        """Test update replaces top-level keys and keeps the rest."""
        # Arrange
        await session_manager.create_session(
            SessionCreationOptions(initial_state={"filters": {"region": "EU"}, "page": 1})
        )

        # Act
        updated = await session_manager.update_session_state(
            "session-1", {"filters": {"year": 2025}}
        )

        # Assert
        assert updated.context_state == {"filters": {"year": 2025}, "page": 1}
        assert updated.status == SessionStatus.ACTIVE
        assert session_manager.get_session("session-1").session == updated

    async def test_update_session_state_should_append_snapshot(
        self, session_manager, context_store
    ) -> None:
        """Test each update with snapshotting grows the stored lineage."""
        # Arrange
        await session_manager.create_session()

        # Act
        await session_manager.update_session_state("session-1", {"chart": "bar"})

        # Assert
        state = await context_store.get_context_state("session-1")
        assert len(state.history_stack) == 2
        assert state.history_stack[-1].state["chart"] == "bar"
        assert state.state_data["chart"] == "bar"

    async def test_update_session_state_should_skip_snapshot_when_disabled(
        self, session_manager, context_store
    ) -> None:
        """Test create_snapshot=False leaves the lineage untouched."""
        # Arrange
        await session_manager.create_session()

        # Act
        await session_manager.update_session_state(
            "session-1", {"chart": "bar"}, create_snapshot=False
        )

        # Assert
        state = await context_store.get_context_state("session-1")
        assert len(state.history_stack) == 1
        stored = await context_store.get_analysis_session("session-1")
        assert stored.context_state["chart"] == "bar"

    async def test_update_session_state_should_raise_for_unregistered_session(
        self, session_manager
    ) -> None:
        """Test updating a session not registered in this process fails."""
        # Act & Assert
        with pytest.raises(SessionNotFoundError) as exc_info:
            await session_manager.update_session_state("missing", {"a": 1})
        assert exc_info.value.session_id == "missing"


class TestAddQueryToSession:
    """Test suite for BISessionManager.add_query_to_session()."""

    async def test_add_query_should_record_entry_in_memory_and_store(
        self, session_manager, context_store, start_time
    ) -> None:
        """Test query is appended to both the registry and the store."""
        # Arrange
        await session_manager.create_session()

        # Act
        entry = await session_manager.add_query_to_session(
            "session-1",
            "Revenue by region",
            response="EU leads",
            metadata=QueryMetadata(
                domains=[DomainType.FINANCIAL], execution_time=0.42, result_count=3
            ),
        )

        # Assert
        assert entry.query == "Revenue by region"
        assert entry.result_count == 3
        live = session_manager.get_session("session-1").session
        assert [q.query for q in live.query_history] == ["Revenue by region"]
        assert live.last_query_time == start_time
        assert live.domain_access == [DomainType.FINANCIAL]
        stored = await context_store.get_analysis_session("session-1")
        assert [q.query for q in stored.query_history] == ["Revenue by region"]
        assert stored.domain_access == [DomainType.FINANCIAL]

    async def test_add_query_should_touch_context_activity(
        self, session_manager, context_store, scheduler, start_time
    ) -> None:
        """Test recording a query refreshes last activity."""
        # Arrange
        await session_manager.create_session()
        scheduler.set_time(start_time + timedelta(minutes=5))

        # Act
        await session_manager.add_query_to_session("session-1", "Open tickets")

        # Assert
        expected = start_time + timedelta(minutes=5)
        assert session_manager.get_session("session-1").context.last_activity == expected
        stored = await context_store.get_user_context("session-1")
        assert stored.last_activity == expected

    async def test_add_query_should_evict_oldest_entries_beyond_cap(
        self, session_factory, scheduler, token_refresh_service
    ) -> None:
        """Test history keeps only the newest entries, oldest evicted first."""
        # Arrange
        settings = SessionSettings(max_query_history=3)
        store = ContextStore(session_factory, settings=settings, clock=scheduler.now)
        manager = BISessionManager(
            store, token_refresh_service, scheduler=scheduler, settings=settings
        )
        created = await manager.create_session()
        session_id = created.session.session_id

        # Act
        for i in range(5):
            await manager.add_query_to_session(session_id, f"q{i}")

        # Assert
        live = manager.get_session(session_id).session
        stored = await store.get_analysis_session(session_id)
        assert [q.query for q in live.query_history] == ["q2", "q3", "q4"]
        assert [q.query for q in stored.query_history] == ["q2", "q3", "q4"]

    async def test_add_query_should_only_grow_domain_access(
        self, session_manager, context_store
    ) -> None:
        """Test domain access is an ordered union that never shrinks."""
        # Arrange
        await session_manager.create_session()

        # Act
        await session_manager.add_query_to_session(
            "session-1", "a", metadata=QueryMetadata(domains=[DomainType.CLINICAL])
        )
        await session_manager.add_query_to_session(
            "session-1",
            "b",
            metadata=QueryMetadata(domains=[DomainType.FINANCIAL, DomainType.CLINICAL]),
        )
        await session_manager.add_query_to_session("session-1", "c")

        # Assert
        expected = [DomainType.CLINICAL, DomainType.FINANCIAL]
        assert session_manager.get_session("session-1").session.domain_access == expected
        stored = await context_store.get_analysis_session("session-1")
        assert stored.domain_access == expected

    async def test_add_query_should_reject_blank_query(
        self, session_manager, context_store
    ) -> None:
        """Test blank query raises ValidationError and records nothing."""
        # Arrange
        await session_manager.create_session()

        # Act & Assert
        with pytest.raises(ValidationError) as exc_info:
            await session_manager.add_query_to_session("session-1", "   ")
        assert exc_info.value.details["field"] == "query"
        stored = await context_store.get_analysis_session("session-1")
        assert stored.query_history == []

    async def test_add_query_should_raise_for_unknown_session(
        self, session_manager
    ) -> None:
        """Test recording on a session that is not stored fails."""
        # Act & Assert
        with pytest.raises(SessionNotFoundError):
            await session_manager.add_query_to_session("missing", "anything")

    async def test_add_query_should_tolerate_domain_bookkeeping_failure(
        self, session_manager, context_store
    ) -> None:
        """Test durable domain-access failures do not fail the query."""
        # Arrange
        await session_manager.create_session()
        context_store.update_domain_access = AsyncMock(
            side_effect=ContextStoreError("update_domain_access failed")
        )

        # Act
        entry = await session_manager.add_query_to_session(
            "session-1", "Claims", metadata=QueryMetadata(domains=[DomainType.CLINICAL])
        )

        # Assert
        assert entry.query == "Claims"
        context_store.update_domain_access.assert_awaited_once()


class TestRecoverSession:
    """Test suite for BISessionManager.recover_session()."""

    async def test_recover_session_should_reconstruct_last_valid_state(
        self, session_manager, context_store, scheduler, start_time, make_user_context
    ) -> None:
        """Test recovery rebuilds the session from its newest valid snapshot."""
        # Arrange
        await session_manager.create_session(
            SessionCreationOptions(
                user_context=make_user_context(), domains=[DomainType.CLINICAL]
            )
        )
        await session_manager.add_query_to_session(
            "session-1", "Bed occupancy", metadata=QueryMetadata(domains=[DomainType.OPERATIONAL])
        )
        await session_manager.update_session_state("session-1", {"filters": {"ward": "ICU"}})
        await context_store.mark_context_corrupted("session-1")
        scheduler.set_time(start_time + timedelta(minutes=10))

        # Act
        result = await session_manager.recover_session("session-1")

        # Assert
        now = start_time + timedelta(minutes=10)
        assert result is not None
        assert result.session.status == SessionStatus.ACTIVE
        assert result.session.context_state["filters"] == {"ward": "ICU"}
        assert result.session.start_time == now - timedelta(hours=1)
        assert [q.query for q in result.session.query_history] == ["Bed occupancy"]
        assert result.session.domain_access == [DomainType.CLINICAL, DomainType.OPERATIONAL]
        assert result.context.user_id == "analyst-42"
        assert result.context.status == ContextStatus.ACTIVE
        assert session_manager.get_recovery_attempts("session-1") == 1

    async def test_recover_session_should_start_fresh_uncorrupted_lineage(
        self, session_manager, context_store
    ) -> None:
        """Test a successful reconstruction clears corruption with a new lineage."""
        # Arrange
        await session_manager.create_session()
        await context_store.mark_context_corrupted("session-1")

        # Act
        await session_manager.recover_session("session-1")

        # Assert
        state = await context_store.get_context_state("session-1")
        assert state.is_corrupted is False
        assert len(state.history_stack) == 1
        assert "recovered_at" in state.reconstruction_data
        health = await session_manager.check_session_health("session-1")
        assert health.context_corrupted is False
        assert health.healthy is True

    async def test_recover_session_should_fall_back_to_anonymous_without_state(
        self, session_manager, make_user_context, token_refresh_service
    ) -> None:
        """Test sessions without a lineage fall back to anonymous when allowed."""
        # Arrange
        await session_manager.create_session(
            SessionCreationOptions(user_context=make_user_context(), enable_recovery=False)
        )
        assert token_refresh_service.is_scheduled("session-1") is True

        # Act
        result = await session_manager.recover_session(
            "session-1", SessionRecoveryOptions(fallback_to_anonymous=True)
        )

        # Assert
        assert result is not None
        assert result.session.session_id == "session-1"
        assert result.context.is_anonymous is True
        assert token_refresh_service.is_scheduled("session-1") is False
        assert session_manager.get_recovery_attempts("session-1") == 1

    async def test_recover_session_should_return_none_without_state_or_fallback(
        self, session_manager
    ) -> None:
        """Test recovery fails when nothing can be reconstructed and fallback is off."""
        # Arrange
        await session_manager.create_session(SessionCreationOptions(enable_recovery=False))

        # Act
        result = await session_manager.recover_session("session-1")

        # Assert
        assert result is None
        assert session_manager.get_recovery_attempts("session-1") == 1

    async def test_recover_session_should_stop_at_attempt_ceiling(
        self, session_manager
    ) -> None:
        """Test successful recoveries count toward the ceiling."""
        # Arrange
        await session_manager.create_session()
        for _ in range(3):
            assert await session_manager.recover_session("session-1") is not None

        # Act
        result = await session_manager.recover_session("session-1")

        # Assert
        assert result is None
        assert session_manager.get_recovery_attempts("session-1") == 3
        assert session_manager.get_active_sessions() == ["session-1"]

    async def test_recover_session_should_cap_failed_attempt_counter(
        self, session_manager
    ) -> None:
        """Test failed attempts never push the counter past the ceiling."""
        # Arrange
        await session_manager.create_session(SessionCreationOptions(enable_recovery=False))

        # Act
        results = [await session_manager.recover_session("session-1") for _ in range(5)]

        # Assert
        assert results == [None] * 5
        assert session_manager.get_recovery_attempts("session-1") == 3

    async def test_recover_session_should_honor_per_call_ceiling(
        self, session_manager
    ) -> None:
        """Test max_recovery_attempts in options overrides the configured ceiling."""
        # Arrange
        await session_manager.create_session()
        options = SessionRecoveryOptions(max_recovery_attempts=1)
        assert await session_manager.recover_session("session-1", options) is not None

        # Act
        result = await session_manager.recover_session("session-1", options)

        # Assert
        assert result is None

    async def test_recover_session_should_return_none_on_store_failure(
        self, session_manager, context_store
    ) -> None:
        """Test store failures during recovery yield None instead of raising."""
        # Arrange
        await session_manager.create_session()
        context_store.mark_context_corrupted = AsyncMock(
            side_effect=ContextStoreError("mark_context_corrupted failed")
        )

        # Act
        result = await session_manager.recover_session("session-1")

        # Assert
        assert result is None
        assert session_manager.get_recovery_attempts("session-1") == 1

    @pytest.mark.parametrize(
        "domains",
        [5, [{"name": "ops"}], ["clinical", ["nested"], None]],
    )
    async def test_recover_session_should_tolerate_malformed_domains_state(
        self, session_manager, context_store, domains
    ) -> None:
        """Test non-string snapshot domains are ignored during reconstruction."""
        # Arrange
        await session_manager.create_session(
            SessionCreationOptions(domains=[DomainType.OPERATIONAL])
        )
        await session_manager.update_session_state("session-1", {"domains": domains})
        await context_store.mark_context_corrupted("session-1")

        # Act
        result = await session_manager.recover_session(
            "session-1", SessionRecoveryOptions(fallback_to_anonymous=True)
        )

        # Assert
        assert result is not None
        assert result.session.context_state["domains"] == domains
        assert DomainType.OPERATIONAL in result.session.domain_access
        assert all(isinstance(domain, DomainType) for domain in result.session.domain_access)

    async def test_recover_session_should_fall_back_when_reconstruction_breaks(
        self, session_manager, context_store
    ) -> None:
        """Test a malformed stored row still lets the anonymous fallback run."""
        # Arrange
        await session_manager.create_session()
        context_store.get_user_context = AsyncMock(side_effect=ValueError("bad row"))

        # Act
        result = await session_manager.recover_session(
            "session-1", SessionRecoveryOptions(fallback_to_anonymous=True)
        )

        # Assert
        assert result is not None
        assert result.context.is_anonymous is True
        assert session_manager.get_recovery_attempts("session-1") == 1

    async def test_recover_session_should_return_none_when_reconstruction_breaks(
        self, session_manager, context_store
    ) -> None:
        """Test a failed reconstruction without fallback yields None."""
        # Arrange
        await session_manager.create_session()
        context_store.get_user_context = AsyncMock(side_effect=TypeError("bad row"))

        # Act
        result = await session_manager.recover_session("session-1")

        # Assert
        assert result is None
        assert session_manager.get_recovery_attempts("session-1") == 1


class TestTerminateSession:
    """Test suite for BISessionManager.terminate_session()."""

    async def test_terminate_session_should_complete_and_unregister(
        self, session_manager, context_store, scheduler, make_user_context, token_refresh_service
    ) -> None:
        """Test termination persists completed state and drops all timers."""
        # Arrange
        await session_manager.create_session(
            SessionCreationOptions(user_context=make_user_context())
        )

        # Act
        await session_manager.terminate_session("session-1")

        # Assert
        assert session_manager.get_active_sessions() == []
        assert scheduler.pending == []
        assert token_refresh_service.is_scheduled("session-1") is False
        stored_session = await context_store.get_analysis_session("session-1")
        stored_context = await context_store.get_user_context("session-1")
        assert stored_session.status == SessionStatus.COMPLETED
        assert stored_context.status == ContextStatus.COMPLETED

    async def test_terminate_session_should_be_idempotent(
        self, session_manager, context_store
    ) -> None:
        """Test terminating twice, or an unknown session, is a no-op."""
        # Arrange
        await session_manager.create_session()
        await session_manager.terminate_session("session-1")
        context_store.store_analysis_session = AsyncMock()

        # Act
        await session_manager.terminate_session("session-1")
        await session_manager.terminate_session("never-existed")

        # Assert
        context_store.store_analysis_session.assert_not_awaited()

    async def test_session_should_terminate_when_token_expires(
        self, session_manager, context_store, scheduler
    ) -> None:
        """Test the timeout timer terminates the session at token expiry."""
        # Arrange
        await session_manager.create_session(SessionCreationOptions(custom_timeout=600))

        # Act
        await scheduler.advance(599)
        still_active = session_manager.get_active_sessions()
        await scheduler.advance(2)

        # Assert
        assert still_active == ["session-1"]
        assert session_manager.get_active_sessions() == []
        stored = await context_store.get_analysis_session("session-1")
        assert stored.status == SessionStatus.COMPLETED


class TestCheckSessionHealth:
    """Test suite for BISessionManager.check_session_health()."""

    async def test_health_should_report_unknown_session(self, session_manager) -> None:
        """Test unregistered sessions report not found."""
        # Act
        health = await session_manager.check_session_health("missing")

        # Assert
        assert health.healthy is False
        assert health.issues == ["Session not found in active sessions"]

    async def test_health_should_report_healthy_new_session(
        self, session_manager
    ) -> None:
        """Test a fresh anonymous session is healthy."""
        # Arrange
        await session_manager.create_session()

        # Act
        health = await session_manager.check_session_health("session-1")

        # Assert
        assert health.healthy is True
        assert health.context_valid is True
        assert health.token_valid is True
        assert health.issues == []

    async def test_health_should_flag_expired_context(
        self, session_manager, scheduler, start_time
    ) -> None:
        """Test a context past expiry is invalid and unhealthy."""
        # Arrange
        await session_manager.create_session(SessionCreationOptions(custom_timeout=60))
        scheduler.set_time(start_time + timedelta(seconds=120))

        # Act
        health = await session_manager.check_session_health("session-1")

        # Assert
        assert health.healthy is False
        assert health.context_valid is False
        assert "Context is expired or inactive" in health.issues

    async def test_health_should_flag_token_near_expiry(
        self, session_manager, make_user_context, start_time
    ) -> None:
        """Test authenticated tokens inside the refresh threshold are invalid."""
        # Arrange
        await session_manager.create_session(
            SessionCreationOptions(
                user_context=make_user_context(token_expiry=start_time + timedelta(minutes=10))
            )
        )

        # Act
        health = await session_manager.check_session_health("session-1")

        # Assert
        assert health.token_valid is False
        assert health.healthy is False
        assert "Token is expired or near expiry" in health.issues

    async def test_health_should_treat_inactivity_as_advisory(
        self, session_manager, scheduler, start_time
    ) -> None:
        """Test long inactivity is reported without making the session unhealthy."""
        # Arrange
        await session_manager.create_session()
        scheduler.set_time(start_time + timedelta(hours=2))

        # Act
        health = await session_manager.check_session_health("session-1")

        # Assert
        assert health.healthy is True
        assert "Session has been inactive for over 1 hour" in health.issues

    async def test_health_should_flag_corrupted_state(
        self, session_manager, context_store
    ) -> None:
        """Test a corrupted lineage makes the session unhealthy."""
        # Arrange
        await session_manager.create_session()
        await context_store.mark_context_corrupted("session-1")

        # Act
        health = await session_manager.check_session_health("session-1")

        # Assert
        assert health.healthy is False
        assert health.context_corrupted is True
        assert "Context state is marked as corrupted" in health.issues

    async def test_health_should_never_raise(
        self, session_manager, context_store
    ) -> None:
        """Test internal failures produce a pessimistic report."""
        # Arrange
        await session_manager.create_session()
        context_store.get_context_state = AsyncMock(side_effect=RuntimeError("boom"))

        # Act
        health = await session_manager.check_session_health("session-1")

        # Assert
        assert health.healthy is False
        assert health.issues == ["Health check failed"]


class TestPerformMaintenanceCleanup:
    """Test suite for BISessionManager.perform_maintenance_cleanup()."""

    async def test_maintenance_should_terminate_expired_sessions(
        self, session_manager, context_store, scheduler, start_time
    ) -> None:
        """Test expired registered sessions are terminated and counted."""
        # Arrange
        await session_manager.create_session(SessionCreationOptions(custom_timeout=60))
        await session_manager.create_session()
        scheduler.set_time(start_time + timedelta(seconds=120))

        # Act
        result = await session_manager.perform_maintenance_cleanup()

        # Assert
        assert result.cleaned == 1
        assert result.errors == []
        assert session_manager.get_active_sessions() == ["session-2"]
        stored = await context_store.get_analysis_session("session-1")
        assert stored.status == SessionStatus.COMPLETED

    async def test_maintenance_should_recover_corrupted_sessions(
        self, session_manager, context_store, make_user_context
    ) -> None:
        """Test corrupted registered sessions are recovered."""
        # Arrange
        await session_manager.create_session(
            SessionCreationOptions(user_context=make_user_context())
        )
        await context_store.mark_context_corrupted("session-1")

        # Act
        result = await session_manager.perform_maintenance_cleanup()

        # Assert
        assert result.recovered == 1
        assert session_manager.get_recovery_attempts("session-1") == 1
        state = await context_store.get_context_state("session-1")
        assert state.is_corrupted is False

    async def test_maintenance_should_collect_per_session_errors(
        self, session_manager, scheduler, start_time
    ) -> None:
        """Test a failing session does not stop the sweep."""
        # Arrange
        await session_manager.create_session(SessionCreationOptions(custom_timeout=60))
        scheduler.set_time(start_time + timedelta(seconds=120))
        session_manager.terminate_session = AsyncMock(side_effect=RuntimeError("disk full"))

        # Act
        result = await session_manager.perform_maintenance_cleanup()

        # Assert
        assert result.errors == ["Session session-1: disk full"]
        assert session_manager.get_active_sessions() == ["session-1"]

    async def test_maintenance_should_include_store_cleanup(
        self, session_manager, context_store, make_user_context, start_time, scheduler
    ) -> None:
        """Test expired contexts known only to the store are cleaned too."""
        # Arrange
        orphan = make_user_context(
            session_id="orphan", token_expiry=start_time + timedelta(seconds=30)
        )
        await context_store.store_user_context(orphan)
        scheduler.set_time(start_time + timedelta(minutes=1))

        # Act
        result = await session_manager.perform_maintenance_cleanup()

        # Assert
        assert result.cleaned == 1
        stored = await context_store.get_user_context("orphan")
        assert stored.status == ContextStatus.FAILED

    async def test_start_should_run_maintenance_periodically(
        self, session_manager, scheduler
    ) -> None:
        """Test start() arms one periodic sweep."""
        # Arrange
        session_manager.perform_maintenance_cleanup = AsyncMock()

        # Act
        session_manager.start()
        session_manager.start()
        await scheduler.advance(300)
        await scheduler.advance(300)

        # Assert
        names = [timer.name for timer in scheduler.pending]
        assert names.count("session-maintenance") == 1
        assert session_manager.perform_maintenance_cleanup.await_count == 2

    async def test_start_should_do_nothing_when_maintenance_disabled(
        self, context_store, token_refresh_service, scheduler
    ) -> None:
        """Test enable_maintenance=False leaves no periodic timer."""
        # Arrange
        manager = BISessionManager(
            context_store,
            token_refresh_service,
            scheduler=scheduler,
            settings=SessionSettings(enable_maintenance=False),
        )

        # Act
        manager.start()

        # Assert
        assert scheduler.pending == []


class TestSessionQueries:
    """Test suite for analytics, stats and registry lookups."""

    async def test_analytics_should_summarize_registered_session(
        self, session_manager, scheduler, start_time
    ) -> None:
        """Test analytics for a registered session come from the registry."""
        # Arrange
        await session_manager.create_session()
        await session_manager.add_query_to_session(
            "session-1", "Churn", metadata=QueryMetadata(domains=[DomainType.CUSTOMER_SERVICE])
        )
        scheduler.set_time(start_time + timedelta(seconds=30))

        # Act
        analytics = await session_manager.get_session_analytics("session-1")

        # Assert
        assert analytics.duration_seconds == 30
        assert analytics.query_count == 1
        assert analytics.domains_accessed == [DomainType.CUSTOMER_SERVICE]
        assert analytics.is_anonymous is True
        assert analytics.recovery_attempts == 0

    async def test_analytics_should_fall_back_to_store(self, session_manager) -> None:
        """Test analytics for a terminated session are read from the store."""
        # Arrange
        await session_manager.create_session()
        await session_manager.terminate_session("session-1")

        # Act
        analytics = await session_manager.get_session_analytics("session-1")

        # Assert
        assert analytics.status == SessionStatus.COMPLETED
        assert analytics.recovery_attempts is None

    async def test_analytics_should_return_none_for_unknown_session(
        self, session_manager
    ) -> None:
        """Test analytics for an unknown session is None."""
        # Act & Assert
        assert await session_manager.get_session_analytics("missing") is None

    async def test_stats_should_count_registry(
        self, session_manager, make_user_context
    ) -> None:
        """Test stats split the registry by status and authentication."""
        # Arrange
        await session_manager.create_session()
        await session_manager.create_session(
            SessionCreationOptions(user_context=make_user_context())
        )
        await session_manager.update_session_state("session-2", {"chart": "line"})

        # Act
        stats = session_manager.get_session_stats()

        # Assert
        assert stats.total == 2
        assert stats.active == 1
        assert stats.authenticated == 1
        assert stats.anonymous == 1


class TestShutdown:
    """Test suite for BISessionManager.shutdown()."""

    async def test_shutdown_should_terminate_all_and_cancel_timers(
        self, session_manager, context_store, scheduler, make_user_context
    ) -> None:
        """Test shutdown empties the registry and leaves no timer armed."""
        # Arrange
        session_manager.start()
        await session_manager.create_session()
        await session_manager.create_session(
            SessionCreationOptions(user_context=make_user_context())
        )

        # Act
        await session_manager.shutdown()

        # Assert
        assert session_manager.get_active_sessions() == []
        assert scheduler.pending == []
        for session_id in ("session-1", "session-2"):
            stored = await context_store.get_analysis_session(session_id)
            assert stored.status == SessionStatus.COMPLETED

    async def test_shutdown_should_continue_past_failed_termination(
        self, session_manager, context_store
    ) -> None:
        """Test one failing termination does not block the rest."""
        # Arrange
        await session_manager.create_session()
        await session_manager.create_session()
        original = context_store.store_analysis_session
        calls = {"count": 0}

        async def flaky(session):
            calls["count"] += 1
            if calls["count"] == 1:
                raise ContextStoreError("store_analysis_session failed")
            return await original(session)

        context_store.store_analysis_session = flaky

        # Act
        await session_manager.shutdown()

        # Assert
        assert session_manager.get_active_sessions() == []
        assert calls["count"] == 2

    async def test_shutdown_should_bound_hanging_termination(
        self, session_manager, context_store, session_settings
    ) -> None:
        """Test a termination that never completes is abandoned after the timeout."""
        # Arrange
        session_manager.settings = session_settings.model_copy(
            update={"shutdown_task_timeout_seconds": 0.05}
        )
        await session_manager.create_session()
        await session_manager.create_session()

        async def hang(session):
            await asyncio.Event().wait()

        context_store.store_analysis_session = hang

        # Act
        await asyncio.wait_for(session_manager.shutdown(), timeout=2)

        # Assert
        assert session_manager.get_active_sessions() == []
