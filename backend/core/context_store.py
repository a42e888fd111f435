"""
Durable context store.

Persists user/anonymous contexts, analysis sessions and context-state
lineages, and answers the recovery and cleanup queries the session manager
depends on. Every operation opens its own AsyncSession, so calls for
different session IDs never share a transaction.

Dependencies: sqlalchemy, backend.boundary.db, backend.models, backend.observability
System role: Durable mirror of running sessions (never drives lifecycle itself)
"""

import hashlib
import json
import logging
from datetime import datetime
from typing import Any, Callable, Sequence

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.boundary.db.CRUD import (
    analysis_session_crud,
    context_state_crud,
    user_context_crud,
)
from backend.boundary.db.models import (
    AnalysisSessionModel,
    ContextStateModel,
    UserContextModel,
)
from backend.configs.session import SessionSettings
from backend.core.error_handling import handle_errors
from backend.core.exceptions import SessionNotFoundError
from backend.models.context import (
    AnalysisSession,
    AnonymousContext,
    ContextRecoveryData,
    ContextState,
    ContextStateSnapshot,
    ContextStatus,
    DomainType,
    QueryHistoryEntry,
    UserContext,
    utc_now,
)
from backend.models.session import (
    ActiveSessionStats,
    QueryMetadata,
    StoreCleanupResult,
    StoreHealth,
)
from backend.observability.log_utils import log_exception_with_context, log_with_context
from backend.observability.logger import get_logger

logger = get_logger(__name__)

COMPONENT = "context-store"

TABLES = (
    UserContextModel.__tablename__,
    AnalysisSessionModel.__tablename__,
    ContextStateModel.__tablename__,
)


def state_checksum(state: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of a state map."""
    canonical = json.dumps(state, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _snapshot_is_intact(snapshot: dict[str, Any]) -> bool:
    checksum = snapshot.get("checksum")
    return checksum is None or checksum == state_checksum(snapshot.get("state") or {})


def merge_domains(existing: Sequence[Any], new: Sequence[Any]) -> list[DomainType]:
    """Ordered union of domains; first appearance wins, nothing is removed."""
    merged: list[DomainType] = []
    for domain in [*existing, *new]:
        domain = DomainType(domain)
        if domain not in merged:
            merged.append(domain)
    return merged


class ContextStore:
    """
    SQLAlchemy-backed store for contexts, sessions and context states.

    Attributes:
        max_query_history: Cap applied to every session's query history
        max_state_history: Cap applied to every context-state history stack
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: SessionSettings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            session_factory: Factory producing AsyncSessions bound to the context database
            settings: Session settings (history caps)
            clock: Time source; defaults to UTC wall clock
        """
        settings = settings or SessionSettings()
        self._session_factory = session_factory
        self._clock = clock or utc_now
        self.max_query_history = settings.max_query_history
        self.max_state_history = settings.max_state_history

    # ------------------------------------------------------------------
    # Row <-> model conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _context_from_row(row: UserContextModel) -> UserContext:
        model_cls = AnonymousContext if row.is_anonymous else UserContext
        return model_cls.model_validate(
            {
                "user_id": row.user_id,
                "session_id": row.session_id,
                "role_id": row.role_id,
                "department_scope": row.department_scope or [],
                "permissions": row.permissions,
                "preferences": row.preferences,
                "last_activity": row.last_activity,
                "token_expiry": row.token_expiry,
                "is_anonymous": row.is_anonymous,
                "status": row.status,
                "created_at": row.created_at,
                "updated_at": row.updated_at,
            }
        )

    @staticmethod
    def _session_from_row(row: AnalysisSessionModel) -> AnalysisSession:
        return AnalysisSession.model_validate(
            {
                "session_id": row.session_id,
                "user_id": row.user_id,
                "start_time": row.start_time,
                "last_query_time": row.last_query_time,
                "query_history": row.query_history or [],
                "context_state": row.context_state or {},
                "domain_access": row.domain_access or [],
                "status": row.status,
                "created_at": row.created_at,
                "updated_at": row.updated_at,
            }
        )

    @staticmethod
    def _state_from_row(row: ContextStateModel) -> ContextState:
        return ContextState.model_validate(
            {
                "state_id": row.state_id,
                "session_id": row.session_id,
                "state_data": row.state_data or {},
                "history_stack": row.history_stack or [],
                "reconstruction_data": row.reconstruction_data,
                "last_update": row.last_update,
                "is_corrupted": row.is_corrupted,
                "created_at": row.created_at,
                "updated_at": row.updated_at,
            }
        )

    def _stamp(self, snapshot: ContextStateSnapshot) -> dict[str, Any]:
        """JSON form of a snapshot with its checksum filled in."""
        data = snapshot.model_dump(mode="json")
        if data.get("checksum") is None:
            data["checksum"] = state_checksum(data["state"])
        return data

    # ------------------------------------------------------------------
    # User contexts
    # ------------------------------------------------------------------

    async def store_user_context(self, context: UserContext) -> UserContext:
        """
        Insert or replace the context of a session.

        Args:
            context: Context to persist (keyed by its session_id)

        Returns:
            UserContext: The persisted context

        Raises:
            ContextStoreError: If the write fails
        """
        with handle_errors(COMPONENT, "store_user_context", context.session_id):
            data = context.model_dump(mode="json")
            async with self._session_factory() as db:
                await user_context_crud.upsert_by_session_id(
                    db,
                    context.session_id,
                    user_id=context.user_id,
                    role_id=context.role_id,
                    department_scope=list(context.department_scope),
                    permissions=data["permissions"],
                    preferences=data["preferences"],
                    last_activity=context.last_activity,
                    token_expiry=context.token_expiry,
                    is_anonymous=context.is_anonymous,
                    status=context.status,
                    created_at=context.created_at,
                    updated_at=context.updated_at,
                )
                await db.commit()
            return context

    async def get_user_context(self, session_id: str) -> UserContext | None:
        """
        Load the context of a session, whatever its status.

        Returns:
            UserContext | None: AnonymousContext for anonymous rows, None if absent
        """
        with handle_errors(COMPONENT, "get_user_context", session_id):
            async with self._session_factory() as db:
                row = await user_context_crud.get_by_session_id(db, session_id)
            return self._context_from_row(row) if row is not None else None

    async def update_context_activity(self, session_id: str) -> bool:
        """
        Touch the last-activity timestamp of a session's context.

        Returns:
            bool: False if the session has no stored context
        """
        with handle_errors(COMPONENT, "update_context_activity", session_id):
            async with self._session_factory() as db:
                updated = await user_context_crud.touch_activity(
                    db, session_id, self._clock()
                )
                await db.commit()
            return updated

    # ------------------------------------------------------------------
    # Analysis sessions
    # ------------------------------------------------------------------

    async def store_analysis_session(self, session: AnalysisSession) -> AnalysisSession:
        """
        Insert or replace an analysis session.

        The stored query history is trimmed to the newest
        ``max_query_history`` entries.

        Raises:
            ContextStoreError: If the write fails
        """
        with handle_errors(COMPONENT, "store_analysis_session", session.session_id):
            data = session.model_dump(mode="json")
            async with self._session_factory() as db:
                await analysis_session_crud.upsert_by_session_id(
                    db,
                    session.session_id,
                    user_id=session.user_id,
                    start_time=session.start_time,
                    last_query_time=session.last_query_time,
                    query_history=data["query_history"][-self.max_query_history:],
                    context_state=data["context_state"],
                    domain_access=data["domain_access"],
                    status=session.status,
                    created_at=session.created_at,
                    updated_at=session.updated_at,
                )
                await db.commit()
            return session

    async def get_analysis_session(self, session_id: str) -> AnalysisSession | None:
        with handle_errors(COMPONENT, "get_analysis_session", session_id):
            async with self._session_factory() as db:
                row = await analysis_session_crud.get_by_session_id(db, session_id)
            return self._session_from_row(row) if row is not None else None

    async def add_query_to_history(
        self,
        session_id: str,
        query: str,
        response: str | None = None,
        metadata: QueryMetadata | None = None,
    ) -> QueryHistoryEntry:
        """
        Append a query to a session's durable history.

        Oldest entries are evicted once the history exceeds
        ``max_query_history``.

        Args:
            session_id: Target session
            query: Query text
            response: Optional response text
            metadata: Optional domains/timing/result count

        Returns:
            QueryHistoryEntry: The recorded entry

        Raises:
            SessionNotFoundError: If the session has no stored row
            ContextStoreError: If the write fails
        """
        with handle_errors(COMPONENT, "add_query_to_history", session_id):
            metadata = metadata or QueryMetadata()
            now = self._clock()
            entry = QueryHistoryEntry(
                timestamp=now,
                query=query,
                response=response,
                domains=metadata.domains,
                execution_time=metadata.execution_time,
                result_count=metadata.result_count,
            )
            async with self._session_factory() as db:
                row = await analysis_session_crud.get_by_session_id(db, session_id)
                if row is None:
                    raise SessionNotFoundError(session_id)
                history = [*(row.query_history or []), entry.model_dump(mode="json")]
                row.query_history = history[-self.max_query_history:]
                row.last_query_time = now
                row.updated_at = now
                await db.commit()
            return entry

    async def update_domain_access(
        self, session_id: str, domains: Sequence[DomainType]
    ) -> list[DomainType]:
        """
        Merge domains into a session's durable domain access.

        Returns:
            list[DomainType]: The stored domain list after the merge

        Raises:
            SessionNotFoundError: If the session has no stored row
        """
        with handle_errors(COMPONENT, "update_domain_access", session_id):
            async with self._session_factory() as db:
                row = await analysis_session_crud.get_by_session_id(db, session_id)
                if row is None:
                    raise SessionNotFoundError(session_id)
                merged = merge_domains(row.domain_access or [], domains)
                row.domain_access = [domain.value for domain in merged]
                row.updated_at = self._clock()
                await db.commit()
            return merged

    # ------------------------------------------------------------------
    # Context states
    # ------------------------------------------------------------------

    async def store_context_state(
        self, state: ContextState, replace: bool = False
    ) -> ContextState:
        """
        Write a context state, appending to the session's lineage.

        Incoming history-stack entries are appended after the stored ones;
        an empty incoming stack appends one snapshot of ``state_data``.
        Existing entries are never rewritten. The corruption flag survives
        normal writes and is only reset when ``replace`` starts a fresh
        lineage.

        Args:
            state: State to write (keyed by its session_id)
            replace: Discard the stored lineage and start over from ``state``

        Returns:
            ContextState: The stored lineage

        Raises:
            ContextStoreError: If the write fails
        """
        with handle_errors(COMPONENT, "store_context_state", state.session_id):
            now = self._clock()
            data = state.model_dump(mode="json")
            incoming = list(state.history_stack) or [
                ContextStateSnapshot(
                    timestamp=now,
                    state=state.state_data,
                    context_valid=not state.is_corrupted,
                )
            ]
            stamped = [self._stamp(snapshot) for snapshot in incoming]

            async with self._session_factory() as db:
                row = await context_state_crud.get_by_session_id(db, state.session_id)
                if row is None or replace:
                    fields = {
                        "state_id": state.state_id,
                        "state_data": data["state_data"],
                        "history_stack": stamped[-self.max_state_history:],
                        "reconstruction_data": data["reconstruction_data"],
                        "last_update": now,
                        "is_corrupted": state.is_corrupted,
                        "created_at": now if row is None else row.created_at,
                        "updated_at": now,
                    }
                    row = await context_state_crud.upsert_by_session_id(
                        db, state.session_id, **fields
                    )
                else:
                    history = [*(row.history_stack or []), *stamped]
                    row.state_data = data["state_data"]
                    row.history_stack = history[-self.max_state_history:]
                    if state.reconstruction_data is not None:
                        row.reconstruction_data = {
                            **(row.reconstruction_data or {}),
                            **data["reconstruction_data"],
                        }
                    row.is_corrupted = row.is_corrupted or state.is_corrupted
                    row.last_update = now
                    row.updated_at = now
                await db.commit()
                return self._state_from_row(row)

    async def get_context_state(self, session_id: str) -> ContextState | None:
        with handle_errors(COMPONENT, "get_context_state", session_id):
            async with self._session_factory() as db:
                row = await context_state_crud.get_by_session_id(db, session_id)
            return self._state_from_row(row) if row is not None else None

    async def mark_context_corrupted(self, session_id: str) -> bool:
        """
        Set the one-way corruption flag on a session's lineage.

        Returns:
            bool: False if the session has no stored context state
        """
        with handle_errors(COMPONENT, "mark_context_corrupted", session_id):
            now = self._clock()
            async with self._session_factory() as db:
                row = await context_state_crud.get_by_session_id(db, session_id)
                if row is None:
                    return False
                row.is_corrupted = True
                row.reconstruction_data = {
                    **(row.reconstruction_data or {}),
                    "corruption_detected_at": now.isoformat(),
                    "automatic_recovery_triggered": True,
                }
                row.updated_at = now
                await db.commit()
            log_with_context(
                logger, logging.WARNING, "Context marked corrupted", session_id=session_id
            )
            return True

    async def get_context_recovery_data(
        self, session_id: str
    ) -> ContextRecoveryData | None:
        """
        Summarize what can be recovered for a session.

        The last valid state is the newest history-stack snapshot flagged
        valid whose checksum still matches its state.

        Returns:
            ContextRecoveryData | None: None if the session has no context state
        """
        with handle_errors(COMPONENT, "get_context_recovery_data", session_id):
            async with self._session_factory() as db:
                state_row = await context_state_crud.get_by_session_id(db, session_id)
                if state_row is None:
                    return None
                has_context = await user_context_crud.exists(db, session_id)
                has_session = await analysis_session_crud.exists(db, session_id)

            history = state_row.history_stack or []
            last_valid = next(
                (
                    snapshot
                    for snapshot in reversed(history)
                    if snapshot.get("context_valid") and _snapshot_is_intact(snapshot)
                ),
                None,
            )

            elements = {
                "state_data": bool(state_row.state_data),
                "history_stack": bool(history),
                "last_valid_state": last_valid is not None,
                "user_context": has_context,
                "analysis_session": has_session,
            }
            reconstruction = state_row.reconstruction_data or {}

            return ContextRecoveryData(
                state_data=state_row.state_data or {},
                history_count=len(history),
                last_valid_state=last_valid["state"] if last_valid else None,
                last_valid_timestamp=last_valid["timestamp"] if last_valid else None,
                corruption_timestamp=reconstruction.get("corruption_detected_at"),
                recoverable_elements=[name for name, ok in elements.items() if ok],
                missing_elements=[name for name, ok in elements.items() if not ok],
            )

    # ------------------------------------------------------------------
    # Maintenance and statistics
    # ------------------------------------------------------------------

    async def cleanup_expired_sessions(self) -> StoreCleanupResult:
        """
        Fail every active context whose token has expired, with its session.

        Database errors are collected into the result rather than raised.

        Returns:
            StoreCleanupResult: Contexts failed and errors encountered
        """
        result = StoreCleanupResult()
        now = self._clock()
        try:
            async with self._session_factory() as db:
                expired = await user_context_crud.get_expired_active(db, now)
                session_ids = [row.session_id for row in expired]
                if session_ids:
                    await user_context_crud.update_status(
                        db, session_ids, ContextStatus.FAILED, now
                    )
                    await analysis_session_crud.fail_live_sessions(db, session_ids, now)
                    await db.commit()
            result.cleaned = len(session_ids)
        except SQLAlchemyError as exc:
            log_exception_with_context(
                logger,
                "Expired session cleanup failed",
                exc,
                component=COMPONENT,
                operation="cleanup_expired_sessions",
            )
            result.errors.append(f"Expired session cleanup failed: {exc.__class__.__name__}")

        if result.cleaned:
            log_with_context(
                logger, logging.INFO, "Expired sessions cleaned", cleaned=result.cleaned
            )
        return result

    async def get_active_session_stats(self) -> ActiveSessionStats:
        """Counts and average age of active contexts."""
        with handle_errors(COMPONENT, "get_active_session_stats"):
            now = self._clock()
            async with self._session_factory() as db:
                rows = await user_context_crud.get_by_status(db, ContextStatus.ACTIVE)

            if not rows:
                return ActiveSessionStats()

            anonymous = sum(1 for row in rows if row.is_anonymous)
            durations = [(now - row.created_at).total_seconds() for row in rows]
            departments = sorted(
                {dept for row in rows for dept in (row.department_scope or [])}
            )
            return ActiveSessionStats(
                total_active_sessions=len(rows),
                authenticated_sessions=len(rows) - anonymous,
                anonymous_sessions=anonymous,
                average_session_duration_seconds=sum(durations) / len(durations),
                departments=departments,
            )

    async def health_check(self) -> StoreHealth:
        """
        Verify the database is reachable and the context tables exist.

        Never raises; failures are reported in the result.
        """
        try:
            async with self._session_factory() as db:
                conn = await db.connection()
                existing = await conn.run_sync(
                    lambda sync_conn: set(inspect(sync_conn).get_table_names())
                )
        except SQLAlchemyError as exc:
            log_exception_with_context(
                logger, "Context store health check failed", exc, component=COMPONENT
            )
            return StoreHealth(
                healthy=False,
                tables={name: False for name in TABLES},
                issues=[f"Database unreachable: {exc.__class__.__name__}"],
            )

        tables = {name: name in existing for name in TABLES}
        issues = [f"Missing table: {name}" for name, ok in tables.items() if not ok]
        return StoreHealth(healthy=not issues, tables=tables, issues=issues)
