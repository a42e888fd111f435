"""
BI session manager.

Owns the in-memory registry of running sessions and drives their lifecycle:
creation, initialization from storage, state updates, query recording,
timeouts, health checks, corruption recovery and periodic maintenance. The
context store is the durable mirror; the registry is the authoritative view
of a running session inside this process.

Dependencies: backend.core.context_store, backend.core.token_refresh,
backend.core.scheduler, backend.configs, backend.observability
System role: Session/context lifecycle orchestrator
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from backend.configs.session import SessionSettings
from backend.core.context_store import ContextStore, merge_domains
from backend.core.error_handling import handle_errors
from backend.core.exceptions import (
    BIContextException,
    ContextStoreError,
    RecoveryLimitExceededError,
    SessionNotFoundError,
    ValidationError,
)
from backend.core.scheduler import AsyncioScheduler, Scheduler, TimerHandle
from backend.core.token_refresh import TokenRefreshService
from backend.models.context import (
    AnalysisSession,
    AnonymousContext,
    ContextRecoveryData,
    ContextState,
    ContextStateSnapshot,
    ContextStatus,
    DomainType,
    QueryHistoryEntry,
    SessionStatus,
    UserContext,
    default_user_preferences,
)
from backend.models.session import (
    MaintenanceResult,
    QueryMetadata,
    SessionAnalytics,
    SessionCreationOptions,
    SessionHealth,
    SessionRecoveryOptions,
    SessionStats,
    SessionWithContext,
)
from backend.observability.log_utils import log_exception_with_context, log_with_context
from backend.observability.logger import get_logger

logger = get_logger(__name__)

COMPONENT = "session-manager"

# Reported as last activity when no context is available
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_DOMAIN_VALUES = {domain.value for domain in DomainType}


@dataclass
class ActiveSession:
    """Registry entry for one running session."""

    session: AnalysisSession
    context: UserContext
    last_health_check: datetime
    recovery_attempts: int = 0


class BISessionManager:
    """
    Session lifecycle manager for one process.

    Each instance owns its registry and timers; instances share nothing but
    the context store, and no cross-instance locking is performed.

    Attributes:
        settings: Session lifecycle settings in force
    """

    def __init__(
        self,
        context_store: ContextStore,
        token_refresh_service: TokenRefreshService,
        scheduler: Scheduler | None = None,
        settings: SessionSettings | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        """
        Initialize the manager.

        Args:
            context_store: Durable store for contexts, sessions and states
            token_refresh_service: Refresh scheduler for authenticated sessions
            scheduler: Clock/timer source (defaults to the asyncio scheduler)
            settings: Lifecycle settings (defaults from environment)
            id_factory: Session ID generator (defaults to UUID4 strings)
        """
        self._store = context_store
        self._token_refresh = token_refresh_service
        self._scheduler = scheduler or AsyncioScheduler()
        self.settings = settings or SessionSettings()
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))

        self._active: dict[str, ActiveSession] = {}
        self._timeouts: dict[str, TimerHandle] = {}
        self._maintenance: TimerHandle | None = None

    def _now(self) -> datetime:
        return self._scheduler.now()

    # ------------------------------------------------------------------
    # Registry and timers
    # ------------------------------------------------------------------

    def _register(
        self,
        session: AnalysisSession,
        context: UserContext,
        recovery_attempts: int = 0,
    ) -> None:
        session_id = session.session_id
        self._active[session_id] = ActiveSession(
            session=session,
            context=context,
            last_health_check=self._now(),
            recovery_attempts=recovery_attempts,
        )
        self._schedule_timeout(session_id, context)
        if context.is_anonymous:
            self._token_refresh.clear_refresh(session_id)
        else:
            self._token_refresh.schedule_refresh(session_id, context)

    def _schedule_timeout(self, session_id: str, context: UserContext) -> None:
        self._cancel_timeout(session_id)
        delay = (context.token_expiry - self._now()).total_seconds()
        if delay <= 0:
            return

        async def _expire() -> None:
            self._timeouts.pop(session_id, None)
            await self.terminate_session(session_id, reason="timeout")

        self._timeouts[session_id] = self._scheduler.call_later(
            delay, _expire, name=f"session-timeout:{session_id}"
        )

    def _cancel_timeout(self, session_id: str) -> None:
        timer = self._timeouts.pop(session_id, None)
        if timer is not None:
            timer.cancel()

    # ------------------------------------------------------------------
    # Creation and initialization
    # ------------------------------------------------------------------

    async def create_session(
        self, options: SessionCreationOptions | None = None
    ) -> SessionWithContext:
        """
        Create, persist and register a new session.

        Without a supplied context an anonymous one is synthesized whose
        token expiry is ``now + custom_timeout`` (default session TTL).

        Args:
            options: Creation options

        Returns:
            SessionWithContext: The new session (status ``initiated``) and its context

        Raises:
            ContextStoreError: If persisting the session fails
        """
        return await self._create_session(
            options or SessionCreationOptions(), self._id_factory()
        )

    async def _create_session(
        self, options: SessionCreationOptions, session_id: str
    ) -> SessionWithContext:
        with handle_errors(COMPONENT, "create_session", session_id):
            now = self._now()
            if options.user_context is None:
                timeout = options.custom_timeout or self.settings.default_timeout_seconds
                context: UserContext = AnonymousContext(
                    session_id=session_id,
                    preferences=default_user_preferences(),
                    last_activity=now,
                    token_expiry=now + timedelta(seconds=timeout),
                    created_at=now,
                    updated_at=now,
                )
            else:
                # The store keys contexts by session, so the context follows the new ID
                context = options.user_context.model_copy(
                    update={"session_id": session_id, "last_activity": now, "updated_at": now}
                )

            if options.initial_state is not None:
                context_state = dict(options.initial_state)
            else:
                context_state = {
                    "initialized": True,
                    "domains": [domain.value for domain in options.domains],
                    "preferences": (
                        context.preferences.model_dump(mode="json")
                        if context.preferences
                        else None
                    ),
                }

            session = AnalysisSession(
                session_id=session_id,
                user_id=context.user_id,
                start_time=now,
                context_state=context_state,
                domain_access=merge_domains([], options.domains),
                status=SessionStatus.INITIATED,
                created_at=now,
                updated_at=now,
            )

            await self._store.store_user_context(context)
            await self._store.store_analysis_session(session)

            if options.enable_recovery:
                await self._store.store_context_state(
                    ContextState(
                        session_id=session_id,
                        state_data=context_state,
                        history_stack=[
                            ContextStateSnapshot(
                                timestamp=now, state=context_state, context_valid=True
                            )
                        ],
                        last_update=now,
                        created_at=now,
                        updated_at=now,
                    ),
                    replace=True,
                )

            self._register(session, context)

        log_with_context(
            logger,
            logging.INFO,
            "Created new session",
            session_id=session_id,
            user_id=context.user_id,
            is_anonymous=context.is_anonymous,
            enable_recovery=options.enable_recovery,
        )
        return SessionWithContext(session=session, context=context)

    async def initialize_session(
        self,
        session_id: str,
        recovery_options: SessionRecoveryOptions | None = None,
    ) -> SessionWithContext | None:
        """
        Load a stored session into this process.

        Sessions whose context is not active, or whose status is failed,
        go through ``recover_session`` first unless history reconstruction
        is disabled.

        Args:
            session_id: Session to load
            recovery_options: Fallback/reconstruction behaviour

        Returns:
            SessionWithContext | None: The registered pair, or None when the
            session is not stored and anonymous fallback is off

        Raises:
            ContextStoreError: If loading from the store fails
        """
        options = recovery_options or SessionRecoveryOptions()

        with handle_errors(COMPONENT, "initialize_session", session_id):
            session = await self._store.get_analysis_session(session_id)
            context = await self._store.get_user_context(session_id)

        if session is None or context is None:
            if options.fallback_to_anonymous:
                log_with_context(
                    logger,
                    logging.WARNING,
                    "Session not found, creating anonymous fallback",
                    session_id=session_id,
                )
                return await self._create_session(SessionCreationOptions(), session_id)
            return None

        needs_recovery = (
            context.status != ContextStatus.ACTIVE or session.status == SessionStatus.FAILED
        )
        if needs_recovery and options.reconstruct_from_history:
            recovered = await self.recover_session(session_id, options)
            if recovered is not None:
                return recovered

        existing = self._active.get(session_id)
        self._register(
            session,
            context,
            recovery_attempts=existing.recovery_attempts if existing else 0,
        )
        log_with_context(
            logger,
            logging.INFO,
            "Initialized existing session",
            session_id=session_id,
            user_id=context.user_id,
            status=session.status,
            needs_recovery=needs_recovery,
        )
        return SessionWithContext(session=session, context=context)

    # ------------------------------------------------------------------
    # State and queries
    # ------------------------------------------------------------------

    async def update_session_state(
        self,
        session_id: str,
        state_update: dict[str, Any],
        create_snapshot: bool = True,
    ) -> AnalysisSession:
        """
        Shallow-merge a partial update into a registered session's state.

        Args:
            session_id: Registered session
            state_update: Keys to overwrite in ``context_state``
            create_snapshot: Also append a snapshot to the context-state lineage

        Returns:
            AnalysisSession: The updated session (status ``active``)

        Raises:
            SessionNotFoundError: If the session is not registered in this process
            ContextStoreError: If persisting fails
        """
        with handle_errors(COMPONENT, "update_session_state", session_id):
            entry = self._active.get(session_id)
            if entry is None:
                raise SessionNotFoundError(session_id)

            now = self._now()
            updated = entry.session.model_copy(
                update={
                    "context_state": {**entry.session.context_state, **state_update},
                    "status": SessionStatus.ACTIVE,
                    "updated_at": now,
                }
            )
            await self._store.store_analysis_session(updated)

            if create_snapshot:
                # Empty history: the store appends the snapshot to the lineage
                await self._store.store_context_state(
                    ContextState(
                        session_id=session_id,
                        state_data=updated.context_state,
                        history_stack=[],
                        last_update=now,
                        created_at=now,
                        updated_at=now,
                    )
                )

            entry.session = updated

        log_with_context(
            logger,
            logging.DEBUG,
            "Updated session state",
            session_id=session_id,
            state_keys=sorted(state_update),
            create_snapshot=create_snapshot,
        )
        return updated

    async def add_query_to_session(
        self,
        session_id: str,
        query: str,
        response: str | None = None,
        metadata: QueryMetadata | None = None,
    ) -> QueryHistoryEntry:
        """
        Record a query on a session.

        The durable history append must succeed; durable domain-access
        bookkeeping failures are only logged.

        Args:
            session_id: Target session
            query: Query text
            response: Optional response text
            metadata: Optional domains/timing/result count

        Returns:
            QueryHistoryEntry: The recorded entry

        Raises:
            ValidationError: If the query is blank
            SessionNotFoundError: If the session is not stored
            ContextStoreError: If the history append or activity update fails
        """
        metadata = metadata or QueryMetadata()

        with handle_errors(COMPONENT, "add_query_to_session", session_id):
            if not query.strip():
                raise ValidationError("Query must not be empty", field="query")
            entry = await self._store.add_query_to_history(
                session_id, query, response, metadata
            )

            active = self._active.get(session_id)
            if active is not None:
                history = [*active.session.query_history, entry]
                active.session = active.session.model_copy(
                    update={
                        "last_query_time": entry.timestamp,
                        "query_history": history[-self.settings.max_query_history:],
                        "domain_access": merge_domains(
                            active.session.domain_access, metadata.domains
                        ),
                        "updated_at": entry.timestamp,
                    }
                )

            if metadata.domains:
                try:
                    await self._store.update_domain_access(session_id, metadata.domains)
                except BIContextException as exc:
                    log_with_context(
                        logger,
                        logging.WARNING,
                        "Domain access bookkeeping failed",
                        session_id=session_id,
                        error_type=type(exc).__name__,
                    )

            await self._store.update_context_activity(session_id)
            active = self._active.get(session_id)
            if active is not None:
                active.context = active.context.model_copy(
                    update={"last_activity": self._now()}
                )

        log_with_context(
            logger,
            logging.DEBUG,
            "Added query to session history",
            session_id=session_id,
            query_length=len(query),
            domains=metadata.domains,
        )
        return entry

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    async def recover_session(
        self,
        session_id: str,
        options: SessionRecoveryOptions | None = None,
    ) -> SessionWithContext | None:
        """
        Recover a corrupted or failed session.

        Marks the stored lineage corrupted, then tries to rebuild the session
        from the last valid snapshot; if that yields nothing and
        ``fallback_to_anonymous`` is set, starts a fresh anonymous session
        under the same ID. Each attempt counts toward the session's
        recovery ceiling.

        Args:
            session_id: Session to recover (registered or not)
            options: Fallback/reconstruction/ceiling options

        Returns:
            SessionWithContext | None: The recovered pair, or None on failure
            or when the attempt ceiling is reached
        """
        options = options or SessionRecoveryOptions()
        max_attempts = options.max_recovery_attempts or self.settings.max_recovery_attempts
        entry = self._active.get(session_id)
        prior_attempts = entry.recovery_attempts if entry else 0

        try:
            if prior_attempts >= max_attempts:
                raise RecoveryLimitExceededError(session_id, prior_attempts, max_attempts)
            with handle_errors(COMPONENT, "recover_session", session_id):
                recovered = await self._attempt_recovery(session_id, options)
        except RecoveryLimitExceededError as exc:
            log_with_context(
                logger,
                logging.WARNING,
                "Max recovery attempts reached",
                session_id=session_id,
                attempts=exc.attempts,
                max_attempts=exc.max_attempts,
            )
            return None
        except ContextStoreError:
            recovered = None

        if recovered is None:
            current = self._active.get(session_id)
            if current is not None:
                current.recovery_attempts = min(current.recovery_attempts + 1, max_attempts)
            log_with_context(
                logger, logging.WARNING, "Session recovery failed", session_id=session_id
            )
            return None

        self._register(
            recovered.session, recovered.context, recovery_attempts=prior_attempts + 1
        )
        log_with_context(
            logger,
            logging.INFO,
            "Session recovered",
            session_id=session_id,
            recovery_attempt=prior_attempts + 1,
            is_anonymous=recovered.context.is_anonymous,
        )
        return recovered

    async def _attempt_recovery(
        self, session_id: str, options: SessionRecoveryOptions
    ) -> SessionWithContext | None:
        # Flag first so other readers see the degraded state even if recovery fails
        await self._store.mark_context_corrupted(session_id)
        recovery = await self._store.get_context_recovery_data(session_id)

        recovered = None
        if (
            recovery is not None
            and recovery.last_valid_state is not None
            and options.reconstruct_from_history
        ):
            try:
                recovered = await self._reconstruct_from_history(session_id, recovery)
            except ContextStoreError:
                recovered = None
            except (TypeError, ValueError) as exc:
                # Malformed snapshot or stored row
                log_exception_with_context(
                    logger, "Session reconstruction failed", exc, session_id=session_id
                )
                recovered = None

        if recovered is None and options.fallback_to_anonymous:
            recovered = await self._create_session(SessionCreationOptions(), session_id)
            log_with_context(
                logger,
                logging.INFO,
                "Session recovered with anonymous fallback",
                session_id=session_id,
            )
        return recovered

    async def _reconstruct_from_history(
        self, session_id: str, recovery: ContextRecoveryData
    ) -> SessionWithContext | None:
        stored_context = await self._store.get_user_context(session_id)
        if stored_context is None:
            return None

        now = self._now()
        context = stored_context.model_copy(
            update={"status": ContextStatus.ACTIVE, "last_activity": now, "updated_at": now}
        )
        durable = await self._store.get_analysis_session(session_id)
        state = dict(recovery.last_valid_state or {})
        raw_domains = state.get("domains")
        snapshot_domains = (
            [
                domain
                for domain in raw_domains
                if isinstance(domain, str) and domain in _DOMAIN_VALUES
            ]
            if isinstance(raw_domains, list)
            else []
        )

        session = AnalysisSession(
            session_id=session_id,
            user_id=context.user_id,
            # Real start time is not part of a snapshot
            start_time=now - timedelta(seconds=self.settings.recovery_start_offset_seconds),
            last_query_time=durable.last_query_time if durable else None,
            query_history=durable.query_history if durable else [],
            context_state=state,
            domain_access=merge_domains(
                durable.domain_access if durable else [], snapshot_domains
            ),
            status=SessionStatus.ACTIVE,
            created_at=now,
            updated_at=now,
        )

        await self._store.store_user_context(context)
        await self._store.store_analysis_session(session)
        await self._store.store_context_state(
            ContextState(
                session_id=session_id,
                state_data=state,
                history_stack=[
                    ContextStateSnapshot(timestamp=now, state=state, context_valid=True)
                ],
                reconstruction_data={
                    "recovered_at": now.isoformat(),
                    "recovered_from": (
                        recovery.last_valid_timestamp.isoformat()
                        if recovery.last_valid_timestamp
                        else None
                    ),
                    "missing_elements": recovery.missing_elements,
                },
                last_update=now,
                created_at=now,
                updated_at=now,
            ),
            replace=True,
        )

        log_with_context(
            logger, logging.INFO, "Session reconstructed from history", session_id=session_id
        )
        return SessionWithContext(session=session, context=context)

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    async def terminate_session(self, session_id: str, reason: str = "manual") -> None:
        """
        Terminate a registered session; a no-op for unknown sessions.

        Args:
            session_id: Session to terminate
            reason: Why (manual, timeout, expired, shutdown)

        Raises:
            ContextStoreError: If persisting the completed state fails
        """
        entry = self._active.pop(session_id, None)
        if entry is None:
            return

        self._cancel_timeout(session_id)
        self._token_refresh.clear_refresh(session_id)

        with handle_errors(COMPONENT, "terminate_session", session_id, reason=reason):
            now = self._now()
            await self._store.store_analysis_session(
                entry.session.model_copy(
                    update={"status": SessionStatus.COMPLETED, "updated_at": now}
                )
            )
            await self._store.store_user_context(
                entry.context.model_copy(
                    update={"status": ContextStatus.COMPLETED, "updated_at": now}
                )
            )

        log_with_context(
            logger,
            logging.INFO,
            "Session terminated",
            session_id=session_id,
            reason=reason,
            duration_seconds=round((now - entry.session.start_time).total_seconds(), 1),
        )

    # ------------------------------------------------------------------
    # Health and maintenance
    # ------------------------------------------------------------------

    async def check_session_health(self, session_id: str) -> SessionHealth:
        """
        Report on a registered session's validity.

        Only context validity, token validity and corruption decide
        ``healthy``; inactivity is reported as an advisory issue. Never
        raises: internal failures yield a pessimistic report.

        Args:
            session_id: Session to inspect

        Returns:
            SessionHealth: Health report
        """
        try:
            return await self._check_session_health(session_id)
        except Exception as exc:
            log_exception_with_context(
                logger,
                "Health check failed",
                exc,
                component=COMPONENT,
                operation="check_session_health",
                session_id=session_id,
            )
            return SessionHealth(
                session_id=session_id,
                healthy=False,
                context_valid=False,
                token_valid=False,
                last_activity=_EPOCH,
                issues=["Health check failed"],
                recommendations=["Check session manager status"],
            )

    async def _check_session_health(self, session_id: str) -> SessionHealth:
        entry = self._active.get(session_id)
        if entry is None:
            return SessionHealth(
                session_id=session_id,
                healthy=False,
                context_valid=False,
                token_valid=False,
                last_activity=_EPOCH,
                issues=["Session not found in active sessions"],
                recommendations=["Initialize session or create new session"],
            )

        context = entry.context
        now = self._now()
        issues: list[str] = []
        recommendations: list[str] = []

        context_valid = context.status == ContextStatus.ACTIVE and not context.is_expired(now)
        if not context_valid:
            issues.append("Context is expired or inactive")
            recommendations.append("Refresh token or recreate session")

        token_valid = True
        if not context.is_anonymous:
            remaining = (context.token_expiry - now).total_seconds()
            if remaining < self.settings.refresh_threshold_seconds:
                token_valid = False
                issues.append("Token is expired or near expiry")
                recommendations.append("Refresh JWT token")

        inactive_for = (now - context.last_activity).total_seconds()
        if inactive_for > self.settings.inactivity_threshold_seconds:
            issues.append("Session has been inactive for over 1 hour")
            recommendations.append("Consider session cleanup or user re-engagement")

        state = await self._store.get_context_state(session_id)
        corrupted = bool(state and state.is_corrupted)
        if corrupted:
            issues.append("Context state is marked as corrupted")
            recommendations.append("Attempt session recovery")

        current = self._active.get(session_id)
        if current is not None:
            current.last_health_check = now

        return SessionHealth(
            session_id=session_id,
            healthy=context_valid and token_valid and not corrupted,
            context_valid=context_valid,
            token_valid=token_valid,
            context_corrupted=corrupted,
            last_activity=context.last_activity,
            issues=issues,
            recommendations=recommendations,
        )

    async def perform_maintenance_cleanup(self) -> MaintenanceResult:
        """
        Sweep the registry once, then the durable store.

        Expired sessions are terminated; corrupted ones are recovered with
        anonymous fallback. Per-session failures are collected, never raised.

        Returns:
            MaintenanceResult: Cleaned/recovered counts and collected errors
        """
        result = MaintenanceResult()

        for session_id, entry in list(self._active.items()):
            if session_id not in self._active:
                continue
            try:
                if entry.context.is_expired(self._now()):
                    await self.terminate_session(session_id, reason="expired")
                    result.cleaned += 1
                    continue

                health = await self.check_session_health(session_id)
                if not health.healthy and health.context_corrupted:
                    recovered = await self.recover_session(
                        session_id,
                        SessionRecoveryOptions(
                            fallback_to_anonymous=True, reconstruct_from_history=True
                        ),
                    )
                    if recovered is not None:
                        result.recovered += 1
            except Exception as exc:
                log_exception_with_context(
                    logger,
                    "Maintenance failed for session",
                    exc,
                    component=COMPONENT,
                    session_id=session_id,
                )
                result.errors.append(f"Session {session_id}: {exc}")

        store_cleanup = await self._store.cleanup_expired_sessions()
        result.cleaned += store_cleanup.cleaned
        result.errors.extend(store_cleanup.errors)

        log_with_context(
            logger,
            logging.INFO,
            "Maintenance cleanup completed",
            cleaned=result.cleaned,
            recovered=result.recovered,
            error_count=len(result.errors),
        )
        return result

    # ------------------------------------------------------------------
    # Queries over the registry
    # ------------------------------------------------------------------

    async def get_session_analytics(self, session_id: str) -> SessionAnalytics | None:
        """
        Usage summary of a session, from the registry or else from storage.

        Returns:
            SessionAnalytics | None: None if the session is neither registered nor stored
        """
        now = self._now()
        entry = self._active.get(session_id)
        if entry is not None:
            session, context = entry.session, entry.context
            recovery_attempts: int | None = entry.recovery_attempts
        else:
            with handle_errors(COMPONENT, "get_session_analytics", session_id):
                session = await self._store.get_analysis_session(session_id)
                context = await self._store.get_user_context(session_id)
            if session is None or context is None:
                return None
            recovery_attempts = None

        return SessionAnalytics(
            session_id=session_id,
            user_id=context.user_id,
            duration_seconds=(now - session.start_time).total_seconds(),
            query_count=len(session.query_history),
            domains_accessed=session.domain_access,
            last_activity=context.last_activity,
            is_anonymous=context.is_anonymous,
            status=session.status,
            recovery_attempts=recovery_attempts,
        )

    def get_session_stats(self) -> SessionStats:
        entries = list(self._active.values())
        anonymous = sum(1 for entry in entries if entry.context.is_anonymous)
        return SessionStats(
            active=sum(1 for entry in entries if entry.session.status == SessionStatus.ACTIVE),
            total=len(entries),
            authenticated=len(entries) - anonymous,
            anonymous=anonymous,
        )

    def get_active_sessions(self) -> list[str]:
        return list(self._active)

    def get_session(self, session_id: str) -> SessionWithContext | None:
        entry = self._active.get(session_id)
        if entry is None:
            return None
        return SessionWithContext(session=entry.session, context=entry.context)

    def get_recovery_attempts(self, session_id: str) -> int | None:
        entry = self._active.get(session_id)
        return entry.recovery_attempts if entry else None

    # ------------------------------------------------------------------
    # Process lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Arm the periodic maintenance sweep (idempotent)."""
        if not self.settings.enable_maintenance or self._maintenance is not None:
            return
        self._maintenance = self._scheduler.call_every(
            self.settings.maintenance_interval_seconds,
            self._run_maintenance,
            name="session-maintenance",
        )
        log_with_context(
            logger,
            logging.INFO,
            "Session maintenance started",
            interval_seconds=self.settings.maintenance_interval_seconds,
        )

    async def _run_maintenance(self) -> None:
        await self.perform_maintenance_cleanup()

    async def shutdown(self) -> None:
        """
        Stop all timers and terminate every registered session.

        Each termination is bounded by ``shutdown_task_timeout_seconds``;
        failures are logged and do not stop the others.
        """
        if self._maintenance is not None:
            self._maintenance.cancel()
            self._maintenance = None

        for timer in self._timeouts.values():
            timer.cancel()
        self._timeouts.clear()
        self._token_refresh.clear_all_refresh()

        session_ids = list(self._active)
        outcomes = await asyncio.gather(
            *(
                asyncio.wait_for(
                    self.terminate_session(session_id, reason="shutdown"),
                    timeout=self.settings.shutdown_task_timeout_seconds,
                )
                for session_id in session_ids
            ),
            return_exceptions=True,
        )
        for session_id, outcome in zip(session_ids, outcomes):
            if isinstance(outcome, BaseException):
                log_exception_with_context(
                    logger,
                    "Session termination failed during shutdown",
                    outcome,
                    component=COMPONENT,
                    session_id=session_id,
                )
        self._active.clear()

        log_with_context(
            logger,
            logging.INFO,
            "Session manager shutdown completed",
            terminated_sessions=len(session_ids),
        )
