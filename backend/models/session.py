"""
Session domain models and schemas.

Options, reports and request/response schemas for session operations.

Dependencies: pydantic, backend.models.context
System role: Session manager and API contracts
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from backend.models.context import (
    AnalysisSession,
    DomainType,
    SessionStatus,
    UserContext,
)


class SessionCreationOptions(BaseModel):
    """Inputs accepted by ``create_session``."""

    user_context: UserContext | None = None
    initial_state: dict[str, Any] | None = None
    domains: list[DomainType] = Field(default_factory=list)
    enable_recovery: bool = True
    custom_timeout: float | None = Field(
        default=None, gt=0, description="Session TTL override in seconds"
    )


class SessionRecoveryOptions(BaseModel):
    """Inputs accepted by ``initialize_session`` and ``recover_session``."""

    fallback_to_anonymous: bool = False
    reconstruct_from_history: bool = True
    max_recovery_attempts: int | None = Field(default=None, ge=1)


class QueryMetadata(BaseModel):
    """Optional bookkeeping attached to a recorded query."""

    domains: list[DomainType] = Field(default_factory=list)
    execution_time: float | None = None
    result_count: int | None = None


class SessionWithContext(BaseModel):
    """A session paired with the context it runs under."""

    session: AnalysisSession
    context: UserContext


class SessionHealth(BaseModel):
    """Health report for one registered session."""

    session_id: str
    healthy: bool
    context_valid: bool
    token_valid: bool
    context_corrupted: bool = False
    last_activity: datetime
    issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class SessionAnalytics(BaseModel):
    """Usage summary of one session."""

    session_id: str
    user_id: str
    duration_seconds: float
    query_count: int
    domains_accessed: list[DomainType]
    last_activity: datetime
    is_anonymous: bool
    status: SessionStatus
    recovery_attempts: int | None = None


class SessionStats(BaseModel):
    """Counts over the in-memory registry."""

    active: int = 0
    total: int = 0
    authenticated: int = 0
    anonymous: int = 0


class StoreCleanupResult(BaseModel):
    """Outcome of the durable expired-session sweep."""

    cleaned: int = 0
    errors: list[str] = Field(default_factory=list)


class MaintenanceResult(BaseModel):
    """Outcome of one maintenance sweep."""

    cleaned: int = 0
    recovered: int = 0
    errors: list[str] = Field(default_factory=list)


class ActiveSessionStats(BaseModel):
    """Durable statistics over active contexts."""

    total_active_sessions: int = 0
    authenticated_sessions: int = 0
    anonymous_sessions: int = 0
    average_session_duration_seconds: float = 0.0
    departments: list[str] = Field(default_factory=list)


class StoreHealth(BaseModel):
    """Context store health check result."""

    healthy: bool
    tables: dict[str, bool] = Field(default_factory=dict)
    issues: list[str] = Field(default_factory=list)


class CreateSessionRequest(BaseModel):
    """Request schema for creating a new session."""

    user_context: UserContext | None = None
    initial_state: dict[str, Any] | None = None
    domains: list[DomainType] = Field(default_factory=list)
    enable_recovery: bool = True
    custom_timeout: float | None = Field(default=None, gt=0)


class UpdateSessionStateRequest(BaseModel):
    """Request schema for a partial context-state update."""

    state_update: dict[str, Any]
    create_snapshot: bool = True


class AddQueryRequest(BaseModel):
    """Request schema for recording a query on a session."""

    query: str = Field(min_length=1)
    response: str | None = None
    metadata: QueryMetadata | None = None


class PermissionCheckRequest(BaseModel):
    """Request schema for a domain permission check."""

    domain: DomainType
    action: str = Field(pattern="^(read|query|export)$")
    department: str | None = None


class PermissionCheckResponse(BaseModel):
    """Response schema for a domain permission check."""

    session_id: str
    domain: DomainType
    action: str
    allowed: bool


class ActiveSessionsResponse(BaseModel):
    """Response schema listing registered session IDs."""

    session_ids: list[str]
    total: int
