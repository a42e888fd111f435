"""
Context domain models.

User/anonymous contexts, analysis sessions and context-state snapshots
shared by the session manager, the context store and the API layer.

Dependencies: pydantic
System role: Session/context domain contracts
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

ANONYMOUS_USER_ID = "anonymous"
ANONYMOUS_ROLE_ID = "anonymous"


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class ContextStatus(str, enum.Enum):
    """
    Lifecycle states of a user/anonymous context.

    ACTIVE: Usable context
    PAUSED: Temporarily suspended
    COMPLETED: Terminated normally
    FAILED: Expired or unrecoverable
    DEGRADED: Usable with reduced guarantees
    """

    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    DEGRADED = "degraded"


class SessionStatus(str, enum.Enum):
    """
    Lifecycle states of an analysis session.

    COMPLETED and FAILED are terminal.
    """

    INITIATED = "initiated"
    ACTIVE = "active"
    WAITING = "waiting"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.FAILED)


class DomainType(str, enum.Enum):
    """Business areas that permissions and data access are scoped to."""

    CLINICAL = "clinical"
    FINANCIAL = "financial"
    OPERATIONAL = "operational"
    CUSTOMER_SERVICE = "customer-service"


class DomainPermissions(BaseModel):
    """Read/query/export flags for one domain."""

    read: bool = False
    query: bool = False
    export: bool = False
    departments: list[str] | None = None


class PermissionMatrix(BaseModel):
    """Per-domain permissions; ``customer-service`` keeps its hyphen on the wire."""

    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)

    clinical: DomainPermissions = Field(default_factory=DomainPermissions)
    financial: DomainPermissions = Field(default_factory=DomainPermissions)
    operational: DomainPermissions = Field(default_factory=DomainPermissions)
    customer_service: DomainPermissions = Field(
        default_factory=DomainPermissions, alias="customer-service"
    )

    def for_domain(self, domain: DomainType | str) -> DomainPermissions:
        """Permissions for a domain given as enum or wire value."""
        domain = DomainType(domain)
        if domain is DomainType.CUSTOMER_SERVICE:
            return self.customer_service
        return getattr(self, domain.value)


def default_anonymous_permissions() -> PermissionMatrix:
    """Restricted matrix for anonymous sessions: read-only operational data."""
    return PermissionMatrix(
        clinical=DomainPermissions(read=False, query=False, export=False),
        financial=DomainPermissions(read=False, query=False, export=False),
        operational=DomainPermissions(read=True, query=False, export=False),
        customer_service=DomainPermissions(read=True, query=False, export=False),
    )


class UserPreferences(BaseModel):
    """Presentation preferences attached to a context."""

    default_visualization: Literal["chart", "table", "graph"] | None = None
    timezone: str | None = None
    language: str | None = None
    theme: Literal["light", "dark", "auto"] | None = None


def default_user_preferences() -> UserPreferences:
    return UserPreferences(
        default_visualization="chart",
        timezone="UTC",
        language="en-US",
        theme="light",
    )


class UserContext(BaseModel):
    """
    Access envelope of one authenticated or anonymous actor for a session.

    Attributes:
        user_id: Authenticated user ID or ``"anonymous"``
        session_id: Session this context belongs to
        role_id: Role identifier
        department_scope: Departments the user may see (empty when anonymous)
        permissions: Per-domain permission matrix
        preferences: Optional presentation preferences
        last_activity: Last time the session was used
        token_expiry: Token expiry, or session TTL for anonymous contexts
        is_anonymous: Anonymous flag
        status: Lifecycle status
    """

    user_id: str
    session_id: str
    role_id: str
    department_scope: list[str] = Field(default_factory=list)
    permissions: PermissionMatrix
    preferences: UserPreferences | None = None
    last_activity: datetime = Field(default_factory=utc_now)
    token_expiry: datetime
    is_anonymous: bool = False
    status: ContextStatus = ContextStatus.ACTIVE
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _check_anonymous_scope(self) -> UserContext:
        if self.is_anonymous and self.department_scope:
            raise ValueError("anonymous contexts cannot carry a department scope")
        return self

    def is_expired(self, now: datetime) -> bool:
        """True once ``now`` is past the token expiry."""
        return now > self.token_expiry


class AnonymousContext(UserContext):
    """Context synthesized for sessions started without authentication."""

    user_id: str = ANONYMOUS_USER_ID
    role_id: str = ANONYMOUS_ROLE_ID
    permissions: PermissionMatrix = Field(default_factory=default_anonymous_permissions)
    is_anonymous: bool = True


class QueryHistoryEntry(BaseModel):
    """One query/response exchange recorded on a session."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=utc_now)
    query: str
    response: str | None = None
    domains: list[DomainType] = Field(default_factory=list)
    execution_time: float | None = None
    result_count: int | None = None
    context_valid: bool = True


class AnalysisSession(BaseModel):
    """
    One ongoing conversational/analytical session.

    ``query_history`` is bounded by the store; ``domain_access`` only grows.
    """

    session_id: str
    user_id: str
    start_time: datetime = Field(default_factory=utc_now)
    last_query_time: datetime | None = None
    query_history: list[QueryHistoryEntry] = Field(default_factory=list)
    context_state: dict[str, Any] = Field(default_factory=dict)
    domain_access: list[DomainType] = Field(default_factory=list)
    status: SessionStatus = SessionStatus.INITIATED
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ContextStateSnapshot(BaseModel):
    """Immutable entry of a context-state history stack."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utc_now)
    state: dict[str, Any] = Field(default_factory=dict)
    context_valid: bool = True
    checksum: str | None = None


class ContextState(BaseModel):
    """Recoverable snapshot lineage of one session."""

    state_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    session_id: str
    state_data: dict[str, Any] = Field(default_factory=dict)
    history_stack: list[ContextStateSnapshot] = Field(default_factory=list)
    reconstruction_data: dict[str, Any] | None = None
    last_update: datetime = Field(default_factory=utc_now)
    is_corrupted: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ContextRecoveryData(BaseModel):
    """What the store can offer to rebuild a corrupted session."""

    state_data: dict[str, Any] = Field(default_factory=dict)
    history_count: int = 0
    last_valid_state: dict[str, Any] | None = None
    last_valid_timestamp: datetime | None = None
    corruption_timestamp: datetime | None = None
    recoverable_elements: list[str] = Field(default_factory=list)
    missing_elements: list[str] = Field(default_factory=list)
