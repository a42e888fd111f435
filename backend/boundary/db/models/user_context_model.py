"""
User context ORM model.

Persists the access envelope (identity, permission matrix, token expiry)
of every session, authenticated or anonymous.

Dependencies: sqlalchemy, backend.boundary.db.base, backend.models.context
System role: Durable user/anonymous context storage
"""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Enum, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from backend.boundary.db.base import Base, TimestampMixin, UTCDateTime, UUIDMixin
from backend.models.context import ContextStatus


class UserContextModel(Base, UUIDMixin, TimestampMixin):
    """
    User context ORM model, one row per session.

    Attributes:
        id: UUID primary key (auto-generated)
        session_id: Owning session (unique)
        user_id: Authenticated user ID or "anonymous"
        role_id: Role identifier
        department_scope: JSON list of department names
        permissions: JSON permission matrix keyed by domain wire value
        preferences: JSON presentation preferences (nullable)
        last_activity: Last use of the session (UTC)
        token_expiry: Token expiry or anonymous session TTL (UTC)
        is_anonymous: Anonymous flag
        status: ContextStatus enum
    """

    __tablename__ = "user_contexts"
    __table_args__ = (
        Index("user_contexts_role_anonymous_idx", "role_id", "is_anonymous"),
    )

    session_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    role_id: Mapped[str] = mapped_column(String(255), nullable=False)
    department_scope: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    permissions: Mapped[dict] = mapped_column(JSON, nullable=False)
    preferences: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    last_activity: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, index=True
    )
    token_expiry: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    is_anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[ContextStatus] = mapped_column(
        Enum(ContextStatus, native_enum=False),
        nullable=False,
        default=ContextStatus.ACTIVE,
        index=True,
    )
