"""
Analysis session ORM model.

Dependencies: sqlalchemy, backend.boundary.db.base, backend.models.context
System role: Durable analysis session storage (query history, domains)
"""

from datetime import datetime

from sqlalchemy import JSON, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from backend.boundary.db.base import Base, TimestampMixin, UTCDateTime, UUIDMixin
from backend.models.context import SessionStatus


class AnalysisSessionModel(Base, UUIDMixin, TimestampMixin):
    """
    Analysis session ORM model, one row per session.

    Attributes:
        id: UUID primary key (auto-generated)
        session_id: Session identifier (unique)
        user_id: Owning user ID
        start_time: Session start (UTC)
        last_query_time: Time of the latest recorded query (nullable)
        query_history: JSON list of query entries, oldest first, bounded
        context_state: JSON free-form working state
        domain_access: JSON list of domains touched, insertion ordered
        status: SessionStatus enum
    """

    __tablename__ = "analysis_sessions"

    session_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    start_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    last_query_time: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )
    query_history: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    context_state: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    domain_access: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[SessionStatus] = mapped_column(
        Enum(SessionStatus, native_enum=False),
        nullable=False,
        default=SessionStatus.INITIATED,
        index=True,
    )
