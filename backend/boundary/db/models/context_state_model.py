"""
Context state ORM model.

Dependencies: sqlalchemy, backend.boundary.db.base
System role: Snapshot lineage used for session recovery
"""

from datetime import datetime

from sqlalchemy import JSON, Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from backend.boundary.db.base import Base, TimestampMixin, UTCDateTime, UUIDMixin


class ContextStateModel(Base, UUIDMixin, TimestampMixin):
    """
    Context state ORM model, one lineage per session.

    Attributes:
        id: UUID primary key (auto-generated)
        state_id: Lineage identifier (unique)
        session_id: Owning session (unique)
        state_data: JSON current working state
        history_stack: JSON list of snapshots, oldest first, bounded
        reconstruction_data: JSON corruption/recovery bookkeeping (nullable)
        last_update: Time of the latest write (UTC)
        is_corrupted: Set by corruption marking, cleared only by a fresh lineage
    """

    __tablename__ = "context_states"

    state_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    session_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    state_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    history_stack: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    reconstruction_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    last_update: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, index=True
    )
    is_corrupted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True
    )
