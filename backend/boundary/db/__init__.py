"""
Database boundary layer: ORM models, CRUD operations, and connection management.

Exports:
  - Base, UUIDMixin, TimestampMixin, UTCDateTime: Model building blocks
  - get_async_engine(), get_async_session_factory(), dispose_engine(): Async connection management
  - UserContextModel, AnalysisSessionModel, ContextStateModel: Session entities
  - user_context_crud, analysis_session_crud, context_state_crud: CRUD operation singletons

Dependencies: sqlalchemy, backend.configs
System role: Database adapter providing persistent storage for user contexts,
analysis sessions, and recoverable context states.
"""

from backend.boundary.db.base import Base, TimestampMixin, UTCDateTime, UUIDMixin
from backend.boundary.db.connection import (
    dispose_engine,
    get_async_engine,
    get_async_session_factory,
)
from backend.boundary.db.models import (
    AnalysisSessionModel,
    ContextStateModel,
    UserContextModel,
)
from backend.boundary.db.CRUD import (
    AnalysisSessionCRUD,
    BaseCRUD,
    ContextStateCRUD,
    UserContextCRUD,
    analysis_session_crud,
    context_state_crud,
    user_context_crud,
)

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    "UTCDateTime",
    "UUIDMixin",
    # Connection
    "dispose_engine",
    "get_async_engine",
    "get_async_session_factory",
    # Models
    "UserContextModel",
    "AnalysisSessionModel",
    "ContextStateModel",
    # CRUD classes
    "BaseCRUD",
    "UserContextCRUD",
    "AnalysisSessionCRUD",
    "ContextStateCRUD",
    # CRUD singletons
    "user_context_crud",
    "analysis_session_crud",
    "context_state_crud",
]
