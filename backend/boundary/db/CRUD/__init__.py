"""
CRUD operations for database models.

Exports base CRUD class and model-specific CRUD implementations
with pre-instantiated singletons for direct use.

Usage:
    from backend.boundary.db.CRUD import user_context_crud

    row = await user_context_crud.get_by_session_id(db, session_id)
"""

from backend.boundary.db.CRUD.analysis_session_crud import (
    AnalysisSessionCRUD,
    analysis_session_crud,
)
from backend.boundary.db.CRUD.base_crud import BaseCRUD
from backend.boundary.db.CRUD.context_state_crud import (
    ContextStateCRUD,
    context_state_crud,
)
from backend.boundary.db.CRUD.user_context_crud import (
    UserContextCRUD,
    user_context_crud,
)

__all__ = [
    "BaseCRUD",
    "UserContextCRUD",
    "user_context_crud",
    "AnalysisSessionCRUD",
    "analysis_session_crud",
    "ContextStateCRUD",
    "context_state_crud",
]
