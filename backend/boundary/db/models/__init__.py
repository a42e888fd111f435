"""
Database models package.

Exports:
  - UserContextModel: Per-session user/anonymous context
  - AnalysisSessionModel: Per-session query history and domain access
  - ContextStateModel: Per-session snapshot lineage for recovery

Dependencies: sqlalchemy, backend.boundary.db.base
System role: Database model definitions for domain entities
"""

from backend.boundary.db.models.analysis_session_model import AnalysisSessionModel
from backend.boundary.db.models.context_state_model import ContextStateModel
from backend.boundary.db.models.user_context_model import UserContextModel

__all__ = [
    "UserContextModel",
    "AnalysisSessionModel",
    "ContextStateModel",
]
