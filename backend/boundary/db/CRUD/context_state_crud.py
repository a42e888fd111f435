"""
Context state CRUD operations.

Dependencies: backend.boundary.db.models.context_state_model
System role: Context state persistence operations
"""

from backend.boundary.db.CRUD.base_crud import BaseCRUD
from backend.boundary.db.models.context_state_model import ContextStateModel


class ContextStateCRUD(BaseCRUD[ContextStateModel]):
    """CRUD operations for ContextStateModel."""

    def __init__(self) -> None:
        """Initialize ContextStateCRUD with ContextStateModel."""
        super().__init__(ContextStateModel)


context_state_crud = ContextStateCRUD()
