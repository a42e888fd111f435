"""
Analysis session CRUD operations.

Dependencies: sqlalchemy, backend.boundary.db.models.analysis_session_model
System role: Analysis session persistence operations
"""

from datetime import datetime
from typing import Sequence

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.boundary.db.CRUD.base_crud import BaseCRUD
from backend.boundary.db.models.analysis_session_model import AnalysisSessionModel
from backend.models.context import SessionStatus

TERMINAL_STATUSES = [status for status in SessionStatus if status.is_terminal]


class AnalysisSessionCRUD(BaseCRUD[AnalysisSessionModel]):
    """CRUD operations for AnalysisSessionModel."""

    def __init__(self) -> None:
        """Initialize AnalysisSessionCRUD with AnalysisSessionModel."""
        super().__init__(AnalysisSessionModel)

    async def fail_live_sessions(
        self,
        session: AsyncSession,
        session_ids: Sequence[str],
        when: datetime,
    ) -> int:
        """
        Mark the non-terminal sessions among ``session_ids`` as failed.

        Returns:
            Number of sessions updated
        """
        if not session_ids:
            return 0
        stmt = (
            update(AnalysisSessionModel)
            .where(
                AnalysisSessionModel.session_id.in_(list(session_ids)),
                AnalysisSessionModel.status.not_in(TERMINAL_STATUSES),
            )
            .values(status=SessionStatus.FAILED, updated_at=when)
        )
        result = await session.execute(stmt)
        return result.rowcount


analysis_session_crud = AnalysisSessionCRUD()
