"""
User context CRUD operations.

Provides Create, Read, Update, Delete operations for UserContextModel
with status and expiry queries used by cleanup and statistics.

Dependencies: sqlalchemy, backend.boundary.db.models.user_context_model
System role: User context persistence operations
"""

from datetime import datetime
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.boundary.db.CRUD.base_crud import BaseCRUD
from backend.boundary.db.models.user_context_model import UserContextModel
from backend.models.context import ContextStatus


class UserContextCRUD(BaseCRUD[UserContextModel]):
    """
    CRUD operations for UserContextModel.

    Extends BaseCRUD with activity tracking and expiry queries.
    """

    def __init__(self) -> None:
        """Initialize UserContextCRUD with UserContextModel."""
        super().__init__(UserContextModel)

    async def get_by_status(
        self,
        session: AsyncSession,
        status: ContextStatus,
        limit: int | None = None,
    ) -> Sequence[UserContextModel]:
        """
        Retrieve contexts by lifecycle status.

        Args:
            session: Async database session
            status: Context status to filter by
            limit: Maximum number of contexts to return

        Returns:
            Sequence of UserContextModels with matching status
        """
        stmt = select(UserContextModel).where(UserContextModel.status == status)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await session.execute(stmt)
        return result.scalars().all()

    async def get_expired_active(
        self,
        session: AsyncSession,
        now: datetime,
    ) -> Sequence[UserContextModel]:
        """
        Retrieve active contexts whose token expiry is before ``now``.

        Args:
            session: Async database session
            now: Reference time

        Returns:
            Sequence of expired active UserContextModels
        """
        stmt = select(UserContextModel).where(
            UserContextModel.status == ContextStatus.ACTIVE,
            UserContextModel.token_expiry < now,
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def touch_activity(
        self,
        session: AsyncSession,
        session_id: str,
        when: datetime,
    ) -> bool:
        """
        Set last activity for a session's context.

        Returns:
            True if the context exists
        """
        return await self.update_by_session_id(
            session, session_id, last_activity=when, updated_at=when
        )

    async def update_status(
        self,
        session: AsyncSession,
        session_ids: Sequence[str],
        status: ContextStatus,
        when: datetime,
    ) -> int:
        """
        Set the status of several sessions' contexts.

        Returns:
            Number of contexts updated
        """
        return await self.update_many_by_session_ids(
            session, session_ids, status=status, updated_at=when
        )


user_context_crud = UserContextCRUD()
