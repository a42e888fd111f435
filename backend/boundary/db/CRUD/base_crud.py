"""
Base CRUD operations for SQLAlchemy models.

Provides generic create, lookup and update operations that can be
inherited and extended by model-specific CRUD classes. Every table in this
project is keyed by a unique ``session_id`` besides its UUID primary key,
so lookups and updates go through that key.

Dependencies: sqlalchemy
System role: Foundation for all database CRUD operations
"""

from typing import Generic, Sequence, TypeVar

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.boundary.db.base import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseCRUD(Generic[ModelT]):
    """
    Generic base class for CRUD operations.

    Type Parameters:
        ModelT: SQLAlchemy model class inheriting from Base

    Attributes:
        model: The SQLAlchemy model class to operate on
    """

    def __init__(self, model: type[ModelT]) -> None:
        """
        Initialize CRUD with target model.

        Args:
            model: SQLAlchemy model class for database operations
        """
        self.model = model

    async def create(self, session: AsyncSession, **kwargs) -> ModelT:
        """
        Create a new record in the database.

        Args:
            session: Async database session
            **kwargs: Model field values

        Returns:
            Created model instance with generated ID and timestamps
        """
        instance = self.model(**kwargs)
        session.add(instance)
        await session.flush()
        await session.refresh(instance)
        return instance

    async def get_by_session_id(
        self, session: AsyncSession, session_id: str
    ) -> ModelT | None:
        """
        Retrieve a single record by its session identifier.

        Args:
            session: Async database session
            session_id: Session identifier

        Returns:
            Model instance if found, None otherwise
        """
        stmt = select(self.model).where(self.model.session_id == session_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert_by_session_id(
        self,
        session: AsyncSession,
        session_id: str,
        **kwargs,
    ) -> ModelT:
        """
        Update the record for a session, creating it if absent.

        Args:
            session: Async database session
            session_id: Session identifier
            **kwargs: Field values to write

        Returns:
            Created or updated model instance
        """
        instance = await self.get_by_session_id(session, session_id)
        if instance is None:
            return await self.create(session, session_id=session_id, **kwargs)
        for field, value in kwargs.items():
            setattr(instance, field, value)
        await session.flush()
        return instance

    async def update_by_session_id(
        self,
        session: AsyncSession,
        session_id: str,
        **kwargs,
    ) -> bool:
        """
        Update fields of the record for a session.

        Args:
            session: Async database session
            session_id: Session identifier
            **kwargs: Fields to update with new values

        Returns:
            True if a record was updated, False if not found
        """
        stmt = (
            update(self.model)
            .where(self.model.session_id == session_id)
            .values(**kwargs)
        )
        result = await session.execute(stmt)
        return result.rowcount > 0

    async def update_many_by_session_ids(
        self,
        session: AsyncSession,
        session_ids: Sequence[str],
        **kwargs,
    ) -> int:
        """
        Update the same fields on several sessions' records.

        Returns:
            Number of records updated
        """
        if not session_ids:
            return 0
        stmt = (
            update(self.model)
            .where(self.model.session_id.in_(list(session_ids)))
            .values(**kwargs)
        )
        result = await session.execute(stmt)
        return result.rowcount

    async def exists(self, session: AsyncSession, session_id: str) -> bool:
        """
        Check if a record exists for a session.

        Args:
            session: Async database session
            session_id: Session identifier

        Returns:
            True if record exists, False otherwise
        """
        stmt = select(self.model.id).where(self.model.session_id == session_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None
