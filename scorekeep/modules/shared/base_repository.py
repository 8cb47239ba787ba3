"""
Base Repository Pattern

Purpose
-------
Provides a type-safe, generic repository abstraction for database operations
following SQLAlchemy 2.0 async patterns. Repositories encapsulate data access
and never manage transactions themselves: every method takes the session the
caller obtained from DatabaseService.

Design Notes
------------
This base repository provides:
- Point lookups and filtered finds
- Existence/counting utilities
- Batched deletes by primary key
- Full structured logging

Usage
-----
    class GameRecordRepository(BaseRepository[GameRecord]):
        async def find_by_player(self, session, player_id):
            return await self.find_many_where(
                session, GameRecord.player_id == player_id
            )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import delete, func, select

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Generic base repository for type-safe database operations.

    Type Parameters:
        T: The SQLAlchemy model class this repository manages
    """

    def __init__(self, model_class: Type[T], logger: Logger) -> None:
        self.model_class = model_class
        self.log = logger

    @property
    def model_name(self) -> str:
        return self.model_class.__name__

    async def find_one_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        for_update: bool = False,
    ) -> Optional[T]:
        """
        Find a single record matching conditions.

        Args:
            session: Database session
            *conditions: SQLAlchemy filter conditions
            for_update: If True, use SELECT FOR UPDATE

        Returns:
            Model instance or None if not found
        """
        stmt = select(self.model_class).where(*conditions)

        if for_update:
            stmt = stmt.with_for_update()

        result = await session.execute(stmt)
        instance = result.scalar_one_or_none()

        self.log.debug(
            f"Repository.find_one_where: {self.model_name}",
            extra={
                "model": self.model_name,
                "found": instance is not None,
                "locked": for_update,
            },
        )

        return instance

    async def find_many_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        order_by: Sequence[Any] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[T]:
        """
        Find multiple records matching conditions.

        Args:
            session: Database session
            *conditions: SQLAlchemy filter conditions
            order_by: Ordering clauses applied in sequence
            limit: Optional maximum number of results
            offset: Optional number of rows to skip

        Returns:
            List of model instances
        """
        stmt = select(self.model_class).where(*conditions)

        if order_by:
            stmt = stmt.order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)

        result = await session.execute(stmt)
        instances = list(result.scalars().all())

        self.log.debug(
            f"Repository.find_many_where: {self.model_name}",
            extra={
                "model": self.model_name,
                "count": len(instances),
                "limit": limit,
                "offset": offset,
            },
        )

        return instances

    async def count_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
    ) -> int:
        """
        Count records matching conditions (all rows when none given).

        Args:
            session: Database session
            *conditions: SQLAlchemy filter conditions

        Returns:
            Number of matching records
        """
        stmt = select(func.count()).select_from(self.model_class)
        if conditions:
            stmt = stmt.where(*conditions)

        result = await session.execute(stmt)
        count = int(result.scalar_one())

        self.log.debug(
            f"Repository.count_where: {self.model_name}",
            extra={"model": self.model_name, "count": count},
        )

        return count

    async def select_ids_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        order_by: Sequence[Any] = (),
        limit: Optional[int] = None,
    ) -> List[int]:
        """Primary keys of matching rows, optionally ordered and limited."""
        stmt = select(self.model_class.id).where(*conditions)  # type: ignore[attr-defined]
        if order_by:
            stmt = stmt.order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await session.execute(stmt)
        return [int(row) for row in result.scalars().all()]

    async def delete_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
    ) -> int:
        """
        Bulk DELETE matching rows inside the caller's transaction.

        Returns:
            Number of rows deleted
        """
        stmt = delete(self.model_class).where(*conditions)
        result = await session.execute(stmt)
        deleted = int(result.rowcount or 0)

        self.log.debug(
            f"Repository.delete_where: {self.model_name}",
            extra={"model": self.model_name, "deleted": deleted},
        )

        return deleted

    async def delete_ids(self, session: AsyncSession, ids: Sequence[int]) -> int:
        """Bulk DELETE by primary key; no-op for an empty batch."""
        if not ids:
            return 0
        return await self.delete_where(
            session,
            self.model_class.id.in_(list(ids)),  # type: ignore[attr-defined]
        )
