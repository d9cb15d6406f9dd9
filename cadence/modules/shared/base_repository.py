"""
Base Repository Pattern

Purpose
-------
Generic query helpers over SQLAlchemy 2.0 async sessions. A repository
builds and runs SELECTs for one model; the session, and with it the
transaction boundary, always comes from the caller (``DatabaseService``).

Design Notes
------------
- ``for_update`` adds ``SELECT ... FOR UPDATE``; dialects without row
  locks (SQLite) compile it away.
- ``refresh`` re-populates instances already in the identity map, for
  reads that follow a bulk ``UPDATE`` in the same session.
- No business rules live here.

Usage
-----
    class ProgressionStore(BaseRepository[ProgressionRecord]):
        async def _load(self, session, user_id):
            return await self.find_one_where(
                session, ProgressionRecord.user_id == user_id, refresh=True
            )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import Select, func, select

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Query helpers shared by every repository.

    Type Parameters:
        T: Mapped model class
    """

    def __init__(self, model_class: Type[T], logger: Logger) -> None:
        self.model_class = model_class
        self.log = logger

    @property
    def model_name(self) -> str:
        return self.model_class.__name__

    def _select(
        self,
        conditions: Sequence[ColumnElement[bool]],
        for_update: bool,
        refresh: bool,
    ) -> Select[Any]:
        stmt = select(self.model_class).where(*conditions)
        if for_update:
            stmt = stmt.with_for_update()
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        return stmt

    async def find_one_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        for_update: bool = False,
        refresh: bool = False,
    ) -> Optional[T]:
        """Return the single matching instance, or None."""
        result = await session.execute(self._select(conditions, for_update, refresh))
        return result.scalar_one_or_none()

    async def find_many_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        order_by: Optional[Sequence[Any]] = None,
        limit: Optional[int] = None,
        for_update: bool = False,
    ) -> List[T]:
        """
        Return matching instances.

        Args:
            session: Active session
            *conditions: WHERE clauses, AND-ed together
            order_by: ORDER BY clauses, applied in sequence
            limit: Maximum number of rows
            for_update: Lock the selected rows
        """
        stmt = self._select(conditions, for_update, refresh=False)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)

        instances = list((await session.execute(stmt)).scalars())

        self.log.debug(
            "Repository query",
            extra={
                "model": self.model_name,
                "rows": len(instances),
                "row_limit": limit,
                "locked": for_update,
            },
        )
        return instances

    async def count(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(self.model_class).where(*conditions)
        return int((await session.execute(stmt)).scalar_one())

    def add(self, session: AsyncSession, instance: T) -> T:
        """Stage a new instance; it is flushed with the caller's transaction."""
        session.add(instance)
        return instance
