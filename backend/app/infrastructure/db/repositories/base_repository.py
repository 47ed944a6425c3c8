"""
Base Repository for CoachBridge

Generic async repository bound to one session.
Concrete repositories map ORM rows to pydantic domain entities and never
commit: the unit of work owns the transaction.
"""

from abc import ABC, abstractmethod
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Executable
from sqlmodel import SQLModel
from pydantic import BaseModel


# Type variables for generic repository
ModelType = TypeVar("ModelType", bound=SQLModel)
EntityType = TypeVar("EntityType", bound=BaseModel)


class BaseRepository(ABC, Generic[ModelType, EntityType]):
    """
    Generic async repository.

    Args:
        model: The SQLModel table class to operate on
        session: Async database session
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self._model = model
        self._session = session

    @property
    def session(self) -> AsyncSession:
        """Get the current session."""
        return self._session

    @property
    def columns(self) -> list:
        """All table columns, for ``RETURNING`` clauses."""
        return list(self._model.__table__.c)

    @abstractmethod
    def _to_domain(self, row: Any) -> EntityType:
        """Convert an ORM instance or result row to a domain entity."""

    async def _fetch_one(self, stmt: Executable) -> Optional[EntityType]:
        """Execute a statement returning at most one row."""
        result = await self._session.execute(stmt)
        row = result.first()
        if row is None:
            return None
        return self._to_domain(row)

    async def _fetch_all(self, stmt: Executable) -> List[EntityType]:
        """Execute a statement returning many rows."""
        result = await self._session.execute(stmt)
        return [self._to_domain(row) for row in result.all()]
