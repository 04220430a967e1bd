"""
Repository abstract base class and generic implementation.
"""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar, Optional, List, Type, Any
from sqlmodel import SQLModel, select, func
from sqlmodel.ext.asyncio.session import AsyncSession

T = TypeVar("T", bound=SQLModel)


class IRepository(ABC, Generic[T]):
    """Repository interface; defines standard data access API."""

    @abstractmethod
    async def get_by_id(self, id: Any) -> Optional[T]:
        pass

    @abstractmethod
    async def create(self, entity: T) -> T:
        pass

    @abstractmethod
    async def update(self, entity: T) -> T:
        pass

    @abstractmethod
    async def delete(self, id: Any) -> bool:
        pass


class BaseRepository(IRepository[T]):
    """Generic repository implementation with SQLModel CRUD; subclasses add domain queries."""

    def __init__(self, session: AsyncSession, model: Type[T]):
        self.session = session
        self.model = model

    def _filtered(self, statement, filters: dict):
        for key, value in filters.items():
            if hasattr(self.model, key):
                statement = statement.where(getattr(self.model, key) == value)
        return statement

    async def get_by_id(self, id: Any) -> Optional[T]:
        statement = select(self.model).where(self.model.id == id)
        result = await self.session.exec(statement)
        return result.first()

    async def create(self, entity: T) -> T:
        self.session.add(entity)
        return entity

    async def create_many(self, entities: List[T]) -> List[T]:
        self.session.add_all(entities)
        return entities

    async def update(self, entity: T) -> T:
        """Update entity (SQLModel tracks changes)."""
        self.session.add(entity)
        return entity

    async def delete(self, id: Any) -> bool:
        entity = await self.get_by_id(id)
        if entity:
            await self.session.delete(entity)
            return True
        return False

    async def find_one(self, **filters) -> Optional[T]:
        """Find one entity by filters (e.g. email='a@b.c')."""
        result = await self.session.exec(self._filtered(select(self.model), filters))
        return result.first()

    async def find_all(self, **filters) -> List[T]:
        result = await self.session.exec(self._filtered(select(self.model), filters))
        return list(result.all())

    async def count(self, **filters) -> int:
        statement = self._filtered(select(func.count(self.model.id)), filters)
        result = await self.session.exec(statement)
        return result.one()
