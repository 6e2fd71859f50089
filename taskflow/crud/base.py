"""Generic async CRUD helpers."""
from typing import Generic, List, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.database import Base

ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    """CRUD object with default read methods keyed by primary key."""

    def __init__(self, model: Type[ModelType]):
        self.model = model

    async def get(self, db: AsyncSession, *, id: UUID) -> Optional[ModelType]:
        """Get a single record by primary key."""
        return await db.get(self.model, id)

    async def get_many(self, db: AsyncSession, *, ids: List[UUID]) -> List[ModelType]:
        """Get every record whose primary key is in ids."""
        if not ids:
            return []
        result = await db.execute(select(self.model).where(self.model.id.in_(ids)))
        return list(result.scalars().all())
