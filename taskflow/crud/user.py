"""User CRUD operations."""
from typing import Dict, List, Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from taskflow.crud.base import CRUDBase
from taskflow.models.user import User
from taskflow.schemas.user import UserCreate
from taskflow.utils.security import get_password_hash


class CRUDUser(CRUDBase[User]):
    """CRUD operations for User."""

    async def get_by_email(self, db: AsyncSession, *, email: str) -> Optional[User]:
        """Get user by email."""
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    async def get_map(self, db: AsyncSession, *, ids: List[UUID]) -> Dict[UUID, User]:
        """Get users keyed by id; unknown ids are simply absent."""
        return {u.id: u for u in await self.get_many(db, ids=list(set(ids)))}

    async def list_users(self, db: AsyncSession, *, skip: int = 0, limit: int = 100) -> List[User]:
        """List users ordered by name."""
        result = await db.execute(select(User).order_by(User.name).offset(skip).limit(limit))
        return list(result.scalars().all())

    async def create(self, db: AsyncSession, *, obj_in: UserCreate) -> User:
        """Create a new user with a hashed password."""
        user_data = obj_in.model_dump(exclude={"password"}, mode="json")
        user_data["email"] = user_data["email"].lower()
        user_data["password_hash"] = get_password_hash(obj_in.password)
        db_obj = User(**user_data)
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj


user = CRUDUser(User)
