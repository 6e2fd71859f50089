"""User schemas."""
from typing import Optional
from uuid import UUID
from pydantic import EmailStr, Field
from datetime import datetime
from taskflow.core.security import UserRole
from taskflow.schemas.common import CamelModel


class UserBase(CamelModel):
    """Base user schema."""

    name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    department: Optional[str] = Field(default=None, min_length=2, max_length=50)


class UserCreate(UserBase):
    """User registration schema."""

    password: str = Field(min_length=6)
    role: UserRole = UserRole.TEAM_MEMBER


class UserSummary(CamelModel):
    """Compact user reference embedded in task payloads."""

    id: UUID
    name: str
    email: str
    department: Optional[str] = None


class UserResponse(UserSummary):
    """User response schema."""

    role: UserRole
    is_active: bool
    created_at: datetime
