"""User model."""
from sqlalchemy import Column, String, Boolean
import uuid
from taskflow.database import Base
from taskflow.db.types import GUID, UTCDateTime
from taskflow.core.security import UserRole
from taskflow.utils.clock import utcnow


class User(Base):
    """User account. Tasks reference users weakly by id."""

    __tablename__ = "users"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4, index=True)
    name = Column(String(50), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.TEAM_MEMBER.value, index=True)
    department = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(UTCDateTime(), default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime(), default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value
