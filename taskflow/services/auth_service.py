"""Authentication service."""
import logging
from datetime import timedelta
from typing import Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from taskflow.core.exceptions import ConflictError, UnauthorizedError
from taskflow.core.security import TaskAction
from taskflow.crud.user import user as user_crud
from taskflow.models.user import User
from taskflow.schemas.user import UserCreate
from taskflow.utils.permissions import ensure
from taskflow.utils.security import verify_password, get_password_hash, create_access_token, create_refresh_token, decode_token
from taskflow.config import settings

logger = logging.getLogger(__name__)


class AuthService:
    """Authentication service."""

    @staticmethod
    async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
        """Authenticate a user by email and password."""
        user = await user_crud.get_by_email(db, email=email)

        if not user:
            return None

        if not verify_password(password, user.password_hash):
            return None

        if not user.is_active:
            return None

        return user

    @staticmethod
    async def register(db: AsyncSession, *, user_in: UserCreate, registered_by: User) -> User:
        """Create an account on behalf of an administrator."""
        ensure(registered_by, None, TaskAction.USER_CREATE)

        if await user_crud.get_by_email(db, email=user_in.email):
            raise ConflictError("User with this email already exists")

        new_user = await user_crud.create(db, obj_in=user_in)
        logger.info(
            "User registered",
            extra={"user_id": str(new_user.id), "role": new_user.role, "registered_by": str(registered_by.id)},
        )
        return new_user

    @staticmethod
    def _access_token(user: User) -> str:
        return create_access_token(
            data={"sub": str(user.id), "email": user.email, "role": user.role},
            expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        )

    @staticmethod
    async def create_tokens(user: User) -> dict:
        """Create access and refresh tokens for a user."""
        return {
            "access_token": AuthService._access_token(user),
            "refresh_token": create_refresh_token(data={"sub": str(user.id)}),
            "token_type": "bearer",
            "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        }

    @staticmethod
    async def refresh_access_token(db: AsyncSession, refresh_token: str) -> dict:
        """Refresh access token using refresh token."""
        try:
            payload = decode_token(refresh_token)
            if payload.get("type") != "refresh":
                raise UnauthorizedError("Invalid token type")

            user_id = payload.get("sub")
            if not user_id:
                raise UnauthorizedError("Invalid token")

            user = await user_crud.get(db, id=UUID(user_id))
        except ValueError:
            raise UnauthorizedError("Invalid refresh token")

        if not user or not user.is_active:
            raise UnauthorizedError("User not found or inactive")

        return {
            "access_token": AuthService._access_token(user),
            "token_type": "bearer",
            "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        }

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash a password."""
        return get_password_hash(password)
