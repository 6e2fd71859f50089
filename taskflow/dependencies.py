"""FastAPI dependencies for authentication and authorization."""
from typing import Optional
from uuid import UUID
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from taskflow.config import settings
from taskflow.database import get_db
from taskflow.models.user import User
from taskflow.utils.security import decode_token
from taskflow.utils.permissions import ensure
from taskflow.core.security import TaskAction
from taskflow.core.exceptions import UnauthorizedError, ForbiddenError

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_PREFIX}/auth/login")


async def _user_from_token(token: str, db: AsyncSession) -> User:
    credentials_exception = UnauthorizedError("Could not validate credentials")

    try:
        payload = decode_token(token)
        user_id: Optional[str] = payload.get("sub")
        token_type: Optional[str] = payload.get("type")

        if user_id is None or token_type != "access":
            raise credentials_exception
        user_uuid = UUID(user_id)
    except ValueError:
        raise credentials_exception

    user = await db.get(User, user_uuid)
    if user is None:
        raise credentials_exception

    if not user.is_active:
        raise ForbiddenError("User is inactive")

    return user


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Get current authenticated user from JWT token."""
    return await _user_from_token(token, db)


async def get_current_active_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """Get current active user."""
    if not current_user.is_active:
        raise ForbiddenError("User is inactive")
    return current_user


def require_action(action: TaskAction):
    """Dependency factory for actions granted by role alone."""

    async def action_checker(
        current_user: User = Depends(get_current_active_user),
    ) -> User:
        ensure(current_user, None, action)
        return current_user

    return action_checker
