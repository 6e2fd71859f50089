"""Bootstrap utilities for ensuring the default admin exists."""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.config import settings
from taskflow.core.security import UserRole
from taskflow.crud.user import user as user_crud
from taskflow.models.user import User
from taskflow.services.auth_service import AuthService

logger = logging.getLogger(__name__)


async def ensure_default_admin(
    db: AsyncSession,
    *,
    email: Optional[str] = None,
    password: Optional[str] = None,
    name: Optional[str] = None,
) -> User:
    """Ensure that the default administrator account exists and return it."""
    email = (email or settings.DEFAULT_ADMIN_EMAIL).lower()

    admin_user = await user_crud.get_by_email(db, email=email)
    if admin_user:
        # Ensure the account still carries the admin role.
        if admin_user.role != UserRole.ADMIN.value or not admin_user.is_active:
            admin_user.role = UserRole.ADMIN.value
            admin_user.is_active = True
            await db.commit()
        return admin_user

    admin_user = User(
        email=email,
        password_hash=AuthService.hash_password(password or settings.DEFAULT_ADMIN_PASSWORD),
        name=name or settings.DEFAULT_ADMIN_NAME,
        role=UserRole.ADMIN.value,
        is_active=True,
    )
    db.add(admin_user)
    await db.commit()
    await db.refresh(admin_user)
    logger.info("Default administrator created", extra={"user_id": str(admin_user.id)})
    return admin_user
