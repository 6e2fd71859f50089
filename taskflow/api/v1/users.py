"""Users API endpoints."""
from typing import List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from taskflow.database import get_db
from taskflow.dependencies import require_action
from taskflow.core.security import TaskAction
from taskflow.models.user import User
from taskflow.crud.user import user
from taskflow.schemas.common import ApiResponse
from taskflow.schemas.user import UserResponse

router = APIRouter()


@router.get("", response_model=ApiResponse[List[UserResponse]])
async def list_users(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_action(TaskAction.USER_VIEW)),
):
    """List users, e.g. for assignment pickers."""
    users = await user.list_users(db, skip=skip, limit=limit)
    return ApiResponse(data=[UserResponse.model_validate(u) for u in users])
