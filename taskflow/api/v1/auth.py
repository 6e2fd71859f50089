"""Authentication API endpoints."""
from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession
from taskflow.database import get_db
from taskflow.core.security import TaskAction
from taskflow.dependencies import get_current_active_user, require_action
from taskflow.models.user import User
from taskflow.services.auth_service import AuthService
from taskflow.schemas.auth import TokenResponse, RefreshTokenRequest, RefreshTokenResponse
from taskflow.schemas.common import ApiResponse
from taskflow.schemas.user import UserCreate, UserResponse
from taskflow.core.exceptions import UnauthorizedError

router = APIRouter()


@router.post("/register", response_model=ApiResponse[UserResponse], status_code=status.HTTP_201_CREATED)
async def register(
    user_in: UserCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_action(TaskAction.USER_CREATE)),
):
    """Register an account (admin)."""
    new_user = await AuthService.register(db, user_in=user_in, registered_by=current_user)
    return ApiResponse(data=UserResponse.model_validate(new_user), message="User registered successfully")


@router.post("/login", response_model=TokenResponse)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    """Login endpoint - returns access and refresh tokens.

    Supports OAuth2 password flow (form data) where username is the email.
    """
    user = await AuthService.authenticate_user(db, form_data.username, form_data.password)
    if not user:
        raise UnauthorizedError("Incorrect email or password")

    tokens = await AuthService.create_tokens(user)
    return TokenResponse(**tokens)


@router.post("/refresh", response_model=RefreshTokenResponse)
async def refresh_token(
    request: RefreshTokenRequest,
    db: AsyncSession = Depends(get_db),
):
    """Refresh access token using refresh token."""
    tokens = await AuthService.refresh_access_token(db, request.refresh_token)
    return RefreshTokenResponse(**tokens)


@router.get("/me", response_model=ApiResponse[UserResponse])
async def get_current_user_info(
    current_user: User = Depends(get_current_active_user),
):
    """Get current authenticated user information."""
    return ApiResponse(data=UserResponse.model_validate(current_user))
