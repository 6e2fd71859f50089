"""Schema modules."""
from taskflow.schemas.auth import TokenResponse, RefreshTokenRequest, RefreshTokenResponse
from taskflow.schemas.user import UserCreate, UserResponse, UserSummary
from taskflow.schemas.task import (
    ActiveTimerResponse,
    CommentCreate,
    CommentResponse,
    TaskAnalyticsResponse,
    TaskCreate,
    TaskResponse,
    TaskUpdate,
    WorkSessionResponse,
)
from taskflow.schemas.common import ApiResponse, Pagination
