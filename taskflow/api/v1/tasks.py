"""Tasks API endpoints."""
from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from taskflow.core.exceptions import ValidationError
from taskflow.database import get_db
from taskflow.dependencies import get_current_active_user
from taskflow.models.task import TaskPriority, TaskStatus
from taskflow.models.user import User
from taskflow.schemas.common import ApiResponse, Pagination
from taskflow.schemas.task import (
    ActiveTimerResponse,
    CommentCreate,
    CommentResponse,
    TaskAnalyticsResponse,
    TaskCreate,
    TaskResponse,
    TaskUpdate,
    TimerStopResponse,
)
from taskflow.services.query_builder import TaskFilters
from taskflow.services.task_service import task_service
from taskflow.services.timer_service import timer_service

router = APIRouter()


def _split(values: Optional[List[str]]) -> List[str]:
    """Accept both repeated and comma-separated query values."""
    items: List[str] = []
    for value in values or []:
        items.extend(part.strip() for part in value.split(",") if part.strip())
    return items


def _split_ids(values: Optional[List[str]], field: str) -> List[UUID]:
    ids: List[UUID] = []
    for value in _split(values):
        try:
            ids.append(UUID(value))
        except ValueError:
            raise ValidationError.for_field(field, f"Invalid user id: {value}")
    return ids


@router.get("", response_model=ApiResponse[List[TaskResponse]])
async def list_tasks(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    status_filter: Optional[TaskStatus] = Query(None, alias="status"),
    exclude_status: Optional[TaskStatus] = Query(None, alias="excludeStatus"),
    priority: Optional[TaskPriority] = None,
    assignee: Optional[UUID] = None,
    assignees: Optional[List[str]] = Query(None),
    tags: Optional[List[str]] = Query(None),
    search: Optional[str] = None,
    include_archived: bool = Query(False, alias="includeArchived"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """List tasks visible to the current user."""
    filters = TaskFilters(
        status=status_filter.value if status_filter else None,
        exclude_status=exclude_status.value if exclude_status else None,
        priority=priority.value if priority else None,
        assignee=assignee,
        assignees=_split_ids(assignees, "assignees"),
        tags=_split(tags),
        search=search,
        include_archived=include_archived,
    )
    result = await task_service.list_tasks(
        db, actor=current_user, filters=filters, page=page, limit=limit
    )
    return ApiResponse(
        data=[TaskResponse.from_task(t) for t in result.items],
        pagination=Pagination(
            page=result.page, limit=result.limit, total=result.total, pages=result.pages
        ),
    )


@router.get("/active-timers", response_model=ApiResponse[List[ActiveTimerResponse]])
async def list_active_timers(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """Running timers across all tasks (admin)."""
    timers = await task_service.list_active_timers(db, actor=current_user)
    return ApiResponse(data=timers)


@router.get("/analytics", response_model=ApiResponse[TaskAnalyticsResponse])
async def task_analytics(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """Aggregate task counts (admin)."""
    return ApiResponse(data=await task_service.analytics(db, actor=current_user))


@router.post("", response_model=ApiResponse[TaskResponse], status_code=status.HTTP_201_CREATED)
async def create_task(
    task_in: TaskCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """Create a task."""
    new_task = await task_service.create_task(
        db, actor=current_user, draft=task_in, background=background_tasks
    )
    return ApiResponse(data=TaskResponse.from_task(new_task), message="Task created successfully")


@router.get("/{task_id}", response_model=ApiResponse[TaskResponse])
async def get_task(
    task_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """Get a task by ID."""
    task_obj = await task_service.get_task(db, actor=current_user, task_id=task_id)
    return ApiResponse(data=TaskResponse.from_task(task_obj))


@router.put("/{task_id}", response_model=ApiResponse[TaskResponse])
async def update_task(
    task_id: UUID,
    task_in: TaskUpdate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """Update a task. Team members may only change the status."""
    task_obj = await task_service.update_task(
        db, actor=current_user, task_id=task_id, patch=task_in, background=background_tasks
    )
    return ApiResponse(data=TaskResponse.from_task(task_obj), message="Task updated successfully")


@router.delete("/{task_id}", response_model=ApiResponse[None])
async def delete_task(
    task_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """Delete a task (creator or admin)."""
    await task_service.delete_task(db, actor=current_user, task_id=task_id)
    return ApiResponse(message="Task deleted successfully")


@router.put("/{task_id}/archive", response_model=ApiResponse[TaskResponse])
async def toggle_archive(
    task_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """Archive or unarchive a task (creator or admin)."""
    task_obj = await task_service.toggle_archive(db, actor=current_user, task_id=task_id)
    state = "archived" if task_obj.is_archived else "unarchived"
    return ApiResponse(data=TaskResponse.from_task(task_obj), message=f"Task {state} successfully")


@router.post("/{task_id}/timer/start", response_model=ApiResponse[TaskResponse])
async def start_timer(
    task_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """Start the task timer."""
    task_obj = await timer_service.start(db, actor=current_user, task_id=task_id)
    return ApiResponse(data=TaskResponse.from_task(task_obj), message="Timer started successfully")


@router.post("/{task_id}/timer/stop", response_model=TimerStopResponse)
async def stop_timer(
    task_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """Stop the task timer and record the work session."""
    task_obj, duration = await timer_service.stop(db, actor=current_user, task_id=task_id)
    return TimerStopResponse(
        data=TaskResponse.from_task(task_obj),
        message="Timer stopped successfully",
        session_duration=duration,
    )


@router.post(
    "/{task_id}/comments",
    response_model=ApiResponse[CommentResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_comment(
    task_id: UUID,
    comment_in: CommentCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """Add a comment to a task."""
    _, comment = await task_service.add_comment(
        db,
        actor=current_user,
        task_id=task_id,
        content=comment_in.content,
        background=background_tasks,
    )
    return ApiResponse(data=CommentResponse.model_validate(comment), message="Comment added successfully")


@router.delete("/{task_id}/comments/{comment_id}", response_model=ApiResponse[None])
async def delete_comment(
    task_id: UUID,
    comment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """Delete a comment (author or admin)."""
    await task_service.delete_comment(db, actor=current_user, task_id=task_id, comment_id=comment_id)
    return ApiResponse(message="Comment deleted successfully")
