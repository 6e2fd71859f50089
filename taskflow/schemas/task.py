"""Task schemas."""
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import ConfigDict, Field, field_validator, model_validator

from taskflow.models.task import Task, TaskPriority, TaskStatus
from taskflow.schemas.common import ApiResponse, CamelModel
from taskflow.schemas.user import UserSummary

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 1000
TAG_MAX_LENGTH = 50
COMMENT_MAX_LENGTH = 500


def _parse_due_date(value: Any) -> Any:
    """Accept ISO dates and datetimes; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValueError("Due date must be a valid date")
    if isinstance(value, date) and not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if isinstance(value, datetime) and value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _clean_tags(tags: Optional[List[str]]) -> Optional[List[str]]:
    if tags is None:
        return None
    cleaned: List[str] = []
    for tag in tags:
        tag = tag.strip()
        if not tag or len(tag) > TAG_MAX_LENGTH:
            raise ValueError(f"Each tag must be between 1 and {TAG_MAX_LENGTH} characters")
        if tag not in cleaned:
            cleaned.append(tag)
    return cleaned


def _check_unique(ids: Optional[List[UUID]]) -> Optional[List[UUID]]:
    if ids is not None and len(set(ids)) != len(ids):
        raise ValueError("Assignees must not contain duplicates")
    return ids


class TaskWriteBase(CamelModel):
    """Fields shared by create and update payloads."""

    description: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)
    due_date: Optional[datetime] = None
    assignee: Optional[UUID] = None
    assignees: Optional[List[UUID]] = None
    tags: Optional[List[str]] = None

    @field_validator("description", mode="before")
    @classmethod
    def strip_description(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, value):
        return _parse_due_date(value)

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, value):
        return _clean_tags(value)

    @field_validator("assignees")
    @classmethod
    def validate_assignees(cls, value):
        return _check_unique(value)


class TaskCreate(TaskWriteBase):
    """Task creation payload."""

    title: str = Field(min_length=1, max_length=TITLE_MAX_LENGTH)
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, value):
        return value.strip() if isinstance(value, str) else value


class TaskUpdate(TaskWriteBase):
    """Partial task update payload. Only fields present in the request are applied."""

    # Server-managed fields (timeSpent, isArchived, timer state) have their own endpoints
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(default=None, min_length=1, max_length=TITLE_MAX_LENGTH)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, value):
        return value.strip() if isinstance(value, str) else value

    @model_validator(mode="after")
    def reject_null_required(self):
        for field in ("title", "status", "priority"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self


class CommentCreate(CamelModel):
    """Comment payload."""

    content: str = Field(max_length=COMMENT_MAX_LENGTH)


class WorkSessionResponse(CamelModel):
    """Closed work session."""

    id: UUID
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: int
    user_id: Optional[UUID] = None


class CommentResponse(CamelModel):
    """Comment snapshot."""

    id: UUID
    content: str
    author_id: UUID
    author_name: str
    is_admin_remark: bool
    created_at: datetime


class TaskResponse(CamelModel):
    """Task as returned to API callers."""

    id: UUID
    title: str
    description: str
    status: TaskStatus
    priority: TaskPriority
    created_by: UUID
    assignee: Optional[UUID] = None
    assignees: List[UUID] = []
    due_date: Optional[datetime] = None
    tags: List[str] = []
    is_archived: bool
    time_spent: int
    is_timer_running: bool
    timer_started_at: Optional[datetime] = None
    timer_started_by: Optional[UUID] = None
    work_sessions: List[WorkSessionResponse] = []
    comments: List[CommentResponse] = []
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_task(cls, task: Task, **extra: Any) -> "TaskResponse":
        return cls(
            id=task.id,
            title=task.title,
            description=task.description or "",
            status=task.status,
            priority=task.priority,
            created_by=task.created_by,
            assignee=task.assignee,
            assignees=list(task.assignee_ids),
            due_date=task.due_date,
            tags=list(task.tags),
            is_archived=task.is_archived,
            time_spent=task.time_spent,
            is_timer_running=task.is_timer_running,
            timer_started_at=task.timer_started_at,
            timer_started_by=task.timer_started_by,
            work_sessions=[WorkSessionResponse.model_validate(s) for s in task.work_sessions],
            comments=[CommentResponse.model_validate(c) for c in task.comments],
            created_at=task.created_at,
            updated_at=task.updated_at,
            **extra,
        )


class ActiveTimerResponse(TaskResponse):
    """Running task annotated with the live length of its open session."""

    current_session_duration: int
    total_time_spent: int
    timer_started_by_user: Optional[UserSummary] = None


class AssigneeTaskCount(UserSummary):
    """Task count for a single assignee."""

    count: int


class TaskAnalyticsResponse(CamelModel):
    """Aggregate task counts for administrators."""

    total_tasks: int
    todo_tasks: int
    in_progress_tasks: int
    completed_tasks: int
    active_timers: int
    overdue_tasks: int
    completion_rate: float
    total_time_spent: int
    tasks_by_priority: Dict[str, int]
    tasks_by_assignee: List[AssigneeTaskCount]


class TimerStopResponse(ApiResponse[TaskResponse]):
    """Envelope for a stopped timer; carries the closed session length in minutes."""

    session_duration: int
