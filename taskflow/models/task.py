"""Task aggregate: the task row plus its owned assignees, tags, work sessions and comments."""
from enum import Enum
from typing import Iterable, List, Optional
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.ext.associationproxy import association_proxy
from sqlalchemy.orm import relationship

from taskflow.database import Base
from taskflow.db.types import GUID, UTCDateTime
from taskflow.utils.clock import utcnow


class TaskStatus(str, Enum):
    """Task status."""

    TODO = "todo"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class TaskPriority(str, Enum):
    """Task priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Sort rank used by listings: high first
PRIORITY_RANK = {
    TaskPriority.HIGH.value: 1,
    TaskPriority.MEDIUM.value: 2,
    TaskPriority.LOW.value: 3,
}


class Task(Base):
    """Task model."""

    __tablename__ = "tasks"
    __table_args__ = (
        CheckConstraint(
            "(is_timer_running AND timer_started_at IS NOT NULL AND timer_started_by IS NOT NULL)"
            " OR (NOT is_timer_running AND timer_started_at IS NULL AND timer_started_by IS NULL)",
            name="ck_tasks_timer_fields",
        ),
        CheckConstraint(
            "status <> 'completed' OR NOT is_timer_running",
            name="ck_tasks_completed_not_running",
        ),
        CheckConstraint("time_spent >= 0", name="ck_tasks_time_spent_non_negative"),
    )

    id = Column(GUID(), primary_key=True, default=uuid.uuid4, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    status = Column(String(20), nullable=False, default=TaskStatus.TODO.value, index=True)
    priority = Column(String(10), nullable=False, default=TaskPriority.MEDIUM.value, index=True)
    created_by = Column(GUID(), ForeignKey("users.id"), nullable=False, index=True)
    due_date = Column(UTCDateTime(), nullable=True, index=True)
    is_archived = Column(Boolean, nullable=False, default=False, index=True)

    # Derived from work_sessions on every save
    time_spent = Column(Integer, nullable=False, default=0)

    is_timer_running = Column(Boolean, nullable=False, default=False, index=True)
    timer_started_at = Column(UTCDateTime(), nullable=True)
    timer_started_by = Column(GUID(), nullable=True)

    version = Column(Integer, nullable=False)
    created_at = Column(UTCDateTime(), default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime(), default=utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    assignee_entries = relationship(
        "TaskAssignee",
        order_by="TaskAssignee.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    tag_entries = relationship(
        "TaskTag",
        order_by="TaskTag.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    work_sessions = relationship(
        "WorkSession",
        order_by="WorkSession.start_time",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    comments = relationship(
        "TaskComment",
        order_by="TaskComment.created_at",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    assignee_ids = association_proxy("assignee_entries", "user_id")
    tags = association_proxy("tag_entries", "name")

    @property
    def assignee(self) -> Optional[uuid.UUID]:
        """Legacy single-assignee view: the first canonical assignee."""
        return self.assignee_entries[0].user_id if self.assignee_entries else None

    def is_assignee(self, user_id: uuid.UUID) -> bool:
        return any(entry.user_id == user_id for entry in self.assignee_entries)

    def set_assignees(self, user_ids: Iterable[uuid.UUID]) -> None:
        """Replace the assignee set, keeping rows for users that stay assigned."""
        existing = {entry.user_id: entry for entry in self.assignee_entries}
        entries: List[TaskAssignee] = []
        for position, user_id in enumerate(user_ids):
            entry = existing.get(user_id) or TaskAssignee(user_id=user_id)
            entry.position = position
            entries.append(entry)
        self.assignee_entries = entries

    def set_tags(self, names: Iterable[str]) -> None:
        """Replace the tag set, keeping rows for tags that stay."""
        existing = {entry.name: entry for entry in self.tag_entries}
        entries: List[TaskTag] = []
        for position, name in enumerate(names):
            entry = existing.get(name) or TaskTag(name=name)
            entry.position = position
            entries.append(entry)
        self.tag_entries = entries

    def find_comment(self, comment_id: uuid.UUID) -> Optional["TaskComment"]:
        return next((c for c in self.comments if c.id == comment_id), None)


class TaskAssignee(Base):
    """Ordered membership of a user in a task's assignee set."""

    __tablename__ = "task_assignees"
    __table_args__ = (UniqueConstraint("task_id", "user_id", name="uq_task_assignees_task_user"),)

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    task_id = Column(GUID(), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(GUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)


class TaskTag(Base):
    """Tag attached to a task."""

    __tablename__ = "task_tags"
    __table_args__ = (UniqueConstraint("task_id", "name", name="uq_task_tags_task_name"),)

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    task_id = Column(GUID(), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(50), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)


class WorkSession(Base):
    """Closed work session. Written once when a timer stops, never edited afterwards."""

    __tablename__ = "task_work_sessions"
    __table_args__ = (CheckConstraint("duration >= 0", name="ck_work_sessions_duration_non_negative"),)

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    task_id = Column(GUID(), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    start_time = Column(UTCDateTime(), nullable=False)
    end_time = Column(UTCDateTime(), nullable=True)
    duration = Column(Integer, nullable=False, default=0)  # minutes
    user_id = Column(GUID(), nullable=True, index=True)  # weak reference
    created_at = Column(UTCDateTime(), default=utcnow, nullable=False)


class TaskComment(Base):
    """Comment snapshot; author name and role are frozen at creation time."""

    __tablename__ = "task_comments"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    task_id = Column(GUID(), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(String(500), nullable=False)
    author_id = Column(GUID(), nullable=False, index=True)  # weak reference
    author_name = Column(String(50), nullable=False)
    is_admin_remark = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime(), default=utcnow, nullable=False)
