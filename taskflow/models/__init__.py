"""Model modules."""
from taskflow.models.user import User
from taskflow.models.task import (
    PRIORITY_RANK,
    Task,
    TaskAssignee,
    TaskComment,
    TaskPriority,
    TaskStatus,
    TaskTag,
    WorkSession,
)

__all__ = [
    "User",
    "Task",
    "TaskAssignee",
    "TaskTag",
    "WorkSession",
    "TaskComment",
    "TaskStatus",
    "TaskPriority",
    "PRIORITY_RANK",
]
