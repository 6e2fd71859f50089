"""Task permission evaluator.

Pure decisions: given an actor, a task (when the action concerns one) and an
action, say whether it is allowed. Nothing here touches the database or
knows about HTTP; callers turn a denial into ForbiddenError via ``ensure``.
"""
from dataclasses import dataclass
from typing import AbstractSet, Optional

from taskflow.core.exceptions import ForbiddenError
from taskflow.core.security import ROLE_PERMISSIONS, TEAM_MEMBER_MUTABLE_FIELDS, TaskAction, UserRole
from taskflow.models.task import Task, TaskComment
from taskflow.models.user import User

FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class PermissionDecision:
    """Outcome of a permission check."""

    allowed: bool
    reason: Optional[str] = None
    detail: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = PermissionDecision(True)


def deny(detail: str = "Access denied") -> PermissionDecision:
    return PermissionDecision(False, FORBIDDEN, detail)


def is_admin(user: User) -> bool:
    return user.role == UserRole.ADMIN.value


def has_role_permission(user: User, action: TaskAction) -> bool:
    """Check actions granted by role alone (no task involved)."""
    if not user.is_active:
        return False
    return action in ROLE_PERMISSIONS.get(UserRole(user.role), [])


def is_task_participant(user: User, task: Task) -> bool:
    """Creator or any assignee (the legacy single assignee is the first of them)."""
    return task.created_by == user.id or task.is_assignee(user.id)


def can_perform(
    actor: User,
    task: Optional[Task],
    action: TaskAction,
    *,
    fields: Optional[AbstractSet[str]] = None,
    comment: Optional[TaskComment] = None,
) -> PermissionDecision:
    """Decide whether actor may perform action on task.

    ``fields`` is the set of task fields an update touches; ``comment`` is the
    target of a comment deletion.
    """
    if not actor.is_active:
        return deny("User is inactive")

    if task is None:
        if has_role_permission(actor, action):
            return ALLOW
        return deny("Access denied. Requires role: admin")

    admin = is_admin(actor)

    if action in (TaskAction.VIEW, TaskAction.COMMENT_ADD):
        return ALLOW if admin or is_task_participant(actor, task) else deny()

    if action == TaskAction.UPDATE:
        if admin:
            return ALLOW
        touched = set(fields or ())
        if touched and touched <= TEAM_MEMBER_MUTABLE_FIELDS:
            return can_perform(actor, task, TaskAction.UPDATE_STATUS)
        return deny("Team members may only change the status of tasks assigned to them")

    if action == TaskAction.UPDATE_STATUS:
        return ALLOW if admin or task.is_assignee(actor.id) else deny()

    if action in (TaskAction.DELETE, TaskAction.ARCHIVE):
        return ALLOW if admin or task.created_by == actor.id else deny()

    if action == TaskAction.TIMER_START:
        if admin or task.is_assignee(actor.id):
            return ALLOW
        return deny("Only assigned users or admins can start the timer")

    if action == TaskAction.TIMER_STOP:
        # The user who opened the running session may always close it.
        if admin or task.is_assignee(actor.id) or (
            task.is_timer_running and task.timer_started_by == actor.id
        ):
            return ALLOW
        return deny("Only assigned users, the timer starter or admins can stop the timer")

    if action == TaskAction.COMMENT_DELETE:
        if comment is not None and (admin or comment.author_id == actor.id):
            return ALLOW
        return deny()

    return deny()


def ensure(
    actor: User,
    task: Optional[Task],
    action: TaskAction,
    **kwargs,
) -> None:
    """Raise ForbiddenError unless the action is allowed."""
    decision = can_perform(actor, task, action, **kwargs)
    if not decision:
        raise ForbiddenError(decision.detail)
