"""Security constants: roles and task actions."""
from enum import Enum


class UserRole(str, Enum):
    """Roles a user account may hold."""

    ADMIN = "admin"
    TEAM_MEMBER = "team-member"


class TaskAction(str, Enum):
    """Actions gated by the permission evaluator."""

    VIEW = "task.view"
    CREATE = "task.create"
    UPDATE = "task.update"
    UPDATE_STATUS = "task.update_status"
    DELETE = "task.delete"
    ARCHIVE = "task.archive"
    TIMER_START = "task.timer.start"
    TIMER_STOP = "task.timer.stop"
    COMMENT_ADD = "task.comment.add"
    COMMENT_DELETE = "task.comment.delete"
    VIEW_ACTIVE_TIMERS = "task.active_timers.view"
    VIEW_ANALYTICS = "task.analytics.view"
    USER_VIEW = "user.view"
    USER_CREATE = "user.create"


# Actions that do not depend on a particular task and are granted by role alone
ROLE_PERMISSIONS = {
    UserRole.ADMIN: [
        TaskAction.CREATE,
        TaskAction.VIEW_ACTIVE_TIMERS,
        TaskAction.VIEW_ANALYTICS,
        TaskAction.USER_VIEW,
        TaskAction.USER_CREATE,
    ],
    UserRole.TEAM_MEMBER: [
        TaskAction.CREATE,
        TaskAction.USER_VIEW,
    ],
}

# Fields a team member may change on a task they are assigned to
TEAM_MEMBER_MUTABLE_FIELDS = frozenset({"status"})
