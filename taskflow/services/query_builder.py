"""Translate role + list filters into a single SQL predicate and ordering."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional
from uuid import UUID

from sqlalchemy import and_, case, or_, select, true
from sqlalchemy.sql.elements import ColumnElement

from taskflow.models.task import PRIORITY_RANK, Task, TaskAssignee, TaskTag
from taskflow.models.user import User
from taskflow.utils.permissions import is_admin


@dataclass
class TaskFilters:
    """Optional filters accepted by the task listing."""

    status: Optional[str] = None
    exclude_status: Optional[str] = None
    priority: Optional[str] = None
    assignee: Optional[UUID] = None
    assignees: List[UUID] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    search: Optional[str] = None
    include_archived: bool = False


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def assigned_to_any(user_ids: List[UUID]) -> ColumnElement:
    """Tasks whose assignee set contains at least one of user_ids."""
    return Task.id.in_(select(TaskAssignee.task_id).where(TaskAssignee.user_id.in_(user_ids)))


def tagged_with_any(tags: List[str]) -> ColumnElement:
    return Task.id.in_(select(TaskTag.task_id).where(TaskTag.name.in_(tags)))


def access_predicate(actor: User) -> Optional[ColumnElement]:
    """Rows the actor may see: everything for admins, own-or-assigned otherwise."""
    if is_admin(actor):
        return None
    return or_(Task.created_by == actor.id, assigned_to_any([actor.id]))


def build_predicate(actor: User, filters: Optional[TaskFilters] = None) -> ColumnElement:
    """Combine access scope and filters conjunctively.

    The access scope and the free-text search are each an OR group; the two
    groups are ANDed so a search never widens what a team member can see.
    """
    filters = filters or TaskFilters()
    clauses: List[ColumnElement] = []

    access = access_predicate(actor)
    if access is not None:
        clauses.append(access)

    if filters.status:
        clauses.append(Task.status == filters.status)
    if filters.exclude_status:
        clauses.append(Task.status != filters.exclude_status)
    if filters.priority:
        clauses.append(Task.priority == filters.priority)

    assignee_ids = list(filters.assignees)
    if filters.assignee is not None:
        assignee_ids.append(filters.assignee)
    if assignee_ids:
        clauses.append(assigned_to_any(assignee_ids))

    if filters.tags:
        clauses.append(tagged_with_any(filters.tags))

    search = (filters.search or "").strip()
    if search:
        pattern = _like_pattern(search)
        clauses.append(
            or_(
                Task.title.ilike(pattern, escape="\\"),
                Task.description.ilike(pattern, escape="\\"),
            )
        )

    if not filters.include_archived:
        clauses.append(Task.is_archived.is_(False))

    return and_(true(), *clauses)


def default_ordering() -> list:
    """Due date ascending with undated tasks last, then priority (high first), newest first."""
    priority_rank = case(PRIORITY_RANK, value=Task.priority, else_=len(PRIORITY_RANK) + 1)
    return [
        Task.due_date.is_(None).asc(),
        Task.due_date.asc(),
        priority_rank.asc(),
        Task.created_at.desc(),
    ]
