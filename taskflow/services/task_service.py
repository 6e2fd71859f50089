"""Task lifecycle: listing, CRUD, archive, comments and admin overviews."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple
from uuid import UUID

from fastapi import BackgroundTasks
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.config import settings
from taskflow.core.exceptions import ConflictError, NotFoundError, TaskVersionConflict, ValidationError
from taskflow.core.security import TaskAction
from taskflow.crud.task import task_store
from taskflow.crud.user import user as user_crud
from taskflow.models.task import Task, TaskAssignee, TaskComment, TaskPriority, TaskStatus
from taskflow.models.user import User
from taskflow.schemas.task import (
    ActiveTimerResponse,
    AssigneeTaskCount,
    TaskAnalyticsResponse,
    TaskCreate,
    TaskUpdate,
    TaskWriteBase,
)
from taskflow.schemas.user import UserSummary
from taskflow.services.notification_service import NotificationKind, notification_service
from taskflow.services.query_builder import TaskFilters, build_predicate, default_ordering
from taskflow.services.timer_service import TimerService
from taskflow.utils import clock
from taskflow.utils.permissions import ensure, is_admin

logger = logging.getLogger(__name__)

CONCURRENT_EDIT_MESSAGE = "Task was modified concurrently, refresh and retry"


@dataclass
class TaskPage:
    """One page of a task listing."""

    items: List[Task]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def merge_assignees(payload: TaskWriteBase) -> Optional[List[UUID]]:
    """Fold the legacy single ``assignee`` into the canonical list.

    Returns None when the payload does not touch assignment at all.
    """
    fields = payload.model_fields_set
    if "assignees" in fields:
        ids = list(payload.assignees or [])
        if payload.assignee is not None:
            ids = [payload.assignee] + [i for i in ids if i != payload.assignee]
        return ids
    if "assignee" in fields:
        return [payload.assignee] if payload.assignee is not None else []
    return None


class TaskService:
    """Task lifecycle operations. Every mutation is a single store write."""

    @staticmethod
    async def _load(db: AsyncSession, task_id: UUID) -> Task:
        task = await task_store.find_by_id(db, id=task_id, refresh=True)
        if task is None:
            raise NotFoundError("Task not found")
        return task

    @staticmethod
    async def _save(db: AsyncSession, task: Task) -> Task:
        try:
            return await task_store.save(db, task=task)
        except TaskVersionConflict as exc:
            logger.warning("Concurrent task edit rejected", extra={"task_id": str(exc.task_id)})
            raise ConflictError(CONCURRENT_EDIT_MESSAGE)

    @staticmethod
    async def _resolve_assignees(db: AsyncSession, ids: List[UUID]) -> Dict[UUID, User]:
        """Every referenced user must exist."""
        users = await user_crud.get_map(db, ids=ids)
        missing = [str(i) for i in ids if i not in users]
        if missing:
            raise ValidationError(
                "Assigned user not found",
                errors=[{"field": "assignees", "message": f"User {i} does not exist"} for i in missing],
            )
        return users

    @staticmethod
    async def _participants(db: AsyncSession, task: Task) -> Tuple[Dict[UUID, User], List[UUID]]:
        """Users behind the task's assignees and creator, and their ids in notification order."""
        ids = list(task.assignee_ids) + [task.created_by]
        return await user_crud.get_map(db, ids=ids), ids

    # Queries

    @staticmethod
    async def list_tasks(
        db: AsyncSession,
        *,
        actor: User,
        filters: Optional[TaskFilters] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> TaskPage:
        """Tasks visible to actor, filtered, sorted and paginated."""
        page = max(page, 1)
        limit = min(max(limit or settings.DEFAULT_PAGE_SIZE, 1), settings.MAX_PAGE_SIZE)
        predicate = build_predicate(actor, filters)

        total = await task_store.count(db, predicate=predicate)
        items = await task_store.find(
            db,
            predicate=predicate,
            order_by=default_ordering(),
            skip=(page - 1) * limit,
            limit=limit,
        )
        return TaskPage(items=items, page=page, limit=limit, total=total)

    @staticmethod
    async def get_task(db: AsyncSession, *, actor: User, task_id: UUID) -> Task:
        task = await TaskService._load(db, task_id)
        ensure(actor, task, TaskAction.VIEW)
        return task

    # Mutations

    @staticmethod
    async def create_task(
        db: AsyncSession,
        *,
        actor: User,
        draft: TaskCreate,
        background: Optional[BackgroundTasks] = None,
    ) -> Task:
        """Create a task owned by actor and notify its assignees."""
        ensure(actor, None, TaskAction.CREATE)

        assignee_ids = merge_assignees(draft) or []
        users = await TaskService._resolve_assignees(db, assignee_ids)

        task = Task(
            title=draft.title,
            description=draft.description or "",
            status=draft.status.value,
            priority=draft.priority.value,
            created_by=actor.id,
            due_date=draft.due_date,
            is_archived=False,
            time_spent=0,
            is_timer_running=False,
        )
        task.set_assignees(assignee_ids)
        task.set_tags(draft.tags or [])

        saved = await task_store.create(db, task=task)
        logger.info("Task created", extra={"task_id": str(saved.id), "user_id": str(actor.id)})

        notification_service.dispatch(
            saved, [users[i] for i in assignee_ids], actor, NotificationKind.ASSIGNED, background=background
        )
        return saved

    @staticmethod
    async def update_task(
        db: AsyncSession,
        *,
        actor: User,
        task_id: UUID,
        patch: TaskUpdate,
        now: Optional[datetime] = None,
        background: Optional[BackgroundTasks] = None,
    ) -> Task:
        """Apply a partial update.

        Team members may only send ``status``. Completing a task with a
        running timer closes the open session in the same write.
        """
        task = await TaskService._load(db, task_id)
        fields: Set[str] = set(patch.model_fields_set)
        ensure(actor, task, TaskAction.UPDATE, fields=fields)

        previous_assignees = set(task.assignee_ids)
        previous_status = task.status

        assignee_ids = merge_assignees(patch)
        if assignee_ids is not None:
            await TaskService._resolve_assignees(db, assignee_ids)
            task.set_assignees(assignee_ids)

        if "title" in fields:
            task.title = patch.title
        if "description" in fields:
            task.description = patch.description or ""
        if "priority" in fields:
            task.priority = patch.priority.value
        if "due_date" in fields:
            task.due_date = patch.due_date
        if "tags" in fields:
            task.set_tags(patch.tags or [])

        implicit_stop = None
        if "status" in fields:
            if patch.status == TaskStatus.COMPLETED and task.is_timer_running:
                implicit_stop = TimerService.close_timer(task, now or clock.utcnow())
            task.status = patch.status.value

        saved = await TaskService._save(db, task)
        if implicit_stop is not None:
            TimerService.record_stop(implicit_stop.duration)
            logger.info(
                "Timer stopped by completion",
                extra={"task_id": str(task_id), "user_id": str(actor.id), "duration": implicit_stop.duration},
            )
        logger.info(
            "Task updated",
            extra={"task_id": str(task_id), "user_id": str(actor.id), "fields": sorted(fields)},
        )

        users, ids = await TaskService._participants(db, saved)
        newly_assigned = [i for i in saved.assignee_ids if i not in previous_assignees]
        notification_service.dispatch(
            saved, [users.get(i) for i in newly_assigned], actor, NotificationKind.ASSIGNED, background=background
        )
        notification_service.dispatch(
            saved,
            [users.get(i) for i in ids if i not in newly_assigned],
            actor,
            NotificationKind.UPDATED,
            background=background,
        )
        if saved.status == TaskStatus.COMPLETED.value and previous_status != TaskStatus.COMPLETED.value:
            notification_service.dispatch(
                saved, [users.get(saved.created_by)], actor, NotificationKind.COMPLETED, background=background
            )
        return saved

    @staticmethod
    async def delete_task(db: AsyncSession, *, actor: User, task_id: UUID) -> None:
        task = await TaskService._load(db, task_id)
        ensure(actor, task, TaskAction.DELETE)
        await task_store.delete(db, task=task)
        logger.info("Task deleted", extra={"task_id": str(task_id), "user_id": str(actor.id)})

    @staticmethod
    async def toggle_archive(db: AsyncSession, *, actor: User, task_id: UUID) -> Task:
        """Flip ``is_archived``. Status and timer are left alone."""
        task = await TaskService._load(db, task_id)
        ensure(actor, task, TaskAction.ARCHIVE)
        task.is_archived = not task.is_archived
        saved = await TaskService._save(db, task)
        logger.info(
            "Task archived" if saved.is_archived else "Task unarchived",
            extra={"task_id": str(task_id), "user_id": str(actor.id)},
        )
        return saved

    # Comments

    @staticmethod
    async def add_comment(
        db: AsyncSession,
        *,
        actor: User,
        task_id: UUID,
        content: str,
        now: Optional[datetime] = None,
        background: Optional[BackgroundTasks] = None,
    ) -> Tuple[Task, TaskComment]:
        content = (content or "").strip()
        if not content:
            raise ValidationError.for_field("content", "Comment content is required")

        task = await TaskService._load(db, task_id)
        ensure(actor, task, TaskAction.COMMENT_ADD)

        comment = TaskComment(
            content=content,
            author_id=actor.id,
            author_name=actor.name,
            is_admin_remark=is_admin(actor),
            created_at=now or clock.utcnow(),
        )
        task.comments.append(comment)
        saved = await TaskService._save(db, task)
        comment = saved.find_comment(comment.id) or comment

        users, ids = await TaskService._participants(db, saved)
        notification_service.dispatch(
            saved,
            [users.get(i) for i in ids],
            actor,
            NotificationKind.COMMENT,
            comment=comment,
            background=background,
        )
        return saved, comment

    @staticmethod
    async def delete_comment(
        db: AsyncSession,
        *,
        actor: User,
        task_id: UUID,
        comment_id: UUID,
    ) -> Task:
        task = await TaskService._load(db, task_id)
        comment = task.find_comment(comment_id)
        if comment is None:
            raise NotFoundError("Comment not found")
        ensure(actor, task, TaskAction.COMMENT_DELETE, comment=comment)

        task.comments.remove(comment)
        return await TaskService._save(db, task)

    # Admin overviews

    @staticmethod
    async def list_active_timers(
        db: AsyncSession,
        *,
        actor: User,
        now: Optional[datetime] = None,
    ) -> List[ActiveTimerResponse]:
        """Running, non-archived tasks with the live length of their open session."""
        ensure(actor, None, TaskAction.VIEW_ACTIVE_TIMERS)
        now = now or clock.utcnow()

        tasks = await task_store.find(
            db,
            predicate=and_(Task.is_timer_running.is_(True), Task.is_archived.is_(False)),
            order_by=[Task.timer_started_at.asc()],
        )
        starters = await user_crud.get_map(db, ids=[t.timer_started_by for t in tasks])

        timers: List[ActiveTimerResponse] = []
        for task in tasks:
            starter = starters.get(task.timer_started_by)
            timers.append(
                ActiveTimerResponse.from_task(
                    task,
                    current_session_duration=TimerService.live_elapsed_minutes(task, now),
                    total_time_spent=task.time_spent,
                    timer_started_by_user=UserSummary.model_validate(starter) if starter else None,
                )
            )
        return timers

    @staticmethod
    async def analytics(
        db: AsyncSession,
        *,
        actor: User,
        now: Optional[datetime] = None,
    ) -> TaskAnalyticsResponse:
        """Counts over non-archived tasks."""
        ensure(actor, None, TaskAction.VIEW_ANALYTICS)
        now = now or clock.utcnow()
        live = Task.is_archived.is_(False)

        status_rows = await db.execute(
            select(Task.status, func.count()).where(live).group_by(Task.status)
        )
        by_status: Dict[str, int] = {row[0]: row[1] for row in status_rows.all()}

        priority_rows = await db.execute(
            select(Task.priority, func.count()).where(live).group_by(Task.priority)
        )
        by_priority: Dict[str, int] = {p.value: 0 for p in TaskPriority}
        by_priority.update({row[0]: row[1] for row in priority_rows.all()})

        active_timers = await task_store.count(
            db, predicate=and_(live, Task.is_timer_running.is_(True))
        )
        overdue = await task_store.count(
            db,
            predicate=and_(
                live,
                Task.due_date.is_not(None),
                Task.due_date < now,
                Task.status != TaskStatus.COMPLETED.value,
            ),
        )
        total_time = await db.execute(select(func.coalesce(func.sum(Task.time_spent), 0)).where(live))

        assignee_rows = await db.execute(
            select(TaskAssignee.user_id, func.count())
            .join(Task, Task.id == TaskAssignee.task_id)
            .where(live)
            .group_by(TaskAssignee.user_id)
        )
        counts = {row[0]: row[1] for row in assignee_rows.all()}
        users = await user_crud.get_map(db, ids=list(counts))
        by_assignee = [
            AssigneeTaskCount(
                id=u.id, name=u.name, email=u.email, department=u.department, count=counts[u.id]
            )
            for u in sorted(users.values(), key=lambda u: (-counts[u.id], u.name))
        ]

        total = sum(by_status.values())
        completed = by_status.get(TaskStatus.COMPLETED.value, 0)
        return TaskAnalyticsResponse(
            total_tasks=total,
            todo_tasks=by_status.get(TaskStatus.TODO.value, 0),
            in_progress_tasks=by_status.get(TaskStatus.IN_PROGRESS.value, 0),
            completed_tasks=completed,
            active_timers=active_timers,
            overdue_tasks=overdue,
            completion_rate=round(completed * 100 / total, 1) if total else 0.0,
            total_time_spent=int(total_time.scalar_one()),
            tasks_by_priority=by_priority,
            tasks_by_assignee=by_assignee,
        )


task_service = TaskService()
