"""Task record store.

Every write goes through ``save``/``create``/``delete`` so that derived
fields are recomputed and the optimistic-lock version is checked in one
transaction.
"""
import logging
import uuid
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.sql.elements import ColumnElement

from taskflow.core.exceptions import DependencyFailureError, TaskVersionConflict
from taskflow.crud.base import CRUDBase
from taskflow.models.task import Task
from taskflow.utils.clock import utcnow

logger = logging.getLogger(__name__)


def total_duration(task: Task) -> int:
    """Sum of closed work session durations in minutes."""
    return sum(session.duration or 0 for session in task.work_sessions)


class TaskStore(CRUDBase[Task]):
    """Record-level access to the task aggregate."""

    async def find(
        self,
        db: AsyncSession,
        *,
        predicate: Optional[ColumnElement] = None,
        order_by: Sequence = (),
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Task]:
        """Find tasks matching a predicate."""
        query = select(Task)
        if predicate is not None:
            query = query.where(predicate)
        if order_by:
            query = query.order_by(*order_by)
        query = query.offset(skip)
        if limit is not None:
            query = query.limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def find_by_id(self, db: AsyncSession, *, id: UUID, refresh: bool = False) -> Optional[Task]:
        """Load a task with all owned collections. ``refresh`` bypasses the identity map."""
        query = select(Task).where(Task.id == id)
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def count(self, db: AsyncSession, *, predicate: Optional[ColumnElement] = None) -> int:
        """Count tasks matching a predicate."""
        query = select(func.count()).select_from(Task)
        if predicate is not None:
            query = query.where(predicate)
        result = await db.execute(query)
        return int(result.scalar_one())

    async def create(self, db: AsyncSession, *, task: Task) -> Task:
        """Persist a new task."""
        if task.id is None:
            task.id = uuid.uuid4()
        task.time_spent = total_duration(task)
        db.add(task)
        task_id = task.id
        await self._commit(db, task_id=task_id, operation="create")
        return await self.find_by_id(db, id=task_id, refresh=True)

    async def save(self, db: AsyncSession, *, task: Task) -> Task:
        """Write pending changes, conditioned on the version that was read.

        Raises TaskVersionConflict when another writer got there first.
        """
        task_id = task.id
        task.time_spent = total_duration(task)
        task.updated_at = utcnow()
        await self._commit(db, task_id=task_id, operation="update")
        return await self.find_by_id(db, id=task_id, refresh=True)

    async def delete(self, db: AsyncSession, *, task: Task) -> None:
        """Hard-delete a task and everything it owns."""
        task_id = task.id
        await db.delete(task)
        await self._commit(db, task_id=task_id, operation="delete")

    async def _commit(self, db: AsyncSession, *, task_id: UUID, operation: str) -> None:
        try:
            await db.commit()
        except StaleDataError:
            await db.rollback()
            raise TaskVersionConflict(task_id)
        except SQLAlchemyError:
            await db.rollback()
            logger.error(
                "Task store %s failed",
                operation,
                extra={"task_id": str(task_id), "operation": operation},
                exc_info=True,
            )
            raise DependencyFailureError()


task_store = TaskStore(Task)
