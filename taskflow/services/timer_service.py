"""Timer engine: the Idle/Running state machine of a task.

A task is Running iff ``is_timer_running`` is set together with
``timer_started_at`` and ``timer_started_by``. Stopping appends exactly one
closed WorkSession and clears the three fields in the same write. Writes are
conditioned on the task version that was read, so of two racing calls only
one can flip the state; the loser gets a TimerConflictError.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.core.exceptions import ConflictError, NotFoundError, TaskVersionConflict, TimerConflictError
from taskflow.core.security import TaskAction
from taskflow.crud.task import task_store, total_duration
from taskflow.middleware.metrics import (
    timer_conflicts_total,
    timers_started_total,
    timers_stopped_total,
    tracked_minutes_total,
)
from taskflow.models.task import Task, TaskStatus, WorkSession
from taskflow.models.user import User
from taskflow.utils import clock
from taskflow.utils.permissions import ensure

logger = logging.getLogger(__name__)


class TimerService:
    """Start/stop timers and account work sessions."""

    @staticmethod
    def open_timer(task: Task, actor: User, now: datetime) -> None:
        """Idle -> Running, in memory."""
        if task.is_timer_running:
            raise TimerConflictError.already_running()
        if task.status == TaskStatus.COMPLETED.value:
            raise TimerConflictError.task_completed()
        task.is_timer_running = True
        task.timer_started_at = now
        task.timer_started_by = actor.id

    @staticmethod
    def close_timer(task: Task, now: datetime) -> WorkSession:
        """Running -> Idle, in memory. Appends the closed session and resums time_spent."""
        if not task.is_timer_running:
            raise TimerConflictError.not_running()
        started_at = task.timer_started_at
        session = WorkSession(
            start_time=started_at,
            end_time=now,
            duration=clock.elapsed_minutes(started_at, now),
            user_id=task.timer_started_by,
        )
        task.work_sessions.append(session)
        task.time_spent = total_duration(task)
        task.is_timer_running = False
        task.timer_started_at = None
        task.timer_started_by = None
        return session

    @staticmethod
    def live_elapsed_minutes(task: Task, now: Optional[datetime] = None) -> int:
        """Length of the open session so far; 0 when idle. Computed on read, never stored."""
        if not task.is_timer_running or task.timer_started_at is None:
            return 0
        return clock.elapsed_minutes(task.timer_started_at, now or clock.utcnow())

    @staticmethod
    async def _load(db: AsyncSession, task_id: UUID) -> Task:
        task = await task_store.find_by_id(db, id=task_id, refresh=True)
        if task is None:
            raise NotFoundError("Task not found")
        return task

    @staticmethod
    async def _classify_lost_race(db: AsyncSession, task_id: UUID, *, expected_running: bool) -> Exception:
        """Turn a version conflict into the error the caller should see."""
        current = await task_store.find_by_id(db, id=task_id, refresh=True)
        if current is None:
            return NotFoundError("Task not found")
        if current.is_timer_running != expected_running:
            if current.is_timer_running:
                return TimerConflictError.already_running()
            return TimerConflictError.not_running()
        return ConflictError("Task was modified concurrently, refresh and retry")

    @staticmethod
    def _record_conflict(exc: Exception, task_id: UUID, actor_id: UUID) -> None:
        if isinstance(exc, TimerConflictError):
            timer_conflicts_total.labels(reason=exc.code).inc()
            logger.warning(
                "Timer conflict: %s",
                exc.detail,
                extra={"task_id": str(task_id), "user_id": str(actor_id), "reason": exc.code},
            )

    @staticmethod
    async def start(
        db: AsyncSession,
        *,
        actor: User,
        task_id: UUID,
        now: Optional[datetime] = None,
    ) -> Task:
        """Open a timer on the task for actor."""
        # A failed write rolls the session back and expires actor with it
        actor_id = actor.id
        task = await TimerService._load(db, task_id)
        ensure(actor, task, TaskAction.TIMER_START)

        try:
            TimerService.open_timer(task, actor, now or clock.utcnow())
        except TimerConflictError as exc:
            TimerService._record_conflict(exc, task_id, actor_id)
            raise

        try:
            saved = await task_store.save(db, task=task)
        except TaskVersionConflict:
            exc = await TimerService._classify_lost_race(db, task_id, expected_running=False)
            TimerService._record_conflict(exc, task_id, actor_id)
            raise exc

        timers_started_total.inc()
        logger.info("Timer started", extra={"task_id": str(task_id), "user_id": str(actor_id)})
        return saved

    @staticmethod
    async def stop(
        db: AsyncSession,
        *,
        actor: User,
        task_id: UUID,
        now: Optional[datetime] = None,
    ) -> Tuple[Task, int]:
        """Close the running timer. Returns the saved task and the session duration."""
        actor_id = actor.id
        task = await TimerService._load(db, task_id)
        ensure(actor, task, TaskAction.TIMER_STOP)

        try:
            session = TimerService.close_timer(task, now or clock.utcnow())
        except TimerConflictError as exc:
            TimerService._record_conflict(exc, task_id, actor_id)
            raise
        duration = session.duration

        try:
            saved = await task_store.save(db, task=task)
        except TaskVersionConflict:
            exc = await TimerService._classify_lost_race(db, task_id, expected_running=True)
            TimerService._record_conflict(exc, task_id, actor_id)
            raise exc

        TimerService.record_stop(duration)
        logger.info(
            "Timer stopped",
            extra={"task_id": str(task_id), "user_id": str(actor_id), "duration": duration},
        )
        return saved, duration

    @staticmethod
    def record_stop(duration: int) -> None:
        timers_stopped_total.inc()
        tracked_minutes_total.inc(duration)


timer_service = TimerService()
