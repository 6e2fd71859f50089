"""Tests for the timer engine."""
from datetime import datetime, timedelta, timezone

import pytest

from taskflow.core.exceptions import ConflictError, ForbiddenError, TimerConflictError
from taskflow.crud.task import task_store
from taskflow.models.task import TaskStatus
from taskflow.schemas.task import TaskCreate, TaskUpdate
from taskflow.services.task_service import TaskService
from taskflow.services.timer_service import TimerService
from taskflow.utils.clock import elapsed_minutes

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


async def create_assigned_task(db_session, admin_user, member_user, **fields):
    draft = TaskCreate(title="Design logo", priority="high", assignees=[member_user.id], **fields)
    return await TaskService.create_task(db_session, actor=admin_user, draft=draft)


@pytest.mark.parametrize(
    "seconds, minutes",
    [(0, 0), (29, 0), (29.999, 0), (30, 1), (59, 1), (89, 1), (90, 2), (125 * 60, 125)],
)
def test_elapsed_minutes_rounds_half_up(seconds, minutes):
    assert elapsed_minutes(T0, T0 + timedelta(seconds=seconds)) == minutes


def test_elapsed_minutes_never_negative():
    assert elapsed_minutes(T0, T0 - timedelta(minutes=5)) == 0


@pytest.mark.asyncio
async def test_start_sets_running_fields(db_session, admin_user, member_user):
    task = await create_assigned_task(db_session, admin_user, member_user)

    started = await TimerService.start(db_session, actor=member_user, task_id=task.id, now=T0)

    assert started.is_timer_running is True
    assert started.timer_started_at == T0
    assert started.timer_started_by == member_user.id
    # Starting the timer does not promote the status
    assert started.status == TaskStatus.TODO.value
    assert started.work_sessions == []


@pytest.mark.asyncio
async def test_stop_appends_one_session_and_resums(db_session, admin_user, member_user):
    task = await create_assigned_task(db_session, admin_user, member_user)
    await TimerService.start(db_session, actor=member_user, task_id=task.id, now=T0)

    stopped, duration = await TimerService.stop(
        db_session, actor=member_user, task_id=task.id, now=T0 + timedelta(minutes=125)
    )

    assert duration == 125
    assert stopped.time_spent == 125
    assert stopped.is_timer_running is False
    assert stopped.timer_started_at is None
    assert stopped.timer_started_by is None
    assert len(stopped.work_sessions) == 1
    session = stopped.work_sessions[0]
    assert session.start_time == T0
    assert session.end_time == T0 + timedelta(minutes=125)
    assert session.duration == 125
    assert session.user_id == member_user.id


@pytest.mark.asyncio
async def test_sessions_accumulate(db_session, admin_user, member_user):
    task = await create_assigned_task(db_session, admin_user, member_user)

    await TimerService.start(db_session, actor=member_user, task_id=task.id, now=T0)
    await TimerService.stop(db_session, actor=member_user, task_id=task.id, now=T0 + timedelta(seconds=30))
    await TimerService.start(db_session, actor=admin_user, task_id=task.id, now=T0 + timedelta(hours=1))
    stopped, duration = await TimerService.stop(
        db_session, actor=admin_user, task_id=task.id, now=T0 + timedelta(hours=1, seconds=29)
    )

    assert duration == 0
    assert [s.duration for s in stopped.work_sessions] == [1, 0]
    assert stopped.time_spent == 1
    assert stopped.work_sessions[1].user_id == admin_user.id


@pytest.mark.asyncio
async def test_second_start_is_rejected(db_session, admin_user, member_user):
    task = await create_assigned_task(db_session, admin_user, member_user)
    await TimerService.start(db_session, actor=member_user, task_id=task.id, now=T0)

    with pytest.raises(TimerConflictError) as exc_info:
        await TimerService.start(db_session, actor=admin_user, task_id=task.id, now=T0)

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == "Timer is already running"
    current = await task_store.find_by_id(db_session, id=task.id, refresh=True)
    assert current.timer_started_by == member_user.id


@pytest.mark.asyncio
async def test_second_stop_is_rejected_without_new_session(db_session, admin_user, member_user):
    task = await create_assigned_task(db_session, admin_user, member_user)
    await TimerService.start(db_session, actor=member_user, task_id=task.id, now=T0)
    await TimerService.stop(db_session, actor=member_user, task_id=task.id, now=T0 + timedelta(minutes=3))

    with pytest.raises(TimerConflictError) as exc_info:
        await TimerService.stop(db_session, actor=member_user, task_id=task.id, now=T0 + timedelta(minutes=4))

    assert exc_info.value.detail == "Timer is not running"
    current = await task_store.find_by_id(db_session, id=task.id, refresh=True)
    assert len(current.work_sessions) == 1
    assert current.time_spent == 3


@pytest.mark.asyncio
async def test_completed_task_cannot_start(db_session, admin_user, member_user):
    task = await create_assigned_task(db_session, admin_user, member_user, status="completed")

    with pytest.raises(TimerConflictError) as exc_info:
        await TimerService.start(db_session, actor=member_user, task_id=task.id, now=T0)
    assert exc_info.value.code == TimerConflictError.TASK_COMPLETED


@pytest.mark.asyncio
async def test_non_assignee_cannot_start(db_session, admin_user, member_user, other_member):
    task = await create_assigned_task(db_session, admin_user, member_user)

    with pytest.raises(ForbiddenError):
        await TimerService.start(db_session, actor=other_member, task_id=task.id, now=T0)


@pytest.mark.asyncio
async def test_unassigned_starter_can_still_stop(db_session, admin_user, member_user, other_member):
    task = await create_assigned_task(db_session, admin_user, member_user)
    await TimerService.start(db_session, actor=member_user, task_id=task.id, now=T0)
    await TaskService.update_task(
        db_session, actor=admin_user, task_id=task.id, patch=TaskUpdate(assignees=[other_member.id])
    )

    stopped, duration = await TimerService.stop(
        db_session, actor=member_user, task_id=task.id, now=T0 + timedelta(minutes=10)
    )
    assert duration == 10
    assert stopped.work_sessions[0].user_id == member_user.id


@pytest.mark.asyncio
async def test_completing_running_task_stops_timer(db_session, admin_user, member_user):
    task = await create_assigned_task(db_session, admin_user, member_user)
    await TimerService.start(db_session, actor=member_user, task_id=task.id, now=T0)

    done = await TaskService.update_task(
        db_session,
        actor=admin_user,
        task_id=task.id,
        patch=TaskUpdate(status="completed"),
        now=T0 + timedelta(minutes=42),
    )

    assert done.status == TaskStatus.COMPLETED.value
    assert done.is_timer_running is False
    assert done.timer_started_at is None
    assert len(done.work_sessions) == 1
    assert done.work_sessions[0].end_time == T0 + timedelta(minutes=42)
    assert done.time_spent == 42


@pytest.mark.asyncio
async def test_concurrent_stop_loser_gets_not_running(lose_next_save, db_session, admin_user, member_user):
    task = await create_assigned_task(db_session, admin_user, member_user)
    # A rolled-back write expires every instance in the session
    task_id = task.id
    await TimerService.start(db_session, actor=member_user, task_id=task_id, now=T0)
    lose_next_save(is_timer_running=False, timer_started_at=None, timer_started_by=None)

    with pytest.raises(TimerConflictError) as exc_info:
        await TimerService.stop(db_session, actor=admin_user, task_id=task_id, now=T0 + timedelta(minutes=5))

    assert exc_info.value.code == TimerConflictError.NOT_RUNNING
    assert exc_info.value.status_code == 400
    current = await task_store.find_by_id(db_session, id=task_id, refresh=True)
    assert current.work_sessions == []
    assert current.time_spent == 0


@pytest.mark.asyncio
async def test_concurrent_start_loser_gets_already_running(lose_next_save, db_session, admin_user, member_user):
    task = await create_assigned_task(db_session, admin_user, member_user)
    task_id, admin_id = task.id, admin_user.id
    lose_next_save(is_timer_running=True, timer_started_at=T0, timer_started_by=admin_id)

    with pytest.raises(TimerConflictError) as exc_info:
        await TimerService.start(db_session, actor=member_user, task_id=task_id, now=T0)

    assert exc_info.value.code == TimerConflictError.ALREADY_RUNNING
    current = await task_store.find_by_id(db_session, id=task_id, refresh=True)
    assert current.timer_started_by == admin_id


@pytest.mark.asyncio
async def test_concurrent_unrelated_edit_is_a_conflict(lose_next_save, db_session, admin_user, member_user):
    task = await create_assigned_task(db_session, admin_user, member_user)
    task_id = task.id
    lose_next_save(title="Renamed elsewhere")

    with pytest.raises(ConflictError):
        await TimerService.start(db_session, actor=member_user, task_id=task_id, now=T0)

    current = await task_store.find_by_id(db_session, id=task_id, refresh=True)
    assert current.title == "Renamed elsewhere"
    assert current.is_timer_running is False
