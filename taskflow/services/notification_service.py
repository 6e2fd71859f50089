"""Best-effort task notifications.

Nothing in here raises to the caller: delivery failures are logged, counted
and reported back as ``{"ok": False}``. Task operations render their
notices while the records are fresh and hand delivery off, so a slow or
unreachable mail gateway never holds up the request.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple
from uuid import UUID

from fastapi import BackgroundTasks

from taskflow.config import settings
from taskflow.integrations.mailer import mailer
from taskflow.middleware.metrics import notifications_failed_total, notifications_sent_total
from taskflow.models.task import Task, TaskComment
from taskflow.models.user import User

logger = logging.getLogger(__name__)

# Deliveries scheduled outside a request; kept referenced until done
_pending: Set[asyncio.Task] = set()


class NotificationKind(str, Enum):
    """What happened to the task."""

    ASSIGNED = "assigned"
    UPDATED = "updated"
    COMPLETED = "completed"
    COMMENT = "comment"


_SUBJECTS = {
    NotificationKind.ASSIGNED: "New task assigned: {title}",
    NotificationKind.UPDATED: "Task updated: {title}",
    NotificationKind.COMPLETED: "Task completed: {title}",
    NotificationKind.COMMENT: "New comment on: {title}",
}

_LEADS = {
    NotificationKind.ASSIGNED: "{actor} assigned you a task.",
    NotificationKind.UPDATED: "{actor} updated a task you are involved in.",
    NotificationKind.COMPLETED: "{actor} marked your task as completed.",
    NotificationKind.COMMENT: "{actor} commented on a task you are involved in.",
}


def task_link(task: Task) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/tasks/{task.id}"


@dataclass(frozen=True)
class Notice:
    """A rendered notification, detached from the records it was built from."""

    kind: NotificationKind
    task_id: UUID
    recipient_id: UUID
    actor_id: UUID
    to: str
    subject: str
    text: str


def _delivery_finished(job: asyncio.Task) -> None:
    _pending.discard(job)
    if not job.cancelled() and job.exception() is not None:
        logger.error("Notification job crashed", exc_info=job.exception())


class NotificationService:
    """Render and deliver task notifications."""

    @staticmethod
    def render(
        task: Task,
        recipient: User,
        actor: User,
        kind: NotificationKind,
        *,
        comment: Optional[TaskComment] = None,
    ) -> Tuple[str, str]:
        """Build subject and plain-text body."""
        subject = _SUBJECTS[kind].format(title=task.title)
        lines = [
            f"Hello {recipient.name},",
            "",
            _LEADS[kind].format(actor=actor.name),
            "",
            f"Title: {task.title}",
            f"Status: {task.status}",
            f"Priority: {task.priority}",
        ]
        if task.due_date is not None:
            lines.append(f"Due: {task.due_date.date().isoformat()}")
        if comment is not None:
            lines.extend(["", f"{comment.author_name} wrote:", comment.content])
        lines.extend(["", f"Open the task: {task_link(task)}"])
        return subject, "\n".join(lines)

    @staticmethod
    def prepare(
        task: Task,
        recipient: User,
        actor: User,
        kind: NotificationKind,
        *,
        comment: Optional[TaskComment] = None,
    ) -> Notice:
        subject, text = NotificationService.render(task, recipient, actor, kind, comment=comment)
        return Notice(
            kind=kind,
            task_id=task.id,
            recipient_id=recipient.id,
            actor_id=actor.id,
            to=recipient.email,
            subject=subject,
            text=text,
        )

    @staticmethod
    def select_recipients(recipients: Iterable[Optional[User]], actor: User) -> List[User]:
        """Each distinct recipient once, never the actor, only users with an email."""
        selected: List[User] = []
        seen = {actor.id}
        for recipient in recipients:
            if recipient is None or recipient.id in seen or not recipient.email:
                continue
            seen.add(recipient.id)
            selected.append(recipient)
        return selected

    @staticmethod
    async def deliver(notice: Notice) -> Dict[str, Any]:
        """Hand one notice to the mail gateway. Never raises."""
        context = {"task_id": str(notice.task_id), "user_id": str(notice.recipient_id), "kind": notice.kind.value}
        try:
            result = await mailer.send(notice.to, notice.subject, notice.text)
        except Exception as exc:
            notifications_failed_total.labels(kind=notice.kind.value).inc()
            logger.warning("Notification delivery failed", extra=context, exc_info=True)
            return {"ok": False, "error": str(exc)}

        notifications_sent_total.labels(kind=notice.kind.value).inc()
        logger.info("Notification delivered", extra=context)
        return result

    @staticmethod
    async def deliver_all(notices: List[Notice]) -> List[Dict[str, Any]]:
        """Deliver notices concurrently."""
        return list(await asyncio.gather(*(NotificationService.deliver(n) for n in notices)))

    @staticmethod
    async def notify(
        task: Task,
        recipient: User,
        actor: User,
        kind: NotificationKind,
        *,
        comment: Optional[TaskComment] = None,
    ) -> Dict[str, Any]:
        """Render and send one notification now. Never raises."""
        try:
            notice = NotificationService.prepare(task, recipient, actor, kind, comment=comment)
        except Exception as exc:
            notifications_failed_total.labels(kind=kind.value).inc()
            logger.warning("Notification rendering failed", extra={"kind": kind.value}, exc_info=True)
            return {"ok": False, "error": str(exc)}
        return await NotificationService.deliver(notice)

    @staticmethod
    async def notify_many(
        task: Task,
        recipients: Iterable[Optional[User]],
        actor: User,
        kind: NotificationKind,
        *,
        comment: Optional[TaskComment] = None,
    ) -> List[Dict[str, Any]]:
        """Notify each distinct recipient once, never the actor, and wait for delivery."""
        notices = [
            NotificationService.prepare(task, r, actor, kind, comment=comment)
            for r in NotificationService.select_recipients(recipients, actor)
        ]
        return await NotificationService.deliver_all(notices)

    @staticmethod
    def dispatch(
        task: Task,
        recipients: Iterable[Optional[User]],
        actor: User,
        kind: NotificationKind,
        *,
        comment: Optional[TaskComment] = None,
        background: Optional[BackgroundTasks] = None,
    ) -> List[Notice]:
        """Render notices now and deliver them without blocking the caller.

        With ``background`` (a request's BackgroundTasks) delivery runs after
        the response is sent; otherwise it is scheduled on the running loop.
        """
        notices = [
            NotificationService.prepare(task, r, actor, kind, comment=comment)
            for r in NotificationService.select_recipients(recipients, actor)
        ]
        if not notices:
            return notices
        if background is not None:
            background.add_task(NotificationService.deliver_all, notices)
        else:
            job = asyncio.get_running_loop().create_task(NotificationService.deliver_all(notices))
            _pending.add(job)
            job.add_done_callback(_delivery_finished)
        return notices

    @staticmethod
    async def drain() -> None:
        """Wait for deliveries scheduled on the current loop."""
        loop = asyncio.get_running_loop()
        while True:
            jobs = [job for job in _pending if job.get_loop() is loop]
            if not jobs:
                return
            await asyncio.gather(*jobs, return_exceptions=True)


notification_service = NotificationService()
