"""Notification side effects of task mutations.

Notifications created here reach their recipient in realtime through the
``post_save`` hook in ``taskboard.notifications.signals``.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from django.db import transaction
from django.utils import timezone

from taskboard.notifications.models import Notification
from taskboard.tasks.models import Task

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser

logger = logging.getLogger(__name__)

DUE_SOON_WINDOW = timedelta(hours=24)


def notify_assignment(task: Task, actor: AbstractBaseUser) -> Notification | None:
    """Tell the assignee about a task somebody else handed to them."""

    assignee = task.assigned_to
    if assignee is None or assignee.pk == actor.pk:
        return None
    return Notification.objects.create(
        recipient=assignee,
        task=task,
        title="New task assigned",
        message=f"{actor} assigned you '{task.title}'.",
        notification_type=Notification.Type.TASK_ASSIGNED,
    )


def notify_status_change(
    task: Task,
    old_status: str,
    actor: AbstractBaseUser,
) -> Notification | None:
    """Tell the creator that somebody else moved their task."""

    if old_status == task.status or task.created_by_id == actor.pk:
        return None
    return Notification.objects.create(
        recipient_id=task.created_by_id,
        task=task,
        title="Task status changed",
        message=(
            f"{actor} moved '{task.title}' from "
            f"{Task.Status(old_status).label} to {task.get_status_display()}."
        ),
        notification_type=Notification.Type.STATUS_CHANGED,
    )


def send_due_date_reminders(
    now=None,
    window: timedelta = DUE_SOON_WINDOW,
) -> int:
    """Notify owners of open tasks falling due within ``window``.

    Each task is reminded at most once. Returns the number of reminders sent.
    """

    now = now or timezone.now()
    due = (
        Task.objects.filter(
            due_date__gte=now,
            due_date__lte=now + window,
            due_reminder_sent=False,
        )
        .exclude(status=Task.Status.DONE)
        .select_related("assigned_to", "created_by")
    )
    sent = 0
    for task in due.iterator():
        with transaction.atomic():
            Notification.objects.create(
                recipient=task.owner,
                task=task,
                title="Task due soon",
                message=f"'{task.title}' is due {task.due_date:%Y-%m-%d %H:%M}.",
                notification_type=Notification.Type.DUE_SOON,
            )
            task.due_reminder_sent = True
            task.save(update_fields=["due_reminder_sent", "updated_at"])
        sent += 1
    if sent:
        logger.info("Sent %d due date reminder(s)", sent)
    return sent
