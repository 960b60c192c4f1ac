from datetime import timedelta

import pytest
from django.conf import settings
from django.utils import timezone

from taskboard.notifications.models import Notification
from taskboard.tasks import services
from taskboard.tasks.models import Task
from taskboard.tasks.tasks import check_due_dates

pytestmark = pytest.mark.django_db


@pytest.fixture
def now():
    return timezone.now()


def _task(user, now, hours, **kwargs):
    return Task.objects.create(
        title=kwargs.pop("title", f"due in {hours}h"),
        created_by=user,
        due_date=now + timedelta(hours=hours),
        **kwargs,
    )


class TestDueDateReminders:
    def test_reminds_owner_of_tasks_due_within_window(self, user, other_user, now):
        mine = _task(user, now, 2)
        assigned = _task(user, now, 5, assigned_to=other_user)
        _task(user, now, 48)
        _task(user, now, -1)

        assert services.send_due_date_reminders(now=now) == 2
        reminders = Notification.objects.filter(
            notification_type=Notification.Type.DUE_SOON
        )
        assert {(n.task_id, n.recipient_id) for n in reminders} == {
            (mine.pk, user.pk),
            (assigned.pk, other_user.pk),
        }

    def test_each_task_is_reminded_once(self, user, now):
        task = _task(user, now, 1)
        assert services.send_due_date_reminders(now=now) == 1
        assert services.send_due_date_reminders(now=now) == 0
        task.refresh_from_db()
        assert task.due_reminder_sent is True
        assert Notification.objects.count() == 1

    def test_done_tasks_are_skipped(self, user, now):
        _task(user, now, 1, status=Task.Status.DONE)
        assert services.send_due_date_reminders(now=now) == 0

    def test_custom_window(self, user, now):
        _task(user, now, 30)
        assert services.send_due_date_reminders(now=now) == 0
        assert services.send_due_date_reminders(now=now, window=timedelta(hours=36)) == 1

    def test_celery_task_runs_the_sweep(self, user):
        Task.objects.create(
            title="soon",
            created_by=user,
            due_date=timezone.now() + timedelta(hours=3),
        )
        assert check_due_dates() == 1
        assert check_due_dates(window_hours=48) == 0

    def test_sweep_is_scheduled(self):
        entry = settings.CELERY_BEAT_SCHEDULE["check-due-dates"]
        assert entry["task"] == check_due_dates.name


class TestAssignmentNotice:
    def test_no_assignee_means_no_notice(self, user):
        task = Task.objects.create(title="t", created_by=user)
        assert services.notify_assignment(task, user) is None

    def test_message_names_actor_and_task(self, user, other_user):
        task = Task.objects.create(title="Ship it", created_by=user, assigned_to=other_user)
        notification = services.notify_assignment(task, user)
        assert notification.recipient == other_user
        assert notification.message == "alice assigned you 'Ship it'."
