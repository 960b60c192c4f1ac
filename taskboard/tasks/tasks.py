from datetime import timedelta

from celery import shared_task

from taskboard.tasks.services import send_due_date_reminders


@shared_task(name="tasks.check_due_dates")
def check_due_dates(window_hours: int = 24) -> int:
    """Remind task owners about open tasks due within ``window_hours``.

    Returns:
        Number of reminders created.
    """
    return send_due_date_reminders(window=timedelta(hours=window_hours))
