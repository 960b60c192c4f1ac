import os

from celery import Celery
from celery.signals import setup_logging

# Deployed workers default to production settings; pytest passes
# --ds=config.settings.test, so setdefault leaves that alone.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.production")

app = Celery("taskboard")

# All celery-related configuration keys live in Django settings under the
# `CELERY_` prefix (broker, serializers, beat schedule).
app.config_from_object("django.conf:settings", namespace="CELERY")


@setup_logging.connect
def config_loggers(*args, **kwargs):
    from logging.config import dictConfig  # noqa: PLC0415

    from django.conf import settings  # noqa: PLC0415

    dictConfig(settings.LOGGING)


# Picks up taskboard.tasks.tasks (due date reminders).
app.autodiscover_tasks()
