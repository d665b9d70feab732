"""Common Celery app for Beat and Worker.

Alternative to `viandas.worker` for deployments that already run Celery: Beat
triggers one archival cycle and one notification evaluation per schedule
entry. Notification markers are always kept in the database here, since task
invocations share no process memory.
"""

import importlib
import pkgutil
from typing import List

from celery import Celery
from celery.schedules import crontab
from viandas import settings

celery_app = Celery(
    "viandas",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

# Celery Beat schedule
celery_app.conf.beat_schedule = {
    "archive-aged-menus-hourly": {
        "task": "viandas.tasks.maintenance.archive_aged_menus",
        "schedule": crontab(minute=5),  # Every hour at :05
        "options": {"queue": "celery"},
    },
    "dispatch-weekly-notifications-every-15-minutes": {
        "task": "viandas.tasks.notifications.dispatch_weekly_notifications",
        "schedule": crontab(minute="*/15"),
        "options": {"queue": "celery"},
    },
}

celery_app.conf.timezone = settings.TZ
celery_app.conf.beat_schedule_filename = "celerybeat-schedule-viandas"


def _import_all_task_modules() -> List[str]:
    """Import all modules under `viandas.tasks.*` so Celery registers task decorators."""
    imported: List[str] = []
    try:
        import viandas.tasks as tasks_pkg
    except Exception as e:
        raise RuntimeError(
            "Celery startup failed: cannot import task package 'viandas.tasks'"
        ) from e

    try:
        for module_info in pkgutil.walk_packages(
            tasks_pkg.__path__,
            prefix=f"{tasks_pkg.__name__}.",
        ):
            name = module_info.name
            importlib.import_module(name)
            imported.append(name)
    except Exception as e:
        raise RuntimeError(
            "Celery startup failed: error while importing task modules under 'viandas.tasks.*'"
        ) from e
    return imported


# Auto-import tasks for both worker and beat processes.
_import_all_task_modules()
