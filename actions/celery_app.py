"""Celery application that drives the reminder jobs.

Start a worker and the beat scheduler with:
    celery -A actions.celery_app worker -Q reminders -l info
    celery -A actions.celery_app beat -l info
"""

from celery import Celery

from config import settings

celery_app = Celery(
    "adherence_engine",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

# Global task settings
celery_app.conf.task_acks_late = True
celery_app.conf.task_reject_on_worker_lost = True
celery_app.conf.timezone = "UTC"
celery_app.conf.enable_utc = True

celery_app.conf.task_routes = {
    "actions.tasks.materialize_doses": {"queue": "reminders"},
    "actions.tasks.sweep_missed_doses": {"queue": "reminders"},
}

# Beat schedule: fixed-interval triggers, independent of how long each run takes
celery_app.conf.beat_schedule = {
    "materialize-doses": {
        "task": "actions.tasks.materialize_doses",
        "schedule": float(settings.MATERIALIZE_INTERVAL_SECONDS),
    },
    "sweep-missed-doses": {
        "task": "actions.tasks.sweep_missed_doses",
        "schedule": float(settings.MISSED_SWEEP_INTERVAL_SECONDS),
    },
}

# --- Ensure tasks are registered ---
import actions.tasks  # noqa: E402,F401
