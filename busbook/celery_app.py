from celery import Celery
from celery.schedules import crontab

from busbook.config import settings


celery_app = Celery(
    "busbook_tasks",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["busbook.cleanup.tasks"],
)

# crontab entries follow local wall-clock time, like the sweeper's date check
celery_app.conf.update(task_track_started=True, enable_utc=False)

# same cadence as the in-process scheduler: hourly plus local midnight
celery_app.conf.beat_schedule = {
    "cleanup-expired-buses-interval": {
        "task": "busbook.cleanup.cleanup_expired_buses",
        "schedule": float(settings.BUS_CLEANUP_INTERVAL_SECONDS),
    },
    "cleanup-expired-buses-midnight": {
        "task": "busbook.cleanup.cleanup_expired_buses",
        "schedule": crontab(hour=0, minute=0),
    },
}
