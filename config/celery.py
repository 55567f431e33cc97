import os

from celery import Celery
from celery.schedules import crontab  # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

app = Celery("machinery_rental")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


# ============================================================================
# CELERY BEAT SCHEDULE (Periodic Tasks)
# ============================================================================

app.conf.beat_schedule = {
    # Cancel stale PENDING holds every minute
    "expire-stale-holds": {
        "task": "bookings.expire_stale_holds",
        "schedule": 60.0,
        "options": {"expires": 50},
    },
    # Drain the side-effect job queue every minute
    "process-booking-jobs": {
        "task": "bookings.process_booking_jobs",
        "schedule": 60.0,
        "options": {"expires": 50},
    },
    # Return jobs abandoned in "processing" to the queue
    "reclaim-stale-booking-jobs": {
        "task": "bookings.reclaim_stale_jobs",
        "schedule": crontab(minute="*/10"),
    },
}

app.conf.timezone = "Europe/Lisbon"
