import os

from celery import Celery
from celery.schedules import crontab  # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

app = Celery("servicehub")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


# ============================================================================
# CELERY BEAT SCHEDULE (Periodic Tasks)
# ============================================================================

app.conf.beat_schedule = {
    # Close yesterday's settlement rollup - every day shortly after midnight
    "process-previous-day-settlement": {
        "task": "finances.process_previous_day_settlement",
        "schedule": crontab(minute=10, hour=0),
    },
    # Rebuild settlements for completed bookings missing one - every hour
    "backfill-settlements": {
        "task": "finances.backfill_settlements",
        "schedule": crontab(minute=30),
    },
    # Weekly payout batch for the previous Monday..Sunday
    "generate-weekly-payouts": {
        "task": "finances.generate_weekly_payouts",
        "schedule": crontab(minute=0, hour=2, day_of_week="mon"),
    },
    # Re-deliver failed notification requests - every 5 minutes
    "retry-failed-notifications": {
        "task": "notifications.retry_failed_notifications",
        "schedule": 300.0,
        "options": {"expires": 240},
    },
}

app.conf.timezone = "Asia/Dhaka"
