"""
Celery Application Configuration
"""
from celery import Celery
from celery.schedules import crontab
from marketplace_trust.config import settings

# Create Celery app
celery_app = Celery(
    "marketplace_trust_worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "marketplace_trust.worker.tasks"
    ]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=600,  # 10 minutes max
    task_soft_time_limit=540,  # 9 minutes soft limit
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=3600,  # Results expire after 1 hour
)

# Task routing
celery_app.conf.task_routes = {
    "marketplace_trust.worker.tasks.record_trust_event": {"queue": "trust-events"},
    "marketplace_trust.worker.tasks.*": {"queue": "default"},
}

# Periodic jobs
celery_app.conf.beat_schedule = {
    "daily-trust-snapshot": {
        "task": "marketplace_trust.worker.tasks.snapshot_trust_scores",
        "schedule": crontab(hour=settings.TRUST_SNAPSHOT_HOUR_UTC, minute=0),
    },
    "daily-trust-aggregate-refresh": {
        "task": "marketplace_trust.worker.tasks.refresh_trust_aggregates",
        "schedule": crontab(hour=settings.TRUST_SNAPSHOT_HOUR_UTC, minute=30),
    },
}
