"""Celery application configuration and beat schedule."""

from celery import Celery
from celery.schedules import crontab

from fundingpipe.config import get_settings

settings = get_settings()

celery_app = Celery(
    "fundingpipe",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "fundingpipe.tasks.discovery_tasks",
        "fundingpipe.tasks.processing_tasks",
        "fundingpipe.tasks.maintenance_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Asia/Seoul",
    task_track_started=True,
    # Discovery walks many listing pages through a browser
    task_time_limit=3600,
    task_soft_time_limit=3300,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

celery_app.conf.beat_schedule = {
    "dispatch-daily-discovery": {
        "task": "fundingpipe.tasks.discovery_tasks.dispatch_discovery",
        "schedule": crontab(minute=0, hour=6),
    },
    "process-pending-jobs": {
        "task": "fundingpipe.tasks.processing_tasks.process_pending_jobs",
        "schedule": crontab(minute="*/5"),
    },
    "requeue-failed-jobs": {
        "task": "fundingpipe.tasks.maintenance_tasks.requeue_failed_jobs",
        "schedule": crontab(minute=15),
    },
}
