"""Celery application configuration with media and notification queues and Beat schedule."""
from celery import Celery

from content_sync.config import settings

celery_app = Celery(
    "content_sync",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_routes={
        "content_sync.tasks.media_tasks.*": {"queue": "media"},
        "content_sync.tasks.notification_tasks.*": {"queue": "notifications"},
    },
    task_default_retry_delay=60,
    task_max_retries=3,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=3600,
)

celery_app.conf.beat_schedule = {
    "dispatch-pending-media-jobs": {
        "task": "content_sync.tasks.media_tasks.dispatch_pending_media_jobs",
        "schedule": 300.0,
    },
}

celery_app.autodiscover_tasks([
    "content_sync.tasks.media_tasks",
    "content_sync.tasks.notification_tasks",
])
