"""Notification tasks (notifications queue)."""
import logging

from content_sync.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True, name="content_sync.tasks.notification_tasks.send_notification_email",
    max_retries=3, default_retry_delay=60,
)
def send_notification_email(self, to_email: str, subject: str, text_body: str, html_body: str | None = None):
    from content_sync.services.notification_service import send_email

    if not send_email(to_email, subject, text_body, html_body):
        logger.warning("Email to %s failed (attempt %d)", to_email, self.request.retries + 1)
        raise self.retry()
    return True
