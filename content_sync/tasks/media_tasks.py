"""Media reconciliation tasks (media queue).

A job row is written in the same transaction as the apply that needs it and
dispatched after commit. Jobs whose dispatch was lost are picked up by the
periodic sweep.
"""
import logging
from datetime import timedelta

from content_sync.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)

# Pending jobs younger than this are assumed to be in flight
SWEEP_GRACE = timedelta(minutes=5)


@celery_app.task(bind=True, name="content_sync.tasks.media_tasks.reconcile_media", max_retries=3, default_retry_delay=30)
def reconcile_media(self, job_id: int):
    """Copy the job's media into the subsite and rewrite the object's body."""
    from content_sync.database import async_session_factory
    from content_sync.services import media_service
    import asyncio

    async def _run():
        async with async_session_factory() as db:
            job = await media_service.run_job(
                db, job_id, self.request.id, final_attempt=self.request.retries >= self.max_retries,
            )
            return job.status.value if job else None

    try:
        return asyncio.run(_run())
    except Exception as exc:
        logger.error("Media job %s failed: %s", job_id, exc)
        raise self.retry(exc=exc)


@celery_app.task(name="content_sync.tasks.media_tasks.dispatch_pending_media_jobs")
def dispatch_pending_media_jobs():
    """Periodic task (every 5 min): re-dispatch jobs left pending."""
    from sqlalchemy import select
    from content_sync.database import async_session_factory
    from content_sync.models.media_job import MediaJobStatus, MediaReconcileJob
    from content_sync.utils.helpers import utc_now
    import asyncio

    async def _scan():
        async with async_session_factory() as db:
            cutoff = utc_now() - SWEEP_GRACE
            result = await db.execute(
                select(MediaReconcileJob.id).where(
                    MediaReconcileJob.status == MediaJobStatus.PENDING,
                    MediaReconcileJob.updated_at <= cutoff,
                )
            )
            return list(result.scalars().all())

    job_ids = asyncio.run(_scan())
    for job_id in job_ids:
        reconcile_media.delay(job_id)
        logger.info("Re-dispatched media job %s", job_id)
    return len(job_ids)
