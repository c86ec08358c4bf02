"""Bulk fan-out: one batch of (objects x sites) per call, driven by the caller."""
import logging
import math

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.config import settings
from content_sync.integrations.replication.client import ClientFactory
from content_sync.repositories import content_repository
from content_sync.schemas.bulk import BulkBatchResult, BulkCandidate, BulkLogLine, BulkSyncRequest
from content_sync.schemas.policy import SyncPolicy
from content_sync.services import site_service, sync_service
from content_sync.utils.helpers import chunk_list

logger = logging.getLogger(__name__)


def _lines(post_id: int, title: str, sites: list[tuple[int, str]], status: str, note: str) -> list[BulkLogLine]:
    return [
        BulkLogLine(post_id=post_id, post_name=title, site_id=sid, site_name=name, sync_status=status, sync_note=note)
        for sid, name in sites
    ]


async def run_batch(
    db: AsyncSession, request: BulkSyncRequest, client_factory: ClientFactory, actor_id=None,
) -> BulkBatchResult:
    """Process batch ``request.batch_index`` of the selection.

    Partitioning depends only on the de-duplicated selection order and the
    batch size, so repeated calls with the same index see the same objects.
    """
    if not request.site_ids:
        raise HTTPException(status_code=400, detail="Please select at least one site to proceed with the bulk sync.")
    if not request.post_ids:
        raise HTTPException(status_code=400, detail="Please select at least one post to proceed with the bulk sync.")

    post_ids = list(dict.fromkeys(request.post_ids))
    batch_size = request.batch_size or settings.BULK_BATCH_SIZE
    batches = chunk_list(post_ids, batch_size)
    total_batches = math.ceil(len(post_ids) / batch_size)

    if request.batch_index >= total_batches:
        return BulkBatchResult(
            success=False,
            message="No posts were processed.",
            current_batch=request.batch_index + 1,
            total_batches=total_batches,
            posts_processed=0,
            total_posts=len(post_ids),
        )

    sites_by_id = await site_service.get_sites(db, request.site_ids)
    # Plain values: a rollback below expires ORM state
    sites = [(sid, sites_by_id[sid].name) for sid in dict.fromkeys(request.site_ids) if sid in sites_by_id]

    logs: list[BulkLogLine] = []
    for post_id in batches[request.batch_index]:
        content = await content_repository.get_by_id(db, post_id)
        if content is None:
            logs.extend(_lines(post_id, "", sites, "Failed", "Post not found!"))
            continue
        if content.disable_sync:
            logs.extend(_lines(
                post_id, content.title, sites, "Skipped",
                "The sync setting for this post is disabled, so it will not be synchronized.",
            ))
            continue

        title = content.title
        try:
            results = await sync_service.sync_content(
                db, content, request.site_ids, client_factory, actor_id=actor_id, mode="bulk",
            )
        except HTTPException as exc:
            logs.extend(_lines(post_id, title, sites, "Failed", str(exc.detail)))
            continue
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error("Bulk sync of content %d failed: %s", post_id, exc, exc_info=True)
            logs.extend(_lines(post_id, title, sites, "Failed", "Error syncing to subsite."))
            continue

        logs.extend(
            BulkLogLine(
                post_id=post_id, post_name=title, site_id=r.site_id, site_name=r.site_name,
                sync_status=r.sync_status, sync_note=r.message,
            )
            for r in results
        )

    current = request.batch_index + 1
    processed = min(current * batch_size, len(post_ids))
    process_message = ""
    if len(post_ids) > settings.BULK_LARGE_SELECTION_THRESHOLD:
        process_message = (
            f"{processed} of {len(post_ids)} posts processed. "
            "Large selections take a while; please keep this page open."
        )
    logger.info("Bulk batch %d/%d processed (%d posts)", current, total_batches, len(batches[request.batch_index]))
    return BulkBatchResult(
        success=True,
        message=f"Batch {current} of {total_batches} processed successfully.",
        current_batch=current,
        total_batches=total_batches,
        posts_processed=processed,
        total_posts=len(post_ids),
        process_message=process_message,
        logs=logs,
    )


async def list_candidates(db: AsyncSession, content_type: str) -> tuple[list[BulkCandidate], str]:
    central = await site_service.get_central_site(db)
    policy = SyncPolicy.for_site(central)
    if content_type not in policy.post_types:
        raise HTTPException(status_code=400, detail="Post type does not exist.")

    rows = await content_repository.list_by_type(db, central.id, content_type)
    candidates = [BulkCandidate(post_id=c.id, post_title=c.title) for c in rows]
    return candidates, f"{len(candidates)} posts found."
