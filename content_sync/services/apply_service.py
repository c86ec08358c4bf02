"""Subsite side of replication: apply snapshots and handle trash/untrash/delete pushes."""
import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.middleware.metrics import record_sync_outcome
from content_sync.models.content import Content, ContentMeta, ContentStatus
from content_sync.models.media_job import MediaReconcileJob
from content_sync.models.queue import SubsiteQueueEntry, SubsiteQueueStatus
from content_sync.models.site import Site
from content_sync.repositories import content_repository, term_repository, user_repository
from content_sync.schemas.policy import SyncPolicy
from content_sync.schemas.snapshot import ContentSnapshot
from content_sync.schemas.sync import (
    LogData,
    PostActionResponse,
    SyncOutcome,
    SyncPostPayload,
    SyncPostResponse,
    TrashPostRequest,
)
from content_sync.services import media_service, queue_service, relational_fields, site_service
from content_sync.utils.helpers import utc_now

logger = logging.getLogger(__name__)

YOAST_PRIMARY_SLUG_KEY = "_yoast_wpseo_primary_category_slug"
YOAST_PRIMARY_KEY = "_yoast_wpseo_primary_category"


class ApplyError(Exception):
    """A snapshot could not be materialized on the receiving site."""


@dataclass
class ApplyResult:
    content: Content
    created: bool
    media_job: MediaReconcileJob | None = None


# ── Apply ──

async def _apply_meta(
    db: AsyncSession, site: Site, content: Content, snapshot: ContentSnapshot, source_url: str,
) -> None:
    rows = [ContentMeta(meta_key=key, meta_value=value) for key, value in snapshot.meta_fields.items()]

    slug = snapshot.meta_fields.get(YOAST_PRIMARY_SLUG_KEY)
    if slug:
        term = await term_repository.get_by_slug(db, site.id, "category", str(slug))
        if term is not None:
            rows.append(ContentMeta(meta_key=YOAST_PRIMARY_KEY, meta_value=term.id))

    resolved = await relational_fields.resolve_fields(db, site, snapshot.relational_fields, source_url)
    rows.extend(resolved)
    await content_repository.upsert_meta(db, content.id, rows)

    # Relational fields that resolve to nothing must not keep a stale local value
    resolved_keys = {row.meta_key for row in resolved}
    unresolved = [key for key in snapshot.relational_fields if key not in resolved_keys]
    await content_repository.delete_meta(db, content.id, unresolved)


async def _apply_terms(db: AsyncSession, site: Site, content: Content, snapshot: ContentSnapshot) -> None:
    for taxonomy, refs in snapshot.taxonomy_terms.items():
        term_ids = []
        for ref in refs:
            term = await term_repository.get_or_create(db, site.id, taxonomy, ref.name, ref.slug, ref.description)
            term_ids.append(term.id)
        await content_repository.set_terms(db, content.id, taxonomy, term_ids)


async def apply_snapshot(
    db: AsyncSession,
    site: Site,
    central: Site,
    snapshot: ContentSnapshot,
    central_content_id: int,
    source_url: str = "",
) -> ApplyResult:
    """Create or update the local object for central_content_id from a snapshot.

    Runs in the caller's transaction. Media is scheduled, never copied here.
    """
    try:
        status = ContentStatus(snapshot.status)
    except ValueError as exc:
        raise ApplyError(f"Unknown status '{snapshot.status}'") from exc

    content = await content_repository.get_by_central_id(db, site.id, central_content_id)
    created = content is None
    if created:
        content = Content(site_id=site.id, content_type=snapshot.content_type, central_content_id=central_content_id)

    content.content_type = snapshot.content_type
    content.title = snapshot.title
    content.slug = snapshot.slug
    content.body = snapshot.body
    content.body_filtered = snapshot.body_filtered
    content.status = status

    if snapshot.author is not None:
        author = await user_repository.resolve(db, snapshot.author.login, snapshot.author.email)
        if author is not None:
            content.author_id = author.id

    if created:
        await content_repository.create(db, content)
    else:
        await db.flush()

    # Terms first: the primary-category meta points at a local term
    await _apply_terms(db, site, content, snapshot)
    await _apply_meta(db, site, content, snapshot, source_url)

    media_job = await media_service.schedule(db, site, central, content, snapshot)
    logger.info(
        "%s content %d on site %d from central %d",
        "Created" if created else "Updated", content.id, site.id, central_content_id,
    )
    return ApplyResult(content=content, created=created, media_job=media_job)


# ── Ingress: sync-post ──

def _response(
    site: Site,
    payload: SyncPostPayload,
    outcome: SyncOutcome,
    message: str,
    sync_status: str,
    local_id: int = 0,
    debug: str | None = None,
) -> SyncPostResponse:
    title = payload.snapshot.title if payload.snapshot else ""
    record_sync_outcome("apply", outcome.value)
    return SyncPostResponse(
        success=outcome != SyncOutcome.FAILED,
        outcome=outcome,
        message=message,
        sync_status=sync_status,
        subsite_post_id=local_id,
        current_site_id=site.id,
        log_data=LogData(
            post_id=payload.central_post_id,
            post_name=title,
            site_id=site.id,
            site_name=site.name,
            sync_time=utc_now(),
            sync_status=sync_status,
            sync_note=message,
        ),
        debug_message=debug,
    )


async def _is_latest(db: AsyncSession, site: Site, payload: SyncPostPayload) -> SubsiteQueueEntry | None:
    """The pending row for this push, or None if a newer intent replaced it."""
    row = await queue_service.get_row_for_entry(db, site.id, payload.central_entry_id)
    latest = await queue_service.latest_live_row(db, site.id, payload.central_post_id)
    if row is None or latest is None or latest.id != row.id:
        return None
    return row


async def receive_sync_post(db: AsyncSession, site: Site, payload: SyncPostPayload) -> SyncPostResponse:
    """Handle a sync push from central on this site."""
    local = await content_repository.get_by_central_id(db, site.id, payload.central_post_id)
    local_id = local.id if local else 0

    if payload.disable_sync:
        return _response(
            site, payload, SyncOutcome.SKIPPED,
            "The sync setting for this post is disabled, so it will not be synchronized.",
            "Skipped", local_id,
        )

    row = await _is_latest(db, site, payload)
    if row is None:
        logger.info(
            "Ignoring superseded push of central %d (entry %s) on site %d",
            payload.central_post_id, payload.central_entry_id, site.id,
        )
        return _response(
            site, payload, SyncOutcome.SUPERSEDED,
            "A newer change for this post has already been queued.", "Superseded", local_id,
        )

    central = await site_service.get_central_site(db)
    policy = SyncPolicy.for_site(central, site)
    if policy.approval_required:
        return _response(
            site, payload, SyncOutcome.QUEUED_FOR_APPROVAL,
            "Post added to the approval queue on the subsite.", "Added to Queue", local_id,
        )

    updating = local is not None
    try:
        async with db.begin_nested():
            result = await apply_snapshot(
                db, site, central, payload.snapshot, payload.central_post_id, payload.source_url,
            )
    except (SQLAlchemyError, ApplyError, ValueError) as exc:
        logger.error(
            "Apply of central %d on site %d failed: %s", payload.central_post_id, site.id, exc, exc_info=True,
        )
        queue_service.transition(row, SubsiteQueueStatus.FAILED)
        await db.commit()
        message = "Error updating the post on the subsite." if updating else "Error creating a post to subsite."
        return _response(site, payload, SyncOutcome.FAILED, message, "Failed", local_id, debug=str(exc))

    row.local_content_id = result.content.id
    queue_service.transition(row, SubsiteQueueStatus.SYNCED)
    await db.commit()
    if result.media_job is not None:
        media_service.dispatch(result.media_job.id)

    message = "Post successfully created on the subsite." if result.created else "Post successfully updated on the subsite."
    sync_status = "Bulk Synced" if payload.snapshot.mode == "bulk" else "Synced"
    return _response(site, payload, SyncOutcome.SYNCED, message, sync_status, result.content.id)


# ── Ingress: trash / untrash / delete ──

async def _local_for(db: AsyncSession, site: Site, request: TrashPostRequest) -> Content | None:
    if request.subsite_post_id:
        content = await content_repository.get_for_site(db, site.id, request.subsite_post_id)
        if content is not None:
            return content
    return await content_repository.get_by_central_id(db, site.id, request.central_post_id)


def _trash(content: Content) -> None:
    content.pre_trash_status = content.status.value
    content.status = ContentStatus.TRASH


async def receive_trash_post(db: AsyncSession, site: Site, request: TrashPostRequest) -> PostActionResponse:
    if not request.central_post_id:
        return PostActionResponse(success=False, message="Post ID is missing.")
    if not request.delete_on_subsite:
        return PostActionResponse(success=False, message="This post should not be move to trash.")

    content = await _local_for(db, site, request)
    if content is None:
        return PostActionResponse(success=False, message="Post not found!")

    if request.central_entry_id is not None:
        row = await queue_service.get_row_for_entry(db, site.id, request.central_entry_id)
        latest = await queue_service.latest_live_row(db, site.id, request.central_post_id)
        if row is None or latest is None or latest.id != row.id:
            return PostActionResponse(
                success=True, message="A newer change for this post has already been queued.",
                outcome=SyncOutcome.SUPERSEDED, subsite_post_id=content.id,
            )
        central = await site_service.get_central_site(db)
        if SyncPolicy.for_site(central, site).approval_required:
            return PostActionResponse(
                success=True, message="Post added to the approval queue on the subsite.",
                outcome=SyncOutcome.QUEUED_FOR_APPROVAL, subsite_post_id=content.id,
            )
        queue_service.transition(row, SubsiteQueueStatus.DELETED)

    if content.status != ContentStatus.TRASH:
        _trash(content)
    await db.commit()
    logger.info("Trashed content %d on site %d", content.id, site.id)
    return PostActionResponse(
        success=True, message="Post successfully trashed.", outcome=SyncOutcome.SYNCED, subsite_post_id=content.id,
    )


async def receive_untrash_post(db: AsyncSession, site: Site, request: TrashPostRequest) -> PostActionResponse:
    if not request.central_post_id:
        return PostActionResponse(success=False, message="Post ID is missing.")
    if not request.delete_on_subsite:
        return PostActionResponse(success=False, message="This post should not be move to untrash.")

    content = await _local_for(db, site, request)
    if content is None:
        return PostActionResponse(success=False, message="Post not found!")

    if content.status == ContentStatus.TRASH:
        content.status = ContentStatus(content.pre_trash_status or ContentStatus.DRAFT.value)
        content.pre_trash_status = None
    await db.commit()
    logger.info("Restored content %d on site %d", content.id, site.id)
    return PostActionResponse(
        success=True, message="Post successfully untrashed.", outcome=SyncOutcome.SYNCED, subsite_post_id=content.id,
    )


async def receive_delete_post(db: AsyncSession, site: Site, request: TrashPostRequest) -> PostActionResponse:
    if not request.central_post_id:
        return PostActionResponse(success=False, message="Post ID is missing.")
    if not request.delete_on_subsite:
        return PostActionResponse(success=False, message="This post should not be delete.")

    content = await _local_for(db, site, request)
    if content is None:
        return PostActionResponse(success=False, message="Post not found!")

    content_id = content.id
    await content_repository.delete(db, content)
    await db.commit()
    logger.info("Deleted content %d on site %d", content_id, site.id)
    return PostActionResponse(
        success=True, message="Post successfully deleted.", outcome=SyncOutcome.SYNCED, subsite_post_id=content_id,
    )