"""Reviewer workflow for subsite queue rows: approve, reject and preview."""
import difflib
import logging

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.integrations.replication.client import ClientFactory
from content_sync.integrations.replication.transport import TransportError, call_site
from content_sync.middleware.error_handler import AppException
from content_sync.models.content import ContentStatus
from content_sync.models.queue import SubsiteQueueEntry, SubsiteQueueStatus, SyncKind
from content_sync.models.site import Site
from content_sync.models.user import User
from content_sync.repositories import content_repository
from content_sync.schemas.policy import SyncPolicy
from content_sync.schemas.queue import DiffBlock, PreviewResult, ReviewOutcome
from content_sync.schemas.snapshot import ContentSnapshot
from content_sync.schemas.sync import LogData, SyncedSiteData, SyncOutcome, UpdateSyncedDataRequest
from content_sync.services import (
    apply_service,
    media_service,
    notification_service,
    queue_service,
    site_service,
    snapshot_service,
    sync_log_service,
)
from content_sync.utils.helpers import utc_now
from content_sync.utils.uploads import normalize_local_urls

logger = logging.getLogger(__name__)


def _title(row: SubsiteQueueEntry) -> str:
    if row.central_entry is not None:
        return (row.central_entry.snapshot or {}).get("title", "")
    return ""


async def _log(db: AsyncSession, site: Site, row: SubsiteQueueEntry, title: str, status: str, note: str) -> None:
    await sync_log_service.record(db, row.central_content_id, title, [LogData(
        post_id=row.central_content_id,
        post_name=title,
        site_id=site.id,
        site_name=site.name,
        sync_time=utc_now(),
        sync_status=status,
        sync_note=note,
    )])


async def report_outcome(
    db: AsyncSession,
    site: Site,
    central: Site,
    client_factory: ClientFactory,
    central_content_id: int,
    data: SyncedSiteData,
) -> bool:
    """Tell central about a decision made here. The call is idempotent and retried."""
    request = UpdateSyncedDataRequest(
        central_post_id=central_content_id, subsite_id=site.id, subsite_synced_data=data,
    )
    try:
        await call_site(db, central, client_factory, "update_synced_data", request, retry=True)
    except TransportError as exc:
        logger.warning(
            "Could not report outcome of central %d on site %d: %s (%s)",
            central_content_id, site.id, exc.message, exc.debug,
        )
        return False
    return True


# ── Approve ──

async def _approve_delete(
    db: AsyncSession, site: Site, row: SubsiteQueueEntry, policy: SyncPolicy, reviewer: User,
) -> tuple[int, str]:
    if not policy.delete_on_subsite:
        raise AppException(
            status_code=409, detail="Delete action is not allowed on this subsite.", error_type="policy-violation",
        )
    content = None
    if row.local_content_id:
        content = await content_repository.get_for_site(db, site.id, row.local_content_id)
    if content is None:
        raise HTTPException(status_code=404, detail="Post not found! Please reload the page and try again.")

    if content.status == ContentStatus.TRASH:
        message = "This post is already in Trash."
    else:
        content.pre_trash_status = content.status.value
        content.status = ContentStatus.TRASH
        message = "Post successfully removed from subsite."

    await queue_service.claim(db, row, SubsiteQueueStatus.DELETED, approved_by=reviewer.id)
    return content.id, message


async def approve(
    db: AsyncSession, site: Site, row_id: int, reviewer: User, client_factory: ClientFactory,
) -> ReviewOutcome:
    """Apply the current intent of a pending row on this site."""
    row = await queue_service.get_row(db, site.id, row_id, for_update=True)
    queue_service.validate_transition(row.status, SubsiteQueueStatus.APPROVED_APPLIED)

    entry = await queue_service.get_entry(db, row.central_entry_id)
    central = await site_service.get_central_site(db)
    policy = SyncPolicy.for_site(central, site)
    title = (entry.snapshot or {}).get("title", "") if entry else ""

    if row.sync_kind == SyncKind.DELETE:
        local_id, message = await _approve_delete(db, site, row, policy, reviewer)
        await _log(db, site, row, title, "Synced", message)
        await db.commit()
        await report_outcome(db, site, central, client_factory, row.central_content_id, SyncedSiteData(
            subsite_post_id=local_id, outcome=SyncOutcome.SYNCED,
            sync_status="Deleted", sync_time=utc_now(), message=message,
        ))
        logger.info("Delete of central %d approved on site %d", row.central_content_id, site.id)
        return ReviewOutcome(row_id=row.id, status=row.status, local_content_id=local_id, message=message)

    if entry is None or not entry.snapshot:
        raise HTTPException(status_code=400, detail="No data found for this record!")
    snapshot = ContentSnapshot.model_validate(entry.snapshot)
    existed = await content_repository.get_by_central_id(db, site.id, row.central_content_id) is not None

    try:
        async with db.begin_nested():
            result = await apply_service.apply_snapshot(
                db, site, central, snapshot, row.central_content_id, central.url,
            )
    except (SQLAlchemyError, apply_service.ApplyError, ValueError) as exc:
        logger.error("Approved apply of central %d on site %d failed", row.central_content_id, site.id, exc_info=True)
        message = (
            "Error while updating post on the subsite. Please try again." if existed
            else "Error while creating post on the subsite. Please try again."
        )
        await queue_service.claim(db, row, SubsiteQueueStatus.FAILED)
        await _log(db, site, row, title, "Failed", message)
        await db.commit()
        await report_outcome(db, site, central, client_factory, row.central_content_id, SyncedSiteData(
            subsite_post_id=row.local_content_id, outcome=SyncOutcome.FAILED,
            sync_status="Failed", sync_time=utc_now(), message=message,
        ))
        return ReviewOutcome(row_id=row.id, status=row.status, local_content_id=row.local_content_id, message=message)

    message = "Post successfully created on the subsite." if result.created else "Post successfully updated on the subsite."
    await queue_service.claim(
        db, row, SubsiteQueueStatus.APPROVED_APPLIED, local_content_id=result.content.id, approved_by=reviewer.id,
    )
    await _log(db, site, row, title, "Approved", message)
    await db.commit()
    if result.media_job is not None:
        media_service.dispatch(result.media_job.id)

    await report_outcome(db, site, central, client_factory, row.central_content_id, SyncedSiteData(
        subsite_post_id=result.content.id, outcome=SyncOutcome.SYNCED,
        sync_status="Approved", sync_time=utc_now(), message=message,
    ))
    logger.info("Row %d approved on site %d by %s", row.id, site.id, reviewer.login)
    return ReviewOutcome(row_id=row.id, status=row.status, local_content_id=result.content.id, message=message)


# ── Reject ──

async def reject(db: AsyncSession, site: Site, row_id: int, reviewer: User, reason: str) -> ReviewOutcome:
    reason = (reason or "").strip()
    if not reason:
        raise HTTPException(status_code=400, detail="Please enter a reason for rejecting this change.")

    row = await queue_service.get_row(db, site.id, row_id, for_update=True)
    await queue_service.claim(db, row, SubsiteQueueStatus.REJECTED, approved_by=reviewer.id, reject_reason=reason)

    title = _title(row)
    note = f"Changes to this post were rejected at subsite by {reviewer.display_name} with message: {reason}"
    await _log(db, site, row, title, "Rejected", note)
    await db.commit()

    try:
        central = await site_service.get_central_site(db)
        await notification_service.notify_rejection(
            db, site, central, row.central_entry, row.central_content_id, title, reviewer, reason,
        )
    except (HTTPException, SQLAlchemyError) as exc:
        await db.rollback()
        logger.warning("Rejection notice for row %d was not sent: %s", row.id, exc)

    return ReviewOutcome(
        row_id=row.id, status=row.status, local_content_id=row.local_content_id,
        message="Request has been rejected successfully.",
    )


# ── Preview ──

def _diff_lines(old: str, new: str) -> list[str]:
    return list(difflib.unified_diff(
        old.splitlines(), new.splitlines(), fromfile="current", tofile="incoming", lineterm="",
    ))


async def preview_diff(db: AsyncSession, site: Site, row_id: int) -> PreviewResult:
    """Field-by-field diff of the incoming change against the local object."""
    row = await queue_service.get_row(db, site.id, row_id)
    if row.status != SubsiteQueueStatus.PENDING:
        raise AppException(
            status_code=409,
            detail=f"Queue entry is already '{row.status.value}'",
            error_type="invalid-transition",
        )

    if row.sync_kind == SyncKind.DELETE:
        return PreviewResult(
            row_id=row.id,
            sync_kind=row.sync_kind,
            message=f"This {row.content_type} will be removed from this site.",
        )

    entry = await queue_service.get_entry(db, row.central_entry_id)
    if entry is None or not entry.compare_snapshot:
        raise HTTPException(status_code=400, detail="No data found for this record!")

    central = await site_service.get_central_site(db)
    local_compare: dict[str, dict] = {}
    local = await content_repository.get_by_central_id(db, site.id, row.central_content_id)
    if local is not None:
        policy = SyncPolicy.for_site(central, site)
        _, local_compare = await snapshot_service.build_snapshot(db, local, site, policy)

    blocks = []
    for field, incoming in entry.compare_snapshot.items():
        new = str(incoming.get("value") or "")
        current = local_compare.get(field, {})
        old = normalize_local_urls(str(current.get("value") or ""), site, central)
        if old == new:
            continue
        blocks.append(DiffBlock(
            field=field,
            label=incoming.get("label") or field,
            old=old,
            new=new,
            diff=_diff_lines(old, new),
        ))
    for field, current in local_compare.items():
        if field in entry.compare_snapshot:
            continue
        old = normalize_local_urls(str(current.get("value") or ""), site, central)
        if not old:
            continue
        blocks.append(DiffBlock(
            field=field, label=current.get("label") or field, old=old, new="", diff=_diff_lines(old, ""),
        ))
    return PreviewResult(row_id=row.id, sync_kind=row.sync_kind, blocks=blocks)
