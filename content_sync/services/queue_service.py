"""Central and subsite sync queues.

Supersession: at most one live central entry per content id, and per site at
most one pending row per central content id. Both are enforced here and by
partial unique indexes on the tables.
"""
import logging
import uuid

from fastapi import HTTPException
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.middleware.error_handler import AppException
from content_sync.models.content import Content
from content_sync.models.queue import (
    CentralQueueEntry,
    SiteQueueStatus,
    SubsiteQueueEntry,
    SubsiteQueueStatus,
    SyncKind,
)
from content_sync.schemas.snapshot import ContentSnapshot

logger = logging.getLogger(__name__)

# --- Subsite row state machine ---

TRANSITIONS: dict[SubsiteQueueStatus, set[SubsiteQueueStatus]] = {
    SubsiteQueueStatus.PENDING: {
        SubsiteQueueStatus.SYNCED,
        SubsiteQueueStatus.APPROVED_APPLIED,
        SubsiteQueueStatus.REJECTED,
        SubsiteQueueStatus.EXPIRED,
        SubsiteQueueStatus.DELETED,
        SubsiteQueueStatus.FAILED,
    },
}


def validate_transition(from_status: SubsiteQueueStatus, to_status: SubsiteQueueStatus) -> None:
    allowed = TRANSITIONS.get(from_status, set())
    if to_status not in allowed:
        raise AppException(
            status_code=409,
            detail=f"Queue entry is already '{from_status.value}' and cannot become '{to_status.value}'",
            error_type="invalid-transition",
        )


def transition(row: SubsiteQueueEntry, to_status: SubsiteQueueStatus) -> SubsiteQueueEntry:
    validate_transition(row.status, to_status)
    row.status = to_status
    return row


async def claim(db: AsyncSession, row: SubsiteQueueEntry, to_status: SubsiteQueueStatus, **values) -> SubsiteQueueEntry:
    """Move a row out of pending only if it is still pending in the database.

    A concurrent enqueue or a second reviewer may have decided the row since it
    was read; the conditional update loses to them with a 409.
    """
    validate_transition(row.status, to_status)
    result = await db.execute(
        update(SubsiteQueueEntry)
        .where(SubsiteQueueEntry.id == row.id, SubsiteQueueEntry.status == SubsiteQueueStatus.PENDING)
        .values(status=to_status, **values)
        .execution_options(synchronize_session=False)
    )
    await db.refresh(row)
    if not result.rowcount:
        logger.warning("Row %d was decided concurrently (now %s)", row.id, row.status.value)
        validate_transition(row.status, to_status)
    return row


# --- Latest-intent accessors ---

async def latest_live_entry(db: AsyncSession, content_id: int) -> CentralQueueEntry | None:
    return (await db.execute(
        select(CentralQueueEntry)
        .where(CentralQueueEntry.content_id == content_id, CentralQueueEntry.sync_kind != SyncKind.EXPIRED)
        .order_by(CentralQueueEntry.id.desc())
        .limit(1)
    )).scalar_one_or_none()


async def latest_live_row(db: AsyncSession, site_id: int, central_content_id: int) -> SubsiteQueueEntry | None:
    return (await db.execute(
        select(SubsiteQueueEntry)
        .where(
            SubsiteQueueEntry.site_id == site_id,
            SubsiteQueueEntry.central_content_id == central_content_id,
            SubsiteQueueEntry.status == SubsiteQueueStatus.PENDING,
        )
        .order_by(SubsiteQueueEntry.id.desc())
        .limit(1)
    )).scalar_one_or_none()


async def has_entries(db: AsyncSession, content_id: int) -> bool:
    count = (await db.execute(
        select(func.count()).select_from(CentralQueueEntry).where(CentralQueueEntry.content_id == content_id)
    )).scalar() or 0
    return count > 0


# --- Enqueue ---

async def expire_pending_rows(db: AsyncSession, site_id: int, central_content_id: int) -> int:
    result = await db.execute(
        update(SubsiteQueueEntry)
        .where(
            SubsiteQueueEntry.site_id == site_id,
            SubsiteQueueEntry.central_content_id == central_content_id,
            SubsiteQueueEntry.status == SubsiteQueueStatus.PENDING,
        )
        .values(status=SubsiteQueueStatus.EXPIRED)
    )
    return result.rowcount or 0


async def expire_rows(db: AsyncSession, row_ids: list[int]) -> int:
    if not row_ids:
        return 0
    result = await db.execute(
        update(SubsiteQueueEntry)
        .where(SubsiteQueueEntry.id.in_(row_ids), SubsiteQueueEntry.status == SubsiteQueueStatus.PENDING)
        .values(status=SubsiteQueueStatus.EXPIRED)
    )
    return result.rowcount or 0


async def expire_content(db: AsyncSession, content_id: int) -> None:
    """Retire every live intent for a content object that is going away."""
    live = (await db.execute(
        select(CentralQueueEntry)
        .where(CentralQueueEntry.content_id == content_id, CentralQueueEntry.sync_kind != SyncKind.EXPIRED)
    )).scalars().all()
    for entry in live:
        entry.site_statuses = {site: SiteQueueStatus.EXPIRED.value for site in entry.site_statuses}
        entry.sync_kind = SyncKind.EXPIRED
    await db.execute(
        update(SubsiteQueueEntry)
        .where(
            SubsiteQueueEntry.central_content_id == content_id,
            SubsiteQueueEntry.status == SubsiteQueueStatus.PENDING,
        )
        .values(status=SubsiteQueueStatus.EXPIRED)
    )
    await db.flush()


async def enqueue(
    db: AsyncSession,
    content: Content,
    snapshot: ContentSnapshot,
    compare_snapshot: dict,
    target_sites: list[int],
    sync_kind: SyncKind,
    local_ids: dict[int, int] | None = None,
    author_id: uuid.UUID | None = None,
) -> tuple[CentralQueueEntry, list[SubsiteQueueEntry]]:
    """Record a new sync intent and fan it out to the target sites' queues.

    Runs in the caller's transaction; nothing is committed here.
    """
    local_ids = local_ids or {}

    live = (await db.execute(
        select(CentralQueueEntry)
        .where(CentralQueueEntry.content_id == content.id, CentralQueueEntry.sync_kind != SyncKind.EXPIRED)
        .with_for_update()
    )).scalars().all()
    for previous in live:
        previous.site_statuses = {site: SiteQueueStatus.EXPIRED.value for site in previous.site_statuses}
        previous.sync_kind = SyncKind.EXPIRED
    if live:
        await db.flush()
        logger.info("Superseded %d central entries for content %d", len(live), content.id)

    entry = CentralQueueEntry(
        content_id=content.id,
        content_type=content.content_type,
        target_sites=list(target_sites),
        site_statuses={str(site_id): SiteQueueStatus.PENDING.value for site_id in target_sites},
        sync_kind=sync_kind,
        snapshot=snapshot.model_dump(mode="json"),
        compare_snapshot=compare_snapshot,
        author_id=author_id,
    )
    db.add(entry)
    await db.flush()

    rows: list[SubsiteQueueEntry] = []
    for site_id in target_sites:
        local_id = local_ids.get(site_id, 0)
        expired = await expire_pending_rows(db, site_id, content.id)
        if expired:
            logger.info("Superseded %d pending rows for content %d on site %d", expired, content.id, site_id)
        if sync_kind == SyncKind.DELETE and not local_id:
            # Never created on that site, nothing to remove
            continue
        row = SubsiteQueueEntry(
            site_id=site_id,
            central_entry_id=entry.id,
            central_content_id=content.id,
            content_type=content.content_type,
            local_content_id=local_id,
            status=SubsiteQueueStatus.PENDING,
            sync_kind=sync_kind,
        )
        db.add(row)
        rows.append(row)
    await db.flush()
    return entry, rows


# --- Reads ---

async def get_row(db: AsyncSession, site_id: int, row_id: int, for_update: bool = False) -> SubsiteQueueEntry:
    query = select(SubsiteQueueEntry).where(SubsiteQueueEntry.site_id == site_id, SubsiteQueueEntry.id == row_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    row = (await db.execute(query)).scalar_one_or_none()
    if row is None:
        raise HTTPException(status_code=404, detail="Post not found! Please reload the page and try again.")
    return row


async def get_row_for_entry(db: AsyncSession, site_id: int, central_entry_id: int) -> SubsiteQueueEntry | None:
    return (await db.execute(
        select(SubsiteQueueEntry).where(
            SubsiteQueueEntry.site_id == site_id,
            SubsiteQueueEntry.central_entry_id == central_entry_id,
        )
    )).scalar_one_or_none()


async def get_entry(db: AsyncSession, entry_id: int) -> CentralQueueEntry | None:
    return (await db.execute(
        select(CentralQueueEntry)
        .where(CentralQueueEntry.id == entry_id)
        .execution_options(populate_existing=True)
    )).scalar_one_or_none()


async def list_rows(
    db: AsyncSession,
    site_id: int,
    status: SubsiteQueueStatus | None = SubsiteQueueStatus.PENDING,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[SubsiteQueueEntry], int]:
    """Reviewer read path. Pending rows are the latest live intent per content id."""
    query = select(SubsiteQueueEntry).where(SubsiteQueueEntry.site_id == site_id)
    if status is not None:
        query = query.where(SubsiteQueueEntry.status == status)

    count_q = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_q)).scalar() or 0

    offset = (page - 1) * per_page
    query = query.order_by(SubsiteQueueEntry.id.desc()).offset(offset).limit(per_page)
    result = await db.execute(query)
    return list(result.scalars().all()), total
