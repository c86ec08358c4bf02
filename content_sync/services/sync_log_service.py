"""Append-only sync log."""
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.models.sync_log import SyncLog
from content_sync.schemas.sync import LogData


async def record(db: AsyncSession, content_id: int, content_name: str, entries: list[LogData]) -> SyncLog | None:
    """Write one row aggregating the per-site outcomes of a fan-out."""
    if not entries:
        return None
    log = SyncLog(
        content_id=content_id,
        content_name=content_name,
        site_outcomes=[entry.model_dump(mode="json") for entry in entries],
    )
    db.add(log)
    await db.flush()
    return log


async def list_logs(
    db: AsyncSession, content_id: int | None = None, page: int = 1, per_page: int = 20,
) -> tuple[list[SyncLog], int]:
    query = select(SyncLog)
    if content_id is not None:
        query = query.where(SyncLog.content_id == content_id)

    count_q = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_q)).scalar() or 0

    offset = (page - 1) * per_page
    query = query.order_by(SyncLog.id.desc()).offset(offset).limit(per_page)
    result = await db.execute(query)
    return list(result.scalars().all()), total
