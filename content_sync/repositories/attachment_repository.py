"""Attachment store and the central-attachment cross-reference."""
import os

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.models.attachment import Attachment


async def get_by_id(db: AsyncSession, site_id: int, attachment_id: int) -> Attachment | None:
    return (await db.execute(
        select(Attachment).where(Attachment.site_id == site_id, Attachment.id == attachment_id)
    )).scalar_one_or_none()


async def get_many(db: AsyncSession, site_id: int, attachment_ids: list[int]) -> list[Attachment]:
    if not attachment_ids:
        return []
    rows = (await db.execute(
        select(Attachment).where(Attachment.site_id == site_id, Attachment.id.in_(attachment_ids))
    )).scalars().all()
    by_id = {a.id: a for a in rows}
    return [by_id[i] for i in attachment_ids if i in by_id]


async def get_by_central_id(db: AsyncSession, site_id: int, central_attachment_id: int) -> Attachment | None:
    return (await db.execute(
        select(Attachment).where(
            Attachment.site_id == site_id,
            Attachment.central_attachment_id == central_attachment_id,
        )
    )).scalar_one_or_none()


async def find_by_file_name(db: AsyncSession, site_id: int, file_name: str) -> Attachment | None:
    """Match an upload file name against originals and their resized copies."""
    rows = (await db.execute(
        select(Attachment).where(Attachment.site_id == site_id).order_by(Attachment.id)
    )).scalars().all()
    for attachment in rows:
        if os.path.basename(attachment.file_path) == file_name:
            return attachment
        if file_name in (attachment.sizes or {}).values():
            return attachment
    return None
