"""Network site lookups."""
from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.models.site import Site


async def get_site(db: AsyncSession, site_id: int) -> Site | None:
    return await db.get(Site, site_id)


async def require_site(db: AsyncSession, site_id: int) -> Site:
    site = await get_site(db, site_id)
    if site is None:
        raise HTTPException(status_code=404, detail="Site not found")
    return site


async def get_central_site(db: AsyncSession) -> Site:
    site = (await db.execute(select(Site).where(Site.is_central.is_(True)).limit(1))).scalar_one_or_none()
    if site is None:
        raise HTTPException(status_code=409, detail="No central site is configured for this network")
    return site


async def list_sites(db: AsyncSession) -> list[Site]:
    return list((await db.execute(select(Site).order_by(Site.id))).scalars().all())


async def get_sites(db: AsyncSession, site_ids: list[int]) -> dict[int, Site]:
    if not site_ids:
        return {}
    rows = (await db.execute(select(Site).where(Site.id.in_(site_ids)))).scalars().all()
    return {s.id: s for s in rows}
