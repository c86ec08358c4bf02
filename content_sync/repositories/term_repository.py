"""Term store."""
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.models.content import Term


async def get_by_slug(db: AsyncSession, site_id: int, taxonomy: str, slug: str) -> Term | None:
    return (await db.execute(
        select(Term).where(Term.site_id == site_id, Term.taxonomy == taxonomy, Term.slug == slug)
    )).scalar_one_or_none()


async def get_many(db: AsyncSession, site_id: int, term_ids: list[int]) -> list[Term]:
    if not term_ids:
        return []
    rows = (await db.execute(
        select(Term).where(Term.site_id == site_id, Term.id.in_(term_ids))
    )).scalars().all()
    by_id = {t.id: t for t in rows}
    return [by_id[i] for i in term_ids if i in by_id]


async def get_or_create(
    db: AsyncSession, site_id: int, taxonomy: str, name: str, slug: str, description: str = "",
) -> Term:
    """Find a term by (taxonomy, slug) or insert it; a concurrent insert wins."""
    existing = await get_by_slug(db, site_id, taxonomy, slug)
    if existing:
        return existing
    term = Term(site_id=site_id, taxonomy=taxonomy, name=name or slug, slug=slug, description=description or "")
    try:
        async with db.begin_nested():
            db.add(term)
    except IntegrityError:
        existing = await get_by_slug(db, site_id, taxonomy, slug)
        if existing is None:
            raise
        return existing
    return term
