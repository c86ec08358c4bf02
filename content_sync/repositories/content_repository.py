"""Content object store: content rows, metadata and taxonomy associations."""
from typing import Any

from sqlalchemy import delete as sa_delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.models.content import Content, ContentMeta, ContentStatus, Term, content_terms


async def get_by_id(db: AsyncSession, content_id: int) -> Content | None:
    return (await db.execute(select(Content).where(Content.id == content_id))).scalar_one_or_none()


async def get_for_site(db: AsyncSession, site_id: int, content_id: int) -> Content | None:
    return (await db.execute(
        select(Content).where(Content.site_id == site_id, Content.id == content_id)
    )).scalar_one_or_none()


async def get_for_update(db: AsyncSession, content_id: int) -> Content | None:
    """Fresh copy of the row, locked until the transaction ends."""
    return (await db.execute(
        select(Content)
        .where(Content.id == content_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )).scalar_one_or_none()


async def get_by_central_id(db: AsyncSession, site_id: int, central_content_id: int) -> Content | None:
    """Resolve a local object by the id of the central content it was replicated from."""
    return (await db.execute(
        select(Content)
        .where(Content.site_id == site_id, Content.central_content_id == central_content_id)
        .order_by(Content.id)
        .limit(1)
    )).scalar_one_or_none()


async def list_by_type(
    db: AsyncSession, site_id: int, content_type: str, status: ContentStatus = ContentStatus.PUBLISH,
) -> list[Content]:
    rows = (await db.execute(
        select(Content)
        .where(Content.site_id == site_id, Content.content_type == content_type, Content.status == status)
        .order_by(Content.id)
    )).scalars().all()
    return list(rows)


async def create(db: AsyncSession, content: Content) -> Content:
    db.add(content)
    await db.flush()
    return content


async def delete(db: AsyncSession, content: Content) -> None:
    await db.delete(content)
    await db.flush()


# ── Metadata ──

async def get_meta(db: AsyncSession, content_id: int) -> list[ContentMeta]:
    rows = (await db.execute(
        select(ContentMeta).where(ContentMeta.content_id == content_id).order_by(ContentMeta.id)
    )).scalars().all()
    return list(rows)


async def get_meta_value(db: AsyncSession, content_id: int, key: str) -> Any:
    row = (await db.execute(
        select(ContentMeta).where(ContentMeta.content_id == content_id, ContentMeta.meta_key == key)
    )).scalar_one_or_none()
    return row.meta_value if row else None


async def upsert_meta(db: AsyncSession, content_id: int, rows: list[ContentMeta]) -> None:
    """Write the given rows by key; keys not mentioned are left alone."""
    existing = {m.meta_key: m for m in await get_meta(db, content_id)}
    for row in rows:
        current = existing.get(row.meta_key)
        if current is None:
            row.content_id = content_id
            db.add(row)
            continue
        current.meta_value = row.meta_value
        current.field_type = row.field_type
        current.field_taxonomy = row.field_taxonomy
        current.label = row.label
    await db.flush()


async def delete_meta(db: AsyncSession, content_id: int, keys: list[str]) -> None:
    if not keys:
        return
    await db.execute(
        sa_delete(ContentMeta).where(ContentMeta.content_id == content_id, ContentMeta.meta_key.in_(keys))
    )
    await db.flush()


# ── Taxonomy associations ──

async def get_terms(db: AsyncSession, content_id: int) -> dict[str, list[Term]]:
    rows = (await db.execute(
        select(Term)
        .join(content_terms, content_terms.c.term_id == Term.id)
        .where(content_terms.c.content_id == content_id)
        .order_by(Term.taxonomy, Term.name)
    )).scalars().all()
    grouped: dict[str, list[Term]] = {}
    for term in rows:
        grouped.setdefault(term.taxonomy, []).append(term)
    return grouped


async def set_terms(db: AsyncSession, content_id: int, taxonomy: str, term_ids: list[int]) -> None:
    """Replace the object's terms in one taxonomy. An empty list clears it."""
    current = (await db.execute(
        select(Term.id)
        .join(content_terms, content_terms.c.term_id == Term.id)
        .where(content_terms.c.content_id == content_id, Term.taxonomy == taxonomy)
    )).scalars().all()
    if current:
        await db.execute(
            sa_delete(content_terms).where(
                content_terms.c.content_id == content_id,
                content_terms.c.term_id.in_(list(current)),
            )
        )
    unique_ids = list(dict.fromkeys(term_ids))
    if unique_ids:
        await db.execute(
            insert(content_terms),
            [{"content_id": content_id, "term_id": term_id} for term_id in unique_ids],
        )
