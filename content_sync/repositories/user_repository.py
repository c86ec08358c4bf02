"""Network-wide user store."""
import uuid as _uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.models.user import User


async def get_by_login(db: AsyncSession, login: str) -> User | None:
    return (await db.execute(select(User).where(User.login == login))).scalar_one_or_none()


async def get_by_email(db: AsyncSession, email: str) -> User | None:
    return (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()


async def get_many(db: AsyncSession, user_ids: list[str]) -> list[User]:
    parsed = []
    for raw in user_ids:
        try:
            parsed.append(_uuid.UUID(str(raw)))
        except ValueError:
            continue
    if not parsed:
        return []
    rows = (await db.execute(select(User).where(User.id.in_(parsed)))).scalars().all()
    by_id = {u.id: u for u in rows}
    return [by_id[i] for i in parsed if i in by_id]


async def resolve(db: AsyncSession, login: str, email: str = "") -> User | None:
    """Username match wins over email match."""
    if login:
        user = await get_by_login(db, login)
        if user:
            return user
    if email:
        return await get_by_email(db, email)
    return None
