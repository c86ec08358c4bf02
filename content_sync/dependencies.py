"""FastAPI dependency injection utilities."""
import uuid as _uuid
from collections.abc import AsyncGenerator

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.database import async_session_factory
from content_sync.integrations.replication.client import ClientFactory, default_client_factory
from content_sync.middleware.error_handler import AppException
from content_sync.models.site import Site
from content_sync.models.user import User
from content_sync.services import key_service
from content_sync.services.auth_service import decode_access_token

security = HTTPBearer()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Extract current user from JWT access token."""
    try:
        payload = decode_access_token(credentials.credentials)
        user_id = payload.get("sub")
        if user_id is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
        user = await db.get(User, _uuid.UUID(user_id))
        if not user or not user.is_active:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or inactive user")
        return user
    except JWTError as e:
        detail = "Token expired" if "expired" in str(e).lower() else "Invalid token"
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def require_role(*roles: str):
    """Role-based access control dependency."""
    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role.value not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current_user
    return Depends(dependency)


async def require_site_api_key(
    site_id: int,
    x_api_key: str | None = Header(None, alias="X-API-KEY"),
    db: AsyncSession = Depends(get_db),
) -> Site:
    """Authenticate a replication call with the receiving site's shared secret.

    Runs before the request body is read.
    """
    site = await db.get(Site, site_id)
    if site is None or not await key_service.verify_api_key(db, site_id, x_api_key):
        raise AppException(status_code=401, detail="Invalid or missing API key.", error_type="unauthorized")
    return site


def get_client_factory() -> ClientFactory:
    return default_client_factory
