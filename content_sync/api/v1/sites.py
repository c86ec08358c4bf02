"""Sites and API keys."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.dependencies import get_db, require_role
from content_sync.models.user import User
from content_sync.schemas.common import APIResponse
from content_sync.schemas.site import ApiKeyResponse, SiteResponse
from content_sync.services import key_service, site_service

router = APIRouter()


# GET /sites (admin, editor)
@router.get("", response_model=APIResponse)
async def list_sites(
    caller: User = require_role("admin", "editor"),
    db: AsyncSession = Depends(get_db),
):
    sites = await site_service.list_sites(db)
    return APIResponse(status="success", data=[SiteResponse.model_validate(s).model_dump() for s in sites])


# GET /sites/{site_id} (admin, editor)
@router.get("/{site_id}", response_model=APIResponse)
async def get_site(
    site_id: int,
    caller: User = require_role("admin", "editor"),
    db: AsyncSession = Depends(get_db),
):
    site = await site_service.require_site(db, site_id)
    return APIResponse(status="success", data=SiteResponse.model_validate(site).model_dump())


# POST /sites/{site_id}/api-key (admin)
@router.post("/{site_id}/api-key", response_model=APIResponse)
async def create_api_key(
    site_id: int,
    caller: User = require_role("admin"),
    db: AsyncSession = Depends(get_db),
):
    await site_service.require_site(db, site_id)
    secret, created = await key_service.get_or_create_api_key(db, site_id)
    return APIResponse(
        status="success",
        data=ApiKeyResponse(site_id=site_id, api_key=secret, created=created).model_dump(),
        message="API key generated." if created else "API key already exists.",
    )
