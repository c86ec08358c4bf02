"""Replication ingress - endpoints called by other sites in the network.

Every call carries the receiving site's shared secret in X-API-KEY. The key
is checked by a dependency, before the body is parsed.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.dependencies import get_db, require_site_api_key
from content_sync.models.site import Site
from content_sync.schemas.sync import (
    PostActionResponse,
    SyncPostPayload,
    SyncPostResponse,
    TrashPostRequest,
    UpdateSyncedDataRequest,
)
from content_sync.services import apply_service, sync_service

router = APIRouter()


# POST /sites/{site_id}/sync-post (site key)
@router.post("/{site_id}/sync-post", response_model=SyncPostResponse)
async def sync_post(
    request: Request,
    site: Site = Depends(require_site_api_key),
    db: AsyncSession = Depends(get_db),
):
    payload = SyncPostPayload.model_validate(await request.json())
    return await apply_service.receive_sync_post(db, site, payload)


# POST /sites/{site_id}/trash-post (site key)
@router.post("/{site_id}/trash-post", response_model=PostActionResponse)
async def trash_post(
    request: Request,
    site: Site = Depends(require_site_api_key),
    db: AsyncSession = Depends(get_db),
):
    body = TrashPostRequest.model_validate(await request.json())
    return await apply_service.receive_trash_post(db, site, body)


# POST /sites/{site_id}/untrash-post (site key)
@router.post("/{site_id}/untrash-post", response_model=PostActionResponse)
async def untrash_post(
    request: Request,
    site: Site = Depends(require_site_api_key),
    db: AsyncSession = Depends(get_db),
):
    body = TrashPostRequest.model_validate(await request.json())
    return await apply_service.receive_untrash_post(db, site, body)


# POST /sites/{site_id}/delete-post (site key)
@router.post("/{site_id}/delete-post", response_model=PostActionResponse)
async def delete_post(
    request: Request,
    site: Site = Depends(require_site_api_key),
    db: AsyncSession = Depends(get_db),
):
    body = TrashPostRequest.model_validate(await request.json())
    return await apply_service.receive_delete_post(db, site, body)


# POST /sites/{site_id}/update-synced-data (central site key)
@router.post("/{site_id}/update-synced-data", response_model=PostActionResponse)
async def update_synced_data(
    request: Request,
    site: Site = Depends(require_site_api_key),
    db: AsyncSession = Depends(get_db),
):
    body = UpdateSyncedDataRequest.model_validate(await request.json())
    message = await sync_service.record_outcome(db, body.central_post_id, body.subsite_id, body.subsite_synced_data)
    return PostActionResponse(success=True, message=message, subsite_post_id=body.subsite_synced_data.subsite_post_id)
