"""Central content sync API - 5 endpoints."""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.dependencies import get_client_factory, get_db, require_role
from content_sync.integrations.replication.client import ClientFactory
from content_sync.models.content import Content
from content_sync.models.user import User
from content_sync.repositories import content_repository
from content_sync.schemas.common import APIResponse
from content_sync.schemas.sync import SyncContentRequest
from content_sync.services import sync_service

router = APIRouter()


async def _get_content(db: AsyncSession, content_id: int) -> Content:
    content = await content_repository.get_by_id(db, content_id)
    if content is None:
        raise HTTPException(status_code=404, detail="Post not found!")
    return content


# POST /contents/{id}/sync (admin, editor)
@router.post("/{content_id}/sync", response_model=APIResponse)
async def sync_content(
    content_id: int,
    body: SyncContentRequest,
    caller: User = require_role("admin", "editor"),
    db: AsyncSession = Depends(get_db),
    client_factory: ClientFactory = Depends(get_client_factory),
):
    content = await _get_content(db, content_id)
    results = await sync_service.sync_content(
        db, content, body.selected_sites, client_factory,
        actor_id=caller.id, disable_sync=body.disable_sync,
    )
    return APIResponse(
        status="success",
        data=[r.model_dump(mode="json") for r in results],
        message=f"Processed {len(results)} sites",
    )


# POST /contents/{id}/trash (admin, editor)
@router.post("/{content_id}/trash", response_model=APIResponse)
async def trash_content(
    content_id: int,
    caller: User = require_role("admin", "editor"),
    db: AsyncSession = Depends(get_db),
    client_factory: ClientFactory = Depends(get_client_factory),
):
    content = await _get_content(db, content_id)
    results = await sync_service.trash_content(db, content, client_factory, actor_id=caller.id)
    return APIResponse(
        status="success",
        data=[r.model_dump(mode="json") for r in results],
        message="Post moved to Trash.",
    )


# POST /contents/{id}/untrash (admin, editor)
@router.post("/{content_id}/untrash", response_model=APIResponse)
async def untrash_content(
    content_id: int,
    caller: User = require_role("admin", "editor"),
    db: AsyncSession = Depends(get_db),
    client_factory: ClientFactory = Depends(get_client_factory),
):
    content = await _get_content(db, content_id)
    results = await sync_service.untrash_content(db, content, client_factory)
    return APIResponse(
        status="success",
        data=[r.model_dump(mode="json") for r in results],
        message="Post restored from Trash.",
    )


# DELETE /contents/{id} (admin)
@router.delete("/{content_id}", response_model=APIResponse)
async def delete_content(
    content_id: int,
    caller: User = require_role("admin"),
    db: AsyncSession = Depends(get_db),
    client_factory: ClientFactory = Depends(get_client_factory),
):
    content = await _get_content(db, content_id)
    results = await sync_service.delete_content(db, content, client_factory)
    return APIResponse(
        status="success",
        data=[r.model_dump(mode="json") for r in results],
        message="Post deleted.",
    )


# GET /contents/{id}/synced-sites (admin, editor)
@router.get("/{content_id}/synced-sites", response_model=APIResponse)
async def synced_sites(
    content_id: int,
    caller: User = require_role("admin", "editor"),
    db: AsyncSession = Depends(get_db),
):
    content = await _get_content(db, content_id)
    synced = sync_service.list_synced_sites(content)
    return APIResponse(
        status="success",
        data={str(site_id): data.model_dump(mode="json") for site_id, data in synced.items()},
    )
