"""Bulk sync API."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.dependencies import get_client_factory, get_db, require_role
from content_sync.integrations.replication.client import ClientFactory
from content_sync.models.user import User
from content_sync.schemas.bulk import BulkSyncRequest
from content_sync.schemas.common import APIResponse
from content_sync.services import bulk_service

router = APIRouter()


# GET /bulk-sync/candidates (admin, editor)
@router.get("/candidates", response_model=APIResponse)
async def list_candidates(
    content_type: str = Query("post"),
    caller: User = require_role("admin", "editor"),
    db: AsyncSession = Depends(get_db),
):
    candidates, message = await bulk_service.list_candidates(db, content_type)
    return APIResponse(status="success", data=[c.model_dump() for c in candidates], message=message)


# POST /bulk-sync/batch (admin, editor)
@router.post("/batch", response_model=APIResponse)
async def run_batch(
    body: BulkSyncRequest,
    caller: User = require_role("admin", "editor"),
    db: AsyncSession = Depends(get_db),
    client_factory: ClientFactory = Depends(get_client_factory),
):
    result = await bulk_service.run_batch(db, body, client_factory, actor_id=caller.id)
    return APIResponse(
        status="success" if result.success else "error",
        data=result.model_dump(mode="json"),
        message=result.message,
    )
