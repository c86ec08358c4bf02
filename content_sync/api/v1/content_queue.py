"""Subsite content queue API - reviewer endpoints."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.dependencies import get_client_factory, get_db, require_role
from content_sync.integrations.replication.client import ClientFactory
from content_sync.models.queue import SubsiteQueueStatus
from content_sync.models.user import User
from content_sync.schemas.common import APIResponse, PaginationMeta
from content_sync.schemas.queue import RejectRequest, SubsiteQueueEntryResponse
from content_sync.services import approval_service, queue_service, site_service

router = APIRouter()


# GET /sites/{site_id}/queue (admin, editor)
@router.get("/{site_id}/queue", response_model=APIResponse)
async def list_queue(
    site_id: int,
    status_filter: SubsiteQueueStatus | None = Query(SubsiteQueueStatus.PENDING, alias="status"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    caller: User = require_role("admin", "editor"),
    db: AsyncSession = Depends(get_db),
):
    await site_service.require_site(db, site_id)
    rows, total = await queue_service.list_rows(db, site_id, status_filter, page, per_page)
    return APIResponse(
        status="success",
        data=[SubsiteQueueEntryResponse.model_validate(r).model_dump(mode="json") for r in rows],
        pagination=PaginationMeta(
            total=total, page=page, per_page=per_page,
            has_next=(page * per_page < total),
        ),
    )


# POST /sites/{site_id}/queue/{row_id}/approve (admin, editor)
@router.post("/{site_id}/queue/{row_id}/approve", response_model=APIResponse)
async def approve_row(
    site_id: int,
    row_id: int,
    caller: User = require_role("admin", "editor"),
    db: AsyncSession = Depends(get_db),
    client_factory: ClientFactory = Depends(get_client_factory),
):
    site = await site_service.require_site(db, site_id)
    outcome = await approval_service.approve(db, site, row_id, caller, client_factory)
    return APIResponse(status="success", data=outcome.model_dump(mode="json"), message=outcome.message)


# POST /sites/{site_id}/queue/{row_id}/reject (admin, editor)
@router.post("/{site_id}/queue/{row_id}/reject", response_model=APIResponse)
async def reject_row(
    site_id: int,
    row_id: int,
    body: RejectRequest,
    caller: User = require_role("admin", "editor"),
    db: AsyncSession = Depends(get_db),
):
    site = await site_service.require_site(db, site_id)
    outcome = await approval_service.reject(db, site, row_id, caller, body.reason)
    return APIResponse(status="success", data=outcome.model_dump(mode="json"), message=outcome.message)


# GET /sites/{site_id}/queue/{row_id}/preview (admin, editor)
@router.get("/{site_id}/queue/{row_id}/preview", response_model=APIResponse)
async def preview_row(
    site_id: int,
    row_id: int,
    caller: User = require_role("admin", "editor"),
    db: AsyncSession = Depends(get_db),
):
    site = await site_service.require_site(db, site_id)
    preview = await approval_service.preview_diff(db, site, row_id)
    return APIResponse(status="success", data=preview.model_dump(mode="json"), message=preview.message)
