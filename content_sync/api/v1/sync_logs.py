"""Sync log API."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.dependencies import get_db, require_role
from content_sync.models.user import User
from content_sync.schemas.common import APIResponse, PaginationMeta
from content_sync.schemas.sync_log import SyncLogResponse
from content_sync.services import sync_log_service

router = APIRouter()


# GET /sync-logs (admin, editor)
@router.get("", response_model=APIResponse)
async def list_logs(
    content_id: int | None = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    caller: User = require_role("admin", "editor"),
    db: AsyncSession = Depends(get_db),
):
    logs, total = await sync_log_service.list_logs(db, content_id, page, per_page)
    return APIResponse(
        status="success",
        data=[SyncLogResponse.model_validate(log).model_dump(mode="json") for log in logs],
        pagination=PaginationMeta(
            total=total, page=page, per_page=per_page,
            has_next=(page * per_page < total),
        ),
    )
