"""Subsite queue (reviewer) schemas."""
import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from content_sync.models.queue import SubsiteQueueStatus, SyncKind


class SubsiteQueueEntryResponse(BaseModel):
    id: int
    site_id: int
    central_entry_id: int
    central_content_id: int
    content_type: str
    local_content_id: int
    status: SubsiteQueueStatus
    sync_kind: SyncKind
    approved_by: uuid.UUID | None = None
    reject_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class DiffBlock(BaseModel):
    field: str
    label: str
    old: str = ""
    new: str = ""
    diff: list[str]


class PreviewResult(BaseModel):
    row_id: int
    sync_kind: SyncKind
    message: str | None = None
    blocks: list[DiffBlock] = Field(default_factory=list)


class ReviewOutcome(BaseModel):
    row_id: int
    status: SubsiteQueueStatus
    local_content_id: int = 0
    message: str
