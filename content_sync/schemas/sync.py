"""Replication wire schemas: central -> subsite pushes and subsite -> central reports."""
import enum
from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from content_sync.models.queue import SyncKind
from content_sync.schemas.snapshot import ContentSnapshot


class SyncOutcome(str, enum.Enum):
    SYNCED = "synced"
    QUEUED_FOR_APPROVAL = "queued-for-approval"
    SKIPPED = "skipped"
    SUPERSEDED = "superseded"
    FAILED = "failed"


class LogData(BaseModel):
    post_id: int
    post_name: str = ""
    site_id: int
    site_name: str = ""
    sync_time: datetime
    sync_status: str
    sync_note: str = ""


class SyncPostPayload(BaseModel):
    central_post_id: int
    central_site_id: int
    central_entry_id: int | None = None
    content_type: str = "post"
    sync_kind: SyncKind = SyncKind.UPDATE
    disable_sync: bool = False
    source_url: str = ""
    snapshot: ContentSnapshot | None = None

    @model_validator(mode="after")
    def _require_snapshot(self) -> "SyncPostPayload":
        if not self.disable_sync and (self.snapshot is None or self.central_entry_id is None):
            raise ValueError("snapshot and central_entry_id are required unless disable_sync is set")
        return self


class SyncPostResponse(BaseModel):
    success: bool
    outcome: SyncOutcome
    message: str
    sync_status: str
    subsite_post_id: int = 0
    current_site_id: int
    log_data: LogData | None = None
    debug_message: str | None = None


class TrashPostRequest(BaseModel):
    central_post_id: int
    central_entry_id: int | None = None
    subsite_post_id: int = 0
    delete_on_subsite: bool = False


class PostActionResponse(BaseModel):
    success: bool
    message: str
    outcome: SyncOutcome | None = None
    subsite_post_id: int = 0


class SyncedSiteData(BaseModel):
    subsite_post_id: int = 0
    outcome: SyncOutcome
    sync_status: str
    sync_time: datetime
    message: str = ""


class UpdateSyncedDataRequest(BaseModel):
    central_post_id: int
    subsite_id: int
    subsite_synced_data: SyncedSiteData


class SyncContentRequest(BaseModel):
    selected_sites: list[int] = Field(default_factory=list)
    disable_sync: bool = False


class SiteSyncResult(BaseModel):
    site_id: int
    site_name: str = ""
    success: bool
    outcome: SyncOutcome
    sync_status: str
    message: str
    subsite_post_id: int = 0
    debug_message: str | None = None
