"""Bulk fan-out schemas."""
from pydantic import BaseModel, Field


class BulkSyncRequest(BaseModel):
    post_ids: list[int] = Field(default_factory=list)
    site_ids: list[int] = Field(default_factory=list)
    batch_index: int = Field(0, ge=0)
    batch_size: int | None = Field(None, ge=1)


class BulkLogLine(BaseModel):
    post_id: int
    post_name: str = ""
    site_id: int
    site_name: str = ""
    sync_status: str
    sync_note: str = ""


class BulkBatchResult(BaseModel):
    success: bool
    message: str
    current_batch: int
    total_batches: int
    posts_processed: int
    total_posts: int
    process_message: str = ""
    logs: list[BulkLogLine] = Field(default_factory=list)


class BulkCandidate(BaseModel):
    post_id: int
    post_title: str
