"""Sync log schemas."""
from datetime import datetime

from pydantic import BaseModel


class SyncLogResponse(BaseModel):
    id: int
    content_id: int
    content_name: str
    site_outcomes: list[dict]
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
