"""Sync log ORM model (append-only outcome trail, central side)."""
from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from content_sync.models.base import Base, IntPKMixin


class SyncLog(Base, IntPKMixin):
    __tablename__ = "sync_logs"

    content_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    content_name: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    # [{site_id, site_name, sync_time, sync_status, sync_note}]
    site_outcomes: Mapped[list] = mapped_column(JSONB, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
