"""Deferred media reconciliation job ORM model."""
import enum

from sqlalchemy import ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from content_sync.models.base import Base, IntPKMixin, TimestampMixin, pg_enum


class MediaJobStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class MediaReconcileJob(Base, IntPKMixin, TimestampMixin):
    __tablename__ = "media_reconcile_jobs"
    __table_args__ = (
        # Dedupe key while a job is waiting to run
        Index(
            "uq_media_jobs_pending",
            "site_id",
            "subsite_content_id",
            "media_set_hash",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    site_id: Mapped[int] = mapped_column(Integer, ForeignKey("sites.id"), nullable=False)
    subsite_content_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("contents.id", ondelete="CASCADE"), nullable=False
    )
    central_site_id: Mapped[int] = mapped_column(Integer, ForeignKey("sites.id"), nullable=False)
    media_set_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    # {"featured_image": {...} | None, "content_media": [...]}
    media_set: Mapped[dict] = mapped_column(JSONB, nullable=False)
    status: Mapped[MediaJobStatus] = mapped_column(
        pg_enum(MediaJobStatus, name="media_job_status"), nullable=False, default=MediaJobStatus.PENDING
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    celery_task_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
