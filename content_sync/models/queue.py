"""Central and subsite sync queue ORM models."""
import enum
import uuid

from sqlalchemy import ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from content_sync.models.base import Base, IntPKMixin, TimestampMixin, pg_enum


class SyncKind(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    EXPIRED = "expired"


class SiteQueueStatus(str, enum.Enum):
    """Per-site status recorded on a central entry at fan-out time."""

    PENDING = "pending"
    EXPIRED = "expired"


class SubsiteQueueStatus(str, enum.Enum):
    PENDING = "pending"
    SYNCED = "synced"
    APPROVED_APPLIED = "approved_applied"
    REJECTED = "rejected"
    FAILED = "failed"
    EXPIRED = "expired"
    DELETED = "deleted"


class CentralQueueEntry(Base, IntPKMixin, TimestampMixin):
    __tablename__ = "central_queue_entries"
    __table_args__ = (
        Index("ix_central_queue_content_kind", "content_id", "sync_kind"),
        # One live intent per content object
        Index(
            "uq_central_queue_live_content",
            "content_id",
            unique=True,
            postgresql_where=text("sync_kind <> 'expired'"),
            sqlite_where=text("sync_kind <> 'expired'"),
        ),
    )

    content_id: Mapped[int] = mapped_column(Integer, nullable=False)
    content_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_sites: Mapped[list] = mapped_column(JSONB, nullable=False)
    site_statuses: Mapped[dict] = mapped_column(JSONB, nullable=False)
    sync_kind: Mapped[SyncKind] = mapped_column(pg_enum(SyncKind, name="sync_kind"), nullable=False)
    snapshot: Mapped[dict] = mapped_column(JSONB, nullable=False)
    compare_snapshot: Mapped[dict] = mapped_column(JSONB, nullable=False)
    author_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)


class SubsiteQueueEntry(Base, IntPKMixin, TimestampMixin):
    """Fan-out row for one (central entry, subsite) pair. Every query is scoped by site_id."""

    __tablename__ = "subsite_queue_entries"
    __table_args__ = (
        Index("ix_subsite_queue_site_content_status", "site_id", "central_content_id", "status"),
        Index(
            "uq_subsite_queue_pending_content",
            "site_id",
            "central_content_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    site_id: Mapped[int] = mapped_column(Integer, ForeignKey("sites.id"), nullable=False)
    central_entry_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("central_queue_entries.id"), nullable=False
    )
    central_content_id: Mapped[int] = mapped_column(Integer, nullable=False)
    content_type: Mapped[str] = mapped_column(String(50), nullable=False)
    local_content_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[SubsiteQueueStatus] = mapped_column(
        pg_enum(SubsiteQueueStatus, name="subsite_queue_status"),
        nullable=False,
        default=SubsiteQueueStatus.PENDING,
    )
    sync_kind: Mapped[SyncKind] = mapped_column(pg_enum(SyncKind, name="sync_kind"), nullable=False)
    approved_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    reject_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    central_entry = relationship("CentralQueueEntry", lazy="selectin")
    reviewer = relationship("User", lazy="selectin")
