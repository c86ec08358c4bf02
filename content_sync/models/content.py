"""Content object, content metadata and taxonomy term ORM models."""
import enum
import uuid
from typing import Any

from sqlalchemy import (
    Boolean, Column, ForeignKey, Index, Integer, String, Table, Text, UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from content_sync.models.base import Base, IntPKMixin, TimestampMixin, pg_enum


class ContentStatus(str, enum.Enum):
    PUBLISH = "publish"
    FUTURE = "future"
    DRAFT = "draft"
    PENDING = "pending"
    PRIVATE = "private"
    TRASH = "trash"
    AUTO_DRAFT = "auto-draft"


content_terms = Table(
    "content_terms",
    Base.metadata,
    Column("content_id", Integer, ForeignKey("contents.id", ondelete="CASCADE"), primary_key=True),
    Column("term_id", Integer, ForeignKey("terms.id", ondelete="CASCADE"), primary_key=True),
)


class Content(Base, IntPKMixin, TimestampMixin):
    __tablename__ = "contents"
    __table_args__ = (
        Index("ix_contents_site_central", "site_id", "central_content_id"),
    )

    site_id: Mapped[int] = mapped_column(Integer, ForeignKey("sites.id"), nullable=False)
    content_type: Mapped[str] = mapped_column(String(50), nullable=False, default="post")
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    slug: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    body_filtered: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[ContentStatus] = mapped_column(
        pg_enum(ContentStatus, name="content_status"), nullable=False, default=ContentStatus.DRAFT
    )
    pre_trash_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    author_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    featured_image_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Cross-site marker: id of the central content this object was replicated from
    central_content_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Central-only sync bookkeeping (keys are site ids as strings)
    disable_sync: Mapped[bool] = mapped_column(Boolean, default=False)
    selected_sites: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    synced_subsite_data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    bulk_sync_rows: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    # Relationships
    author = relationship("User", lazy="selectin")
    site = relationship("Site", lazy="noload")


class ContentMeta(Base, IntPKMixin):
    __tablename__ = "content_meta"
    __table_args__ = (
        UniqueConstraint("content_id", "meta_key", name="uq_content_meta_key"),
    )

    content_id: Mapped[int] = mapped_column(Integer, ForeignKey("contents.id", ondelete="CASCADE"), nullable=False)
    meta_key: Mapped[str] = mapped_column(String(255), nullable=False)
    meta_value: Mapped[Any] = mapped_column(JSONB, nullable=True)
    # Custom-field descriptor for relational values (taxonomy, user, link, image, ...)
    field_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    field_taxonomy: Mapped[str | None] = mapped_column(String(50), nullable=True)
    label: Mapped[str | None] = mapped_column(String(255), nullable=True)


class Term(Base, IntPKMixin):
    __tablename__ = "terms"
    __table_args__ = (
        UniqueConstraint("site_id", "taxonomy", "slug", name="uq_terms_site_taxonomy_slug"),
    )

    site_id: Mapped[int] = mapped_column(Integer, ForeignKey("sites.id"), nullable=False)
    taxonomy: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
