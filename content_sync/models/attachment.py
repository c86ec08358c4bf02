"""Attachment ORM model (media library entry backed by a file under the site's upload root)."""
import uuid

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from content_sync.models.base import Base, IntPKMixin, TimestampMixin


class Attachment(Base, IntPKMixin, TimestampMixin):
    __tablename__ = "attachments"
    __table_args__ = (
        # At most one local copy per central attachment on each site
        UniqueConstraint("site_id", "central_attachment_id", name="uq_attachments_site_central"),
    )

    site_id: Mapped[int] = mapped_column(Integer, ForeignKey("sites.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    file_path: Mapped[str] = mapped_column(String(1000), nullable=False)
    url: Mapped[str] = mapped_column(String(1000), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False, default="application/octet-stream")
    author_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    parent_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("contents.id", ondelete="SET NULL"), nullable=True
    )
    # {"300x200": "photo-300x200.jpg"}; files live next to the original
    sizes: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    central_attachment_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
