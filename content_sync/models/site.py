"""Network site and per-site API key ORM models."""
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from content_sync.models.base import Base, TimestampMixin


class Site(Base, TimestampMixin):
    __tablename__ = "sites"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    url: Mapped[str] = mapped_column(String(500), nullable=False)
    upload_url: Mapped[str] = mapped_column(String(500), nullable=False)
    upload_dir: Mapped[str] = mapped_column(String(1000), nullable=False)
    is_main: Mapped[bool] = mapped_column(Boolean, default=False)
    is_central: Mapped[bool] = mapped_column(Boolean, default=False)
    sync_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    admin_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notify_emails: Mapped[list | None] = mapped_column(JSONB, nullable=True)

    # Sync policy (field toggles are read from the central row)
    post_types: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    taxonomies: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    sync_post_meta: Mapped[bool] = mapped_column(Boolean, default=True)
    sync_media: Mapped[bool] = mapped_column(Boolean, default=True)
    sync_users: Mapped[bool] = mapped_column(Boolean, default=True)
    approval_required: Mapped[bool] = mapped_column(Boolean, default=False)
    delete_on_subsite: Mapped[bool] = mapped_column(Boolean, default=False)

    api_key = relationship("SiteApiKey", back_populates="site", uselist=False, lazy="noload")


class SiteApiKey(Base):
    __tablename__ = "site_api_keys"

    site_id: Mapped[int] = mapped_column(Integer, ForeignKey("sites.id", ondelete="CASCADE"), primary_key=True)
    secret: Mapped[str] = mapped_column(String(500), nullable=False)
    is_encrypted: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    site = relationship("Site", back_populates="api_key")
