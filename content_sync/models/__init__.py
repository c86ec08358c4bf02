"""SQLAlchemy ORM models."""
from content_sync.models.base import Base, IntPKMixin, TimestampMixin, UUIDMixin
from content_sync.models.user import User, UserRole
from content_sync.models.site import Site, SiteApiKey
from content_sync.models.content import Content, ContentMeta, ContentStatus, Term, content_terms
from content_sync.models.attachment import Attachment
from content_sync.models.queue import (
    CentralQueueEntry,
    SiteQueueStatus,
    SubsiteQueueEntry,
    SubsiteQueueStatus,
    SyncKind,
)
from content_sync.models.sync_log import SyncLog
from content_sync.models.media_job import MediaJobStatus, MediaReconcileJob

__all__ = [
    "Base",
    "IntPKMixin",
    "TimestampMixin",
    "UUIDMixin",
    "User",
    "UserRole",
    "Site",
    "SiteApiKey",
    "Content",
    "ContentMeta",
    "ContentStatus",
    "Term",
    "content_terms",
    "Attachment",
    "CentralQueueEntry",
    "SiteQueueStatus",
    "SubsiteQueueEntry",
    "SubsiteQueueStatus",
    "SyncKind",
    "SyncLog",
    "MediaJobStatus",
    "MediaReconcileJob",
]
