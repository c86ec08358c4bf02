"""Content snapshot builder.

Reads a content object with its terms, metadata and attachments and returns
the portable snapshot plus the human-readable compare snapshot. Nothing is
written.
"""
import logging
import os
import re

from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.models.attachment import Attachment
from content_sync.models.content import Content
from content_sync.models.site import Site
from content_sync.repositories import attachment_repository, content_repository, user_repository
from content_sync.schemas.policy import SyncPolicy
from content_sync.schemas.snapshot import (
    CompareField,
    ContentMediaItem,
    ContentSnapshot,
    FeaturedImage,
    TermRef,
    UserRef,
)
from content_sync.services import relational_fields

logger = logging.getLogger(__name__)

IMG_SRC_RE = re.compile(r'<img[^>]+src="([^">]+)"', re.IGNORECASE)
SIZE_SUFFIX_RE = re.compile(r"-(\d+)x(\d+)\.(jpg|png|jpeg|gif)$", re.IGNORECASE)

# Site-local keys that never replicate
META_DENYLIST = frozenset({
    "_edit_lock",
    "_edit_last",
    "_thumbnail_id",
    "_wp_old_slug",
    "_wp_trash_meta_status",
    "_wp_trash_meta_time",
    "_central_post_id",
    "_synced_subsite_data",
    "_bulk_sync_subsite_ids",
    "_disable_sync",
    "_selected_sites",
})

TAXONOMY_LABELS = {
    "category": "Categories",
    "post_tag": "Tags",
}


def taxonomy_label(taxonomy: str) -> str:
    return TAXONOMY_LABELS.get(taxonomy, taxonomy.replace("_", " ").title())


async def _user_ref(db: AsyncSession, user_id) -> UserRef | None:
    if user_id is None:
        return None
    users = await user_repository.get_many(db, [str(user_id)])
    if not users:
        return None
    return UserRef(login=users[0].login, email=users[0].email)


async def _featured_image(db: AsyncSession, site: Site, content: Content) -> FeaturedImage | None:
    if not content.featured_image_id:
        return None
    attachment = await attachment_repository.get_by_id(db, site.id, content.featured_image_id)
    if attachment is None:
        return None
    return FeaturedImage(
        central_attachment_id=attachment.id,
        source_path=attachment.file_path,
        url=attachment.url,
        author=await _user_ref(db, attachment.author_id),
    )


async def extract_content_media(db: AsyncSession, site: Site, body: str) -> list[ContentMediaItem]:
    """Collect <img> references that point into the site's own upload root.

    Foreign URLs and files with no attachment record are left out, so they are
    never rewritten on the receiving side.
    """
    base = site.upload_url.rstrip("/") + "/"
    items: list[ContentMediaItem] = []
    seen: set[str] = set()
    attachments: dict[str, Attachment | None] = {}

    for url in IMG_SRC_RE.findall(body or ""):
        if url in seen or base not in url:
            continue
        seen.add(url)

        path_part = url.split("?", 1)[0]
        file_name = os.path.basename(path_part)
        if file_name not in attachments:
            attachments[file_name] = await attachment_repository.find_by_file_name(db, site.id, file_name)
        attachment = attachments[file_name]
        if attachment is None:
            logger.debug("No attachment record for %s on site %d", url, site.id)
            continue

        match = SIZE_SUFFIX_RE.search(path_part)
        items.append(ContentMediaItem(
            url=url,
            central_attachment_id=attachment.id,
            full_url=attachment.url,
            size_hints=[int(match.group(1)), int(match.group(2))] if match else [],
            source_path=attachment.file_path,
            author=await _user_ref(db, attachment.author_id),
        ))
    return items


async def build_snapshot(
    db: AsyncSession,
    content: Content,
    site: Site,
    policy: SyncPolicy,
    mode: str = "single",
) -> tuple[ContentSnapshot, dict[str, dict]]:
    """Build (snapshot, compare snapshot) for a content object on the given site."""
    meta_rows = await content_repository.get_meta(db, content.id)
    terms = await content_repository.get_terms(db, content.id)

    taxonomy_terms = {
        taxonomy: [
            TermRef(name=t.name, slug=t.slug, description=t.description)
            for t in terms.get(taxonomy, [])
        ]
        for taxonomy in policy.taxonomies
    }

    meta_fields = {}
    relational = {}
    if policy.sync_post_meta:
        meta_fields = {
            m.meta_key: m.meta_value
            for m in meta_rows
            if not relational_fields.is_relational(m) and m.meta_key not in META_DENYLIST
        }
        relational = await relational_fields.export_fields(db, site, meta_rows)

    featured_image = None
    content_media = []
    if policy.sync_media:
        featured_image = await _featured_image(db, site, content)
        content_media = await extract_content_media(db, site, content.body)

    snapshot = ContentSnapshot(
        content_type=content.content_type,
        title=content.title,
        slug=content.slug,
        body=content.body,
        body_filtered=content.body_filtered,
        status=content.status.value,
        author=await _user_ref(db, content.author_id) if policy.sync_users else None,
        taxonomy_terms=taxonomy_terms,
        meta_fields=meta_fields,
        relational_fields=relational,
        featured_image=featured_image,
        content_media=content_media,
        mode=mode,
    )
    return snapshot, build_compare(snapshot)


def build_compare(snapshot: ContentSnapshot) -> dict[str, dict]:
    """Human-readable {field: {label, value}} view of a snapshot, used only for diffs."""
    fields: dict[str, CompareField] = {
        "title": CompareField(label="Title", value=snapshot.title),
        "post_name": CompareField(label="Slug", value=snapshot.slug),
        "content": CompareField(label="Content", value=snapshot.body),
        "post_status": CompareField(label="Status", value=snapshot.status),
        "featured_image": CompareField(
            label="Featured Image",
            value=snapshot.featured_image.url if snapshot.featured_image else "",
        ),
    }
    for taxonomy, refs in snapshot.taxonomy_terms.items():
        fields[f"taxonomy:{taxonomy}"] = CompareField(
            label=taxonomy_label(taxonomy), value=", ".join(ref.name for ref in refs),
        )
    for key, value in snapshot.meta_fields.items():
        fields[f"meta:{key}"] = CompareField(label=key, value=_flatten(value))
    for key, field in snapshot.relational_fields.items():
        fields[f"meta:{key}"] = CompareField(
            label=field.label or key, value=relational_fields.compare_value(field),
        )
    return {key: field.model_dump() for key, field in fields.items()}


def _flatten(value) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(_flatten(v) for v in value)
    if isinstance(value, dict):
        return ", ".join(f"{k}: {_flatten(v)}" for k, v in value.items())
    return str(value)
