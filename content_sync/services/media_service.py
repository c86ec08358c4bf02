"""Deferred media reconciliation.

After a subsite object is created or updated, its featured image and the
images embedded in its body still point at the central site's uploads. A
reconcile job copies each referenced file into the subsite's upload tree
(once per central attachment id), then rewrites the body to the local URLs.
"""
import asyncio
import json
import logging
import os
import re
import shutil
from urllib.parse import urlsplit

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.models.attachment import Attachment
from content_sync.models.content import Content
from content_sync.models.media_job import MediaJobStatus, MediaReconcileJob
from content_sync.models.site import Site
from content_sync.repositories import attachment_repository, content_repository, user_repository
from content_sync.schemas.snapshot import ContentMediaItem, ContentSnapshot, FeaturedImage, UserRef
from content_sync.utils.helpers import stable_hash
from content_sync.utils.media_files import MediaFileError, detect_mime, generate_sub_size
from content_sync.utils.uploads import swap_tenant_path, upload_url_for

logger = logging.getLogger(__name__)

IMAGE_BLOCK_RE = re.compile(r"<!--\s*wp:image(.*?)-->(.*?)<!--\s*/wp:image\s*-->", re.DOTALL)
IMG_TAG_RE = re.compile(r"<img\b[^>]*?\bsrc=\"([^\"]*)\"[^>]*?/?>", re.DOTALL | re.IGNORECASE)
ALT_RE = re.compile(r"\balt=\"([^\"]*)\"")
STYLE_RE = re.compile(r"\bstyle=\"([^\"]*)\"")
FIGURE_CLASS_RE = re.compile(r"<figure[^>]*\bclass=\"([^\"]*)\"")

DEFAULT_FIGURE_CLASS = "wp-block-image size-large"


# ── Scheduling ──

def media_set_for(snapshot: ContentSnapshot) -> dict:
    return {
        "featured_image": snapshot.featured_image.model_dump(mode="json") if snapshot.featured_image else None,
        "content_media": [item.model_dump(mode="json") for item in snapshot.content_media],
    }


async def _pending_job(db: AsyncSession, site_id: int, content_id: int, digest: str) -> MediaReconcileJob | None:
    return (await db.execute(
        select(MediaReconcileJob).where(
            MediaReconcileJob.site_id == site_id,
            MediaReconcileJob.subsite_content_id == content_id,
            MediaReconcileJob.media_set_hash == digest,
            MediaReconcileJob.status == MediaJobStatus.PENDING,
        )
    )).scalar_one_or_none()


async def schedule(
    db: AsyncSession, site: Site, central: Site, content: Content, snapshot: ContentSnapshot,
) -> MediaReconcileJob | None:
    """Create the reconcile job for (content, media set) unless one is already waiting."""
    if not snapshot.has_media:
        return None

    media_set = media_set_for(snapshot)
    digest = stable_hash(media_set)
    existing = await _pending_job(db, site.id, content.id, digest)
    if existing:
        logger.debug("Media job %d already scheduled for content %d", existing.id, content.id)
        return existing

    job = MediaReconcileJob(
        site_id=site.id,
        subsite_content_id=content.id,
        central_site_id=central.id,
        media_set_hash=digest,
        media_set=media_set,
        status=MediaJobStatus.PENDING,
    )
    try:
        async with db.begin_nested():
            db.add(job)
    except IntegrityError:
        existing = await _pending_job(db, site.id, content.id, digest)
        if existing is None:
            raise
        return existing
    return job


def dispatch(job_id: int) -> None:
    """Hand a committed job to the worker. A missed dispatch is picked up by the sweep."""
    from content_sync.tasks.media_tasks import reconcile_media

    try:
        reconcile_media.delay(job_id)
    except Exception:
        logger.warning("Could not queue media job %d; the periodic sweep will retry", job_id, exc_info=True)


# ── Attachments ──

def _copy_blob(source_path: str, target_path: str) -> None:
    if not os.path.isfile(source_path):
        raise MediaFileError(f"Source file not found: {source_path}")
    os.makedirs(os.path.dirname(target_path), exist_ok=True)
    if not os.path.exists(target_path):
        shutil.copy2(source_path, target_path)


async def get_or_create_attachment(
    db: AsyncSession,
    site: Site,
    central: Site,
    central_attachment_id: int,
    source_path: str | None,
    author: UserRef | None = None,
    parent_id: int | None = None,
) -> Attachment:
    """Local attachment for a central attachment, copying the file on first use.

    The (site, central attachment id) unique constraint decides races: the
    loser of a concurrent insert returns the winner's row.
    """
    existing = await attachment_repository.get_by_central_id(db, site.id, central_attachment_id)
    if existing:
        return existing
    if not source_path:
        raise MediaFileError(f"Central attachment {central_attachment_id} has no source file")

    target_path = swap_tenant_path(source_path, central, site)
    await asyncio.to_thread(_copy_blob, source_path, target_path)
    mime_type = await asyncio.to_thread(detect_mime, target_path)

    author_id = None
    if author is not None:
        user = await user_repository.resolve(db, author.login, author.email)
        author_id = user.id if user else None

    attachment = Attachment(
        site_id=site.id,
        title=os.path.splitext(os.path.basename(target_path))[0],
        file_path=target_path,
        url=upload_url_for(target_path, site),
        mime_type=mime_type,
        author_id=author_id,
        parent_id=parent_id,
        sizes={},
        central_attachment_id=central_attachment_id,
    )
    try:
        async with db.begin_nested():
            db.add(attachment)
    except IntegrityError:
        winner = await attachment_repository.get_by_central_id(db, site.id, central_attachment_id)
        if winner is None:
            raise
        logger.info(
            "Attachment for central %d on site %d was created concurrently; reusing %d",
            central_attachment_id, site.id, winner.id,
        )
        return winner
    logger.info("Created attachment %d on site %d from central %d", attachment.id, site.id, central_attachment_id)
    return attachment


async def sized_url(attachment: Attachment, size_hints: list[int]) -> str:
    """URL of the attachment at the hinted size, falling back to the original."""
    if len(size_hints) != 2:
        return attachment.url
    width, height = size_hints
    key = f"{width}x{height}"
    sizes = dict(attachment.sizes or {})
    name = sizes.get(key)
    if name is None:
        name = await asyncio.to_thread(generate_sub_size, attachment.file_path, width, height)
        if name is None:
            return attachment.url
        sizes[key] = name
        attachment.sizes = sizes
    return f"{attachment.url.rsplit('/', 1)[0]}/{name}"


# ── Body rewriting ──

def _find_item(items: list[ContentMediaItem], url: str) -> ContentMediaItem | None:
    bare = url.split("?", 1)[0]
    for item in items:
        if item.url == url:
            return item
    for item in items:
        if item.url.split("?", 1)[0] == bare:
            return item
    return None


async def _local_url(
    db: AsyncSession, site: Site, central: Site, content: Content, item: ContentMediaItem, src: str,
) -> tuple[Attachment, str]:
    if not item.central_attachment_id:
        raise MediaFileError(f"No central attachment id for {item.url}")
    attachment = await get_or_create_attachment(
        db, site, central, item.central_attachment_id, item.source_path, item.author, content.id,
    )
    url = await sized_url(attachment, item.size_hints)
    query = urlsplit(src).query
    return attachment, f"{url}?{query}" if query else url


def _block_attrs(raw: str) -> dict:
    raw = raw.strip()
    if not raw:
        return {}
    try:
        attrs = json.loads(raw)
    except ValueError:
        return {}
    return attrs if isinstance(attrs, dict) else {}


async def rewrite_image_blocks(
    db: AsyncSession, site: Site, central: Site, content: Content, body: str,
    items: list[ContentMediaItem], errors: list[str],
) -> str:
    local_base = site.upload_url.rstrip("/") + "/"
    output = []
    last = 0
    for match in IMAGE_BLOCK_RE.finditer(body):
        output.append(body[last:match.start()])
        last = match.end()
        original = match.group(0)

        attrs = _block_attrs(match.group(1))
        inner = match.group(2)
        img = IMG_TAG_RE.search(inner)
        if img is None or not attrs.get("id"):
            output.append(original)
            continue
        src = img.group(1)
        item = _find_item(items, src)
        if local_base in src or item is None:
            output.append(original)
            continue

        try:
            attachment, new_url = await _local_url(db, site, central, content, item, src)
        except (OSError, SQLAlchemyError) as exc:
            logger.warning("Could not reconcile %s for content %d: %s", src, content.id, exc)
            errors.append(f"{src}: {exc}")
            output.append(original)
            continue

        tag = img.group(0)
        alt = ALT_RE.search(tag)
        style = STYLE_RE.search(tag)
        figure_class = FIGURE_CLASS_RE.search(inner[:img.start()])

        new_attrs: dict = {"id": attachment.id}
        for key in ("width", "height"):
            if key in attrs:
                new_attrs[key] = attrs[key]
        new_attrs["sizeSlug"] = attrs.get("sizeSlug", "full")
        new_attrs["linkDestination"] = attrs.get("linkDestination", "none")
        if attrs.get("className"):
            new_attrs["className"] = attrs["className"]

        new_tag = f'<img src="{new_url}" alt="{alt.group(1) if alt else ""}" class="wp-image-{attachment.id}"'
        if style:
            new_tag += f' style="{style.group(1)}"'
        new_tag += "/>"

        output.append(
            f"<!-- wp:image {json.dumps(new_attrs)} -->\n"
            f'<figure class="{figure_class.group(1) if figure_class else DEFAULT_FIGURE_CLASS}">'
            f"{new_tag}{inner[img.end():]}<!-- /wp:image -->"
        )
    output.append(body[last:])
    return "".join(output)


async def rewrite_bare_images(
    db: AsyncSession, site: Site, central: Site, content: Content, body: str,
    items: list[ContentMediaItem], errors: list[str],
) -> str:
    central_base = central.upload_url.rstrip("/") + "/"
    output = []
    last = 0
    for match in IMG_TAG_RE.finditer(body):
        src = match.group(1)
        item = _find_item(items, src) if central_base in src else None
        if item is None:
            continue
        try:
            _, new_url = await _local_url(db, site, central, content, item, src)
        except (OSError, SQLAlchemyError) as exc:
            logger.warning("Could not reconcile %s for content %d: %s", src, content.id, exc)
            errors.append(f"{src}: {exc}")
            continue
        start, end = match.span(1)
        output.append(body[last:start])
        output.append(new_url)
        last = end
    output.append(body[last:])
    return "".join(output)


# ── Job execution ──

async def _rewrite_body(
    db: AsyncSession, site: Site, central: Site, content: Content, body: str,
    items: list[ContentMediaItem], errors: list[str],
) -> str:
    body = await rewrite_image_blocks(db, site, central, content, body, items, errors)
    return await rewrite_bare_images(db, site, central, content, body, items, errors)


async def reconcile(db: AsyncSession, job_id: int) -> MediaReconcileJob | None:
    """Run one reconcile job. Safe to run more than once."""
    job = await db.get(MediaReconcileJob, job_id)
    if job is None:
        logger.error("Media job %s not found", job_id)
        return None
    if job.status == MediaJobStatus.DONE:
        return job

    job.status = MediaJobStatus.RUNNING
    job.attempts = (job.attempts or 0) + 1
    await db.commit()

    site = await db.get(Site, job.site_id)
    central = await db.get(Site, job.central_site_id)
    content = await content_repository.get_for_site(db, job.site_id, job.subsite_content_id)
    if content is None or site is None or central is None:
        job.status = MediaJobStatus.DONE
        job.error = "Target content no longer exists"
        await db.commit()
        return job

    errors: list[str] = []
    featured_data = job.media_set.get("featured_image")
    if featured_data:
        featured = FeaturedImage.model_validate(featured_data)
        try:
            attachment = await get_or_create_attachment(
                db, site, central, featured.central_attachment_id, featured.source_path,
                featured.author, content.id,
            )
            content.featured_image_id = attachment.id
        except (OSError, SQLAlchemyError) as exc:
            logger.warning("Could not attach featured image for content %d: %s", content.id, exc)
            errors.append(f"featured image: {exc}")

    items = [ContentMediaItem.model_validate(i) for i in job.media_set.get("content_media") or []]
    if items:
        read_body = content.body
        body_errors: list[str] = []
        body = await _rewrite_body(db, site, central, content, read_body, items, body_errors)

        # Files were copied against the first read; rewrite whatever body is current now
        content = await content_repository.get_for_update(db, content.id)
        if content is None:
            job.status = MediaJobStatus.DONE
            job.error = "Target content no longer exists"
            await db.commit()
            return job
        if content.body != read_body:
            logger.info("Content %d changed during media job %d; rewriting the newer body", content.id, job.id)
            body_errors = []
            body = await _rewrite_body(db, site, central, content, content.body, items, body_errors)
        if body != content.body:
            content.body = body
        errors.extend(body_errors)

    job.status = MediaJobStatus.DONE
    job.error = "\n".join(errors) or None
    await db.commit()
    logger.info("Media job %d finished for content %d (%d errors)", job.id, content.id, len(errors))
    return job


async def run_job(
    db: AsyncSession, job_id: int, task_id: str | None = None, final_attempt: bool = False,
) -> MediaReconcileJob | None:
    """Worker entry point. On any error the job goes back to pending, or to failed on the last attempt."""
    job = await db.get(MediaReconcileJob, job_id)
    if job is not None and task_id:
        job.celery_task_id = task_id
        await db.commit()
    try:
        return await reconcile(db, job_id)
    except Exception as exc:
        await db.rollback()
        job = await db.get(MediaReconcileJob, job_id)
        if job is not None:
            job.status = MediaJobStatus.FAILED if final_attempt else MediaJobStatus.PENDING
            job.error = str(exc)
            await db.commit()
        raise
