"""Central side of replication: fan-out of sync, trash, untrash and delete."""
import logging
import uuid

from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.integrations.replication.client import ClientFactory
from content_sync.integrations.replication.transport import TransportError, call_site
from content_sync.middleware.metrics import record_sync_outcome
from content_sync.models.content import Content, ContentStatus
from content_sync.models.queue import SyncKind
from content_sync.models.site import Site
from content_sync.repositories import content_repository
from content_sync.schemas.policy import SyncPolicy
from content_sync.schemas.sync import (
    LogData,
    PostActionResponse,
    SiteSyncResult,
    SyncedSiteData,
    SyncOutcome,
    SyncPostPayload,
    SyncPostResponse,
    TrashPostRequest,
)
from content_sync.services import queue_service, site_service, snapshot_service, sync_log_service
from content_sync.utils.helpers import parse_int, utc_now

logger = logging.getLogger(__name__)

INELIGIBLE_STATUSES = frozenset({
    ContentStatus.AUTO_DRAFT,
    ContentStatus.PENDING,
    ContentStatus.PRIVATE,
    ContentStatus.TRASH,
})

TRANSPORT_FAILURE_MESSAGE = "Error syncing to subsite."


# ── Outcome projection ──

def synced_local_ids(content: Content) -> dict[int, int]:
    """Site id -> local object id from the recorded outcomes, for sites that have one."""
    local_ids = {}
    for site_key, data in (content.synced_subsite_data or {}).items():
        local_id = parse_int((data or {}).get("subsite_post_id"))
        if local_id > 0:
            local_ids[int(site_key)] = local_id
    return local_ids


async def record_outcome(db: AsyncSession, central_content_id: int, site_id: int, data: SyncedSiteData) -> str:
    """Overwrite the stored outcome for (content, site). Safe to repeat."""
    content = await content_repository.get_by_id(db, central_content_id)
    if content is None:
        raise HTTPException(status_code=404, detail="Post not found!")

    synced = dict(content.synced_subsite_data or {})
    synced[str(site_id)] = data.model_dump(mode="json")
    content.synced_subsite_data = synced
    content.bulk_sync_rows = None
    await db.flush()
    return "Synced data updated successfully."


def list_synced_sites(content: Content) -> dict[int, SyncedSiteData]:
    return {
        int(site_key): SyncedSiteData.model_validate(data)
        for site_key, data in (content.synced_subsite_data or {}).items()
    }


# ── Eligibility ──

async def _require_central(db: AsyncSession, content: Content) -> Site:
    central = await site_service.get_central_site(db)
    if content.site_id != central.id:
        raise HTTPException(status_code=400, detail="Only content of the central site can be synced.")
    return central


def check_eligible(content: Content, policy: SyncPolicy) -> None:
    if content.content_type not in policy.post_types:
        raise HTTPException(status_code=400, detail="Post type is not enabled for sync.")
    if content.status in INELIGIBLE_STATUSES:
        raise HTTPException(status_code=400, detail=f"Posts with status '{content.status.value}' can not be synced.")


async def _target_sites(db: AsyncSession, central: Site, site_ids: list[int]) -> dict[int, Site]:
    wanted = [sid for sid in dict.fromkeys(site_ids) if sid != central.id]
    sites = await site_service.get_sites(db, wanted)
    invalid = [sid for sid in wanted if sid not in sites or not sites[sid].sync_enabled]
    if invalid:
        raise HTTPException(
            status_code=400, detail=f"Unknown or disabled sites: {', '.join(str(s) for s in invalid)}",
        )
    return {sid: sites[sid] for sid in wanted}


# ── Sync ──

def _failed_result(site: Site, exc: TransportError, local_id: int = 0) -> SiteSyncResult:
    record_sync_outcome("push", SyncOutcome.FAILED.value)
    return SiteSyncResult(
        site_id=site.id,
        site_name=site.name,
        success=False,
        outcome=SyncOutcome.FAILED,
        sync_status="Failed",
        message=exc.message,
        subsite_post_id=local_id,
        debug_message=exc.debug,
    )


async def sync_content(
    db: AsyncSession,
    content: Content,
    site_ids: list[int],
    client_factory: ClientFactory,
    *,
    actor_id: uuid.UUID | None = None,
    disable_sync: bool | None = None,
    mode: str = "single",
) -> list[SiteSyncResult]:
    """Enqueue the current state of a central object and push it to the target sites.

    Pushes run one site at a time after the queue writes are committed. One
    site's failure does not affect the others.
    """
    central = await _require_central(db, content)
    policy = SyncPolicy.for_site(central)
    check_eligible(content, policy)
    sites = await _target_sites(db, central, site_ids)

    if mode == "single":
        content.selected_sites = list(sites)
        if disable_sync is not None:
            content.disable_sync = disable_sync

    entry_id = None
    snapshot = None
    sync_kind = SyncKind.UPDATE
    if content.disable_sync:
        logger.info("Sync disabled for content %d; notifying %d sites", content.id, len(sites))
    else:
        snapshot, compare = await snapshot_service.build_snapshot(db, content, central, policy, mode)
        sync_kind = SyncKind.UPDATE if await queue_service.has_entries(db, content.id) else SyncKind.CREATE
        entry, rows = await queue_service.enqueue(
            db, content, snapshot, compare, list(sites), sync_kind,
            local_ids=synced_local_ids(content), author_id=actor_id,
        )
        entry_id = entry.id
        if mode == "bulk":
            bulk_rows = dict(content.bulk_sync_rows or {})
            for row in rows:
                if not row.local_content_id:
                    bulk_rows[str(row.site_id)] = row.id
            content.bulk_sync_rows = bulk_rows or None
    await db.commit()

    local_ids = synced_local_ids(content)
    results: list[SiteSyncResult] = []
    log_entries: list[LogData] = []
    for site in sites.values():
        payload = SyncPostPayload(
            central_post_id=content.id,
            central_site_id=central.id,
            central_entry_id=entry_id,
            content_type=content.content_type,
            sync_kind=sync_kind,
            disable_sync=content.disable_sync,
            source_url=central.url,
            snapshot=snapshot,
        )
        try:
            data = await call_site(db, site, client_factory, "sync_post", payload)
            response = SyncPostResponse.model_validate(data)
        except ValidationError as exc:
            logger.warning("Unreadable sync response from site %d: %s", site.id, exc)
            response = None
            failure = TransportError(TRANSPORT_FAILURE_MESSAGE, str(exc))
        except TransportError as exc:
            response = None
            failure = exc

        if response is None:
            result = _failed_result(site, failure, local_ids.get(site.id, 0))
            results.append(result)
            log_entries.append(LogData(
                post_id=content.id, post_name=content.title, site_id=site.id, site_name=site.name,
                sync_time=utc_now(), sync_status=result.sync_status, sync_note=result.message,
            ))
            continue

        record_sync_outcome("push", response.outcome.value)
        if response.outcome != SyncOutcome.SUPERSEDED:
            await record_outcome(db, content.id, site.id, SyncedSiteData(
                subsite_post_id=response.subsite_post_id,
                outcome=response.outcome,
                sync_status=response.sync_status,
                sync_time=utc_now(),
                message=response.message,
            ))
        results.append(SiteSyncResult(
            site_id=site.id,
            site_name=site.name,
            success=response.success,
            outcome=response.outcome,
            sync_status=response.sync_status,
            message=response.message,
            subsite_post_id=response.subsite_post_id,
            debug_message=response.debug_message,
        ))
        log_entries.append(response.log_data or LogData(
            post_id=content.id, post_name=content.title, site_id=site.id, site_name=site.name,
            sync_time=utc_now(), sync_status=response.sync_status, sync_note=response.message,
        ))

    await sync_log_service.record(db, content.id, content.title, log_entries)
    await db.commit()
    return results


# ── Trash / untrash / delete ──

async def _push_action(
    db: AsyncSession,
    client_factory: ClientFactory,
    sites: dict[int, Site],
    method: str,
    requests: dict[int, TrashPostRequest],
    done_status: str,
) -> list[SiteSyncResult]:
    results = []
    for site_id, request in requests.items():
        site = sites[site_id]
        try:
            data = await call_site(db, site, client_factory, method, request)
            response = PostActionResponse.model_validate(data)
        except ValidationError as exc:
            results.append(_failed_result(site, TransportError(TRANSPORT_FAILURE_MESSAGE, str(exc)), request.subsite_post_id))
            continue
        except TransportError as exc:
            results.append(_failed_result(site, exc, request.subsite_post_id))
            continue

        outcome = response.outcome or (SyncOutcome.SYNCED if response.success else SyncOutcome.FAILED)
        record_sync_outcome("push", outcome.value)
        if outcome == SyncOutcome.QUEUED_FOR_APPROVAL:
            sync_status = "Added to Queue"
        elif outcome == SyncOutcome.SUPERSEDED:
            sync_status = "Superseded"
        else:
            sync_status = done_status if response.success else "Failed"
        results.append(SiteSyncResult(
            site_id=site.id,
            site_name=site.name,
            success=response.success,
            outcome=outcome,
            sync_status=sync_status,
            message=response.message,
            subsite_post_id=response.subsite_post_id or request.subsite_post_id,
        ))
    return results


async def _known_sites(db: AsyncSession, site_ids: list[int]) -> dict[int, Site]:
    sites = await site_service.get_sites(db, site_ids)
    return {sid: site for sid, site in sites.items() if site.sync_enabled and not site.is_central}


async def trash_content(
    db: AsyncSession, content: Content, client_factory: ClientFactory, actor_id: uuid.UUID | None = None,
) -> list[SiteSyncResult]:
    """Trash a central object and, when the network allows it, its replicas."""
    central = await _require_central(db, content)
    if content.status == ContentStatus.TRASH:
        raise HTTPException(status_code=400, detail="This post is already in Trash.")

    content.pre_trash_status = content.status.value
    content.status = ContentStatus.TRASH

    selected = {parse_int(s) for s in content.selected_sites or []}
    bulk_rows = content.bulk_sync_rows or {}
    stale = [row_id for site_key, row_id in bulk_rows.items() if int(site_key) not in selected]
    if stale:
        expired = await queue_service.expire_rows(db, stale)
        logger.info("Expired %d bulk rows outside the selection for content %d", expired, content.id)
        content.bulk_sync_rows = {k: v for k, v in bulk_rows.items() if int(k) in selected} or None

    policy = SyncPolicy.for_site(central)
    if not policy.delete_on_subsite:
        await db.commit()
        return []

    local_ids = synced_local_ids(content)
    sites = await _known_sites(db, sorted(set(local_ids) | selected))
    snapshot, compare = await snapshot_service.build_snapshot(db, content, central, policy)
    entry, rows = await queue_service.enqueue(
        db, content, snapshot, compare, list(sites), SyncKind.DELETE,
        local_ids=local_ids, author_id=actor_id,
    )
    await db.commit()

    requests = {
        row.site_id: TrashPostRequest(
            central_post_id=content.id,
            central_entry_id=entry.id,
            subsite_post_id=row.local_content_id,
            delete_on_subsite=True,
        )
        for row in rows
    }
    return await _push_action(db, client_factory, sites, "trash_post", requests, "Trashed")


async def untrash_content(db: AsyncSession, content: Content, client_factory: ClientFactory) -> list[SiteSyncResult]:
    central = await _require_central(db, content)
    if content.status != ContentStatus.TRASH:
        raise HTTPException(status_code=400, detail="This post is not in Trash.")

    content.status = ContentStatus(content.pre_trash_status or ContentStatus.DRAFT.value)
    content.pre_trash_status = None
    await db.commit()

    policy = SyncPolicy.for_site(central)
    if not policy.delete_on_subsite:
        return []

    local_ids = synced_local_ids(content)
    sites = await _known_sites(db, list(local_ids))
    requests = {
        site_id: TrashPostRequest(
            central_post_id=content.id, subsite_post_id=local_ids[site_id], delete_on_subsite=True,
        )
        for site_id in sites
    }
    return await _push_action(db, client_factory, sites, "untrash_post", requests, "Restored")


async def delete_content(db: AsyncSession, content: Content, client_factory: ClientFactory) -> list[SiteSyncResult]:
    """Delete replicas first (when allowed), then the central object."""
    central = await _require_central(db, content)
    policy = SyncPolicy.for_site(central)

    results: list[SiteSyncResult] = []
    if policy.delete_on_subsite:
        local_ids = synced_local_ids(content)
        sites = await _known_sites(db, list(local_ids))
        requests = {
            site_id: TrashPostRequest(
                central_post_id=content.id, subsite_post_id=local_ids[site_id], delete_on_subsite=True,
            )
            for site_id in sites
        }
        results = await _push_action(db, client_factory, sites, "delete_post", requests, "Deleted")

    await queue_service.expire_content(db, content.id)
    await content_repository.delete(db, content)
    await db.commit()
    logger.info("Deleted central content %d", content.id)
    return results
