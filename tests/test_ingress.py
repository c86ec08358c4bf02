"""Subsite replication endpoints, called directly with a site key."""
from sqlalchemy import select

from content_sync.models.content import ContentStatus
from content_sync.models.queue import SubsiteQueueEntry, SubsiteQueueStatus, SyncKind
from content_sync.repositories import content_repository
from content_sync.schemas.policy import SyncPolicy
from content_sync.schemas.sync import SyncPostPayload, TrashPostRequest
from content_sync.services import queue_service, snapshot_service

from tests.conftest import api_key_headers, create_content


async def _enqueue(db, network, content, site_ids=(5,), kind=SyncKind.CREATE):
    central = network["central"]
    snapshot, compare = await snapshot_service.build_snapshot(db, content, central, SyncPolicy.for_site(central))
    entry, rows = await queue_service.enqueue(db, content, snapshot, compare, list(site_ids), kind)
    await db.commit()
    return snapshot, entry


def _payload(content, entry, snapshot, **kwargs) -> dict:
    return SyncPostPayload(
        central_post_id=content.id,
        central_site_id=1,
        central_entry_id=entry.id,
        snapshot=snapshot,
        source_url="http://central.test",
        **kwargs,
    ).model_dump(mode="json")


async def _row_status(db, entry_id: int, site_id: int = 5) -> SubsiteQueueStatus:
    row = (await db.execute(
        select(SubsiteQueueEntry)
        .where(SubsiteQueueEntry.central_entry_id == entry_id, SubsiteQueueEntry.site_id == site_id)
        .execution_options(populate_existing=True)
    )).scalar_one()
    return row.status


class TestSyncPost:
    async def test_missing_key_rejected_before_body(self, client, network):
        response = await client.post("/api/v1/sites/5/sync-post", content=b"not json")
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid or missing API key."

    async def test_applies_latest_intent(self, client, db_session, network):
        content = await create_content(db_session, title="Launch")
        snapshot, entry = await _enqueue(db_session, network, content)

        response = await client.post(
            "/api/v1/sites/5/sync-post", json=_payload(content, entry, snapshot), headers=api_key_headers(network, 5),
        )

        body = response.json()
        assert body["success"] is True
        assert body["outcome"] == "synced"
        assert body["current_site_id"] == 5
        assert body["log_data"]["site_name"] == "Site5"
        local = await content_repository.get_by_central_id(db_session, 5, content.id)
        assert body["subsite_post_id"] == local.id
        assert await _row_status(db_session, entry.id) == SubsiteQueueStatus.SYNCED

    async def test_bulk_mode_reports_bulk_status(self, client, db_session, network):
        content = await create_content(db_session)
        snapshot, entry = await _enqueue(db_session, network, content)
        snapshot = snapshot.model_copy(update={"mode": "bulk"})

        response = await client.post(
            "/api/v1/sites/5/sync-post", json=_payload(content, entry, snapshot), headers=api_key_headers(network, 5),
        )

        assert response.json()["sync_status"] == "Bulk Synced"

    async def test_stale_push_is_superseded(self, client, db_session, network):
        content = await create_content(db_session, title="Launch")
        old_snapshot, old_entry = await _enqueue(db_session, network, content)
        await _enqueue(db_session, network, content, kind=SyncKind.UPDATE)

        response = await client.post(
            "/api/v1/sites/5/sync-post",
            json=_payload(content, old_entry, old_snapshot),
            headers=api_key_headers(network, 5),
        )

        body = response.json()
        assert body["outcome"] == "superseded"
        assert body["message"] == "A newer change for this post has already been queued."
        assert await content_repository.get_by_central_id(db_session, 5, content.id) is None

    async def test_disabled_sync_skips_without_queue(self, client, db_session, network):
        content = await create_content(db_session)
        payload = SyncPostPayload(central_post_id=content.id, central_site_id=1, disable_sync=True)

        response = await client.post(
            "/api/v1/sites/5/sync-post", json=payload.model_dump(mode="json"), headers=api_key_headers(network, 5),
        )

        body = response.json()
        assert body["outcome"] == "skipped"
        assert body["message"] == "The sync setting for this post is disabled, so it will not be synchronized."

    async def test_snapshot_required_unless_disabled(self, client, db_session, network):
        response = await client.post(
            "/api/v1/sites/5/sync-post",
            json={"central_post_id": 1, "central_site_id": 1},
            headers=api_key_headers(network, 5),
        )
        assert response.status_code == 400

    async def test_approval_site_keeps_row_pending(self, client, db_session, network):
        content = await create_content(db_session)
        snapshot, entry = await _enqueue(db_session, network, content, site_ids=(7,))

        response = await client.post(
            "/api/v1/sites/7/sync-post", json=_payload(content, entry, snapshot), headers=api_key_headers(network, 7),
        )

        assert response.json()["outcome"] == "queued-for-approval"
        assert await _row_status(db_session, entry.id, site_id=7) == SubsiteQueueStatus.PENDING
        assert await content_repository.get_by_central_id(db_session, 7, content.id) is None

    async def test_apply_failure_marks_row_failed(self, client, db_session, network):
        content = await create_content(db_session)
        snapshot, entry = await _enqueue(db_session, network, content)
        broken = snapshot.model_copy(update={"status": "bogus"})

        response = await client.post(
            "/api/v1/sites/5/sync-post", json=_payload(content, entry, broken), headers=api_key_headers(network, 5),
        )

        body = response.json()
        assert body["success"] is False
        assert body["outcome"] == "failed"
        assert body["message"] == "Error creating a post to subsite."
        assert "bogus" in body["debug_message"]
        assert await _row_status(db_session, entry.id) == SubsiteQueueStatus.FAILED


class TestTrashUntrashDelete:
    async def _replica(self, db, status=ContentStatus.PUBLISH):
        return await create_content(db, site_id=5, central_content_id=42, status=status)

    async def test_trash_requires_delete_flag(self, client, db_session, network):
        await self._replica(db_session)
        body = TrashPostRequest(central_post_id=42, delete_on_subsite=False)

        response = await client.post(
            "/api/v1/sites/5/trash-post", json=body.model_dump(mode="json"), headers=api_key_headers(network, 5),
        )

        assert response.json() == {
            "success": False,
            "message": "This post should not be move to trash.",
            "outcome": None,
            "subsite_post_id": 0,
        }

    async def test_trash_unknown_object(self, client, db_session, network):
        body = TrashPostRequest(central_post_id=42, delete_on_subsite=True)

        response = await client.post(
            "/api/v1/sites/5/trash-post", json=body.model_dump(mode="json"), headers=api_key_headers(network, 5),
        )

        assert response.json()["message"] == "Post not found!"

    async def test_trash_then_untrash_by_marker(self, client, db_session, network):
        replica = await self._replica(db_session)
        body = TrashPostRequest(central_post_id=42, delete_on_subsite=True).model_dump(mode="json")

        trashed = await client.post("/api/v1/sites/5/trash-post", json=body, headers=api_key_headers(network, 5))
        assert trashed.json()["message"] == "Post successfully trashed."
        await db_session.refresh(replica)
        assert replica.status == ContentStatus.TRASH

        restored = await client.post("/api/v1/sites/5/untrash-post", json=body, headers=api_key_headers(network, 5))
        assert restored.json()["message"] == "Post successfully untrashed."
        await db_session.refresh(replica)
        assert replica.status == ContentStatus.PUBLISH
        assert replica.pre_trash_status is None

    async def test_delete_removes_object(self, client, db_session, network):
        replica = await self._replica(db_session)
        body = TrashPostRequest(central_post_id=42, subsite_post_id=replica.id, delete_on_subsite=True)

        response = await client.post(
            "/api/v1/sites/5/delete-post", json=body.model_dump(mode="json"), headers=api_key_headers(network, 5),
        )

        assert response.json()["message"] == "Post successfully deleted."
        assert await content_repository.get_for_site(db_session, 5, replica.id) is None


class TestUpdateSyncedData:
    async def test_overwrites_projection(self, client, db_session, network):
        content = await create_content(db_session, id=42, bulk_sync_rows={"5": 3})
        body = {
            "central_post_id": 42,
            "subsite_id": 7,
            "subsite_synced_data": {
                "subsite_post_id": 9,
                "outcome": "synced",
                "sync_status": "Approved",
                "sync_time": "2026-10-19T10:00:00Z",
            },
        }

        for _ in range(2):
            response = await client.post(
                "/api/v1/sites/1/update-synced-data", json=body, headers=api_key_headers(network, 1),
            )
            assert response.json()["message"] == "Synced data updated successfully."

        await db_session.refresh(content)
        assert list(content.synced_subsite_data) == ["7"]
        assert content.synced_subsite_data["7"]["subsite_post_id"] == 9
        assert content.bulk_sync_rows is None

    async def test_unknown_content_is_not_found(self, client, network):
        body = {
            "central_post_id": 999,
            "subsite_id": 7,
            "subsite_synced_data": {"outcome": "failed", "sync_status": "Failed", "sync_time": "2026-10-19T10:00:00Z"},
        }

        response = await client.post(
            "/api/v1/sites/1/update-synced-data", json=body, headers=api_key_headers(network, 1),
        )

        assert response.status_code == 404
