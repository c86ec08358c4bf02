"""Central/subsite queue supersession and the row state machine."""
import pytest
from fastapi import HTTPException
from sqlalchemy import select

from content_sync.middleware.error_handler import AppException
from content_sync.models.queue import (
    CentralQueueEntry,
    SubsiteQueueEntry,
    SubsiteQueueStatus,
    SyncKind,
)
from content_sync.schemas.snapshot import ContentSnapshot
from content_sync.services import queue_service

from tests.conftest import create_content


async def _rows(db, content_id: int, site_id: int) -> list[SubsiteQueueEntry]:
    return list((await db.execute(
        select(SubsiteQueueEntry)
        .where(SubsiteQueueEntry.central_content_id == content_id, SubsiteQueueEntry.site_id == site_id)
        .order_by(SubsiteQueueEntry.id)
        .execution_options(populate_existing=True)
    )).scalars().all())


async def _entries(db, content_id: int) -> list[CentralQueueEntry]:
    return list((await db.execute(
        select(CentralQueueEntry)
        .where(CentralQueueEntry.content_id == content_id)
        .order_by(CentralQueueEntry.id)
        .execution_options(populate_existing=True)
    )).scalars().all())


async def _enqueue(db, content, sites, kind=SyncKind.CREATE, local_ids=None):
    snapshot = ContentSnapshot(title=content.title)
    entry, rows = await queue_service.enqueue(db, content, snapshot, {}, sites, kind, local_ids=local_ids)
    await db.commit()
    return entry, rows


class TestEnqueue:
    async def test_fans_out_one_row_per_site(self, db_session, network):
        content = await create_content(db_session)

        entry, rows = await _enqueue(db_session, content, [5, 7])

        assert entry.site_statuses == {"5": "pending", "7": "pending"}
        assert entry.snapshot["title"] == "Launch"
        assert [r.site_id for r in rows] == [5, 7]
        assert all(r.status == SubsiteQueueStatus.PENDING for r in rows)

    async def test_new_intent_supersedes_previous(self, db_session, network):
        content = await create_content(db_session)
        first, _ = await _enqueue(db_session, content, [5, 7])

        second, _ = await _enqueue(db_session, content, [5], kind=SyncKind.UPDATE)

        entries = await _entries(db_session, content.id)
        assert [e.sync_kind for e in entries] == [SyncKind.EXPIRED, SyncKind.UPDATE]
        assert entries[0].site_statuses == {"5": "expired", "7": "expired"}
        assert [r.status for r in await _rows(db_session, content.id, 5)] == [
            SubsiteQueueStatus.EXPIRED, SubsiteQueueStatus.PENDING,
        ]
        # Site 7 was not targeted again, so its row is still the live intent there
        assert [r.status for r in await _rows(db_session, content.id, 7)] == [SubsiteQueueStatus.PENDING]
        assert (await queue_service.latest_live_entry(db_session, content.id)).id == second.id

    async def test_delete_skips_sites_without_local_copy(self, db_session, network):
        content = await create_content(db_session)
        await _enqueue(db_session, content, [5, 7])

        _, rows = await _enqueue(db_session, content, [5, 7], kind=SyncKind.DELETE, local_ids={5: 31})

        assert [(r.site_id, r.local_content_id) for r in rows] == [(5, 31)]
        assert [r.status for r in await _rows(db_session, content.id, 7)] == [SubsiteQueueStatus.EXPIRED]

    async def test_latest_live_row(self, db_session, network):
        content = await create_content(db_session)
        await _enqueue(db_session, content, [5])
        _, rows = await _enqueue(db_session, content, [5])

        latest = await queue_service.latest_live_row(db_session, 5, content.id)

        assert latest.id == rows[0].id
        assert await queue_service.latest_live_row(db_session, 7, content.id) is None

    async def test_expire_content(self, db_session, network):
        content = await create_content(db_session)
        await _enqueue(db_session, content, [5, 7])

        await queue_service.expire_content(db_session, content.id)
        await db_session.commit()

        entries = await _entries(db_session, content.id)
        assert entries[0].sync_kind == SyncKind.EXPIRED
        assert await queue_service.latest_live_entry(db_session, content.id) is None
        assert await queue_service.latest_live_row(db_session, 5, content.id) is None
        assert await queue_service.has_entries(db_session, content.id)


class TestTransitions:
    def test_pending_moves_to_any_outcome(self):
        row = SubsiteQueueEntry(status=SubsiteQueueStatus.PENDING)
        queue_service.transition(row, SubsiteQueueStatus.APPROVED_APPLIED)
        assert row.status == SubsiteQueueStatus.APPROVED_APPLIED

    @pytest.mark.parametrize("terminal", [
        SubsiteQueueStatus.SYNCED,
        SubsiteQueueStatus.REJECTED,
        SubsiteQueueStatus.EXPIRED,
        SubsiteQueueStatus.FAILED,
    ])
    def test_terminal_rows_are_final(self, terminal):
        with pytest.raises(AppException) as exc_info:
            queue_service.validate_transition(terminal, SubsiteQueueStatus.SYNCED)
        assert exc_info.value.status_code == 409
        assert exc_info.value.error_type == "invalid-transition"


class TestReads:
    async def test_list_rows_filters_and_paginates(self, db_session, network):
        first = await create_content(db_session, title="One")
        second = await create_content(db_session, title="Two")
        third = await create_content(db_session, title="Three")
        for content in (first, second, third):
            await _enqueue(db_session, content, [7])
        await _enqueue(db_session, first, [7], kind=SyncKind.UPDATE)

        pending, total = await queue_service.list_rows(db_session, 7, per_page=2)
        expired, expired_total = await queue_service.list_rows(db_session, 7, status=SubsiteQueueStatus.EXPIRED)

        assert total == 3
        assert len(pending) == 2
        assert pending[0].central_content_id == first.id
        assert expired_total == 1
        assert expired[0].central_content_id == first.id

    async def test_get_row_scoped_to_site(self, db_session, network):
        content = await create_content(db_session)
        _, rows = await _enqueue(db_session, content, [7])

        assert (await queue_service.get_row(db_session, 7, rows[0].id)).id == rows[0].id
        with pytest.raises(HTTPException) as exc_info:
            await queue_service.get_row(db_session, 5, rows[0].id)
        assert exc_info.value.status_code == 404
