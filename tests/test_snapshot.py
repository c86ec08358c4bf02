"""Snapshot builder tests."""
from content_sync.models.attachment import Attachment
from content_sync.models.content import ContentMeta, Term
from content_sync.models.user import UserRole
from content_sync.repositories import content_repository
from content_sync.schemas.policy import SyncPolicy
from content_sync.schemas.snapshot import ContentSnapshot
from content_sync.services import apply_service, snapshot_service

from tests.conftest import _create_test_user, create_content


async def _photo(db, network, name: str = "photo") -> Attachment:
    uploads = network["uploads"]
    attachment = Attachment(
        site_id=1,
        title=name,
        file_path=f"{uploads}/2026/10/{name}.jpg",
        url=f"http://central.test/uploads/2026/10/{name}.jpg",
        mime_type="image/jpeg",
        sizes={"300x200": f"{name}-300x200.jpg"},
    )
    db.add(attachment)
    await db.commit()
    return attachment


async def test_snapshot_carries_fields_terms_and_meta(db_session, network):
    author, _ = await _create_test_user(db_session, UserRole.AUTHOR, login="writer")
    content = await create_content(db_session, title="Launch", body="<p>Hi</p>", author_id=author.id)
    news = Term(site_id=1, taxonomy="category", name="News", slug="news", description="Latest")
    db_session.add(news)
    await db_session.flush()
    await content_repository.set_terms(db_session, content.id, "category", [news.id])
    db_session.add_all([
        ContentMeta(content_id=content.id, meta_key="subtitle", meta_value="Big day"),
        ContentMeta(content_id=content.id, meta_key="_edit_last", meta_value="1"),
    ])
    await db_session.commit()

    snapshot, compare = await snapshot_service.build_snapshot(
        db_session, content, network["central"], SyncPolicy.for_site(network["central"]),
    )

    assert snapshot.title == "Launch"
    assert snapshot.slug == "launch"
    assert snapshot.status == "publish"
    assert snapshot.author.login == "writer"
    assert [t.slug for t in snapshot.taxonomy_terms["category"]] == ["news"]
    assert snapshot.taxonomy_terms["post_tag"] == []
    assert snapshot.meta_fields == {"subtitle": "Big day"}
    assert snapshot.mode == "single"

    assert compare["title"] == {"label": "Title", "value": "Launch"}
    assert compare["taxonomy:category"] == {"label": "Categories", "value": "News"}
    assert compare["meta:subtitle"]["value"] == "Big day"


async def test_policy_toggles_leave_fields_out(db_session, network):
    author, _ = await _create_test_user(db_session, UserRole.AUTHOR)
    photo = await _photo(db_session, network)
    content = await create_content(db_session, author_id=author.id, featured_image_id=photo.id)
    db_session.add(ContentMeta(content_id=content.id, meta_key="subtitle", meta_value="x"))
    await db_session.commit()
    policy = SyncPolicy(sync_post_meta=False, sync_media=False, sync_users=False)

    snapshot, _ = await snapshot_service.build_snapshot(db_session, content, network["central"], policy)

    assert snapshot.meta_fields == {}
    assert snapshot.author is None
    assert snapshot.featured_image is None
    assert snapshot.has_media is False


async def test_featured_image_and_content_media(db_session, network):
    photo = await _photo(db_session, network)
    body = (
        '<p><img src="http://central.test/uploads/2026/10/photo-300x200.jpg?ver=2" alt=""></p>'
        '<p><img src="https://cdn.example.com/elsewhere.jpg"></p>'
        '<p><img src="http://central.test/uploads/2026/10/unknown.jpg"></p>'
    )
    content = await create_content(db_session, body=body, featured_image_id=photo.id)

    snapshot, compare = await snapshot_service.build_snapshot(
        db_session, content, network["central"], SyncPolicy.for_site(network["central"]),
    )

    assert snapshot.featured_image.central_attachment_id == photo.id
    assert snapshot.featured_image.source_path == photo.file_path
    assert compare["featured_image"]["value"] == photo.url

    assert len(snapshot.content_media) == 1
    item = snapshot.content_media[0]
    assert item.url == "http://central.test/uploads/2026/10/photo-300x200.jpg?ver=2"
    assert item.central_attachment_id == photo.id
    assert item.full_url == photo.url
    assert item.size_hints == [300, 200]
    assert snapshot.has_media is True


async def test_snapshot_survives_serialization(db_session, network):
    content = await create_content(db_session, title="Launch")
    snapshot, _ = await snapshot_service.build_snapshot(
        db_session, content, network["central"], SyncPolicy.for_site(network["central"]), mode="bulk",
    )

    restored = ContentSnapshot.model_validate(snapshot.model_dump(mode="json"))

    assert restored == snapshot
    assert restored.mode == "bulk"


def test_taxonomy_label_fallback():
    assert snapshot_service.taxonomy_label("post_tag") == "Tags"
    assert snapshot_service.taxonomy_label("event_type") == "Event Type"


async def test_round_trip_onto_empty_site(db_session, network):
    """A snapshot decoded from JSON recreates the object on a site that has never seen it."""
    content = await create_content(db_session, title="Launch", body="<p>Hello</p>")
    news = Term(site_id=1, taxonomy="category", name="News", slug="news")
    db_session.add(news)
    await db_session.flush()
    await content_repository.set_terms(db_session, content.id, "category", [news.id])
    snapshot, _ = await snapshot_service.build_snapshot(
        db_session, content, network["central"], SyncPolicy.for_site(network["central"]),
    )

    decoded = ContentSnapshot.model_validate_json(snapshot.model_dump_json())
    result = await apply_service.apply_snapshot(db_session, network[5], network["central"], decoded, content.id)

    assert result.created is True
    local = result.content
    assert (local.title, local.body, local.status.value) == ("Launch", "<p>Hello</p>", "publish")
    assert local.central_content_id == content.id
    terms = await content_repository.get_terms(db_session, local.id)
    assert [t.name for t in terms["category"]] == ["News"]
    assert terms["category"][0].site_id == 5
