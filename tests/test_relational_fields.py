"""Relational custom-field export and resolution."""
from content_sync.models.attachment import Attachment
from content_sync.models.content import ContentMeta, Term
from content_sync.models.user import UserRole
from content_sync.repositories import content_repository, term_repository
from content_sync.schemas.policy import SyncPolicy
from content_sync.schemas.snapshot import (
    LinkField,
    LinkValue,
    PostRef,
    PostRefField,
    TaxonomyField,
    TaxonomyTermRef,
)
from content_sync.services import apply_service, relational_fields, snapshot_service

from tests.conftest import _create_test_user, create_content


def test_collapse():
    assert relational_fields.collapse([]) is None
    assert relational_fields.collapse([4]) == 4
    assert relational_fields.collapse([4, 5]) == [4, 5]


class TestExport:
    async def test_taxonomy_field(self, db_session, network):
        term = Term(site_id=1, taxonomy="genre", name="Jazz", slug="jazz")
        db_session.add(term)
        await db_session.flush()
        meta = ContentMeta(meta_key="genre", meta_value=[term.id], field_type="taxonomy", field_taxonomy="genre")

        field = await relational_fields.export_fields(db_session, network["central"], [meta])

        assert field["genre"].value == [TaxonomyTermRef(name="Jazz", slug="jazz", taxonomy="genre")]

    async def test_user_field(self, db_session, network):
        user, _ = await _create_test_user(db_session, UserRole.EDITOR, login="reviewer")
        meta = ContentMeta(meta_key="owner", meta_value=str(user.id), field_type="user", label="Owner")

        fields = await relational_fields.export_fields(db_session, network["central"], [meta])

        assert fields["owner"].label == "Owner"
        assert [ref.login for ref in fields["owner"].value] == ["reviewer"]

    async def test_empty_values_left_out(self, db_session, network):
        rows = [
            ContentMeta(meta_key="related", meta_value="", field_type="post_object"),
            ContentMeta(meta_key="cta", meta_value={"url": ""}, field_type="link"),
            ContentMeta(meta_key="plain", meta_value="x"),
        ]

        assert await relational_fields.export_fields(db_session, network["central"], rows) == {}

    async def test_post_object_and_image(self, db_session, network):
        other = await create_content(db_session, title="Other Post")
        image = Attachment(site_id=1, title="hero", file_path="/tmp/hero.jpg", url="http://central.test/uploads/hero.jpg")
        db_session.add(image)
        await db_session.flush()
        rows = [
            ContentMeta(meta_key="related", meta_value=[other.id, 999], field_type="relationship"),
            ContentMeta(meta_key="hero", meta_value=image.id, field_type="image"),
        ]

        fields = await relational_fields.export_fields(db_session, network["central"], rows)

        assert fields["related"].value == [PostRef(id=other.id, type="post", name="other-post")]
        assert fields["hero"].value[0].type == "attachment"
        assert fields["hero"].value[0].url == image.url


class TestResolve:
    async def test_link_url_rewritten_to_receiving_site(self, db_session, network):
        field = LinkField(value=LinkValue(url="http://central.test/about", title="About", target="_blank"))

        rows = await relational_fields.resolve_fields(db_session, network[5], {"cta": field}, "http://central.test")

        assert rows[0].meta_value == {"url": "http://site5.test/about", "title": "About", "target": "_blank"}
        assert rows[0].field_type == "link"

    async def test_taxonomy_terms_created_locally(self, db_session, network):
        field = TaxonomyField(value=[TaxonomyTermRef(name="Jazz", slug="jazz", taxonomy="genre")])

        rows = await relational_fields.resolve_fields(db_session, network[5], {"genre": field}, "")

        term = await term_repository.get_by_slug(db_session, 5, "genre", "jazz")
        assert rows[0].meta_value == term.id
        assert rows[0].field_taxonomy == "genre"

    async def test_post_refs_resolve_by_central_id(self, db_session, network):
        first = await create_content(db_session, site_id=5, central_content_id=10, title="A")
        second = await create_content(db_session, site_id=5, central_content_id=11, title="B")
        field = PostRefField(
            type="relationship",
            value=[PostRef(id=10, type="post"), PostRef(id=11, type="post"), PostRef(id=12, type="post")],
        )

        rows = await relational_fields.resolve_fields(db_session, network[5], {"related": field}, "")

        assert rows[0].meta_value == [first.id, second.id]

    async def test_unresolved_field_dropped(self, db_session, network):
        field = PostRefField(type="post_object", value=[PostRef(id=77, type="post")])

        rows = await relational_fields.resolve_fields(db_session, network[5], {"related": field}, "")

        assert rows == []


async def test_apply_clears_stale_unresolved_value(db_session, network):
    content = await create_content(db_session, title="Launch")
    central = network["central"]

    snapshot, _ = await snapshot_service.build_snapshot(db_session, content, central, SyncPolicy.for_site(central))
    result = await apply_service.apply_snapshot(db_session, network[5], central, snapshot, content.id)
    local = result.content
    db_session.add(ContentMeta(content_id=local.id, meta_key="related", meta_value=3, field_type="post_object"))
    await db_session.flush()

    stale = snapshot.model_copy(update={
        "relational_fields": {"related": PostRefField(type="post_object", value=[PostRef(id=77, type="post")])},
    })
    await apply_service.apply_snapshot(db_session, network[5], central, stale, content.id)

    assert await content_repository.get_meta_value(db_session, local.id, "related") is None
