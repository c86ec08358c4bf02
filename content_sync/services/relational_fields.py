"""Relational custom-field handling.

Each relational field kind has one resolver that knows how to:

- export a stored value (site-local ids) to its portable form,
- resolve a portable value back to ids on a receiving site,
- render a human-readable value for diffs.

Stored values are a single id or a list of ids (a link field stores a
``{url, title, target}`` dict). On resolve, one match is stored as a scalar,
several as a list, and no match drops the field.
"""
import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.models.content import ContentMeta
from content_sync.models.site import Site
from content_sync.repositories import (
    attachment_repository,
    content_repository,
    term_repository,
    user_repository,
)
from content_sync.schemas.snapshot import (
    LinkField,
    LinkValue,
    PostRef,
    PostRefField,
    RelationalField,
    TaxonomyField,
    TaxonomyTermRef,
    UserField,
    UserRef,
)
from content_sync.utils.helpers import parse_int

logger = logging.getLogger(__name__)

ATTACHMENT_KINDS = {"file", "image", "gallery"}
POST_KINDS = {"post_object", "relationship", "page_link"}


def _as_list(value: Any) -> list:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return [v for v in value if v not in (None, "")]
    return [value]


def _as_ids(value: Any) -> list[int]:
    return [i for i in (parse_int(v) for v in _as_list(value)) if i > 0]


def collapse(values: list) -> Any:
    """One resolved value is stored as a scalar, several as a list."""
    if not values:
        return None
    if len(values) == 1:
        return values[0]
    return values


class FieldResolver:
    kinds: frozenset[str] = frozenset()

    async def export(self, db: AsyncSession, site: Site, meta: ContentMeta) -> RelationalField | None:
        raise NotImplementedError

    async def resolve(self, db: AsyncSession, site: Site, field: RelationalField, source_url: str) -> Any:
        raise NotImplementedError

    def compare_value(self, field: RelationalField) -> str:
        raise NotImplementedError


class TaxonomyResolver(FieldResolver):
    kinds = frozenset({"taxonomy"})

    async def export(self, db, site, meta):
        taxonomy = meta.field_taxonomy or "category"
        terms = await term_repository.get_many(db, site.id, _as_ids(meta.meta_value))
        if not terms:
            return None
        return TaxonomyField(
            label=meta.label,
            value=[
                TaxonomyTermRef(name=t.name, slug=t.slug, description=t.description, taxonomy=taxonomy)
                for t in terms
            ],
        )

    async def resolve(self, db, site, field, source_url):
        ids = []
        for ref in field.value:
            term = await term_repository.get_or_create(
                db, site.id, ref.taxonomy, ref.name, ref.slug, ref.description,
            )
            ids.append(term.id)
        return collapse(ids)

    def compare_value(self, field):
        return ", ".join(ref.name for ref in field.value)


class UserResolver(FieldResolver):
    kinds = frozenset({"user"})

    async def export(self, db, site, meta):
        users = await user_repository.get_many(db, [str(v) for v in _as_list(meta.meta_value)])
        if not users:
            return None
        return UserField(label=meta.label, value=[UserRef(login=u.login, email=u.email) for u in users])

    async def resolve(self, db, site, field, source_url):
        ids = []
        for ref in field.value:
            user = await user_repository.resolve(db, ref.login, ref.email)
            if user:
                ids.append(str(user.id))
        return collapse(ids)

    def compare_value(self, field):
        return ", ".join(ref.login for ref in field.value)


class LinkResolver(FieldResolver):
    kinds = frozenset({"link"})

    async def export(self, db, site, meta):
        value = meta.meta_value
        if isinstance(value, str) and value:
            return LinkField(label=meta.label, value=LinkValue(url=value))
        if isinstance(value, dict) and value.get("url"):
            return LinkField(label=meta.label, value=LinkValue.model_validate(value))
        return None

    async def resolve(self, db, site, field, source_url):
        link = field.value
        url = link.url.replace(source_url, site.url) if source_url else link.url
        return {"url": url, "title": link.title, "target": link.target}

    def compare_value(self, field):
        link = field.value
        return f"Title: {link.title}, URL: {link.url}, Target: {link.target}"


class PostRefResolver(FieldResolver):
    """Post objects, relationships, page links, files, images and galleries."""

    kinds = frozenset(POST_KINDS | ATTACHMENT_KINDS)

    async def export(self, db, site, meta):
        ids = _as_ids(meta.meta_value)
        if meta.field_type in ATTACHMENT_KINDS:
            attachments = await attachment_repository.get_many(db, site.id, ids)
            refs = [PostRef(id=a.id, type="attachment", name=a.title, url=a.url) for a in attachments]
        else:
            refs = []
            for content_id in ids:
                content = await content_repository.get_for_site(db, site.id, content_id)
                if content:
                    refs.append(PostRef(id=content.id, type=content.content_type, name=content.slug))
        if not refs:
            return None
        return PostRefField(type=meta.field_type, label=meta.label, value=refs)

    async def resolve(self, db, site, field, source_url):
        ids = []
        for ref in field.value:
            if ref.type == "attachment":
                attachment = await attachment_repository.get_by_central_id(db, site.id, ref.id)
                if attachment:
                    ids.append(attachment.id)
            else:
                content = await content_repository.get_by_central_id(db, site.id, ref.id)
                if content:
                    ids.append(content.id)
        return collapse(ids)

    def compare_value(self, field):
        return ", ".join(ref.name or ref.url for ref in field.value)


RESOLVERS: dict[str, FieldResolver] = {}
for _resolver in (TaxonomyResolver(), UserResolver(), LinkResolver(), PostRefResolver()):
    for _kind in _resolver.kinds:
        RESOLVERS[_kind] = _resolver


def get_resolver(kind: str) -> FieldResolver:
    return RESOLVERS[kind]


def is_relational(meta: ContentMeta) -> bool:
    return meta.field_type in RESOLVERS


async def export_fields(db: AsyncSession, site: Site, meta_rows: list[ContentMeta]) -> dict[str, RelationalField]:
    """Portable form of every relational metadata row; empty values are left out."""
    fields: dict[str, RelationalField] = {}
    for meta in meta_rows:
        if not is_relational(meta):
            continue
        field = await get_resolver(meta.field_type).export(db, site, meta)
        if field is not None:
            fields[meta.meta_key] = field
    return fields


async def resolve_fields(
    db: AsyncSession, site: Site, fields: dict[str, RelationalField], source_url: str,
) -> list[ContentMeta]:
    """Metadata rows for a receiving site. Unresolved fields are dropped."""
    rows = []
    for key, field in fields.items():
        value = await get_resolver(field.type).resolve(db, site, field, source_url)
        if value is None:
            logger.debug("Dropping unresolved %s field %s on site %d", field.type, key, site.id)
            continue
        taxonomy = field.value[0].taxonomy if isinstance(field, TaxonomyField) and field.value else None
        rows.append(ContentMeta(
            meta_key=key,
            meta_value=value,
            field_type=field.type,
            field_taxonomy=taxonomy,
            label=field.label,
        ))
    return rows


def compare_value(field: RelationalField) -> str:
    return get_resolver(field.type).compare_value(field)
