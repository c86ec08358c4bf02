"""Content snapshot value objects.

A snapshot is the portable, serializable form of a central content object.
Relational values are encoded by natural key (slug, login, URL, central id)
so they can be resolved again on any site.
"""
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


class UserRef(BaseModel):
    login: str
    email: str = ""


class TermRef(BaseModel):
    name: str
    slug: str
    description: str = ""


class TaxonomyTermRef(TermRef):
    taxonomy: str


class LinkValue(BaseModel):
    url: str = ""
    title: str = ""
    target: str = ""


class PostRef(BaseModel):
    id: int
    type: str
    name: str = ""
    url: str = ""


class TaxonomyField(BaseModel):
    type: Literal["taxonomy"] = "taxonomy"
    label: str | None = None
    value: list[TaxonomyTermRef]


class UserField(BaseModel):
    type: Literal["user"] = "user"
    label: str | None = None
    value: list[UserRef]


class LinkField(BaseModel):
    type: Literal["link"] = "link"
    label: str | None = None
    value: LinkValue


class PostRefField(BaseModel):
    type: Literal["post_object", "relationship", "page_link", "file", "image", "gallery"]
    label: str | None = None
    value: list[PostRef]


RelationalField = Annotated[
    Union[TaxonomyField, UserField, LinkField, PostRefField],
    Field(discriminator="type"),
]


class FeaturedImage(BaseModel):
    central_attachment_id: int
    source_path: str
    url: str
    author: UserRef | None = None


class ContentMediaItem(BaseModel):
    url: str
    central_attachment_id: int | None = None
    full_url: str | None = None
    size_hints: list[int] = Field(default_factory=list)
    source_path: str | None = None
    author: UserRef | None = None


class ContentSnapshot(BaseModel):
    content_type: str = "post"
    title: str = ""
    slug: str = ""
    body: str = ""
    body_filtered: str = ""
    status: str = "publish"
    author: UserRef | None = None
    taxonomy_terms: dict[str, list[TermRef]] = Field(default_factory=dict)
    meta_fields: dict[str, Any] = Field(default_factory=dict)
    relational_fields: dict[str, RelationalField] = Field(default_factory=dict)
    featured_image: FeaturedImage | None = None
    content_media: list[ContentMediaItem] = Field(default_factory=list)
    mode: Literal["single", "bulk"] = "single"

    model_config = {"frozen": True}

    @property
    def has_media(self) -> bool:
        return self.featured_image is not None or bool(self.content_media)


class CompareField(BaseModel):
    label: str
    value: str = ""


CompareSnapshot = dict[str, CompareField]
