"""Explicit sync policy passed into every core call."""
from pydantic import BaseModel

from content_sync.models.site import Site

DEFAULT_POST_TYPES = ("post", "page")
DEFAULT_TAXONOMIES = ("category", "post_tag")


class SyncPolicy(BaseModel):
    post_types: tuple[str, ...] = DEFAULT_POST_TYPES
    taxonomies: tuple[str, ...] = DEFAULT_TAXONOMIES
    sync_post_meta: bool = True
    sync_media: bool = True
    sync_users: bool = True
    approval_required: bool = False
    delete_on_subsite: bool = False

    model_config = {"frozen": True}

    @classmethod
    def for_site(cls, central: Site, target: Site | None = None) -> "SyncPolicy":
        """Field toggles and the delete flag come from central; approval from the target."""
        return cls(
            post_types=tuple(central.post_types or DEFAULT_POST_TYPES),
            taxonomies=tuple(central.taxonomies if central.taxonomies is not None else DEFAULT_TAXONOMIES),
            sync_post_meta=central.sync_post_meta,
            sync_media=central.sync_media,
            sync_users=central.sync_users,
            approval_required=bool(target and target.approval_required),
            delete_on_subsite=central.delete_on_subsite,
        )
