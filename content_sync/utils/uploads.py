"""Upload-root path and URL helpers for the multi-tenant upload tree.

The main site stores files directly under ``.../uploads/``; every other site
uses ``.../uploads/sites/{id}/``.
"""
import os

from content_sync.config import settings
from content_sync.models.site import Site


def tenant_segment(site: Site) -> str:
    if site.is_main:
        return "/uploads/"
    return f"/uploads/sites/{site.id}/"


def default_upload_dir(site_id: int, is_main: bool) -> str:
    root = settings.UPLOADS_ROOT.rstrip("/")
    return root if is_main else f"{root}/sites/{site_id}"


def default_upload_url(site_url: str, site_id: int, is_main: bool) -> str:
    base = f"{site_url.rstrip('/')}/uploads"
    return base if is_main else f"{base}/sites/{site_id}"


def swap_tenant_path(path: str, source: Site, target: Site) -> str:
    """Map a file path under the source site's upload root to the target's."""
    return path.replace(tenant_segment(source), tenant_segment(target), 1)


def normalize_local_urls(value: str, local: Site, central: Site) -> str:
    """Rewrite a subsite value so its upload paths and origin read as central's."""
    value = value.replace(tenant_segment(local), tenant_segment(central))
    return value.replace(local.url.rstrip("/"), central.url.rstrip("/"))


def upload_url_for(path: str, site: Site) -> str:
    relative = os.path.relpath(path, site.upload_dir).replace(os.sep, "/")
    return f"{site.upload_url.rstrip('/')}/{relative}"
