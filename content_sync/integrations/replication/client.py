"""HTTP client for a site's replication endpoints."""
import logging
from typing import Any, Callable

import httpx

from content_sync.config import settings
from content_sync.models.site import Site
from content_sync.schemas.sync import SyncPostPayload, TrashPostRequest, UpdateSyncedDataRequest

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-KEY"


class ReplicationClient:
    """Async client for one site's ingress endpoints.

    The site's shared secret travels in the X-API-KEY header on every call.
    """

    def __init__(
        self,
        base_url: str,
        site_id: int,
        api_key: str,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.site_id = site_id
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout if timeout is not None else settings.SYNC_REQUEST_TIMEOUT,
            headers={API_KEY_HEADER: api_key},
            transport=transport,
        )

    async def close(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()

    async def _post(self, action: str, body: dict[str, Any]) -> dict[str, Any]:
        resp = await self._client.post(f"/api/v1/sites/{self.site_id}/{action}", json=body)
        resp.raise_for_status()
        return resp.json()

    # ── Central → subsite ──

    async def sync_post(self, payload: SyncPostPayload) -> dict[str, Any]:
        return await self._post("sync-post", payload.model_dump(mode="json"))

    async def trash_post(self, payload: TrashPostRequest) -> dict[str, Any]:
        return await self._post("trash-post", payload.model_dump(mode="json"))

    async def untrash_post(self, payload: TrashPostRequest) -> dict[str, Any]:
        return await self._post("untrash-post", payload.model_dump(mode="json"))

    async def delete_post(self, payload: TrashPostRequest) -> dict[str, Any]:
        return await self._post("delete-post", payload.model_dump(mode="json"))

    # ── Subsite → central ──

    async def update_synced_data(self, payload: UpdateSyncedDataRequest) -> dict[str, Any]:
        return await self._post("update-synced-data", payload.model_dump(mode="json"))


ClientFactory = Callable[[Site, str], ReplicationClient]


def default_client_factory(site: Site, api_key: str) -> ReplicationClient:
    return ReplicationClient(site.url, site.id, api_key)
