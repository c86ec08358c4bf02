"""Calls into remote sites with per-site circuit breaking and error mapping."""
import logging
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.config import settings
from content_sync.integrations.replication.client import ClientFactory
from content_sync.integrations.resilience import CircuitOpenError, get_circuit_breaker, retry_with_backoff
from content_sync.models.site import Site
from content_sync.services import key_service

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """A cross-site call did not produce a usable response. The remote state is unknown."""

    def __init__(self, message: str, debug: str = ""):
        super().__init__(message)
        self.message = message
        self.debug = debug


def _debug_for(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}: {exc.response.text[:500]}"
    return f"{type(exc).__name__}: {exc}"


async def call_site(
    db: AsyncSession,
    site: Site,
    client_factory: ClientFactory,
    method: str,
    payload: Any,
    retry: bool = False,
) -> dict[str, Any]:
    """POST payload to one of the site's endpoints and return the decoded body.

    Raises TransportError on a missing key, open circuit, timeout, connection
    failure or non-2xx status.
    """
    api_key = await key_service.get_api_key(db, site.id)
    if api_key is None:
        raise TransportError("No API key is configured for this site.", f"site_id={site.id}")

    breaker = get_circuit_breaker(f"site-{site.id}")
    async with client_factory(site, api_key) as client:
        func = getattr(client, method)
        try:
            if retry:
                return await retry_with_backoff(
                    breaker.call, func, payload, max_retries=settings.REPORT_OUTCOME_MAX_RETRIES,
                )
            return await breaker.call(func, payload)
        except CircuitOpenError as exc:
            raise TransportError("Site is temporarily unavailable.", str(exc)) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Call %s to site %d failed: %s", method, site.id, exc)
            raise TransportError("Error syncing to subsite.", _debug_for(exc)) from exc
