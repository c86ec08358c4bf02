"""Tests for the replication client, the site transport and resilience patterns."""
import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from content_sync.integrations.replication.client import API_KEY_HEADER, ReplicationClient
from content_sync.integrations.replication.transport import TransportError, call_site
from content_sync.integrations.resilience import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
    get_circuit_breaker,
    retry_with_backoff,
)
from content_sync.models.site import Site
from content_sync.schemas.sync import TrashPostRequest

from tests.conftest import api_key_headers


def _connect_error() -> httpx.ConnectError:
    return httpx.ConnectError("refused", request=httpx.Request("POST", "http://site.test"))


# ═══════════════════════════════════════════════════════
# Circuit Breaker Tests
# ═══════════════════════════════════════════════════════


class TestCircuitBreaker:
    def test_initial_state_is_closed(self):
        cb = CircuitBreaker("test")
        assert cb.state == CircuitState.CLOSED

    async def test_success_keeps_closed(self):
        cb = CircuitBreaker("test")
        result = await cb.call(AsyncMock(return_value="ok"))
        assert result == "ok"
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0

    async def test_failures_open_circuit(self):
        cb = CircuitBreaker("test", failure_threshold=3)
        failing = AsyncMock(side_effect=_connect_error())

        for _ in range(3):
            with pytest.raises(httpx.ConnectError):
                await cb.call(failing)

        assert cb.state == CircuitState.OPEN
        assert cb.failure_count == 3

    async def test_non_http_errors_do_not_count(self):
        cb = CircuitBreaker("test", failure_threshold=1)
        with pytest.raises(KeyError):
            await cb.call(AsyncMock(side_effect=KeyError("bug")))
        assert cb.state == CircuitState.CLOSED

    async def test_open_circuit_blocks_calls(self):
        cb = CircuitBreaker("test", failure_threshold=1, open_timeout=30)

        with pytest.raises(httpx.ConnectError):
            await cb.call(AsyncMock(side_effect=_connect_error()))

        with pytest.raises(CircuitOpenError):
            await cb.call(AsyncMock(return_value="ok"))

    async def test_half_open_after_timeout(self):
        cb = CircuitBreaker("test", failure_threshold=1, open_timeout=0.1)

        with pytest.raises(httpx.ConnectError):
            await cb.call(AsyncMock(side_effect=_connect_error()))
        assert cb.state == CircuitState.OPEN

        await asyncio.sleep(0.15)
        result = await cb.call(AsyncMock(return_value="recovered"))
        assert result == "recovered"
        assert cb.state == CircuitState.CLOSED

    async def test_half_open_failure_reopens(self):
        cb = CircuitBreaker("test", failure_threshold=1, open_timeout=0.1)

        with pytest.raises(httpx.ConnectError):
            await cb.call(AsyncMock(side_effect=_connect_error()))
        await asyncio.sleep(0.15)

        # HALF_OPEN, but fails again
        with pytest.raises(httpx.ConnectError):
            await cb.call(AsyncMock(side_effect=_connect_error()))
        assert cb.state == CircuitState.OPEN

    def test_reset(self):
        cb = CircuitBreaker("test")
        cb.state = CircuitState.OPEN
        cb.failure_count = 5
        cb.reset()
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0

    def test_get_circuit_breaker(self):
        cb = get_circuit_breaker("site-5")
        assert cb.name == "site-5"
        assert get_circuit_breaker("site-5") is cb  # same instance


# ═══════════════════════════════════════════════════════
# Retry with Backoff Tests
# ═══════════════════════════════════════════════════════


class TestRetryWithBackoff:
    async def test_success_no_retry(self):
        func = AsyncMock(return_value="ok")
        result = await retry_with_backoff(func, max_retries=3, backoff_base=0.01)
        assert result == "ok"
        assert func.call_count == 1

    async def test_retry_on_failure_then_success(self):
        func = AsyncMock(side_effect=[
            httpx.HTTPStatusError("", request=MagicMock(), response=MagicMock(status_code=503)),
            "success",
        ])
        result = await retry_with_backoff(func, max_retries=3, backoff_base=0.01)
        assert result == "success"
        assert func.call_count == 2

    async def test_max_retries_exceeded(self):
        func = AsyncMock(side_effect=_connect_error())

        with pytest.raises(httpx.ConnectError):
            await retry_with_backoff(func, max_retries=2, backoff_base=0.01)
        assert func.call_count == 3  # initial + 2 retries

    async def test_non_retryable_status_fails_immediately(self):
        error = httpx.HTTPStatusError("", request=MagicMock(), response=MagicMock(status_code=401))
        func = AsyncMock(side_effect=error)

        with pytest.raises(httpx.HTTPStatusError):
            await retry_with_backoff(func, max_retries=3, backoff_base=0.01)
        assert func.call_count == 1  # a bad key is not retried


# ═══════════════════════════════════════════════════════
# Replication Client Tests (mocked HTTP)
# ═══════════════════════════════════════════════════════


class TestReplicationClient:
    async def test_posts_to_site_endpoint_with_key(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["key"] = request.headers.get(API_KEY_HEADER)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "message": "ok"})

        async with ReplicationClient("http://site5.test", 5, "secret", transport=httpx.MockTransport(handler)) as client:
            data = await client.trash_post(TrashPostRequest(central_post_id=42, delete_on_subsite=True))

        assert data["success"] is True
        assert seen["path"] == "/api/v1/sites/5/trash-post"
        assert seen["key"] == "secret"
        assert seen["body"]["central_post_id"] == 42

    async def test_error_status_raises(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
        async with ReplicationClient("http://site5.test", 5, "secret", transport=transport) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.delete_post(TrashPostRequest(central_post_id=1))


# ═══════════════════════════════════════════════════════
# call_site Tests
# ═══════════════════════════════════════════════════════


def _factory(handler):
    def factory(site: Site, api_key: str) -> ReplicationClient:
        return ReplicationClient(site.url, site.id, api_key, transport=httpx.MockTransport(handler))
    return factory


class TestCallSite:
    async def test_returns_decoded_body(self, db_session, network):
        factory = _factory(lambda request: httpx.Response(200, json={"success": True, "message": "done"}))
        data = await call_site(db_session, network[5], factory, "untrash_post", TrashPostRequest(central_post_id=3))
        assert data == {"success": True, "message": "done"}

    async def test_missing_key_is_transport_error(self, db_session):
        site = Site(id=9, name="Keyless", url="http://keyless.test", upload_url="u", upload_dir="d")
        db_session.add(site)
        await db_session.commit()

        factory = _factory(lambda request: httpx.Response(200, json={}))
        with pytest.raises(TransportError) as exc_info:
            await call_site(db_session, site, factory, "trash_post", TrashPostRequest(central_post_id=1))
        assert exc_info.value.message == "No API key is configured for this site."

    async def test_http_error_maps_to_transport_error(self, db_session, network):
        factory = _factory(lambda request: httpx.Response(502, text="bad gateway"))
        with pytest.raises(TransportError) as exc_info:
            await call_site(db_session, network[5], factory, "trash_post", TrashPostRequest(central_post_id=1))
        assert exc_info.value.message == "Error syncing to subsite."
        assert exc_info.value.debug.startswith("HTTP 502")

    async def test_open_circuit_short_circuits(self, db_session, network):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        factory = _factory(handler)
        for _ in range(5):
            with pytest.raises(TransportError):
                await call_site(db_session, network[5], factory, "trash_post", TrashPostRequest(central_post_id=1))
        with pytest.raises(TransportError) as exc_info:
            await call_site(db_session, network[5], factory, "trash_post", TrashPostRequest(central_post_id=1))

        assert exc_info.value.message == "Site is temporarily unavailable."
        assert len(calls) == 5


# ═══════════════════════════════════════════════════════
# Ingress authentication over the wire
# ═══════════════════════════════════════════════════════


async def test_ingress_rejects_wrong_key(client, network):
    response = await client.post(
        "/api/v1/sites/5/sync-post",
        json={"central_post_id": 1, "central_site_id": 1, "disable_sync": True},
        headers={"X-API-KEY": "wrong"},
    )
    assert response.status_code == 401
    assert response.json()["type"] == "unauthorized"


async def test_ingress_rejects_another_sites_key(client, network):
    response = await client.post(
        "/api/v1/sites/5/sync-post",
        json={"central_post_id": 1, "central_site_id": 1, "disable_sync": True},
        headers=api_key_headers(network, 7),
    )
    assert response.status_code == 401
