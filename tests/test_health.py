"""Health check and basic app tests."""


async def test_health_check(client):
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"


async def test_openapi_docs(client):
    response = await client.get("/docs")
    assert response.status_code == 200


async def test_openapi_schema(client):
    response = await client.get("/openapi.json")
    assert response.status_code == 200
    schema = response.json()
    assert schema["info"]["title"] == "Content Sync API"
    assert schema["info"]["version"] == "0.1.0"


async def test_replication_routes_registered(client):
    paths = (await client.get("/openapi.json")).json()["paths"]
    for action in ("sync-post", "trash-post", "untrash-post", "delete-post", "update-synced-data"):
        assert f"/api/v1/sites/{{site_id}}/{action}" in paths
    assert "/api/v1/sites/{site_id}/queue/{row_id}/approve" in paths
    assert "/api/v1/bulk-sync/batch" in paths


async def test_metrics_exposes_sync_outcomes(client):
    from content_sync.middleware.metrics import record_sync_outcome

    record_sync_outcome("push", "synced")
    response = await client.get("/metrics")

    assert response.status_code == 200
    assert "http_requests_total" in response.text
    assert 'content_sync_outcomes_total{direction="push",outcome="synced"}' in response.text
