import pytest
from httpx import ASGITransport, AsyncClient

from dynaforms.infrastructure.api.app import create_app


@pytest.mark.asyncio
async def test_root(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json() == {"status": "running", "message": "Dynamic Forms API"}


@pytest.mark.asyncio
async def test_unmatched_path_lists_available_routes(client):
    response = await client.get("/nowhere")

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Route not found"
    assert set(body["availableRoutes"]) >= {"/api/items", "/api/schema", "/health"}


@pytest.mark.asyncio
async def test_health_with_sqlite(sqlite_settings):
    app = create_app(sqlite_settings)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        response = await ac.get("/health")
    await app.state.db_manager.disconnect()

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "Dynaforms"
    assert data["database"] == "connected"
    assert data["backend"] == "persistent"
    assert data["entities"] == ["customers"]


@pytest.mark.asyncio
async def test_health_without_persistent_store(memory_settings):
    app = create_app(memory_settings)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        response = await ac.get("/health")

    data = response.json()
    assert response.status_code == 200
    assert data["database"] == "not_configured"
    assert data["backend"] == "fallback"


@pytest.mark.asyncio
async def test_stored_schema_is_loaded_at_startup(memory_settings, catalog_schema):
    from dynaforms.infrastructure.persistence.schema_store import SchemaStore

    SchemaStore(memory_settings.schema_path).save_sync(catalog_schema)
    app = create_app(memory_settings)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        assert (await ac.get("/api/schema")).json() == catalog_schema
        assert (await ac.get("/api/products")).status_code == 200


@pytest.mark.asyncio
async def test_invalid_stored_schema_falls_back_to_default(memory_settings):
    from pathlib import Path

    Path(memory_settings.schema_path).write_text(
        '{"record": {"x": {"route": "/api/x", "fields": {"a": {"kind": "blob"}}}}}',
        encoding="utf-8",
    )
    app = create_app(memory_settings)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        created = await ac.post(
            "/api/customers", json={"name": "Ada", "email": "ada@example.com"}
        )
        duplicate = await ac.post(
            "/api/customers", json={"name": "Ada 2", "email": "ada@example.com"}
        )

    assert created.status_code == 201
    assert duplicate.status_code == 400
