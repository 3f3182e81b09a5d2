"""Schema management surface and live route replacement."""

import asyncio

import pytest


@pytest.mark.asyncio
async def test_get_schema_returns_document_verbatim(client, items_schema):
    response = await client.get("/api/schema")
    assert response.status_code == 200
    assert response.json() == items_schema


@pytest.mark.asyncio
async def test_update_round_trip(client, app, catalog_schema):
    response = await client.post("/api/schema/update", json=catalog_schema)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["entities"] == ["products"]
    assert "warnings" not in body

    assert (await client.get("/api/schema")).json() == catalog_schema
    assert app.state.schema_store.load() == catalog_schema


@pytest.mark.asyncio
async def test_new_routes_are_live_and_old_ones_gone(client, catalog_schema):
    await client.post("/api/schema/update", json=catalog_schema)

    created = await client.post(
        "/api/products", json={"title": "Lamp", "price": 20, "tags": ["home"]}
    )
    assert created.status_code == 201
    assert created.json()["data"]["inStock"] is True

    gone = await client.get("/api/items")
    assert gone.status_code == 404
    body = gone.json()
    assert body["error"] == "Route not found"
    assert "/api/products" in body["availableRoutes"]
    assert "/api/items" not in body["availableRoutes"]


@pytest.mark.asyncio
async def test_invalid_update_keeps_previous_routes(client, items_schema):
    await client.post("/api/items", json={"name": "widget"})
    broken = {
        "record": {
            "items": {"route": "/api/items", "fields": {"name": {"kind": "text"}}},
            "orders": {"route": "/api/orders", "fields": {"total": {"kind": "money"}}},
        }
    }

    response = await client.post("/api/schema/update", json=broken)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["entity"] == "orders"
    assert "money" in body["error"]

    assert (await client.get("/api/schema")).json() == items_schema
    listed = (await client.get("/api/items")).json()
    assert [r["name"] for r in listed["data"]] == ["widget"]
    assert (await client.get("/api/orders")).status_code == 404


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "document",
    [
        [],
        {"entities": {}},
        {"record": {"items": {"route": "/health", "fields": {"a": {"kind": "text"}}}}},
        {"record": {"items": {"route": "/api/items", "fields": {"id": {"kind": "text"}}}}},
        {"record": {"items": {"route": "/api/items", "fields": {"a": {"kind": "text", "default": "now"}}}}},
        {
            "record": {
                "items": {"route": "/api/items", "fields": {"a": {"kind": "text"}}},
                "archive": {"route": "/api/items/archive", "fields": {"a": {"kind": "text"}}},
            }
        },
    ],
)
async def test_rejected_documents(client, document):
    response = await client.post("/api/schema/update", json=document)
    assert response.status_code == 400
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_data_survives_compatible_schema_change(client):
    created = (await client.post("/api/items", json={"name": "widget"})).json()["data"]
    grown = {
        "record": {
            "items": {
                "route": "/api/items",
                "fields": {"name": {"kind": "text", "required": True}, "qty": {"kind": "number"}},
            }
        }
    }

    assert (await client.post("/api/schema/update", json=grown)).status_code == 200

    fetched = await client.get(f"/api/items/{created['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["data"]["name"] == "widget"

    updated = await client.put(f"/api/items/{created['id']}", json={"qty": 3})
    assert updated.json()["data"]["qty"] == 3.0


@pytest.mark.asyncio
async def test_concurrent_update_is_refused(client, app, items_schema):
    gate = asyncio.Event()

    async def slow_save(document):
        await gate.wait()

    app.state.schema_store.save = slow_save

    first = asyncio.create_task(client.post("/api/schema/update", json=items_schema))
    while not app.state.schema_registry.update_in_progress:
        await asyncio.sleep(0.01)

    second = await client.post("/api/schema/update", json=items_schema)
    assert second.status_code == 409
    assert second.json()["success"] is False

    gate.set()
    assert (await first).status_code == 200


@pytest.mark.asyncio
async def test_failed_save_is_reported_as_warning(client, app, items_schema):
    async def failing_save(document):
        raise OSError("disk full")

    app.state.schema_store.save = failing_save

    response = await client.post("/api/schema/update", json=items_schema)

    assert response.status_code == 200
    assert "disk full" in response.json()["warnings"][0]
