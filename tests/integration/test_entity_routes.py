"""CRUD behavior of generated entity routes on both storage backends."""

from datetime import datetime

import pytest


@pytest.mark.asyncio
async def test_create_then_search(client):
    response = await client.post("/api/items", json={"name": "widget"})

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["id"]
    assert body["data"]["name"] == "widget"

    response = await client.get("/api/items", params={"search": "widg"})

    assert response.status_code == 200
    body = response.json()
    assert [r["name"] for r in body["data"]] == ["widget"]
    assert body["pagination"] == {"total": 1, "page": 1, "limit": 10, "totalPages": 1}


@pytest.mark.asyncio
async def test_search_folds_non_ascii_case(client):
    await client.post("/api/items", json={"name": "Élan"})
    await client.post("/api/items", json={"name": "ÖL"})
    await client.post("/api/items", json={"name": "elan"})

    body = (await client.get("/api/items", params={"search": "élan"})).json()
    assert [r["name"] for r in body["data"]] == ["Élan"]
    assert body["pagination"]["total"] == 1

    body = (await client.get("/api/items", params={"search": "öl"})).json()
    assert [r["name"] for r in body["data"]] == ["ÖL"]


@pytest.mark.asyncio
async def test_empty_update_advances_updated_at(client):
    created = (await client.post("/api/items", json={"name": "widget"})).json()["data"]

    response = await client.put(f"/api/items/{created['id']}", json={})

    assert response.status_code == 200
    updated = response.json()["data"]
    assert updated["name"] == "widget"
    assert updated["createdAt"] == created["createdAt"]
    assert datetime.fromisoformat(updated["updatedAt"]) > datetime.fromisoformat(
        updated["createdAt"]
    )


@pytest.mark.asyncio
async def test_update_ignores_system_fields(client):
    created = (await client.post("/api/items", json={"name": "widget"})).json()["data"]

    response = await client.put(
        f"/api/items/{created['id']}",
        json={"name": "gadget", "id": "other", "createdAt": "2000-01-01T00:00:00Z"},
    )

    data = response.json()["data"]
    assert data["id"] == created["id"]
    assert data["name"] == "gadget"
    assert data["createdAt"] == created["createdAt"]


@pytest.mark.asyncio
async def test_delete_twice(client):
    created = (await client.post("/api/items", json={"name": "widget"})).json()["data"]

    first = await client.delete(f"/api/items/{created['id']}")
    second = await client.delete(f"/api/items/{created['id']}")

    assert first.status_code == 200
    assert first.json() == {"success": True}
    assert second.status_code == 404
    assert second.json() == {"success": False, "error": "Item not found"}


@pytest.mark.asyncio
async def test_get_unknown_record(client):
    response = await client.get("/api/items/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Item not found"}


@pytest.mark.asyncio
async def test_update_unknown_record(client):
    response = await client.put("/api/items/does-not-exist", json={"name": "x"})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_missing_required_field(client):
    response = await client.post("/api/items", json={})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert "name" in body["error"]
    assert body["details"][0]["code"] == "required"


@pytest.mark.asyncio
async def test_oversized_number_is_rejected(client):
    schema = {
        "record": {
            "items": {
                "route": "/api/items",
                "fields": {"name": {"kind": "text"}, "price": {"kind": "number"}},
            }
        }
    }
    assert (await client.post("/api/schema/update", json=schema)).status_code == 200

    response = await client.post(
        "/api/items",
        content='{"name": "widget", "price": ' + "9" * 400 + "}",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["details"][0] == {
        "field": "price",
        "message": "Number is too large",
        "code": "invalid_type",
    }


@pytest.mark.asyncio
async def test_unknown_field_is_rejected(client):
    response = await client.post("/api/items", json={"name": "widget", "colour": "red"})
    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "colour"


@pytest.mark.asyncio
async def test_non_object_body_is_rejected(client):
    response = await client.post("/api/items", json=["widget"])
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_malformed_json_is_rejected(client):
    response = await client.post(
        "/api/items", content=b"{not json", headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 400
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_pagination_covers_every_record_once(client):
    names = [f"item {i:02d}" for i in range(23)]
    for name in names:
        assert (await client.post("/api/items", json={"name": name})).status_code == 201

    seen = []
    for page in (1, 2, 3, 4):
        body = (await client.get("/api/items", params={"page": page, "limit": 10})).json()
        assert body["pagination"]["total"] == 23
        assert body["pagination"]["totalPages"] == 3
        seen.extend(r["name"] for r in body["data"])

    assert sorted(seen) == names


@pytest.mark.asyncio
async def test_invalid_pagination_values_use_defaults(client):
    await client.post("/api/items", json={"name": "widget"})

    body = (await client.get("/api/items", params={"page": "zero", "limit": "-5"})).json()

    assert body["pagination"]["page"] == 1
    assert body["pagination"]["limit"] == 10
    assert len(body["data"]) == 1


@pytest.mark.asyncio
async def test_sort_by_field(client):
    for name in ("beta", "alpha", "gamma"):
        await client.post("/api/items", json={"name": name})

    asc = (await client.get("/api/items", params={"sortBy": "name", "sortOrder": "asc"})).json()
    desc = (await client.get("/api/items", params={"sortBy": "name", "sortOrder": "desc"})).json()

    assert [r["name"] for r in asc["data"]] == ["alpha", "beta", "gamma"]
    assert [r["name"] for r in desc["data"]] == ["gamma", "beta", "alpha"]


@pytest.mark.asyncio
async def test_default_order_is_newest_first(client):
    for name in ("first", "second", "third"):
        await client.post("/api/items", json={"name": name})

    body = (await client.get("/api/items", params={"sortBy": "unknown"})).json()

    assert [r["name"] for r in body["data"]] == ["third", "second", "first"]


@pytest.mark.asyncio
async def test_correlation_id_is_echoed(client):
    response = await client.get("/api/items", headers={"X-Correlation-ID": "cid_test"})
    assert response.headers["X-Correlation-ID"] == "cid_test"

    generated = await client.get("/api/items")
    assert generated.headers["X-Correlation-ID"].startswith("cid_")
