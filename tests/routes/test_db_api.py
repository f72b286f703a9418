# tests/routes/test_db_api.py
import json

import pytest

from dbaas.api.query.grants import GrantRepository, GrantSpec

ADMIN = {"X-API-Key": "admin-key"}
USER = {"X-API-Key": "user-key"}


@pytest.fixture
async def seeded(client):
    resp = await client.post(
        "/db/insert",
        headers=ADMIN,
        json={
            "table": "customers",
            "data": [
                {"name": "Ann", "email": "ann@x.io", "age": 31, "city": "Rome"},
                {"name": "Ben", "email": "ben@x.io", "age": 45, "city": "Milan"},
            ],
        },
    )
    assert resp.status_code == 201
    return resp.json()["ids"]


async def test_missing_api_key(client):
    resp = await client.get("/db", params={"table": "customers"})
    assert resp.status_code == 401


async def test_unknown_api_key(client):
    resp = await client.get(
        "/db", params={"table": "customers"}, headers={"X-API-Key": "nope"}
    )
    assert resp.status_code == 401


async def test_expired_api_key(client):
    resp = await client.get(
        "/db", params={"table": "customers"}, headers={"X-API-Key": "expired-key"}
    )
    assert resp.status_code == 401


async def test_select(client, seeded):
    resp = await client.get(
        "/db",
        headers=ADMIN,
        params={
            "table": "customers",
            "columns": "name,age",
            "where": json.dumps([["age", ">", 40]]),
            "order_by": json.dumps([{"column": "name"}]),
        },
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["items"] == [{"name": "Ben", "age": 45}]
    assert body["columns"] == ["name", "age"]
    assert body["count"] == 1
    assert body["limit"] == 5


async def test_select_restricted_table(client):
    resp = await client.get("/db", headers=ADMIN, params={"table": "users"})
    assert resp.status_code == 403
    assert resp.json()["error"] == "TableRestricted"


async def test_select_bad_where_json(client):
    resp = await client.get(
        "/db", headers=ADMIN, params={"table": "customers", "where": "{oops"}
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "InvalidRequest"


async def test_select_bad_limit(client):
    resp = await client.get(
        "/db", headers=ADMIN, params={"table": "customers", "limit": 0}
    )
    assert resp.status_code == 422


async def test_post_defaults_to_insert(client):
    resp = await client.post(
        "/db", headers=ADMIN, json={"table": "customers", "data": {"name": "Cid"}}
    )
    assert resp.status_code == 201
    assert isinstance(resp.json()["id"], int)


async def test_post_select(client, seeded):
    resp = await client.post(
        "/db",
        headers=ADMIN,
        json={"method": "select", "table": "customers", "columns": ["name"]},
    )
    assert resp.status_code == 200
    assert {r["name"] for r in resp.json()["items"]} == {"Ann", "Ben"}


async def test_post_invalid_method(client):
    resp = await client.post(
        "/db",
        headers=ADMIN,
        json={"method": "update", "table": "customers", "data": {"name": "x"}},
    )
    assert resp.status_code == 422


async def test_upsert_insert_then_update(client):
    body = {
        "table": "customers",
        "data": {"name": "Dee", "email": "dee@x.io"},
        "where": [["email", "=", "dee@x.io"]],
        "upsert": True,
    }
    first = await client.put("/db", headers=ADMIN, json=body)
    assert first.status_code == 201
    assert isinstance(first.json()["id"], int)

    second = await client.patch("/db", headers=ADMIN, json=body)
    assert second.status_code == 200
    assert second.json()["affected"] == 1


async def test_delete_requires_where(client, seeded):
    resp = await client.request(
        "DELETE", "/db", headers=ADMIN, json={"table": "customers", "where": []}
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "UnsafeDelete"


async def test_delete(client, seeded):
    resp = await client.request(
        "DELETE",
        "/db",
        headers=ADMIN,
        json={"table": "customers", "where": [["name", "=", "Ann"]]},
    )
    assert resp.status_code == 200
    assert resp.json()["affected"] == 1


async def test_user_without_grant(client, seeded):
    resp = await client.get("/db", headers=USER, params={"table": "customers"})
    assert resp.status_code == 403
    assert resp.json()["error"] == "PermissionDenied"


async def test_user_with_grant(client, test_session, seeded):
    await GrantRepository(test_session).upsert_grant(
        GrantSpec(
            user_id=2,
            table_name="customers",
            can_select=True,
            columns_allowed=["name"],
            where_conditions=[["city", "=", "Rome"]],
        )
    )
    resp = await client.get("/db", headers=USER, params={"table": "customers"})
    assert resp.status_code == 200
    assert resp.json()["items"] == [{"name": "Ann"}]


async def test_store_error_is_500(client):
    resp = await client.get("/db", headers=ADMIN, params={"table": "missing_table"})
    assert resp.status_code == 500
    assert resp.json()["error"] == "StoreError"
