# Tests for tab CRUD endpoints.

import pytest


def _names(client):
    return {t["name"] for t in client.get("/api/tabs").json()}


def test_list_empty(client):
    resp = client.get("/api/tabs")
    assert resp.status_code == 200
    assert resp.json() == []


def test_create_then_list(client):
    resp = client.post("/api/tabs", json={"name": "groceries"})
    assert resp.status_code == 200
    tab = resp.json()
    assert tab["name"] == "groceries"
    assert isinstance(tab["id"], int)
    assert tab in client.get("/api/tabs").json()


def test_ids_are_fresh(client):
    first = client.post("/api/tabs", json={"name": "a"}).json()
    client.post("/api/tabs/delete", json={"id": first["id"]})
    second = client.post("/api/tabs", json={"name": "b"}).json()
    assert second["id"] != first["id"]


def test_client_supplied_id_is_ignored(client):
    tab = client.post("/api/tabs", json={"id": 999, "name": "x"}).json()
    assert tab["id"] != 999


def test_missing_name_defaults_to_empty(client):
    resp = client.post("/api/tabs", json={})
    assert resp.status_code == 200
    assert resp.json()["name"] == ""


def test_rename(client):
    tab = client.post("/api/tabs", json={"name": "old"}).json()
    resp = client.post("/api/tabs/rename", json={"id": tab["id"], "name": "new"})
    assert resp.status_code == 200
    assert _names(client) == {"new"}


def test_rename_unknown_tab_is_success(client, conn):
    resp = client.post("/api/tabs/rename", json={"id": 4242, "name": "ghost"})
    assert resp.status_code == 200
    assert client.get("/api/tabs").json() == []
    assert conn.execute("SELECT COUNT(*) FROM tabs").fetchone()[0] == 0


def test_delete_removes_tab_and_key_values(client):
    tab = client.post("/api/tabs", json={"name": "temp"}).json()
    client.post("/api/keyvalues", json={"tab_id": tab["id"], "key_values": {"a": "1", "b": "2"}})
    resp = client.post("/api/tabs/delete", json={"id": tab["id"]})
    assert resp.status_code == 200
    assert client.get("/api/tabs").json() == []
    assert client.get("/api/keyvalues", params={"tab_id": tab["id"]}).json() == []


def test_delete_leaves_other_tabs(client):
    keep = client.post("/api/tabs", json={"name": "keep"}).json()
    drop = client.post("/api/tabs", json={"name": "drop"}).json()
    client.post("/api/keyvalues", json={"tab_id": keep["id"], "key_values": {"k": "v"}})
    client.post("/api/tabs/delete", json={"id": drop["id"]})
    assert _names(client) == {"keep"}
    kvs = client.get("/api/keyvalues", params={"tab_id": keep["id"]}).json()
    assert [(kv["key"], kv["value"]) for kv in kvs] == [("k", "v")]


def test_delete_second_step_failure_is_partial(client, conn):
    tab = client.post("/api/tabs", json={"name": "t"}).json()
    client.post("/api/keyvalues", json={"tab_id": tab["id"], "key_values": {"a": "1"}})
    conn.execute("DROP TABLE tabs")
    resp = client.post("/api/tabs/delete", json={"id": tab["id"]})
    assert resp.status_code == 500
    assert "no such table" in resp.json()["detail"]
    assert conn.execute("SELECT COUNT(*) FROM key_values").fetchone()[0] == 0


def test_store_error_is_returned_raw(client, conn):
    conn.execute("DROP TABLE tabs")
    resp = client.get("/api/tabs")
    assert resp.status_code == 500
    assert resp.json()["detail"] == "no such table: tabs"


@pytest.mark.parametrize(
    "path,body",
    [
        ("/api/tabs", b"{not json"),
        ("/api/tabs/delete", b'{"id": "abc"}'),
        ("/api/tabs/rename", b'{"id": 1, "name": 5}'),
        ("/api/tabs/delete", b""),
    ],
)
def test_malformed_body_is_bad_request(client, path, body):
    resp = client.post(path, content=body, headers={"Content-Type": "application/json"})
    assert resp.status_code == 400


@pytest.mark.parametrize("method,path", [("get", "/api/tabs/delete"), ("get", "/api/tabs/rename"), ("put", "/api/tabs")])
def test_wrong_method(client, method, path):
    assert getattr(client, method)(path).status_code == 405


@pytest.mark.parametrize(
    "path,body",
    [
        ("/api/tabs/delete", {"id": 2**70}),
        ("/api/tabs/rename", {"id": -(2**64), "name": "x"}),
        ("/api/tabs/delete", {"id": "5"}),
        ("/api/tabs/delete", {"id": True}),
        ("/api/tabs/delete", {"id": 1.5}),
        ("/api/tabs", {"name": 7}),
    ],
)
def test_out_of_range_or_loose_values_are_bad_request(client, path, body):
    resp = client.post(path, json=body)
    assert resp.status_code == 400


def test_int64_bounds_are_accepted(client):
    assert client.post("/api/tabs/delete", json={"id": 2**63 - 1}).status_code == 200
    assert client.post("/api/tabs/rename", json={"id": -(2**63), "name": "x"}).status_code == 200


def test_lone_surrogate_in_name_is_replaced(client):
    resp = client.post(
        "/api/tabs",
        content=b'{"name": "a\\ud800b"}',
        headers={"Content-Type": "application/json"},
    )
    assert resp.status_code == 200
    assert resp.json()["name"] == "a\ufffdb"
    assert [t["name"] for t in client.get("/api/tabs").json()] == ["a\ufffdb"]


def test_concurrent_creates_over_http(make_client):
    from concurrent.futures import ThreadPoolExecutor

    app = make_client().app

    def create_many(worker):
        from fastapi.testclient import TestClient

        local = TestClient(app)
        return [local.post("/api/tabs", json={"name": f"{worker}-{i}"}).json() for i in range(20)]

    with ThreadPoolExecutor(max_workers=4) as pool:
        created = [tab for batch in pool.map(create_many, range(4)) for tab in batch]

    listed = {t["id"]: t["name"] for t in make_client().get("/api/tabs").json()}
    assert len(listed) == len(created) == 80
    for tab in created:
        assert listed[tab["id"]] == tab["name"]
