from __future__ import annotations

import os
import tempfile
from typing import Any

import pytest
from fastapi.testclient import TestClient

from fortune import Fortune, create


def _people_app(**options: Any) -> Fortune:
    app = create({"adapter": "memory", **options})
    app.resource("person", {"name": str, "age": "number", "email": "string"})
    return app


def _create_person(client: TestClient, path: str = "/people", **fields: Any) -> dict[str, Any]:
    resp = client.post(path, json={"people": [fields]})
    assert resp.status_code == 201, resp.text
    return resp.json()["people"][0]


def test_post_then_get() -> None:
    app = _people_app()
    with TestClient(app.router) as client:
        resp = client.post("/people", json={"people": [{"name": "Ada", "age": 36}]})
        assert resp.status_code == 201
        assert resp.headers["content-type"].startswith("application/vnd.api+json")
        person = resp.json()["people"][0]
        assert person["name"] == "Ada"
        assert person["age"] == 36
        assert "links" not in person
        assert resp.headers["location"] == f"/people/{person['id']}"

        get = client.get(f"/people/{person['id']}")
        assert get.status_code == 200
        body = get.json()
        assert body == {"people": [{"id": person["id"], "name": "Ada", "age": 36, "email": None}]}


def test_post_accepts_single_object_and_explicit_id() -> None:
    app = _people_app()
    with TestClient(app.router) as client:
        resp = client.post("/people", json={"people": {"id": "ada", "name": "Ada"}})
        assert resp.status_code == 201
        assert resp.json()["people"][0]["id"] == "ada"

        dup = client.post("/people", json={"people": [{"id": "ada", "name": "Other"}]})
        assert dup.status_code == 409
        assert dup.json()["error"]["code"] == "conflict"


def test_post_many_and_list_in_creation_order() -> None:
    app = _people_app()
    with TestClient(app.router) as client:
        resp = client.post("/people", json={"people": [{"name": "a"}, {"name": "b"}, {"name": "c"}]})
        assert resp.status_code == 201
        created = [p["id"] for p in resp.json()["people"]]

        listed = client.get("/people")
        assert listed.status_code == 200
        assert [p["id"] for p in listed.json()["people"]] == created
        assert "meta" not in listed.json()


def test_list_pagination_with_cursor() -> None:
    app = _people_app()
    with TestClient(app.router) as client:
        ids = [_create_person(client, name=n)["id"] for n in ("a", "b", "c")]

        page1 = client.get("/people", params={"limit": 2}).json()
        assert [p["id"] for p in page1["people"]] == ids[:2]
        cursor = page1["meta"]["next_cursor"]

        page2 = client.get("/people", params={"limit": 2, "cursor": cursor}).json()
        assert [p["id"] for p in page2["people"]] == ids[2:]
        assert "meta" not in page2


@pytest.mark.parametrize("params", [{"limit": 0}, {"limit": "many"}, {"cursor": "garbage"}, {"age": "old"}])
def test_list_rejects_bad_query(params: dict[str, Any]) -> None:
    app = _people_app()
    with TestClient(app.router) as client:
        resp = client.get("/people", params=params)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_argument"


def test_list_filters_on_fields() -> None:
    app = _people_app()
    with TestClient(app.router) as client:
        a = _create_person(client, name="a", age=30)
        _create_person(client, name="b", age=40)
        resp = client.get("/people", params={"age": "30"})
        assert [p["id"] for p in resp.json()["people"]] == [a["id"]]


def test_get_many_ids_keeps_requested_order() -> None:
    app = _people_app()
    with TestClient(app.router) as client:
        a = _create_person(client, name="a")["id"]
        b = _create_person(client, name="b")["id"]
        resp = client.get(f"/people/{b},{a},missing")
        assert resp.status_code == 200
        assert [p["id"] for p in resp.json()["people"]] == [b, a]


def test_get_missing_is_404() -> None:
    app = _people_app()
    with TestClient(app.router) as client:
        resp = client.get("/people/nobody")
        assert resp.status_code == 404
        payload = resp.json()
        assert payload["error"]["code"] == "not_found"
        assert payload["error"]["details"] == {"ids": ["nobody"]}


def test_put_creates_then_replaces() -> None:
    app = _people_app()
    with TestClient(app.router) as client:
        created = client.put("/people/bob", json={"people": [{"name": "Bob", "age": 50}]})
        assert created.status_code == 201
        assert created.json()["people"][0]["id"] == "bob"

        replaced = client.put("/people/bob", json={"people": [{"id": "bob", "name": "Robert"}]})
        assert replaced.status_code == 200
        person = replaced.json()["people"][0]
        assert person["name"] == "Robert"
        assert person["age"] is None


def test_put_rejects_id_mismatch_and_many_resources() -> None:
    app = _people_app()
    with TestClient(app.router) as client:
        resp = client.put("/people/bob", json={"people": [{"id": "alice", "name": "x"}]})
        assert resp.status_code == 400
        assert resp.json()["error"]["details"] == {"url_id": "bob", "body_id": "alice"}

        resp = client.put("/people/bob", json={"people": [{"name": "x"}, {"name": "y"}]})
        assert resp.status_code == 400

        resp = client.put("/people/a,b", json={"people": [{"name": "x"}]})
        assert resp.status_code == 400


def test_patch_replace_and_remove() -> None:
    app = _people_app()
    with TestClient(app.router) as client:
        person = _create_person(client, name="Ada", age=36, email="ada@example.test")
        resp = client.patch(
            f"/people/{person['id']}",
            json=[
                {"op": "replace", "path": "/people/0/name", "value": "Grace"},
                {"op": "remove", "path": "/email"},
            ],
        )
        assert resp.status_code == 200
        patched = resp.json()["people"][0]
        assert patched["name"] == "Grace"
        assert patched["email"] is None
        assert patched["age"] == 36


@pytest.mark.parametrize(
    "ops",
    [
        {"op": "replace"},
        [],
        [{"op": "move", "path": "/name", "value": "x"}],
        [{"op": "replace", "path": "/nickname", "value": "x"}],
        [{"op": "replace", "path": "/name"}],
        [{"op": "replace", "path": "/people/x/name", "value": "x"}],
    ],
)
def test_patch_rejects_bad_operations(ops: Any) -> None:
    app = _people_app()
    with TestClient(app.router) as client:
        person = _create_person(client, name="Ada")
        resp = client.patch(f"/people/{person['id']}", json=ops)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_argument"


def test_patch_missing_is_404() -> None:
    app = _people_app()
    with TestClient(app.router) as client:
        resp = client.patch("/people/nobody", json=[{"op": "replace", "path": "/name", "value": "x"}])
        assert resp.status_code == 404


def test_delete_item_and_collection() -> None:
    app = _people_app()
    with TestClient(app.router) as client:
        a = _create_person(client, name="a")["id"]
        _create_person(client, name="b")

        assert client.delete(f"/people/{a}").status_code == 204
        assert client.get(f"/people/{a}").status_code == 404
        assert client.delete(f"/people/{a}").status_code == 404

        assert client.delete("/people").status_code == 204
        assert client.get("/people").json() == {"people": []}


def test_body_errors_use_error_envelope() -> None:
    app = _people_app()
    with TestClient(app.router) as client:
        bad_json = client.post("/people", content=b"{", headers={"content-type": "application/json"})
        assert bad_json.status_code == 400
        assert bad_json.json()["error"]["code"] == "invalid_argument"

        wrong_key = client.post("/people", json={"persons": [{"name": "x"}]})
        assert wrong_key.status_code == 400

        invalid = client.post("/people", json={"people": [{"age": "old"}]})
        assert invalid.status_code == 400
        assert invalid.json()["error"]["details"]["errors"]


def test_namespace_and_base_url() -> None:
    app = _people_app(namespace="api/v1", base_url="http://api.test/")
    with TestClient(app.router) as client:
        assert client.get("/people").status_code == 404
        person = _create_person(client, path="/api/v1/people", name="Ada")
        assert person["href"] == f"http://api.test/api/v1/people/{person['id']}"
        assert client.get(f"/api/v1/people/{person['id']}").status_code == 200
        assert client.get("/api/v1/healthz").json()["status"] == "ok"


def test_production_responses_are_compact() -> None:
    pretty = _people_app()
    compact = _people_app(production=True)
    with TestClient(pretty.router) as client:
        _create_person(client, name="Ada")
        assert "\n" in client.get("/people").text
    with TestClient(compact.router) as client:
        _create_person(client, name="Ada")
        text = client.get("/people").text
        assert "\n" not in text
        assert ": " not in text


def test_sqlite_adapter_end_to_end() -> None:
    with tempfile.TemporaryDirectory() as td:
        app = create({"adapter": "sqlite", "db": os.path.join(td, "api")})
        app.resource("person", {"name": str})
        try:
            with TestClient(app.router) as client:
                person = _create_person(client, name="Ada")
                resp = client.get(f"/people/{person['id']}")
                assert resp.json()["people"][0]["name"] == "Ada"
        finally:
            app.close()


def test_version_lists_resources() -> None:
    app = _people_app()
    with TestClient(app.router) as client:
        body = client.get("/version").json()
        assert body["service"] == "fortune"
        assert body["adapter"] == "memory"
        assert body["resources"] == ["person"]


@pytest.mark.parametrize("constant", ["NaN", "Infinity", "-Infinity"])
def test_non_finite_numbers_are_rejected_before_writing(constant: str) -> None:
    app = create({"adapter": "memory"})
    app.resource("reading", {"value": "number", "extra": "object"})
    with TestClient(app.router) as client:
        for body in (
            '{"readings": [{"value": %s}]}' % constant,
            '{"readings": [{"value": 1, "extra": {"x": %s}}]}' % constant,
        ):
            resp = client.post("/readings", content=body, headers={"Content-Type": "application/json"})
            assert resp.status_code == 400
            assert resp.json()["error"]["code"] == "invalid_argument"

        listed = client.get("/readings")
        assert listed.status_code == 200
        assert listed.json() == {"readings": []}

        reading = client.post("/readings", json={"readings": [{"value": 1.5}]}).json()["readings"][0]
        patch = client.patch(
            f"/readings/{reading['id']}",
            content='[{"op": "replace", "path": "/value", "value": %s}]' % constant,
            headers={"Content-Type": "application/json"},
        )
        assert patch.status_code == 400
        assert client.get(f"/readings/{reading['id']}").json()["readings"][0]["value"] == 1.5


def test_list_filter_rejects_non_finite_numbers() -> None:
    app = _people_app()
    with TestClient(app.router) as client:
        assert client.get("/people", params={"age": "nan"}).status_code == 400


def test_top_level_links_without_base_url_carry_no_href() -> None:
    app = create({"adapter": "memory", "namespace": "api"})
    app.resource("person", {"name": str, "pets": [{"ref": "pet", "inverse": "owner"}]})
    app.resource("pet", {"name": str, "owner": {"ref": "person", "inverse": "pets"}})
    with TestClient(app.router) as client:
        body = client.post("/api/people", json={"people": [{"name": "Ada"}]}).json()
    assert body["links"] == {"people.pets": {"type": "pets"}}
    assert "href" not in body["people"][0]
    assert body["people"][0]["links"] == {"pets": []}
