"""
HTTP and WebSocket gateway
"""

import json
import uuid

import pytest
from starlette.websockets import WebSocketDisconnect

from dashboard_api.main import app


def unique(name):
    return f"{name}_{uuid.uuid4().hex[:8]}"


def drain(client):
    client.portal.call(app.state.dispatcher.drain)


class TestAuth:
    def test_health_is_public(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "database": "ok"}

    def test_missing_token(self, client):
        response = client.get(f"/api/{unique('people')}")
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_invalid_token(self, client):
        response = client.get(f"/api/{unique('people')}", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    def test_rejection_carries_detail_and_challenge(self, client):
        response = client.get("/api/activity", headers={"Authorization": "Bearer expired"})

        assert response.status_code == 401
        assert response.json() == {"detail": "Could not validate credentials"}
        assert response.headers["www-authenticate"] == "Bearer"


class TestCollections:
    def test_crud(self, client, auth_headers):
        collection = unique("people")

        created = client.post(f"/api/{collection}", json={"name": "Joe", "age": 31}, headers=auth_headers)
        assert created.status_code == 201
        doc = created.json()
        assert doc["name"] == "Joe"
        assert {"id", "createdAt", "updatedAt"} <= set(doc)

        fetched = client.get(f"/api/{collection}/{doc['id']}", headers=auth_headers)
        assert fetched.json()["age"] == 31

        updated = client.put(f"/api/{collection}/{doc['id']}", json={"age": 32}, headers=auth_headers)
        assert updated.json()["age"] == 32
        assert updated.json()["name"] == "Joe"

        assert client.delete(f"/api/{collection}/{doc['id']}", headers=auth_headers).status_code == 204
        assert client.delete(f"/api/{collection}/{doc['id']}", headers=auth_headers).status_code == 204
        assert client.get(f"/api/{collection}/{doc['id']}", headers=auth_headers).status_code == 404

    def test_update_missing_is_404(self, client, auth_headers):
        response = client.put(f"/api/{unique('people')}/missing", json={"a": 1}, headers=auth_headers)
        assert response.status_code == 404

    def test_query_with_filters_and_sort(self, client, auth_headers):
        collection = unique("people")
        for name, age in (("Joe", 31), ("John", 25), ("Amy", 42)):
            client.post(f"/api/{collection}", json={"name": name, "age": age}, headers=auth_headers)

        response = client.get(
            f"/api/{collection}",
            params={"filters": json.dumps([["age", ">", 26]]), "sort": "age", "direction": "desc"},
            headers=auth_headers,
        )

        body = response.json()
        assert body["count"] == 2
        assert [doc["name"] for doc in body["documents"]] == ["Amy", "Joe"]

    def test_bad_filters_are_400(self, client, auth_headers):
        response = client.get(
            f"/api/{unique('people')}", params={"filters": json.dumps([["age", "~", 1]])}, headers=auth_headers
        )
        assert response.status_code == 400

    def test_pagination(self, client, auth_headers):
        collection = unique("items")
        client.post(f"/api/{collection}/batch", json={"documents": [{"n": n} for n in range(5)]}, headers=auth_headers)

        first = client.get(f"/api/{collection}", params={"page_size": 3}, headers=auth_headers).json()
        second = client.get(
            f"/api/{collection}", params={"page_size": 3, "cursor": first["cursor"]}, headers=auth_headers
        ).json()

        assert len(first["documents"]) == 3 and first["has_more"] is True
        assert len(second["documents"]) == 2 and second["has_more"] is False

    def test_batches(self, client, auth_headers):
        collection = unique("items")
        created = client.post(
            f"/api/{collection}/batch", json={"documents": [{"n": 1}, {"n": 2}]}, headers=auth_headers
        ).json()
        ids = [doc["id"] for doc in created]

        updated = client.put(
            f"/api/{collection}/batch",
            json={"updates": [{"id": ids[0], "data": {"n": 10}}, {"id": "missing", "data": {"n": 0}}]},
            headers=auth_headers,
        )
        assert updated.status_code == 409
        assert client.get(f"/api/{collection}/{ids[0]}", headers=auth_headers).json()["n"] == 1

        deleted = client.request("DELETE", f"/api/{collection}/batch", json={"ids": ids}, headers=auth_headers)
        assert deleted.json() == {"deleted": ids}
        assert client.get(f"/api/{collection}", headers=auth_headers).json()["count"] == 0

    def test_search(self, client, auth_headers):
        collection = unique("people")
        for name in ("Joe", "John", "Amy"):
            client.post(f"/api/{collection}", json={"name": name}, headers=auth_headers)

        response = client.get(f"/api/search/{collection}", params={"field": "name", "term": "Jo"}, headers=auth_headers)

        assert sorted(doc["name"] for doc in response.json()["documents"]) == ["Joe", "John"]


class TestSchemas:
    def test_schema_roundtrip_and_validation(self, client, auth_headers):
        collection = unique("products")
        assert client.get(f"/api/schemas/{collection}", headers=auth_headers).json()["fields"] is None

        response = client.put(
            f"/api/schemas/{collection}",
            json={"fields": [
                {"name": "Title", "type": "text", "required": True},
                {"name": "Price", "type": "number"},
            ]},
            headers=auth_headers,
        )
        assert [field["id"] for field in response.json()["fields"]] == ["title", "price"]

        rejected = client.post(f"/api/{collection}", json={"price": "cheap"}, headers=auth_headers)
        assert rejected.status_code == 422
        assert set(rejected.json()["errors"]) == {"title", "price"}

        accepted = client.post(f"/api/{collection}", json={"title": "Lamp", "price": 10}, headers=auth_headers)
        assert accepted.status_code == 201

        merged = client.put(f"/api/{collection}/{accepted.json()['id']}", json={"title": ""}, headers=auth_headers)
        assert merged.status_code == 422

    def test_field_editing(self, client, auth_headers):
        collection = unique("products")
        client.put(f"/api/schemas/{collection}", json={"fields": [{"name": "Title"}]}, headers=auth_headers)

        client.post(f"/api/schemas/{collection}/fields", json={"name": "Photo", "type": "image"}, headers=auth_headers)
        reordered = client.put(
            f"/api/schemas/{collection}/order", json={"field_ids": ["photo", "title"]}, headers=auth_headers
        )
        assert [field["id"] for field in reordered.json()["fields"]] == ["photo", "title"]

        removed = client.delete(f"/api/schemas/{collection}/fields/photo", headers=auth_headers)
        assert [field["id"] for field in removed.json()["fields"]] == ["title"]
        assert client.delete(f"/api/schemas/{collection}/fields/photo", headers=auth_headers).status_code == 404


class TestFiles:
    def test_upload_metadata_and_delete(self, client, auth_headers, s3_client):
        collection = unique("media")
        response = client.post(
            "/api/files/upload",
            data={"collection": collection, "path": "2024", "metadata": json.dumps({"record_id": "r1"})},
            files={"file": ("lamp.png", b"\x89PNG" * 10, "image/png")},
            headers=auth_headers,
        )
        assert response.status_code == 201
        uploaded = response.json()
        assert uploaded["path"] == f"{collection}/2024/lamp.png"
        assert uploaded["size"] == 40

        meta = client.get(f"/api/files/metadata/{uploaded['path']}", headers=auth_headers).json()
        assert meta["contentType"] == "image/png"
        assert meta["customMetadata"]["record_id"] == "r1"

        listing = client.get("/api/files", params={"collection": collection, "path": "2024"}, headers=auth_headers)
        assert [f["name"] for f in listing.json()["files"]] == ["lamp.png"]

        public = client.put(f"/api/files/access/{uploaded['path']}", json={"is_public": True}, headers=auth_headers)
        assert public.json()["customMetadata"]["is_public"] == "true"

        assert client.delete(f"/api/files/{uploaded['path']}", headers=auth_headers).status_code == 204
        assert uploaded["path"] not in s3_client.objects
        assert client.delete(f"/api/files/{uploaded['path']}", headers=auth_headers).status_code == 204
        assert client.get(f"/api/files/metadata/{uploaded['path']}", headers=auth_headers).status_code == 404

    def test_bad_page_token_is_422(self, client, auth_headers):
        response = client.get("/api/files", params={"collection": "x", "page_token": "zz"}, headers=auth_headers)
        assert response.status_code == 422


class TestActivity:
    def test_writes_show_up_in_activity(self, client, auth_headers):
        collection = unique("orders")
        doc = client.post(f"/api/{collection}", json={"total": 5}, headers=auth_headers).json()
        drain(client)

        entries = client.get("/api/activity", params={"page_size": 200}, headers=auth_headers).json()["entries"]

        mine = [entry for entry in entries if entry.get("collection") == collection]
        assert [(entry["action"], entry["docId"], entry["userId"]) for entry in mine] == [
            ("create", doc["id"], "admin-1")
        ]

    def test_api_calls_are_logged(self, client, auth_headers):
        client.get(f"/api/{unique('anything')}", headers=auth_headers)
        drain(client)

        analytics = client.get("/api/analytics", params={"days": 1}, headers=auth_headers).json()

        assert analytics["stats"]["apiCalls"] >= 1


class TestWebSocket:
    def test_rejects_invalid_token(self, client):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect(f"/ws/{unique('people')}?token=bad") as websocket:
                websocket.receive_json()
        assert exc.value.code == 1008

    def test_subscribe_and_receive_changes(self, client, auth_headers, token):
        collection = unique("people")
        client.post(f"/api/{collection}", json={"name": "Joe"}, headers=auth_headers)

        with client.websocket_connect(f"/ws/{collection}?token={token}") as websocket:
            websocket.send_json({"type": "subscribe", "subscription_id": "s1"})
            assert websocket.receive_json()["type"] == "subscribed"
            snapshot = websocket.receive_json()
            assert snapshot["type"] == "snapshot"
            assert [doc["name"] for doc in snapshot["data"]["documents"]] == ["Joe"]

            client.post(f"/api/{collection}", json={"name": "Amy"}, headers=auth_headers)

            update = websocket.receive_json()
            assert update["type"] == "snapshot"
            assert sorted(doc["name"] for doc in update["data"]["documents"]) == ["Amy", "Joe"]
            notification = websocket.receive_json()
            assert notification["type"] == "notification"
            assert notification["data"]["message"] == f"New {collection} added"

            websocket.send_json({"type": "ping"})
            assert websocket.receive_json() == {"type": "pong"}

            websocket.send_json({"type": "unsubscribe", "subscription_id": "s1"})
            assert websocket.receive_json()["type"] == "unsubscribed"
