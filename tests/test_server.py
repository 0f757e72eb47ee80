from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from conftest import make_submission
from leettracker.core.errors import SourceProtocolError
from leettracker.services.session import VerifiedRoomCache
from leettracker.web import server


@pytest.fixture
def client(test_settings, source, monkeypatch):
    monkeypatch.setattr(server, "session_cache", VerifiedRoomCache(3600))
    source.set("alice", [make_submission(datetime.now(timezone.utc) - timedelta(minutes=5))])
    with TestClient(server.app) as c:
        yield c


def _create_room(client, **body) -> str:
    resp = client.post("/api/rooms", json=body)
    assert resp.status_code == 200
    return resp.json()["room"]["code"]


def test_create_and_fetch_room(client):
    resp = client.post("/api/rooms", json={"pin": "1234", "timezone": "UTC"})
    room = resp.json()["room"]
    assert room["has_pin"] is True
    assert room["timezone"] == "UTC"
    assert "pin" not in room

    resp = client.get(f"/api/rooms/{room['code']}")
    assert resp.status_code == 200
    assert resp.json()["room"]["id"] == room["id"]


def test_unknown_room_is_404(client):
    resp = client.get("/api/rooms/zzzzzz")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Room not found"}


def test_bad_timezone_is_400(client):
    resp = client.post("/api/rooms", json={"timezone": "Nowhere/Land"})
    assert resp.status_code == 400


def test_pin_gates_mutations(client):
    code = _create_room(client, pin="1234")
    client.cookies.clear()
    body = {"username": "alice", "displayName": "Alice", "roomCode": code}

    assert client.post("/api/users", json=body).status_code == 403

    resp = client.post(f"/api/rooms/{code}/verify", json={"pin": "0000"})
    assert resp.json() == {"success": True, "valid": False}
    assert client.post("/api/users", json=body).status_code == 403

    resp = client.post(f"/api/rooms/{code}/verify", json={"pin": "1234"})
    assert resp.json() == {"success": True, "valid": True}
    assert client.post("/api/users", json=body).status_code == 200


def test_open_room_verify_always_valid(client):
    code = _create_room(client)
    resp = client.post(f"/api/rooms/{code}/verify", json={"pin": "whatever"})
    assert resp.json()["valid"] is True


def test_user_lifecycle(client, source):
    code = _create_room(client)
    body = {"username": "alice", "displayName": "Alice", "roomCode": code}

    resp = client.post("/api/users", json=body)
    assert resp.status_code == 200
    user = resp.json()["user"]
    assert user["leetcode_username"] == "alice"

    assert client.post("/api/users", json=body).status_code == 409

    source.fail("ghost", SourceProtocolError("no such user"))
    resp = client.post("/api/users", json={"username": "ghost", "displayName": "G", "roomCode": code})
    assert resp.status_code == 404

    assert client.post("/api/users", json={"username": "", "displayName": "X"}).status_code == 400

    resp = client.patch("/api/users", json={"username": "alice", "displayName": "Al", "roomCode": code})
    assert resp.json()["user"]["display_name"] == "Al"

    board = client.get(f"/api/rooms/{code}/board").json()
    assert [u["display_name"] for u in board["users"]] == ["Al"]
    assert 0 <= board["seconds_until_midnight"] < 86400

    history = client.get(f"/api/rooms/{code}/history", params={"days": 5}).json()
    assert len(history["users"][0]["days"]) == 5

    resp = client.post(f"/api/users/{user['id']}/check")
    assert resp.json()["success"] is True

    resp = client.delete("/api/users", params={"username": "alice", "roomCode": code})
    assert resp.status_code == 200
    resp = client.delete("/api/users", params={"username": "alice", "roomCode": code})
    assert resp.status_code == 404


def test_sync_endpoint(client, source):
    code = _create_room(client)
    client.post("/api/users", json={"username": "alice", "displayName": "Alice", "roomCode": code})
    source.fail("alice", SourceProtocolError("bad payload"))

    resp = client.get("/api/sync")
    data = resp.json()
    assert resp.status_code == 200
    assert data["users_processed"] == 1
    assert data["results"][0]["success"] is False
    assert data["results"][0]["is_done"] is None


def test_sync_endpoint_without_users(client):
    resp = client.get("/api/sync")
    assert resp.json()["users_processed"] == 0


def test_check_unknown_user(client):
    assert client.post("/api/users/nope/check").status_code == 404


def test_update_room_requires_verification(client):
    code = _create_room(client, pin="1234")
    resp = client.patch(f"/api/rooms/{code}", json={"timezone": "Asia/Tokyo"})
    assert resp.status_code == 200
    assert resp.json()["room"]["timezone"] == "Asia/Tokyo"

    client.cookies.clear()
    assert client.patch(f"/api/rooms/{code}", json={"timezone": "UTC"}).status_code == 403


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.json()["ok"] is True


def test_non_string_pin(client):
    assert client.post("/api/rooms", json={"pin": 1234}).status_code == 400

    code = _create_room(client, pin="1234")
    client.cookies.clear()
    resp = client.post(f"/api/rooms/{code}/verify", json={"pin": 1234})
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "valid": False}
    assert client.patch(f"/api/rooms/{code}", json={"timezone": "UTC"}).status_code == 403


def test_non_string_pin_on_update(client):
    code = _create_room(client, pin="1234")
    assert client.patch(f"/api/rooms/{code}", json={"pin": 5678}).status_code == 400


def test_backfill_endpoint(client, source):
    assert client.get("/api/backfill").json()["users_processed"] == 0

    code = _create_room(client)
    client.post("/api/users", json={"username": "alice", "displayName": "Alice", "roomCode": code})
    room_id = client.get(f"/api/rooms/{code}").json()["room"]["id"]

    resp = client.get("/api/backfill", params={"roomId": room_id})
    data = resp.json()
    assert resp.status_code == 200
    assert data["users_processed"] == 1
    assert data["results"][0]["username"] == "alice"
    assert data["results"][0]["success"] is True
    assert data["results"][0]["solved_days"] == 1
