"""
HTTP-level tests: auth flow, error envelope, and the game endpoints.
"""
import uuid
from datetime import timedelta

import pytest

from ballup.utils.datetime_utils import utcnow

PASSWORD = "Hoops4Life!"


async def _register(client, username):
    response = await client.post(
        "/api/auth/register",
        json={"email": f"{username}@example.com", "username": username, "password": PASSWORD},
    )
    assert response.status_code == 201, response.text
    body = response.json()
    return body["user"], {"Authorization": f"Bearer {body['token']}"}


def _assert_envelope(body, path, method):
    assert body["success"] is False
    assert isinstance(body["error"]["message"], str)
    assert body["path"] == path
    assert body["method"] == method
    assert body["timestamp"]


@pytest.mark.asyncio
async def test_root_and_health(client):
    root = await client.get("/")
    assert root.status_code == 200
    assert root.json()["health"] == "/api/health"

    health = await client.get("/api/health")
    assert health.status_code == 200
    assert health.json()["environment"] == "test"


@pytest.mark.asyncio
async def test_unknown_route_lists_available_routes(client):
    response = await client.get("/api/nope")
    assert response.status_code == 404
    body = response.json()
    _assert_envelope(body, "/api/nope", "GET")
    assert "POST /api/games/join" in body["error"]["availableRoutes"]


@pytest.mark.asyncio
async def test_register_login_and_me(client):
    user, headers = await _register(client, "rookie")
    assert user["email"] == "rookie@example.com"
    assert "passwordHash" not in user

    login = await client.post("/api/auth/login", json={"email": "ROOKIE@example.com", "password": PASSWORD})
    assert login.status_code == 200
    assert login.json()["user"]["id"] == user["id"]

    me = await client.get("/api/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["user"]["username"] == "rookie"


@pytest.mark.asyncio
async def test_register_rejects_weak_password(client):
    response = await client.post(
        "/api/auth/register",
        json={"email": "weak@example.com", "username": "weakling", "password": "password"},
    )
    assert response.status_code == 400
    body = response.json()
    _assert_envelope(body, "/api/auth/register", "POST")
    assert body["error"]["message"] == "Validation failed"
    assert [d["field"] for d in body["error"]["details"]] == ["password"]


@pytest.mark.asyncio
async def test_register_duplicate_email(client):
    await _register(client, "firstone")
    response = await client.post(
        "/api/auth/register",
        json={"email": "firstone@example.com", "username": "secondone", "password": PASSWORD},
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "conflict"


@pytest.mark.asyncio
async def test_login_wrong_password(client):
    await _register(client, "forgetful")
    response = await client.post(
        "/api/auth/login", json={"email": "forgetful@example.com", "password": "Wrong1Pass!"}
    )
    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Invalid credentials"


@pytest.mark.asyncio
async def test_protected_routes_require_token(client):
    response = await client.post("/api/games/join", json={"gameId": str(uuid.uuid4())})
    assert response.status_code == 401
    _assert_envelope(response.json(), "/api/games/join", "POST")

    bad = await client.get("/api/users/me", headers={"Authorization": "Bearer garbage"})
    assert bad.status_code == 401


@pytest.mark.asyncio
async def test_game_flow(client, location):
    _, host_headers = await _register(client, "host")
    guest, guest_headers = await _register(client, "guest")
    _, third_headers = await _register(client, "third")

    created = await client.post(
        "/api/games",
        headers=host_headers,
        json={
            "locationId": location.id,
            "scheduledTime": (utcnow() + timedelta(days=1)).isoformat(),
            "maxPlayers": 2,
            "skillLevel": "intermediate",
        },
    )
    assert created.status_code == 201, created.text
    game = created.json()["game"]
    assert game["currentPlayers"] == 1
    assert game["skillLevel"] == "intermediate"

    joined = await client.post("/api/games/join", headers=guest_headers, json={"gameId": game["id"]})
    assert joined.status_code == 200
    assert joined.json()["game"]["currentPlayers"] == 2

    again = await client.post(f"/api/games/{game['id']}/join", headers=guest_headers)
    assert again.status_code == 400
    assert again.json()["error"]["code"] == "already_joined"

    full = await client.post("/api/games/join", headers=third_headers, json={"gameId": game["id"]})
    assert full.status_code == 400
    assert full.json()["error"]["code"] == "capacity_exceeded"
    assert full.json()["error"]["maxPlayers"] == 2

    forbidden = await client.delete(f"/api/games/{game['id']}", headers=guest_headers)
    assert forbidden.status_code == 403

    mine = await client.get("/api/users/me/games", headers=guest_headers)
    assert [g["id"] for g in mine.json()["participatingGames"]] == [game["id"]]

    left = await client.post("/api/games/leave", headers=guest_headers, json={"gameId": game["id"]})
    assert left.status_code == 200
    assert left.json()["game"]["currentPlayers"] == 1
    assert guest["id"] not in [p["userId"] for p in left.json()["game"]["participants"]]

    detail = await client.get(f"/api/games/{game['id']}")
    assert detail.status_code == 200
    assert detail.json()["currentPlayers"] == 1


@pytest.mark.asyncio
async def test_create_game_in_the_past(client, location):
    _, headers = await _register(client, "timetraveler")
    response = await client.post(
        "/api/games",
        headers=headers,
        json={
            "locationId": location.id,
            "scheduledTime": (utcnow() - timedelta(minutes=5)).isoformat(),
            "maxPlayers": 10,
        },
    )
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Scheduled time must be in the future"


@pytest.mark.asyncio
async def test_unknown_game(client):
    response = await client.get(f"/api/games/{uuid.uuid4()}")
    assert response.status_code == 404
    assert response.json()["error"]["message"] == "Game not found"


@pytest.mark.asyncio
async def test_location_submission_and_admin_approval(client, admin, auth_headers):
    _, headers = await _register(client, "scout")
    submitted = await client.post(
        "/api/locations",
        headers=headers,
        json={
            "name": "Dyckman Park",
            "address": "204th St, New York, NY",
            "latitude": 40.8663,
            "longitude": -73.9256,
            "courtType": "outdoor",
        },
    )
    assert submitted.status_code == 201
    location_id = submitted.json()["location"]["id"]
    assert (await client.get("/api/locations")).json() == []

    denied = await client.get("/api/admin/dashboard", headers=headers)
    assert denied.status_code == 403
    assert denied.json()["error"]["message"] == "Admin access required"

    approved = await client.patch(
        f"/api/admin/locations/{location_id}/approval",
        headers=auth_headers(admin),
        json={"approved": True},
    )
    assert approved.status_code == 200
    assert [loc["id"] for loc in (await client.get("/api/locations")).json()] == [location_id]

    logs = await client.get("/api/admin/logs", headers=auth_headers(admin))
    assert [log["action"] for log in logs.json()["logs"]] == ["location_approved"]


@pytest.mark.asyncio
async def test_malformed_ids_fail_validation(client, location):
    _, headers = await _register(client, "typo")

    detail = await client.get("/api/games/does-not-exist")
    assert detail.status_code == 400
    _assert_envelope(detail.json(), "/api/games/does-not-exist", "GET")
    assert detail.json()["error"]["message"] == "Validation failed"

    court = await client.get("/api/locations/not-a-uuid")
    assert court.status_code == 400

    join = await client.post("/api/games/join", headers=headers, json={"gameId": "1234"})
    assert join.status_code == 400
    assert join.json()["error"]["message"] == "Validation failed"

    create = await client.post(
        "/api/games",
        headers=headers,
        json={
            "locationId": "rucker",
            "scheduledTime": (utcnow() + timedelta(days=1)).isoformat(),
            "maxPlayers": 10,
        },
    )
    assert create.status_code == 400


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["maxPlayers", "scheduledTime", "status", "duration", "title"])
async def test_game_update_rejects_null_required_fields(client, location, field):
    _, headers = await _register(client, "nuller")
    created = await client.post(
        "/api/games",
        headers=headers,
        json={
            "locationId": location.id,
            "scheduledTime": (utcnow() + timedelta(days=1)).isoformat(),
            "maxPlayers": 8,
            "title": "Saturday run",
        },
    )
    assert created.status_code == 201, created.text
    game = created.json()["game"]

    response = await client.put(f"/api/games/{game['id']}", headers=headers, json={field: None})
    assert response.status_code == 400
    body = response.json()
    _assert_envelope(body, f"/api/games/{game['id']}", "PUT")
    assert body["error"]["message"] == "Validation failed"

    unchanged = (await client.get(f"/api/games/{game['id']}")).json()
    assert unchanged["maxPlayers"] == 8
    assert unchanged["title"] == "Saturday run"
    assert unchanged["status"] == "scheduled"
    assert unchanged["duration"] == game["duration"]
    assert unchanged["scheduledTime"] == game["scheduledTime"]


@pytest.mark.asyncio
async def test_game_update_allows_clearing_optional_fields(client, location):
    _, headers = await _register(client, "clearer")
    created = await client.post(
        "/api/games",
        headers=headers,
        json={
            "locationId": location.id,
            "scheduledTime": (utcnow() + timedelta(days=1)).isoformat(),
            "maxPlayers": 8,
            "description": "Bring a dark shirt",
            "skillLevel": "advanced",
        },
    )
    game_id = created.json()["game"]["id"]

    response = await client.put(
        f"/api/games/{game_id}", headers=headers, json={"description": None, "skillLevel": None}
    )
    assert response.status_code == 200, response.text
    assert response.json()["game"]["description"] is None
    assert response.json()["game"]["skillLevel"] is None


@pytest.mark.asyncio
async def test_profile_update_rejects_null_skill_level(client):
    _, headers = await _register(client, "steady")
    response = await client.put("/api/users/me", headers=headers, json={"skillLevel": None})
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Validation failed"

    profile = await client.get("/api/users/me", headers=headers)
    assert profile.json()["skillLevel"] == "beginner"


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["name", "address", "latitude", "longitude", "amenities"])
async def test_location_update_rejects_null_required_fields(client, field):
    _, headers = await _register(client, "courtkeeper")
    submitted = await client.post(
        "/api/locations",
        headers=headers,
        json={"name": "West 4th", "address": "W 4th St, New York", "latitude": 40.7311, "longitude": -74.0009},
    )
    location_id = submitted.json()["location"]["id"]

    response = await client.put(f"/api/locations/{location_id}", headers=headers, json={field: None})
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Validation failed"
