"""
Tests for tiered rate limiting.
"""
import pytest

from ballup import config
from ballup.api.rate_limit import AUTH_LIMIT, limiter, tier_limit


@pytest.fixture
def rate_limiting_enabled():
    limiter.reset()
    limiter.enabled = True
    yield
    limiter.enabled = False
    limiter.reset()


def test_tier_limit_strings():
    auth = config.RATE_LIMIT_TIERS["auth"]
    assert AUTH_LIMIT == f"{auth['max_requests']} per {auth['window_ms'] // 1000} seconds"
    assert tier_limit("general") == "100 per 900 seconds"
    assert tier_limit("upload") == "10 per 900 seconds"


@pytest.mark.asyncio
async def test_auth_tier_blocks_after_limit(client, rate_limiting_enabled):
    attempts = config.RATE_LIMIT_TIERS["auth"]["max_requests"]
    body = {"email": "nobody@example.com", "password": "Wrong1Pass!"}

    for _ in range(attempts):
        response = await client.post("/api/auth/login", json=body)
        assert response.status_code == 401

    blocked = await client.post("/api/auth/login", json=body)
    assert blocked.status_code == 429
    payload = blocked.json()
    assert payload["success"] is False
    assert payload["error"]["retryAfter"] >= 1
    assert int(blocked.headers["Retry-After"]) >= 1

    # Register shares the auth tier
    register = await client.post(
        "/api/auth/register",
        json={"email": "late@example.com", "username": "latecomer", "password": "Hoops4Life!"},
    )
    assert register.status_code == 429

    # A different client address has its own window
    other = await client.post(
        "/api/auth/login", json=body, headers={"X-Forwarded-For": "198.51.100.7"}
    )
    assert other.status_code == 401


@pytest.mark.asyncio
async def test_limits_off_when_disabled(client):
    body = {"email": "nobody@example.com", "password": "Wrong1Pass!"}
    for _ in range(config.RATE_LIMIT_TIERS["auth"]["max_requests"] + 2):
        response = await client.post("/api/auth/login", json=body)
        assert response.status_code == 401
