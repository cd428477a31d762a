"""
Tiered fixed-window rate limiting.

Counters live in the store named by RATE_LIMIT_STORAGE_URI (process memory by
default, redis:// for shared counters across instances). Each tier from
config.RATE_LIMIT_TIERS is exposed as a limit string usable with
``@limiter.limit``.
"""

import math
import time
from typing import Optional

from fastapi import Request
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded

from ballup import config
from ballup.services import auth_service
from ballup.utils.security_log import client_ip


def ip_key(request: Request) -> str:
    return client_ip(request) or "unknown"


def user_or_ip_key(request: Request) -> str:
    """Key by authenticated user id when a valid bearer token is present, else by IP."""
    auth_header = request.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        payload = auth_service.verify_token(auth_header[7:].strip())
        if payload and payload.get("user_id"):
            return f"user:{payload['user_id']}"
    return ip_key(request)


def tier_limit(tier: str) -> str:
    """Render a configured tier as a limits-style string, e.g. '5 per 900 seconds'."""
    settings = config.RATE_LIMIT_TIERS[tier]
    window_seconds = max(1, settings["window_ms"] // 1000)
    return f"{settings['max_requests']} per {window_seconds} seconds"


GENERAL_LIMIT = tier_limit("general")
AUTH_LIMIT = tier_limit("auth")
MODIFY_LIMIT = tier_limit("modify")
READ_LIMIT = tier_limit("read")
SENSITIVE_LIMIT = tier_limit("sensitive")
USER_GAME_LIMIT = tier_limit("user_game")
USER_PROFILE_LIMIT = tier_limit("user_profile")

limiter = Limiter(
    key_func=ip_key,
    strategy="fixed-window",
    storage_uri=config.RATE_LIMIT_STORAGE_URI,
    enabled=config.ENABLE_RATE_LIMITING,
)


def retry_after_seconds(request: Request, exc: Optional[RateLimitExceeded] = None) -> int:
    """Seconds until the exceeded window resets (at least 1)."""
    current = getattr(request.state, "view_rate_limit", None)
    if current is not None:
        item, args = current
        window_stats = limiter.limiter.get_window_stats(item, *args)
        return max(1, math.ceil(window_stats[0] - time.time()))
    if exc is not None:
        return max(1, int(exc.limit.limit.get_expiry()))
    return 1
