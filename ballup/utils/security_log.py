"""
Security event logging.

Auth attempts, rate-limit hits, rejected tokens and similar events are
written to the dedicated ``ballup.security`` logger so they can be routed
separately from application logs.
"""

import logging
from typing import Any, Optional

from fastapi import Request

security_logger = logging.getLogger("ballup.security")


def client_ip(request: Optional[Request]) -> Optional[str]:
    """Best-effort client IP, honoring X-Forwarded-For from a proxy."""
    if request is None:
        return None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def log_security_event(message: str, request: Optional[Request] = None, level: int = logging.WARNING, **context: Any) -> None:
    """Log a security-relevant event with request metadata."""
    if request is not None:
        context.setdefault("ip", client_ip(request))
        context.setdefault("method", request.method)
        context.setdefault("path", request.url.path)
        context.setdefault("user_agent", request.headers.get("user-agent"))
    details = " ".join(f"{key}={value}" for key, value in context.items() if value is not None)
    security_logger.log(level, f"{message} {details}".strip())
