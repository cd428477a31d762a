"""
Typed application errors and the response envelope.

Services raise ``AppError`` subclasses; the handlers registered by
``register_exception_handlers`` turn every failure into

    {"success": false, "error": {"message": ...}, "timestamp": ..., "path": ..., "method": ...}
"""

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded  # type: ignore
from starlette.exceptions import HTTPException as StarletteHTTPException

from ballup import config
from ballup.api.rate_limit import retry_after_seconds
from ballup.utils.datetime_utils import utcnow
from ballup.utils.security_log import log_security_event

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for expected, client-facing failures."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra


class ValidationFailedError(AppError):
    """Malformed or out-of-range input."""

    status_code = 400
    code = "validation_failed"


class UnauthenticatedError(AppError):
    """Missing, invalid or expired token, or bad credentials."""

    status_code = 401
    code = "unauthenticated"


class ForbiddenError(AppError):
    """Authenticated but not allowed to act on this resource."""

    status_code = 403
    code = "forbidden"


class NotFoundError(AppError):
    """Referenced entity does not exist."""

    status_code = 404
    code = "not_found"


class NotParticipantError(NotFoundError):
    """No participant row for (game, user); reported as a bad request."""

    status_code = 400
    code = "not_participant"


class ConflictError(AppError):
    """Uniqueness violation."""

    status_code = 400
    code = "conflict"


class AlreadyJoinedError(ConflictError):
    code = "already_joined"


class CapacityExceededError(AppError):
    status_code = 400
    code = "capacity_exceeded"


class InvalidStateError(AppError):
    """Business rule violated by the resource's current state."""

    status_code = 400
    code = "invalid_state"


AVAILABLE_ROUTES = [
    "GET /",
    "GET /api/health",
    "POST /api/auth/register",
    "POST /api/auth/login",
    "GET /api/auth/me",
    "GET /api/games",
    "POST /api/games",
    "POST /api/games/join",
    "POST /api/games/leave",
    "GET /api/locations",
    "POST /api/locations",
    "GET /api/users/me",
    "PUT /api/users/me",
]


def error_envelope(
    request: Request,
    status_code: int,
    message: str,
    extra: Optional[Dict[str, Any]] = None,
    debug: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Build the uniform error response."""
    error: Dict[str, Any] = {"message": message}
    if extra:
        error.update(extra)
    if debug and config.IS_DEVELOPMENT:
        error.update(debug)
    body = {
        "success": False,
        "error": error,
        "timestamp": utcnow().isoformat(),
        "path": request.url.path,
        "method": request.method,
    }
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body), headers=headers)


def _request_user_id(request: Request) -> Optional[str]:
    return getattr(request.state, "user_id", None)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    logger.info(
        f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}"
    )
    return error_envelope(
        request,
        exc.status_code,
        exc.message,
        extra={"code": exc.code, **exc.extra},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404 and exc.detail == "Not Found":
        log_security_event("404 - Route not found", request)
        return error_envelope(
            request,
            404,
            f"Route {request.url.path} not found",
            extra={"availableRoutes": AVAILABLE_ROUTES},
        )
    if exc.status_code in (401, 403):
        log_security_event(f"HTTP {exc.status_code}: {exc.detail}", request)
    return error_envelope(
        request,
        exc.status_code,
        str(exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]
    return error_envelope(request, 400, "Validation failed", extra={"details": details})


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = retry_after_seconds(request, exc)
    log_security_event(
        "Rate limit exceeded",
        request,
        limit=str(exc.detail),
        user_id=_request_user_id(request),
    )
    return error_envelope(
        request,
        429,
        "Too many requests, please try again later.",
        extra={"retryAfter": retry_after},
        headers={"Retry-After": str(retry_after)},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled error on {request.method} {request.url.path} "
        f"(ip={request.client.host if request.client else None}, user={_request_user_id(request)}): {exc}",
        exc_info=exc,
    )
    return error_envelope(
        request,
        500,
        "Internal server error",
        debug={
            "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            "details": str(exc),
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the envelope handlers on the application."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
