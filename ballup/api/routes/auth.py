"""Authentication route handlers."""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ballup.api.auth_dependencies import get_current_user
from ballup.api.errors import AppError
from ballup.api.rate_limit import AUTH_LIMIT, GENERAL_LIMIT, limiter, user_or_ip_key
from ballup.database.db import get_db_session
from ballup.models.schemas import LoginRequest, RegisterRequest
from ballup.services import user_service
from ballup.utils.security_log import log_security_event

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/auth/register", status_code=201)
@limiter.shared_limit(AUTH_LIMIT, scope="auth")
async def register(
    request: Request, payload: RegisterRequest, session: AsyncSession = Depends(get_db_session)
):
    """Create an account and return it with an access token."""
    log_security_event(
        "Registration attempt", request, level=logging.INFO, email=payload.email, username=payload.username
    )
    try:
        user = await user_service.register_user(
            session,
            email=payload.email,
            username=payload.username,
            password=payload.password,
            first_name=payload.first_name,
            last_name=payload.last_name,
        )
    except AppError as e:
        log_security_event("Registration failed", request, email=payload.email, reason=e.message)
        raise

    log_security_event("Registration succeeded", request, level=logging.INFO, user_id=user["id"])
    return {
        "message": "User registered successfully",
        "user": user,
        "token": user_service.issue_token(user),
    }


@router.post("/api/auth/login")
@limiter.shared_limit(AUTH_LIMIT, scope="auth")
async def login(
    request: Request, payload: LoginRequest, session: AsyncSession = Depends(get_db_session)
):
    """Exchange email and password for an access token."""
    log_security_event("Login attempt", request, level=logging.INFO, email=payload.email)
    try:
        user = await user_service.authenticate_user(session, payload.email, payload.password)
    except AppError as e:
        log_security_event("Login failed", request, email=payload.email, reason=e.message)
        raise

    log_security_event("Login succeeded", request, level=logging.INFO, user_id=user["id"])
    return {
        "message": "Login successful",
        "user": user,
        "token": user_service.issue_token(user),
    }


@router.get("/api/auth/me")
@limiter.shared_limit(GENERAL_LIMIT, scope="general", key_func=user_or_ip_key)
async def get_me(request: Request, user: dict = Depends(get_current_user)):
    """Return the authenticated user."""
    return {"user": user}
