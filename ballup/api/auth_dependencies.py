"""
Authentication dependencies for FastAPI routes.
"""

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from ballup.api.errors import ForbiddenError, UnauthenticatedError
from ballup.database.db import get_db_session
from ballup.services import auth_service, user_service
from ballup.services.admin_service import is_admin
from ballup.utils.security_log import log_security_event

# Missing credentials are reported through UnauthenticatedError (401) rather
# than HTTPBearer's own error
security = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """
    Dependency to get the current authenticated user from the bearer token.

    Returns:
        Private user dictionary

    Raises:
        UnauthenticatedError: If the token is missing, invalid or expired, or
            the user no longer exists
        ForbiddenError: If the account has been deactivated
    """
    if credentials is None:
        raise UnauthenticatedError("Access token required")

    payload = auth_service.verify_token(credentials.credentials)
    if payload is None:
        log_security_event("Invalid token presented", request)
        raise UnauthenticatedError("Invalid or expired token")

    user_id = payload.get("user_id")
    if user_id is None:
        raise UnauthenticatedError("Invalid token payload")

    user = await user_service.get_user_by_id(session, user_id)
    if user is None:
        raise UnauthenticatedError("User not found")
    if not user["isActive"]:
        raise ForbiddenError("Account is deactivated")

    request.state.user_id = user["id"]
    return user


async def get_current_user_optional(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[dict]:
    """
    Optional dependency to get the current authenticated user.
    Returns None if no token is provided or the token is not usable.
    """
    if credentials is None:
        return None

    try:
        return await get_current_user(request, session, credentials)
    except (UnauthenticatedError, ForbiddenError):
        return None


async def require_admin(request: Request, user: dict = Depends(get_current_user)) -> dict:
    """Require an active admin or super admin."""
    if not is_admin(user):
        log_security_event("Admin access denied", request, user_id=user["id"], role=user.get("role"))
        raise ForbiddenError("Admin access required")
    return user
