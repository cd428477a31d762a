"""Admin moderation route handlers. Every route requires an admin or super admin."""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ballup.api.auth_dependencies import require_admin
from ballup.api.rate_limit import GENERAL_LIMIT, SENSITIVE_LIMIT, MODIFY_LIMIT, limiter, user_or_ip_key
from ballup.database.db import get_db_session
from ballup.database.models import UserRole
from ballup.models.schemas import AdminReasonRequest, AdminUserUpdate, LocationApprovalRequest, ResourceId
from ballup.services import admin_service
from ballup.utils.constants import DEFAULT_LOG_PAGE_SIZE, DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from ballup.utils.security_log import log_security_event

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/admin/dashboard")
@limiter.shared_limit(GENERAL_LIMIT, scope="general", key_func=user_or_ip_key)
async def get_dashboard(
    request: Request,
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Platform totals and recent admin activity."""
    return await admin_service.get_dashboard(session)


@router.get("/api/admin/users")
@limiter.shared_limit(GENERAL_LIMIT, scope="general", key_func=user_or_ip_key)
async def list_users(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    search: Optional[str] = Query(None, max_length=100),
    role: Optional[UserRole] = None,
    status: Optional[Literal["active", "inactive"]] = None,
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    return await admin_service.list_users(
        session,
        page=page,
        limit=limit,
        search=search,
        role=role.value if role else None,
        status=status,
    )


@router.patch("/api/admin/users/{user_id}")
@limiter.shared_limit(SENSITIVE_LIMIT, scope="sensitive", key_func=user_or_ip_key)
async def update_user(
    request: Request,
    user_id: ResourceId,
    payload: AdminUserUpdate,
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Change a user's role, active flag or verified flag."""
    changes = payload.model_dump(exclude_unset=True)
    log_security_event(
        "Admin user update", request, level=logging.INFO, admin_id=admin["id"], target=user_id, changes=changes
    )
    return await admin_service.update_user(session, admin, user_id, changes)


@router.get("/api/admin/locations")
@limiter.shared_limit(GENERAL_LIMIT, scope="general", key_func=user_or_ip_key)
async def list_locations(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    status: Literal["pending", "approved", "rejected", "all"] = "all",
    search: Optional[str] = Query(None, max_length=100),
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    return await admin_service.list_locations(
        session, page=page, limit=limit, status=status, search=search
    )


@router.patch("/api/admin/locations/{location_id}/approval")
@limiter.shared_limit(MODIFY_LIMIT, scope="modify", key_func=user_or_ip_key)
async def set_location_approval(
    request: Request,
    location_id: ResourceId,
    payload: LocationApprovalRequest,
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Approve or reject a location. Rejection also deactivates it."""
    return await admin_service.set_location_approval(
        session, admin["id"], location_id, payload.approved, payload.reason
    )


@router.delete("/api/admin/locations/{location_id}")
@limiter.shared_limit(MODIFY_LIMIT, scope="modify", key_func=user_or_ip_key)
async def delete_location(
    request: Request,
    location_id: ResourceId,
    payload: Optional[AdminReasonRequest] = None,
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Soft-delete a location with no open games."""
    reason = payload.reason if payload else None
    return await admin_service.delete_location(session, admin["id"], location_id, reason)


@router.get("/api/admin/games")
@limiter.shared_limit(GENERAL_LIMIT, scope="general", key_func=user_or_ip_key)
async def list_games(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    status: Literal["scheduled", "starting", "active", "completed", "cancelled", "all"] = "all",
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    return await admin_service.list_games(session, page=page, limit=limit, status=status)


@router.get("/api/admin/logs")
@limiter.shared_limit(GENERAL_LIMIT, scope="general", key_func=user_or_ip_key)
async def list_logs(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_LOG_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    action: Optional[str] = Query(None, max_length=50),
    admin_id: Optional[str] = Query(None, alias="adminId"),
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Audit log, newest first."""
    return await admin_service.list_logs(
        session, page=page, limit=limit, action=action, admin_id=admin_id
    )
