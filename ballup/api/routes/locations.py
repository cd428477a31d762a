"""Location (court) route handlers."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ballup.api.auth_dependencies import get_current_user
from ballup.api.rate_limit import MODIFY_LIMIT, READ_LIMIT, limiter, user_or_ip_key
from ballup.database.db import get_db_session
from ballup.database.models import CourtType
from ballup.models.schemas import LocationCreate, LocationUpdate, ResourceId
from ballup.services import location_service
from ballup.utils.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/locations")
@limiter.shared_limit(READ_LIMIT, scope="read")
async def list_locations(
    request: Request,
    search: Optional[str] = Query(None, max_length=100),
    court_type: Optional[CourtType] = Query(None, alias="courtType"),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_db_session),
):
    """Approved courts, newest first."""
    return await location_service.list_locations(
        session,
        search=search,
        court_type=court_type.value if court_type else None,
        limit=limit,
        offset=offset,
    )


@router.get("/api/locations/{location_id}")
@limiter.shared_limit(READ_LIMIT, scope="read")
async def get_location(
    request: Request, location_id: ResourceId, session: AsyncSession = Depends(get_db_session)
):
    """Court detail with upcoming games."""
    return await location_service.get_location(session, location_id)


@router.post("/api/locations", status_code=201)
@limiter.shared_limit(MODIFY_LIMIT, scope="modify", key_func=user_or_ip_key)
async def create_location(
    request: Request,
    payload: LocationCreate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Submit a court for admin approval."""
    location = await location_service.create_location(session, user["id"], payload.model_dump())
    return {"message": "Location submitted for approval", "location": location}


@router.put("/api/locations/{location_id}")
@limiter.shared_limit(MODIFY_LIMIT, scope="modify", key_func=user_or_ip_key)
async def update_location(
    request: Request,
    location_id: ResourceId,
    payload: LocationUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Update a court. Creator only."""
    location = await location_service.update_location(
        session, user["id"], location_id, payload.model_dump(exclude_unset=True)
    )
    return {"message": "Location updated successfully", "location": location}


@router.delete("/api/locations/{location_id}")
@limiter.shared_limit(MODIFY_LIMIT, scope="modify", key_func=user_or_ip_key)
async def delete_location(
    request: Request,
    location_id: ResourceId,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Deactivate a court. Creator only; blocked while games are open there."""
    return await location_service.delete_location(session, user["id"], location_id)
