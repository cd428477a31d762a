"""Own-profile route handlers."""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ballup.api.auth_dependencies import get_current_user
from ballup.api.rate_limit import GENERAL_LIMIT, USER_PROFILE_LIMIT, limiter, user_or_ip_key
from ballup.database.db import get_db_session
from ballup.models.schemas import UserProfileUpdate
from ballup.services import game_service, user_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/users/me")
@limiter.shared_limit(GENERAL_LIMIT, scope="general", key_func=user_or_ip_key)
async def get_my_profile(
    request: Request,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Profile of the authenticated user, with activity counts."""
    return await user_service.get_profile(session, user["id"])


@router.put("/api/users/me")
@limiter.shared_limit(USER_PROFILE_LIMIT, scope="user_profile", key_func=user_or_ip_key)
async def update_my_profile(
    request: Request,
    payload: UserProfileUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Update profile fields; omitted fields are left unchanged."""
    updated = await user_service.update_profile(session, user["id"], payload.model_dump(exclude_unset=True))
    return {"message": "Profile updated successfully", "user": updated}


@router.get("/api/users/me/games")
@limiter.shared_limit(GENERAL_LIMIT, scope="general", key_func=user_or_ip_key)
async def get_my_games(
    request: Request,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Games the user created and games they joined."""
    return await game_service.get_user_games(session, user["id"])


@router.get("/api/users/me/active-game")
@limiter.shared_limit(GENERAL_LIMIT, scope="general", key_func=user_or_ip_key)
async def get_my_active_game(
    request: Request,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """The user's current game, or null."""
    return {"activeGame": await game_service.get_active_game(session, user["id"])}
