"""Game route handlers."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ballup.api.auth_dependencies import get_current_user
from ballup.api.rate_limit import (
    MODIFY_LIMIT,
    READ_LIMIT,
    USER_GAME_LIMIT,
    limiter,
    user_or_ip_key,
)
from ballup.database.db import get_db_session
from ballup.database.models import GameStatus, SkillLevel
from ballup.models.schemas import CreateGameRequest, GameIdRequest, ResourceId, UpdateGameRequest
from ballup.services import game_service
from ballup.utils.constants import DEFAULT_NEARBY_RADIUS_KM, DEFAULT_PAGE_SIZE, MAX_NEARBY_RADIUS_KM, MAX_PAGE_SIZE

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/games/nearby")
@limiter.shared_limit(READ_LIMIT, scope="read")
async def get_nearby_games(
    request: Request,
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius: float = Query(DEFAULT_NEARBY_RADIUS_KM, gt=0, le=MAX_NEARBY_RADIUS_KM),
    session: AsyncSession = Depends(get_db_session),
):
    """Scheduled games within ``radius`` km, nearest first."""
    return await game_service.get_nearby_games(session, lat, lng, radius)


@router.get("/api/games")
@limiter.shared_limit(READ_LIMIT, scope="read")
async def list_games(
    request: Request,
    location_id: Optional[str] = Query(None, alias="locationId"),
    status: Optional[GameStatus] = None,
    skill_level: Optional[SkillLevel] = Query(None, alias="skillLevel"),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_db_session),
):
    """List games with optional location, status and skill filters."""
    return await game_service.list_games(
        session,
        location_id=location_id,
        status=status.value if status else None,
        skill_level=skill_level.value if skill_level else None,
        limit=limit,
        offset=offset,
    )


@router.get("/api/games/{game_id}")
@limiter.shared_limit(READ_LIMIT, scope="read")
async def get_game(request: Request, game_id: ResourceId, session: AsyncSession = Depends(get_db_session)):
    """Game detail with participants."""
    return await game_service.get_game(session, game_id)


@router.post("/api/games", status_code=201)
@limiter.shared_limit(USER_GAME_LIMIT, scope="user_game", key_func=user_or_ip_key)
async def create_game(
    request: Request,
    payload: CreateGameRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Schedule a game; the creator is enrolled automatically."""
    game = await game_service.create_game(
        session,
        creator_id=user["id"],
        location_id=payload.location_id,
        scheduled_time=payload.scheduled_time,
        max_players=payload.max_players,
        duration_minutes=payload.duration_minutes,
        skill_level=payload.skill_level,
        description=payload.description,
        title=payload.title,
    )
    return {"message": "Game created successfully", "game": game}


async def _join(session: AsyncSession, user: dict, game_id: str) -> dict:
    game = await game_service.join_game(session, user["id"], game_id)
    return {"message": "Successfully joined the game", "game": game}


async def _leave(session: AsyncSession, user: dict, game_id: str) -> dict:
    game = await game_service.leave_game(session, user["id"], game_id)
    return {"message": "Successfully left the game", "game": game}


@router.post("/api/games/join")
@limiter.shared_limit(USER_GAME_LIMIT, scope="user_game", key_func=user_or_ip_key)
async def join_game(
    request: Request,
    payload: GameIdRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Join a scheduled game."""
    return await _join(session, user, payload.game_id)


@router.post("/api/games/leave")
@limiter.shared_limit(USER_GAME_LIMIT, scope="user_game", key_func=user_or_ip_key)
async def leave_game(
    request: Request,
    payload: GameIdRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Leave a game."""
    return await _leave(session, user, payload.game_id)


@router.post("/api/games/{game_id}/join")
@limiter.shared_limit(USER_GAME_LIMIT, scope="user_game", key_func=user_or_ip_key)
async def join_game_by_path(
    request: Request,
    game_id: ResourceId,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Join a scheduled game (game id in the path)."""
    return await _join(session, user, game_id)


@router.post("/api/games/{game_id}/leave")
@limiter.shared_limit(USER_GAME_LIMIT, scope="user_game", key_func=user_or_ip_key)
async def leave_game_by_path(
    request: Request,
    game_id: ResourceId,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Leave a game (game id in the path)."""
    return await _leave(session, user, game_id)


@router.put("/api/games/{game_id}")
@limiter.shared_limit(MODIFY_LIMIT, scope="modify", key_func=user_or_ip_key)
async def update_game(
    request: Request,
    game_id: ResourceId,
    payload: UpdateGameRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Update a game. Creator only."""
    game = await game_service.update_game(
        session, user["id"], game_id, payload.model_dump(exclude_unset=True)
    )
    return {"message": "Game updated successfully", "game": game}


@router.delete("/api/games/{game_id}")
@limiter.shared_limit(MODIFY_LIMIT, scope="modify", key_func=user_or_ip_key)
async def cancel_game(
    request: Request,
    game_id: ResourceId,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel a game. Creator only."""
    game = await game_service.cancel_game(session, user["id"], game_id)
    return {"message": "Game cancelled successfully", "game": game}
