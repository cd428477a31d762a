"""
Court registry: listing, detail, and owner-gated create/update/delete.

New locations start unapproved and only appear in public listings once an
admin approves them (see admin_service). Deletion deactivates the row.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ballup.api.errors import InvalidStateError, NotFoundError
from ballup.database.models import NON_TERMINAL_GAME_STATUSES, Game, GameStatus, Location
from ballup.services.authorization import ensure_can_mutate
from ballup.services.user_service import user_summary
from ballup.utils.constants import DEFAULT_PAGE_SIZE
from ballup.utils.datetime_utils import isoformat, utcnow

logger = logging.getLogger(__name__)

_NON_TERMINAL_VALUES = [s.value for s in NON_TERMINAL_GAME_STATUSES]

# Fields a creator may set on create/update
EDITABLE_FIELDS = (
    "name",
    "address",
    "latitude",
    "longitude",
    "description",
    "court_type",
    "surface_type",
    "hoop_count",
    "amenities",
)


def escape_like(value: str) -> str:
    """Escape LIKE-special characters (%, _) so they match literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def location_summary(location: Optional[Location]) -> Optional[Dict[str, Any]]:
    """Compact location reference embedded in game payloads."""
    if location is None:
        return None
    return {
        "id": location.id,
        "name": location.name,
        "address": location.address,
        "latitude": location.latitude,
        "longitude": location.longitude,
    }


def location_to_dict(location: Location) -> Dict[str, Any]:
    """Serialize a location loaded with its creator."""
    return {
        "id": location.id,
        "name": location.name,
        "address": location.address,
        "latitude": location.latitude,
        "longitude": location.longitude,
        "description": location.description,
        "courtType": location.court_type,
        "surfaceType": location.surface_type,
        "hoopCount": location.hoop_count,
        "amenities": list(location.amenities or []),
        "isApproved": bool(location.is_approved),
        "isActive": bool(location.is_active),
        "approvedBy": location.approved_by,
        "approvedAt": isoformat(location.approved_at),
        "rating": location.rating,
        "ratingCount": location.rating_count or 0,
        "totalGames": location.total_games or 0,
        "createdBy": location.created_by,
        "creator": user_summary(location.creator),
        "createdAt": isoformat(location.created_at),
        "updatedAt": isoformat(location.updated_at),
    }


def _game_brief(game: Game) -> Dict[str, Any]:
    return {
        "id": game.id,
        "title": game.title,
        "scheduledTime": isoformat(game.scheduled_time),
        "duration": game.duration_minutes,
        "maxPlayers": game.max_players,
        "currentPlayers": game.current_players,
        "skillLevel": game.skill_level,
        "status": game.status,
        "creatorId": game.creator_id,
    }


async def _load_location(session: AsyncSession, location_id: str) -> Location:
    result = await session.execute(
        select(Location)
        .options(selectinload(Location.creator))
        .where(Location.id == location_id)
        .execution_options(populate_existing=True)
    )
    location = result.scalar_one_or_none()
    if location is None:
        raise NotFoundError("Location not found")
    return location


async def count_open_games(session: AsyncSession, location_id: str) -> int:
    """Games at the location that are scheduled, starting or active."""
    result = await session.execute(
        select(func.count(Game.id)).where(
            Game.location_id == location_id, Game.status.in_(_NON_TERMINAL_VALUES)
        )
    )
    return result.scalar() or 0


async def list_locations(
    session: AsyncSession,
    *,
    search: Optional[str] = None,
    court_type: Optional[str] = None,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> List[Dict]:
    """Approved, active locations, newest first."""
    query = (
        select(Location)
        .options(selectinload(Location.creator))
        .where(Location.is_approved.is_(True), Location.is_active.is_(True))
    )
    if search:
        pattern = f"%{escape_like(search.strip())}%"
        query = query.where(
            or_(
                Location.name.ilike(pattern, escape="\\"),
                Location.address.ilike(pattern, escape="\\"),
            )
        )
    if court_type:
        query = query.where(Location.court_type == court_type)
    query = query.order_by(Location.created_at.desc()).limit(limit).offset(offset)

    result = await session.execute(query)
    return [location_to_dict(location) for location in result.scalars().all()]


async def get_location(session: AsyncSession, location_id: str) -> Dict:
    """Location detail with its upcoming scheduled games."""
    location = await _load_location(session, location_id)
    games = await session.execute(
        select(Game)
        .where(
            Game.location_id == location_id,
            Game.status == GameStatus.SCHEDULED.value,
            Game.scheduled_time >= utcnow(),
        )
        .order_by(Game.scheduled_time.asc())
    )
    data = location_to_dict(location)
    data["upcomingGames"] = [_game_brief(game) for game in games.scalars().all()]
    return data


async def create_location(session: AsyncSession, creator_id: str, fields: Dict[str, Any]) -> Dict:
    """Submit a new court. It stays pending until an admin approves it."""
    location = Location(
        created_by=creator_id,
        is_approved=False,
        is_active=True,
        **{key: value for key, value in fields.items() if key in EDITABLE_FIELDS},
    )
    if location.amenities is None:
        location.amenities = []
    session.add(location)
    await session.commit()

    logger.info(f"Location {location.id} submitted by {creator_id}")
    return location_to_dict(await _load_location(session, location.id))


async def update_location(
    session: AsyncSession, requester_id: str, location_id: str, changes: Dict[str, Any]
) -> Dict:
    """
    Apply a partial update from the location's creator.

    Raises:
        NotFoundError: Unknown location
        ForbiddenError: Requester is not the creator
    """
    location = await _load_location(session, location_id)
    ensure_can_mutate(requester_id, location, "You can only update your own locations")

    for field, value in changes.items():
        if field in EDITABLE_FIELDS:
            setattr(location, field, value)
    await session.commit()
    return location_to_dict(await _load_location(session, location_id))


async def delete_location(session: AsyncSession, requester_id: str, location_id: str) -> Dict:
    """
    Deactivate a location owned by the requester.

    Raises:
        NotFoundError: Unknown location
        ForbiddenError: Requester is not the creator
        InvalidStateError: Games at the location are still scheduled or running
    """
    location = await _load_location(session, location_id)
    ensure_can_mutate(requester_id, location, "You can only delete your own locations")

    open_games = await count_open_games(session, location_id)
    if open_games:
        raise InvalidStateError(
            "Cannot delete a location with scheduled or active games", activeGames=open_games
        )

    location.is_active = False
    await session.commit()
    logger.info(f"Location {location_id} deactivated by {requester_id}")
    return {"message": "Location deleted successfully", "id": location_id}
