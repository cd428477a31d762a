"""
Game lifecycle service: create, join, leave, update, cancel, and discovery.

Every participant-set change goes through ``_apply_participation_change``,
which writes the row and recomputes ``Game.current_players`` from a fresh
count in the same transaction. Lifecycle events are published on the event
bus only after the mutation has committed.

The capacity check on join is read-then-write; two concurrent joins for the
last slot can both pass it. The (game_id, user_id) unique constraint is the
only hard guard and prevents duplicate rows.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ballup import config
from ballup.api.errors import (
    AlreadyJoinedError,
    CapacityExceededError,
    InvalidStateError,
    NotFoundError,
    NotParticipantError,
    ValidationFailedError,
)
from ballup.database.models import (
    ACTIVE_PARTICIPANT_STATUSES,
    NON_TERMINAL_GAME_STATUSES,
    Game,
    GameParticipant,
    GameStatus,
    Location,
    ParticipantStatus,
    User,
)
from ballup.services.authorization import ensure_can_mutate
from ballup.services.event_bus import BROADCAST_TOPIC, game_topic, get_event_bus, user_topic
from ballup.services.location_service import location_summary
from ballup.services.user_service import user_summary
from ballup.utils.constants import (
    ACTIVE_GAME_LOOKBACK_HOURS,
    DEFAULT_DURATION_MINUTES,
    DEFAULT_NEARBY_RADIUS_KM,
    DEFAULT_PAGE_SIZE,
    MAX_DURATION_MINUTES,
    MAX_PLAYERS,
    MIN_DURATION_MINUTES,
    MIN_PLAYERS,
)
from ballup.utils.datetime_utils import ensure_utc, isoformat, utcnow
from ballup.utils.geo_utils import calculate_distance_km

logger = logging.getLogger(__name__)

_ACTIVE_STATUS_VALUES = [s.value for s in ACTIVE_PARTICIPANT_STATUSES]
_NON_TERMINAL_VALUES = [s.value for s in NON_TERMINAL_GAME_STATUSES]
_TERMINAL_VALUES = (GameStatus.COMPLETED.value, GameStatus.CANCELLED.value)

# Status changes a creator may make through update_game
ALLOWED_STATUS_TRANSITIONS = {
    GameStatus.SCHEDULED.value: {
        GameStatus.STARTING.value,
        GameStatus.ACTIVE.value,
        GameStatus.CANCELLED.value,
    },
    GameStatus.STARTING.value: {GameStatus.ACTIVE.value, GameStatus.CANCELLED.value},
    GameStatus.ACTIVE.value: {GameStatus.COMPLETED.value, GameStatus.CANCELLED.value},
}

# update_game field name -> response key
UPDATABLE_FIELDS = {
    "title": "title",
    "description": "description",
    "scheduled_time": "scheduledTime",
    "duration_minutes": "duration",
    "max_players": "maxPlayers",
    "skill_level": "skillLevel",
    "status": "status",
}


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def participant_to_dict(participant: GameParticipant) -> Dict[str, Any]:
    return {
        "id": participant.id,
        "userId": participant.user_id,
        "status": participant.status,
        "joinedAt": isoformat(participant.joined_at),
        "user": user_summary(participant.user),
    }


def game_to_dict(game: Game, include_participants: bool = False) -> Dict[str, Any]:
    """Serialize a game loaded through ``game_query``."""
    data = {
        "id": game.id,
        "locationId": game.location_id,
        "creatorId": game.creator_id,
        "title": game.title,
        "description": game.description,
        "scheduledTime": isoformat(game.scheduled_time),
        "duration": game.duration_minutes,
        "maxPlayers": game.max_players,
        "currentPlayers": game.current_players,
        "skillLevel": game.skill_level,
        "status": game.status,
        "location": location_summary(game.location),
        "creator": user_summary(game.creator),
        "createdAt": isoformat(game.created_at),
        "updatedAt": isoformat(game.updated_at),
    }
    if include_participants:
        data["participants"] = [participant_to_dict(p) for p in game.participants]
    return data


# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------


def game_query():
    return select(Game).options(
        selectinload(Game.location),
        selectinload(Game.creator),
        selectinload(Game.participants).selectinload(GameParticipant.user),
    )


async def _load_game(session: AsyncSession, game_id: str) -> Game:
    """Load a game with its relationships, refreshing any stale identity-map copy."""
    result = await session.execute(
        game_query().where(Game.id == game_id).execution_options(populate_existing=True)
    )
    game = result.scalar_one_or_none()
    if game is None:
        raise NotFoundError("Game not found")
    return game


async def _get_participant(
    session: AsyncSession, game_id: str, user_id: str
) -> Optional[GameParticipant]:
    result = await session.execute(
        select(GameParticipant).where(
            GameParticipant.game_id == game_id, GameParticipant.user_id == user_id
        )
    )
    return result.scalar_one_or_none()


async def count_active_participants(session: AsyncSession, game_id: str) -> int:
    result = await session.execute(
        select(func.count(GameParticipant.id)).where(
            GameParticipant.game_id == game_id,
            GameParticipant.status.in_(_ACTIVE_STATUS_VALUES),
        )
    )
    return result.scalar() or 0


async def is_participant(session: AsyncSession, game_id: str, user_id: str) -> bool:
    """True when the user holds an active participant row for the game."""
    participant = await _get_participant(session, game_id, user_id)
    return participant is not None and participant.status in _ACTIVE_STATUS_VALUES


async def _apply_participation_change(
    session: AsyncSession,
    game: Game,
    user_id: str,
    joining: bool,
    participant_status: str = ParticipantStatus.JOINED.value,
) -> int:
    """
    Add or remove the user's participant row, then recompute and persist
    ``current_players`` from a fresh count. Commits the transaction.

    The game row is locked first so concurrent changes to the same game
    recount one after another and the stored count matches the rows.

    Returns:
        The new active participant count

    Raises:
        AlreadyJoinedError: If the insert hits the (game, user) unique constraint
    """
    await session.execute(select(Game.id).where(Game.id == game.id).with_for_update())

    if joining:
        session.add(GameParticipant(game_id=game.id, user_id=user_id, status=participant_status))
    else:
        await session.execute(
            delete(GameParticipant).where(
                GameParticipant.game_id == game.id, GameParticipant.user_id == user_id
            )
        )
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise AlreadyJoinedError("You are already participating in this game")

    game.current_players = await count_active_participants(session, game.id)
    await session.commit()
    return game.current_players


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _require_future(scheduled_time: datetime) -> datetime:
    scheduled_time = ensure_utc(scheduled_time)
    if scheduled_time <= utcnow():
        raise ValidationFailedError("Scheduled time must be in the future", field="scheduledTime")
    return scheduled_time


def _check_bounds(duration_minutes: Optional[int] = None, max_players: Optional[int] = None) -> None:
    if duration_minutes is not None and not MIN_DURATION_MINUTES <= duration_minutes <= MAX_DURATION_MINUTES:
        raise ValidationFailedError(
            f"Duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes",
            field="duration",
        )
    if max_players is not None and not MIN_PLAYERS <= max_players <= MAX_PLAYERS:
        raise ValidationFailedError(
            f"Max players must be between {MIN_PLAYERS} and {MAX_PLAYERS}",
            field="maxPlayers",
        )


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


async def create_game(
    session: AsyncSession,
    creator_id: str,
    location_id: str,
    scheduled_time: datetime,
    max_players: int,
    duration_minutes: int = DEFAULT_DURATION_MINUTES,
    skill_level: Optional[str] = None,
    description: Optional[str] = None,
    title: Optional[str] = None,
) -> Dict:
    """
    Create a game and enroll its creator.

    Raises:
        NotFoundError: If the location does not exist or is inactive
        ValidationFailedError: If scheduled_time is not in the future or bounds are violated
    """
    location = await session.get(Location, location_id)
    if location is None or not location.is_active:
        raise NotFoundError("Location not found")

    scheduled_time = _require_future(scheduled_time)
    _check_bounds(duration_minutes=duration_minutes, max_players=max_players)

    game = Game(
        location_id=location_id,
        creator_id=creator_id,
        title=(title or "").strip() or f"Pickup at {location.name}",
        description=description,
        scheduled_time=scheduled_time,
        duration_minutes=duration_minutes,
        max_players=max_players,
        current_players=0,
        skill_level=skill_level,
        status=GameStatus.SCHEDULED.value,
    )
    session.add(game)
    await session.flush()

    await session.execute(
        update(User).where(User.id == creator_id).values(games_created=User.games_created + 1)
    )
    await session.execute(
        update(Location).where(Location.id == location_id).values(total_games=Location.total_games + 1)
    )
    await _apply_participation_change(
        session, game, creator_id, joining=True, participant_status=ParticipantStatus.CONFIRMED.value
    )

    game = await _load_game(session, game.id)
    data = game_to_dict(game, include_participants=True)
    logger.info(f"Game {game.id} created by {creator_id} at location {location_id}")
    await get_event_bus().publish(BROADCAST_TOPIC, "new-game-created", {"game": data})
    return data


async def join_game(session: AsyncSession, user_id: str, game_id: str) -> Dict:
    """
    Add the user to a scheduled game.

    Raises:
        NotFoundError: Unknown game
        InvalidStateError: Game is not scheduled, or the user already holds
            another active game while ENFORCE_SINGLE_ACTIVE_GAME is on
        AlreadyJoinedError: The user already has a participant row
        CapacityExceededError: The game is full
    """
    game = await _load_game(session, game_id)
    if game.status != GameStatus.SCHEDULED.value:
        raise InvalidStateError("Cannot join a game that is not scheduled", status=game.status)

    if await _get_participant(session, game_id, user_id) is not None:
        raise AlreadyJoinedError("You are already participating in this game")

    current = await count_active_participants(session, game_id)
    if current >= game.max_players:
        raise CapacityExceededError(
            "Game is full", currentPlayers=current, maxPlayers=game.max_players
        )

    if config.ENFORCE_SINGLE_ACTIVE_GAME:
        active_game = await get_active_game(session, user_id)
        if active_game is not None:
            raise InvalidStateError(
                "You can only participate in one game at a time",
                activeGame={
                    "id": active_game["id"],
                    "title": active_game["title"],
                    "scheduledTime": active_game["scheduledTime"],
                },
            )

    current_players = await _apply_participation_change(session, game, user_id, joining=True)
    user = await session.get(User, user_id)

    game = await _load_game(session, game_id)
    logger.info(f"User {user_id} joined game {game_id} ({current_players}/{game.max_players})")
    await get_event_bus().publish(
        game_topic(game_id),
        "player-joined",
        {
            "gameId": game_id,
            "userId": user_id,
            "username": user.username if user else None,
            "currentPlayers": current_players,
            "maxPlayers": game.max_players,
        },
    )
    return game_to_dict(game, include_participants=True)


async def leave_game(session: AsyncSession, user_id: str, game_id: str) -> Dict:
    """
    Remove the user's participant row.

    Raises:
        NotFoundError: Unknown game
        NotParticipantError: The user has no participant row for this game
    """
    game = await _load_game(session, game_id)
    if await _get_participant(session, game_id, user_id) is None:
        raise NotParticipantError("You are not participating in this game")

    current_players = await _apply_participation_change(session, game, user_id, joining=False)
    user = await session.get(User, user_id)

    game = await _load_game(session, game_id)
    logger.info(f"User {user_id} left game {game_id} ({current_players}/{game.max_players})")
    await get_event_bus().publish(
        game_topic(game_id),
        "player-left",
        {
            "gameId": game_id,
            "userId": user_id,
            "username": user.username if user else None,
            "currentPlayers": current_players,
            "maxPlayers": game.max_players,
        },
    )
    return game_to_dict(game, include_participants=True)


async def update_game(
    session: AsyncSession, requester_id: str, game_id: str, changes: Dict[str, Any]
) -> Dict:
    """
    Apply a partial update from the game's creator.

    Only keys present in ``changes`` (see UPDATABLE_FIELDS) are written.

    Raises:
        NotFoundError: Unknown game
        ForbiddenError: Requester is not the creator
        ValidationFailedError: Non-future scheduled_time or out-of-range values
        InvalidStateError: Game already finished, disallowed status transition,
            or max_players below the current player count
    """
    game = await _load_game(session, game_id)
    ensure_can_mutate(requester_id, game, "Only the game creator can update this game")

    changes = {key: value for key, value in changes.items() if key in UPDATABLE_FIELDS}
    if not changes:
        return game_to_dict(game, include_participants=True)

    if game.status in _TERMINAL_VALUES:
        raise InvalidStateError(f"Cannot update a {game.status} game", status=game.status)

    if "scheduled_time" in changes:
        changes["scheduled_time"] = _require_future(changes["scheduled_time"])
    _check_bounds(
        duration_minutes=changes.get("duration_minutes"),
        max_players=changes.get("max_players"),
    )
    if "max_players" in changes and changes["max_players"] < game.current_players:
        raise InvalidStateError(
            "Max players cannot be lower than the current number of players",
            currentPlayers=game.current_players,
        )

    previous_status = game.status
    new_status = changes.get("status")
    if new_status is not None:
        new_status = getattr(new_status, "value", new_status)
        changes["status"] = new_status
        if new_status != previous_status and new_status not in ALLOWED_STATUS_TRANSITIONS.get(previous_status, set()):
            raise InvalidStateError(
                f"Cannot change status from {previous_status} to {new_status}",
                status=previous_status,
            )

    for field, value in changes.items():
        setattr(game, field, getattr(value, "value", value))

    participant_ids = [p.user_id for p in game.participants if p.status in _ACTIVE_STATUS_VALUES]
    if new_status == GameStatus.COMPLETED.value and previous_status != new_status and participant_ids:
        await session.execute(
            update(User)
            .where(User.id.in_(participant_ids))
            .values(games_played=User.games_played + 1)
        )
    await session.commit()

    game = await _load_game(session, game_id)
    data = game_to_dict(game, include_participants=True)
    changed = {UPDATABLE_FIELDS[field]: data[UPDATABLE_FIELDS[field]] for field in changes}
    logger.info(f"Game {game_id} updated by {requester_id}: {sorted(changed)}")
    await get_event_bus().publish(
        game_topic(game_id), "game-updated", {"gameId": game_id, "changes": changed, "game": data}
    )
    if new_status == GameStatus.CANCELLED.value and previous_status != new_status:
        await _announce_cancellation(game, requester_id, participant_ids)
    return data


async def cancel_game(session: AsyncSession, requester_id: str, game_id: str) -> Dict:
    """
    Mark a game cancelled. Participant rows are kept for history.

    Raises:
        NotFoundError: Unknown game
        ForbiddenError: Requester is not the creator
        InvalidStateError: Game is already completed or cancelled
    """
    game = await _load_game(session, game_id)
    ensure_can_mutate(requester_id, game, "Only the game creator can cancel this game")
    if game.status in _TERMINAL_VALUES:
        raise InvalidStateError(f"Game is already {game.status}", status=game.status)

    participant_ids = [p.user_id for p in game.participants if p.status in _ACTIVE_STATUS_VALUES]
    game.status = GameStatus.CANCELLED.value
    await session.commit()

    game = await _load_game(session, game_id)
    logger.info(f"Game {game_id} cancelled by {requester_id}")
    await _announce_cancellation(game, requester_id, participant_ids)
    return game_to_dict(game, include_participants=True)


async def _announce_cancellation(game: Game, cancelled_by: str, participant_ids: List[str]) -> None:
    bus = get_event_bus()
    await bus.publish(
        game_topic(game.id),
        "game-cancelled",
        {"gameId": game.id, "title": game.title, "cancelledBy": cancelled_by},
    )
    for participant_id in participant_ids:
        await bus.publish(
            user_topic(participant_id),
            "notification",
            {
                "type": "game_cancelled",
                "gameId": game.id,
                "title": game.title,
                "message": f'The game "{game.title}" has been cancelled',
                "scheduledTime": isoformat(game.scheduled_time),
            },
        )


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


async def get_game(session: AsyncSession, game_id: str) -> Dict:
    """Game detail with participants."""
    game = await _load_game(session, game_id)
    return game_to_dict(game, include_participants=True)


async def list_games(
    session: AsyncSession,
    *,
    location_id: Optional[str] = None,
    status: Optional[str] = None,
    skill_level: Optional[str] = None,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> List[Dict]:
    """List games ordered by scheduled time, with optional filters."""
    query = game_query()
    if location_id:
        query = query.where(Game.location_id == location_id)
    if status:
        query = query.where(Game.status == status)
    if skill_level:
        query = query.where(Game.skill_level == skill_level)
    query = query.order_by(Game.scheduled_time.asc()).limit(limit).offset(offset)

    result = await session.execute(query)
    return [game_to_dict(game) for game in result.scalars().all()]


async def get_nearby_games(
    session: AsyncSession,
    latitude: float,
    longitude: float,
    radius_km: float = DEFAULT_NEARBY_RADIUS_KM,
) -> List[Dict]:
    """
    Scheduled games within ``radius_km`` of a point, nearest first.

    A bounding box narrows candidates in SQL; exact haversine distance
    filters and sorts them.
    """
    lat_delta = radius_km / 111.0
    # Longitude degrees shrink toward the poles
    cos_lat = max(math.cos(math.radians(latitude)), 0.01)
    lng_delta = radius_km / (111.0 * cos_lat)

    query = (
        game_query()
        .join(Location, Game.location_id == Location.id)
        .where(
            Game.status == GameStatus.SCHEDULED.value,
            Location.latitude.between(latitude - lat_delta, latitude + lat_delta),
            Location.longitude.between(longitude - lng_delta, longitude + lng_delta),
        )
    )
    result = await session.execute(query)

    nearby = []
    for game in result.scalars().all():
        distance = calculate_distance_km(
            latitude, longitude, game.location.latitude, game.location.longitude
        )
        if distance <= radius_km:
            data = game_to_dict(game)
            data["distance"] = round(distance, 2)
            nearby.append(data)
    nearby.sort(key=lambda g: (g["distance"], g["scheduledTime"]))
    return nearby


async def get_user_games(session: AsyncSession, user_id: str) -> Dict[str, List[Dict]]:
    """Games the user created and games they joined without creating."""
    created = await session.execute(
        game_query().where(Game.creator_id == user_id).order_by(Game.scheduled_time.asc())
    )
    participating = await session.execute(
        game_query()
        .where(
            Game.creator_id != user_id,
            Game.id.in_(select(GameParticipant.game_id).where(GameParticipant.user_id == user_id)),
        )
        .order_by(Game.scheduled_time.asc())
    )
    return {
        "createdGames": [game_to_dict(g, include_participants=True) for g in created.scalars().all()],
        "participatingGames": [
            game_to_dict(g, include_participants=True) for g in participating.scalars().all()
        ],
    }


async def get_active_game(session: AsyncSession, user_id: str) -> Optional[Dict]:
    """
    The user's current game: an active participant row in a non-terminal game
    scheduled no earlier than ACTIVE_GAME_LOOKBACK_HOURS ago. Soonest first.
    """
    cutoff = utcnow() - timedelta(hours=ACTIVE_GAME_LOOKBACK_HOURS)
    result = await session.execute(
        game_query()
        .join(GameParticipant, GameParticipant.game_id == Game.id)
        .where(
            and_(
                GameParticipant.user_id == user_id,
                GameParticipant.status.in_(_ACTIVE_STATUS_VALUES),
                Game.status.in_(_NON_TERMINAL_VALUES),
                Game.scheduled_time >= cutoff,
            )
        )
        .order_by(Game.scheduled_time.asc())
        .limit(1)
    )
    game = result.scalars().first()
    return game_to_dict(game, include_participants=True) if game else None

