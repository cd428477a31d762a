"""
Pydantic models for API request validation.

Request bodies accept the camelCase keys clients send as well as snake_case;
``model_dump()`` yields snake_case field names for the service layer.
"""

import re
from datetime import datetime
from typing import Annotated, Any, List, Optional

from fastapi import Path
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ballup.database.models import (
    CourtType,
    GameStatus,
    PreferredPosition,
    SkillLevel,
    SurfaceType,
    UserRole,
)
from ballup.utils.constants import (
    DEFAULT_DURATION_MINUTES,
    MAX_DESCRIPTION_LENGTH,
    MAX_DURATION_MINUTES,
    MAX_PLAYERS,
    MAX_TITLE_LENGTH,
    MIN_DURATION_MINUTES,
    MIN_PLAYERS,
    UUID_PATTERN,
)

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
USERNAME_PATTERN = r"^[A-Za-z0-9_]+$"
PASSWORD_SPECIAL_CHARACTERS = "@$!%*?&"

# Path parameter naming a game, location or user
ResourceId = Annotated[str, Path(pattern=UUID_PATTERN)]


class RequestModel(BaseModel):
    """Base for request bodies: enum fields dump as plain strings."""

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True)


def reject_null(value: Any) -> Any:
    """Partial updates may omit a field but may not clear a required column."""
    if value is None:
        raise ValueError("Field cannot be null")
    return value


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class RegisterRequest(RequestModel):
    """Request to create an account."""

    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    username: str = Field(..., min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    password: str = Field(..., min_length=8, max_length=128)
    first_name: Optional[str] = Field(None, min_length=1, max_length=50, validation_alias=AliasChoices("firstName", "first_name"))
    last_name: Optional[str] = Field(None, min_length=1, max_length=50, validation_alias=AliasChoices("lastName", "last_name"))

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        if not (
            re.search(r"[a-z]", value)
            and re.search(r"[A-Z]", value)
            and re.search(r"\d", value)
            and any(ch in PASSWORD_SPECIAL_CHARACTERS for ch in value)
        ):
            raise ValueError(
                "Password must contain at least 1 lowercase, 1 uppercase, 1 digit, "
                f"and 1 special character ({PASSWORD_SPECIAL_CHARACTERS})"
            )
        return value


class LoginRequest(RequestModel):
    """Request to log in with email and password."""

    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=1, max_length=128)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserProfileUpdate(RequestModel):
    """Own-profile changes; omitted fields are left untouched."""

    first_name: Optional[str] = Field(None, min_length=1, max_length=50, validation_alias=AliasChoices("firstName", "first_name"))
    last_name: Optional[str] = Field(None, min_length=1, max_length=50, validation_alias=AliasChoices("lastName", "last_name"))
    bio: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    profile_picture: Optional[str] = Field(None, max_length=500, validation_alias=AliasChoices("profilePicture", "profile_picture"))
    skill_level: Optional[SkillLevel] = Field(None, validation_alias=AliasChoices("skillLevel", "skill_level"))
    preferred_position: Optional[PreferredPosition] = Field(
        None, validation_alias=AliasChoices("preferredPosition", "preferred_position")
    )
    location_radius: Optional[int] = Field(None, ge=1, le=100, validation_alias=AliasChoices("locationRadius", "location_radius"))

    @field_validator("skill_level", mode="before")
    @classmethod
    def skill_level_not_null(cls, value: Any) -> Any:
        return reject_null(value)


# ---------------------------------------------------------------------------
# Games
# ---------------------------------------------------------------------------


class CreateGameRequest(RequestModel):
    """Request to schedule a game. The time must be in the future (checked by the service)."""

    location_id: str = Field(..., pattern=UUID_PATTERN, validation_alias=AliasChoices("locationId", "location_id"))
    title: Optional[str] = Field(None, min_length=1, max_length=MAX_TITLE_LENGTH)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    scheduled_time: datetime = Field(..., validation_alias=AliasChoices("scheduledTime", "scheduledAt", "scheduled_time"))
    duration_minutes: int = Field(
        DEFAULT_DURATION_MINUTES,
        ge=MIN_DURATION_MINUTES,
        le=MAX_DURATION_MINUTES,
        validation_alias=AliasChoices("duration", "durationMinutes", "duration_minutes"),
    )
    max_players: int = Field(..., ge=MIN_PLAYERS, le=MAX_PLAYERS, validation_alias=AliasChoices("maxPlayers", "max_players"))
    skill_level: Optional[SkillLevel] = Field(
        None, validation_alias=AliasChoices("skillLevelRequired", "skillLevel", "skill_level")
    )


class UpdateGameRequest(RequestModel):
    """Partial game update from its creator."""

    title: Optional[str] = Field(None, min_length=1, max_length=MAX_TITLE_LENGTH)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    scheduled_time: Optional[datetime] = Field(None, validation_alias=AliasChoices("scheduledTime", "scheduledAt", "scheduled_time"))
    duration_minutes: Optional[int] = Field(
        None,
        ge=MIN_DURATION_MINUTES,
        le=MAX_DURATION_MINUTES,
        validation_alias=AliasChoices("duration", "durationMinutes", "duration_minutes"),
    )
    max_players: Optional[int] = Field(None, ge=MIN_PLAYERS, le=MAX_PLAYERS, validation_alias=AliasChoices("maxPlayers", "max_players"))
    skill_level: Optional[SkillLevel] = Field(
        None, validation_alias=AliasChoices("skillLevelRequired", "skillLevel", "skill_level")
    )
    status: Optional[GameStatus] = None

    @field_validator("title", "scheduled_time", "duration_minutes", "max_players", "status", mode="before")
    @classmethod
    def required_fields_not_null(cls, value: Any) -> Any:
        return reject_null(value)


class GameIdRequest(RequestModel):
    """Body for POST /api/games/join and /api/games/leave."""

    game_id: str = Field(..., pattern=UUID_PATTERN, validation_alias=AliasChoices("gameId", "game_id"))


# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------


class LocationCreate(RequestModel):
    """Request to submit a court."""

    name: str = Field(..., min_length=1, max_length=100)
    address: str = Field(..., min_length=1, max_length=200)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    court_type: Optional[CourtType] = Field(None, validation_alias=AliasChoices("courtType", "court_type"))
    surface_type: Optional[SurfaceType] = Field(None, validation_alias=AliasChoices("surfaceType", "surface_type"))
    hoop_count: Optional[int] = Field(None, ge=1, le=50, validation_alias=AliasChoices("hoopCount", "hoop_count"))
    amenities: List[str] = Field(default_factory=list, max_length=20)


class LocationUpdate(RequestModel):
    """Partial court update from its creator."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    address: Optional[str] = Field(None, min_length=1, max_length=200)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    court_type: Optional[CourtType] = Field(None, validation_alias=AliasChoices("courtType", "court_type"))
    surface_type: Optional[SurfaceType] = Field(None, validation_alias=AliasChoices("surfaceType", "surface_type"))
    hoop_count: Optional[int] = Field(None, ge=1, le=50, validation_alias=AliasChoices("hoopCount", "hoop_count"))
    amenities: Optional[List[str]] = Field(None, max_length=20)

    @field_validator("name", "address", "latitude", "longitude", "amenities", mode="before")
    @classmethod
    def required_fields_not_null(cls, value: Any) -> Any:
        return reject_null(value)


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


class AdminUserUpdate(RequestModel):
    """Admin toggles on a user account."""

    role: Optional[UserRole] = None
    is_active: Optional[bool] = Field(None, validation_alias=AliasChoices("isActive", "is_active"))
    is_verified: Optional[bool] = Field(None, validation_alias=AliasChoices("isVerified", "is_verified"))


class LocationApprovalRequest(RequestModel):
    """Approve (true) or reject (false) a location."""

    approved: bool
    reason: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)


class AdminReasonRequest(RequestModel):
    """Optional reason attached to an admin deletion."""

    reason: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
