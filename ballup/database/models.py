"""
SQLAlchemy ORM models for the BallUp platform.
"""

import enum
import uuid
from sqlalchemy import (
    JSON,
    Column,
    String,
    Text,
    Boolean,
    Float,
    Integer,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ballup.database.db import Base
from ballup.utils.datetime_utils import utcnow

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _new_id() -> str:
    return str(uuid.uuid4())


class UserRole(str, enum.Enum):
    """User role enum."""

    USER = "user"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class SkillLevel(str, enum.Enum):
    """Player skill level."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    ANY = "any"


class PreferredPosition(str, enum.Enum):
    """Basketball positions."""

    POINT_GUARD = "point_guard"
    SHOOTING_GUARD = "shooting_guard"
    SMALL_FORWARD = "small_forward"
    POWER_FORWARD = "power_forward"
    CENTER = "center"
    ANY = "any"


class CourtType(str, enum.Enum):
    """Court setting."""

    INDOOR = "indoor"
    OUTDOOR = "outdoor"
    HYBRID = "hybrid"


class SurfaceType(str, enum.Enum):
    """Court surface."""

    HARDWOOD = "hardwood"
    ASPHALT = "asphalt"
    CONCRETE = "concrete"
    RUBBER = "rubber"


class GameStatus(str, enum.Enum):
    """Game lifecycle status."""

    SCHEDULED = "scheduled"
    STARTING = "starting"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses in which a game still occupies its location
NON_TERMINAL_GAME_STATUSES = (GameStatus.SCHEDULED, GameStatus.STARTING, GameStatus.ACTIVE)


class ParticipantStatus(str, enum.Enum):
    """Game participant status."""

    JOINED = "joined"
    CONFIRMED = "confirmed"
    PENDING = "pending"
    CANCELLED = "cancelled"
    LEFT = "left"


# Participant rows in these statuses count toward Game.current_players
ACTIVE_PARTICIPANT_STATUSES = (
    ParticipantStatus.JOINED,
    ParticipantStatus.CONFIRMED,
    ParticipantStatus.PENDING,
)


class User(Base):
    """Registered players and admins. Deactivated, never deleted."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String(255), nullable=False, unique=True)
    username = Column(String(30), nullable=False, unique=True)
    password_hash = Column(String, nullable=False)
    first_name = Column(String(50), nullable=True)
    last_name = Column(String(50), nullable=True)
    bio = Column(Text, nullable=True)
    profile_picture = Column(String(500), nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.USER.value)
    skill_level = Column(String(20), nullable=False, default=SkillLevel.BEGINNER.value)
    preferred_position = Column(String(20), nullable=True)
    location_radius = Column(Integer, nullable=True)  # km
    is_active = Column(Boolean, nullable=False, default=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    games_played = Column(Integer, nullable=False, default=0)
    games_created = Column(Integer, nullable=False, default=0)
    rating = Column(Float, nullable=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow)

    # Relationships
    created_games = relationship("Game", back_populates="creator", foreign_keys="Game.creator_id")
    participations = relationship("GameParticipant", back_populates="user")
    created_locations = relationship(
        "Location", back_populates="creator", foreign_keys="Location.created_by"
    )

    __table_args__ = (
        Index("idx_users_role", "role"),
        Index("idx_users_is_active", "is_active"),
    )


class Location(Base):
    """Basketball courts."""

    __tablename__ = "locations"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(100), nullable=False)
    address = Column(String(200), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    description = Column(Text, nullable=True)
    court_type = Column(String(20), nullable=True)  # indoor/outdoor/hybrid
    surface_type = Column(String(20), nullable=True)  # hardwood/asphalt/concrete/rubber
    hoop_count = Column(Integer, nullable=True)
    amenities = Column(JSONType, nullable=False, default=list)  # list of tag strings
    is_approved = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    approved_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rating = Column(Float, nullable=True)
    rating_count = Column(Integer, nullable=False, default=0)
    total_games = Column(Integer, nullable=False, default=0)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow)

    # Relationships
    creator = relationship("User", back_populates="created_locations", foreign_keys=[created_by])
    approver = relationship("User", foreign_keys=[approved_by])
    games = relationship("Game", back_populates="location")

    __table_args__ = (
        Index("idx_locations_approval", "is_approved", "is_active"),
        Index("idx_locations_lat_lng", "latitude", "longitude"),
        Index("idx_locations_created_by", "created_by"),
    )

    @property
    def creator_id(self) -> str:
        return self.created_by


class Game(Base):
    """Scheduled pickup games at a location."""

    __tablename__ = "games"

    id = Column(String(36), primary_key=True, default=_new_id)
    location_id = Column(String(36), ForeignKey("locations.id"), nullable=False)
    creator_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    scheduled_time = Column(DateTime(timezone=True), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    max_players = Column(Integer, nullable=False)
    # Cached count of active participant rows, recomputed after every join/leave
    current_players = Column(Integer, nullable=False, default=0)
    skill_level = Column(String(20), nullable=True)
    status = Column(String(20), nullable=False, default=GameStatus.SCHEDULED.value)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow)

    # Relationships
    location = relationship("Location", back_populates="games")
    creator = relationship("User", back_populates="created_games", foreign_keys=[creator_id])
    participants = relationship(
        "GameParticipant", back_populates="game", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_games_location", "location_id"),
        Index("idx_games_status_time", "status", "scheduled_time"),
        Index("idx_games_creator", "creator_id"),
    )


class GameParticipant(Base):
    """Join record tying one user to one game."""

    __tablename__ = "game_participants"

    id = Column(String(36), primary_key=True, default=_new_id)
    game_id = Column(String(36), ForeignKey("games.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    status = Column(String(20), nullable=False, default=ParticipantStatus.JOINED.value)
    joined_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    # Relationships
    game = relationship("Game", back_populates="participants")
    user = relationship("User", back_populates="participations")

    __table_args__ = (
        UniqueConstraint("game_id", "user_id", name="uq_game_participants_game_user"),
        Index("idx_game_participants_user", "user_id"),
    )


class AdminLog(Base):
    """Append-only audit trail of admin actions."""

    __tablename__ = "admin_logs"

    id = Column(String(36), primary_key=True, default=_new_id)
    admin_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    action = Column(String(50), nullable=False)
    target_type = Column(String(30), nullable=False)
    target_id = Column(String(36), nullable=False)
    details = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    # Relationships
    admin = relationship("User")

    __table_args__ = (
        Index("idx_admin_logs_created", "created_at"),
        Index("idx_admin_logs_admin", "admin_id"),
        Index("idx_admin_logs_target", "target_type", "target_id"),
    )
