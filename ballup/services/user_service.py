"""
User service layer for accounts, credentials and profiles.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from ballup.api.errors import ConflictError, ForbiddenError, NotFoundError, UnauthenticatedError
from ballup.database.models import User, Game, GameParticipant, Location
from ballup.services import auth_service
from ballup.utils.datetime_utils import utcnow, isoformat
import logging

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid credentials"

# Profile fields a user may change on their own account
PROFILE_FIELDS = (
    "first_name",
    "last_name",
    "bio",
    "skill_level",
    "preferred_position",
    "location_radius",
    "profile_picture",
)


def user_to_dict(user: User, include_private: bool = False) -> Dict[str, Any]:
    """Serialize a user for API responses. Never includes the password hash."""
    data = {
        "id": user.id,
        "username": user.username,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "profilePicture": user.profile_picture,
        "bio": user.bio,
        "skillLevel": user.skill_level,
        "preferredPosition": user.preferred_position,
        "rating": user.rating,
        "gamesPlayed": user.games_played or 0,
        "gamesCreated": user.games_created or 0,
        "isVerified": bool(user.is_verified),
        "createdAt": isoformat(user.created_at),
        "updatedAt": isoformat(user.updated_at),
    }
    if include_private:
        data.update(
            {
                "email": user.email,
                "role": user.role,
                "isActive": bool(user.is_active),
                "locationRadius": user.location_radius,
                "lastLoginAt": isoformat(user.last_login_at),
            }
        )
    return data


def user_summary(user: Optional[User]) -> Optional[Dict[str, Any]]:
    """Compact user reference embedded in game and location payloads."""
    if user is None:
        return None
    return {"id": user.id, "username": user.username, "skillLevel": user.skill_level}


async def get_user_model(session: AsyncSession, user_id: str) -> Optional[User]:
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_id(session: AsyncSession, user_id: str) -> Optional[Dict]:
    """
    Get user by ID.

    Returns:
        Private user dictionary or None if not found
    """
    user = await get_user_model(session, user_id)
    return user_to_dict(user, include_private=True) if user else None


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    """Look up a user by email (case-insensitive)."""
    email = auth_service.normalize_email(email) if email else None
    if not email:
        return None
    result = await session.execute(select(User).where(User.email == email).limit(1))
    return result.scalar_one_or_none()


async def register_user(
    session: AsyncSession,
    email: str,
    username: str,
    password: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
) -> Dict:
    """
    Create a new user account.

    Raises:
        ConflictError: If the email or username is already registered
    """
    email = auth_service.normalize_email(email)
    username = username.strip()

    result = await session.execute(
        select(User.email, User.username).where(
            or_(User.email == email, func.lower(User.username) == username.lower())
        )
    )
    existing = result.first()
    if existing:
        if existing.email == email:
            raise ConflictError("Email is already registered")
        raise ConflictError("Username is already taken")

    user = User(
        email=email,
        username=username,
        password_hash=auth_service.hash_password(password),
        first_name=first_name,
        last_name=last_name,
    )
    session.add(user)
    try:
        await session.flush()
        await session.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration for the same email/username
        await session.rollback()
        raise ConflictError("Email or username is already registered")

    logger.info(f"Registered user {user.id} ({username})")
    return user_to_dict(user, include_private=True)


async def authenticate_user(session: AsyncSession, email: str, password: str) -> Dict:
    """
    Verify credentials and record the login.

    Unknown email and wrong password produce the same error so callers
    cannot probe which accounts exist.

    Raises:
        UnauthenticatedError: On bad credentials
        ForbiddenError: If the account has been deactivated
    """
    user = await get_user_by_email(session, email)
    if user is None or not auth_service.verify_password(password, user.password_hash):
        raise UnauthenticatedError(INVALID_CREDENTIALS_MESSAGE)
    if not user.is_active:
        raise ForbiddenError("Account is deactivated")

    user.last_login_at = utcnow()
    await session.commit()
    return user_to_dict(user, include_private=True)


def issue_token(user: Dict) -> str:
    """Issue an access token for a serialized user."""
    return auth_service.create_access_token(
        {"user_id": user["id"], "email": user["email"], "role": user.get("role")}
    )


async def update_profile(session: AsyncSession, user_id: str, changes: Dict[str, Any]) -> Dict:
    """
    Apply profile changes. Only keys in PROFILE_FIELDS are written.

    Raises:
        NotFoundError: If the user does not exist
    """
    user = await get_user_model(session, user_id)
    if user is None:
        raise NotFoundError("User not found")

    for field, value in changes.items():
        if field in PROFILE_FIELDS:
            setattr(user, field, value)
    await session.commit()
    return user_to_dict(user, include_private=True)


async def get_profile(session: AsyncSession, user_id: str) -> Dict:
    """Own profile with activity counts."""
    user = await get_user_model(session, user_id)
    if user is None:
        raise NotFoundError("User not found")

    created_games = (
        await session.execute(select(func.count(Game.id)).where(Game.creator_id == user_id))
    ).scalar() or 0
    participations = (
        await session.execute(
            select(func.count(GameParticipant.id)).where(GameParticipant.user_id == user_id)
        )
    ).scalar() or 0
    created_locations = (
        await session.execute(select(func.count(Location.id)).where(Location.created_by == user_id))
    ).scalar() or 0

    profile = user_to_dict(user, include_private=True)
    profile["counts"] = {
        "createdGames": created_games,
        "gameParticipants": participations,
        "createdLocations": created_locations,
    }
    return profile
