"""
Admin moderation: dashboard stats, paginated listings, user and location
toggles, and the audit log.

Every mutation writes exactly one AdminLog row in the same transaction as the
change it records, with the previous and new values in ``details``.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ballup.api.errors import ForbiddenError, InvalidStateError, NotFoundError
from ballup.database.models import AdminLog, Game, Location, User, UserRole
from ballup.services.game_service import game_query, game_to_dict
from ballup.services.location_service import escape_like, count_open_games, location_to_dict
from ballup.services.user_service import user_to_dict
from ballup.utils.constants import DEFAULT_LOG_PAGE_SIZE, DEFAULT_PAGE_SIZE
from ballup.utils.datetime_utils import isoformat, utcnow

logger = logging.getLogger(__name__)

ADMIN_ROLES = (UserRole.ADMIN.value, UserRole.SUPER_ADMIN.value)


def is_admin(user: Dict) -> bool:
    return user.get("role") in ADMIN_ROLES


def _pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit) if limit else 0}


def admin_log_to_dict(log: AdminLog) -> Dict[str, Any]:
    return {
        "id": log.id,
        "adminId": log.admin_id,
        "admin": {"username": log.admin.username, "email": log.admin.email} if log.admin else None,
        "action": log.action,
        "targetType": log.target_type,
        "targetId": log.target_id,
        "details": log.details,
        "createdAt": isoformat(log.created_at),
    }


def _record(session: AsyncSession, admin_id: str, action: str, target_type: str, target_id: str, details: Dict) -> None:
    """Stage an audit row; committed together with the change it describes."""
    session.add(
        AdminLog(
            admin_id=admin_id,
            action=action,
            target_type=target_type,
            target_id=target_id,
            details=details,
        )
    )


async def _count(session: AsyncSession, query) -> int:
    result = await session.execute(query)
    return result.scalar() or 0


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


async def get_dashboard(session: AsyncSession) -> Dict:
    """Totals, pending work, and the ten most recent admin actions."""
    now = utcnow()
    day_start = datetime(now.year, now.month, now.day, tzinfo=now.tzinfo)
    day_end = day_start + timedelta(days=1)

    stats = {
        "totalUsers": await _count(session, select(func.count(User.id))),
        "totalLocations": await _count(session, select(func.count(Location.id))),
        "totalGames": await _count(session, select(func.count(Game.id))),
        "pendingLocations": await _count(
            session,
            select(func.count(Location.id)).where(
                Location.is_approved.is_(False), Location.is_active.is_(True)
            ),
        ),
        "activeUsers": await _count(session, select(func.count(User.id)).where(User.is_active.is_(True))),
        "todayGames": await _count(
            session,
            select(func.count(Game.id)).where(
                Game.scheduled_time >= day_start, Game.scheduled_time < day_end
            ),
        ),
    }

    recent = await session.execute(
        select(AdminLog)
        .options(selectinload(AdminLog.admin))
        .order_by(AdminLog.created_at.desc())
        .limit(10)
    )
    return {
        "stats": stats,
        "recentActivity": [admin_log_to_dict(log) for log in recent.scalars().all()],
    }


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


async def list_users(
    session: AsyncSession,
    *,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    search: Optional[str] = None,
    role: Optional[str] = None,
    status: Optional[str] = None,
) -> Dict:
    """Paginated user search. ``status`` is 'active' or 'inactive'."""
    conditions = []
    if search:
        pattern = f"%{escape_like(search.strip())}%"
        conditions.append(
            or_(
                User.username.ilike(pattern, escape="\\"),
                User.email.ilike(pattern, escape="\\"),
                User.first_name.ilike(pattern, escape="\\"),
                User.last_name.ilike(pattern, escape="\\"),
            )
        )
    if role:
        conditions.append(User.role == role)
    if status:
        conditions.append(User.is_active.is_(status == "active"))

    total = await _count(session, select(func.count(User.id)).where(*conditions))
    result = await session.execute(
        select(User)
        .where(*conditions)
        .order_by(User.created_at.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return {
        "users": [user_to_dict(user, include_private=True) for user in result.scalars().all()],
        "pagination": _pagination(page, limit, total),
    }


async def update_user(
    session: AsyncSession, admin: Dict, user_id: str, changes: Dict[str, Any]
) -> Dict:
    """
    Toggle a user's role, active flag, or verified flag.

    Raises:
        NotFoundError: Unknown user
        ForbiddenError: Role change by a non-super-admin, or an admin
            deactivating or demoting their own account
    """
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")

    changes = {key: value for key, value in changes.items() if key in ("role", "is_active", "is_verified") and value is not None}
    if "role" in changes:
        changes["role"] = getattr(changes["role"], "value", changes["role"])
        if admin.get("role") != UserRole.SUPER_ADMIN.value:
            raise ForbiddenError("Only super admins can change user roles")
    if user.id == admin["id"] and (changes.get("is_active") is False or "role" in changes):
        raise ForbiddenError("Admins cannot deactivate or change the role of their own account")

    previous = {"role": user.role, "isActive": bool(user.is_active), "isVerified": bool(user.is_verified)}
    for field, value in changes.items():
        setattr(user, field, value)
    current = {"role": user.role, "isActive": bool(user.is_active), "isVerified": bool(user.is_verified)}

    _record(
        session,
        admin["id"],
        "user_updated",
        "User",
        user_id,
        {"changes": current, "previousValues": previous},
    )
    await session.commit()
    logger.info(f"Admin {admin['id']} updated user {user_id}: {previous} -> {current}")
    return user_to_dict(user, include_private=True)


# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------


async def list_locations(
    session: AsyncSession,
    *,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    status: str = "all",
    search: Optional[str] = None,
) -> Dict:
    """Paginated location search. ``status`` is pending, approved, rejected or all."""
    conditions = []
    if search:
        pattern = f"%{escape_like(search.strip())}%"
        conditions.append(
            or_(
                Location.name.ilike(pattern, escape="\\"),
                Location.address.ilike(pattern, escape="\\"),
                Location.description.ilike(pattern, escape="\\"),
            )
        )
    if status == "pending":
        conditions.extend([Location.is_approved.is_(False), Location.is_active.is_(True)])
    elif status == "approved":
        conditions.append(Location.is_approved.is_(True))
    elif status == "rejected":
        conditions.append(Location.is_active.is_(False))

    total = await _count(session, select(func.count(Location.id)).where(*conditions))
    result = await session.execute(
        select(Location)
        .options(selectinload(Location.creator))
        .where(*conditions)
        .order_by(Location.created_at.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return {
        "locations": [location_to_dict(location) for location in result.scalars().all()],
        "pagination": _pagination(page, limit, total),
    }


async def _get_location(session: AsyncSession, location_id: str) -> Location:
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


async def set_location_approval(
    session: AsyncSession,
    admin_id: str,
    location_id: str,
    approved: bool,
    reason: Optional[str] = None,
) -> Dict:
    """
    Approve or reject a location. Rejecting also deactivates it.

    Raises:
        NotFoundError: Unknown location
    """
    location = await _get_location(session, location_id)
    previous = {"isApproved": bool(location.is_approved), "isActive": bool(location.is_active)}

    location.is_approved = approved
    location.is_active = approved
    location.approved_by = admin_id if approved else None
    location.approved_at = utcnow() if approved else None

    _record(
        session,
        admin_id,
        "location_approved" if approved else "location_rejected",
        "Location",
        location_id,
        {
            "reason": reason,
            "locationName": location.name,
            "creatorId": location.created_by,
            "previousValues": previous,
            "newValues": {"isApproved": approved, "isActive": approved},
        },
    )
    await session.commit()
    logger.info(f"Admin {admin_id} {'approved' if approved else 'rejected'} location {location_id}")
    return location_to_dict(await _get_location(session, location_id))


async def delete_location(
    session: AsyncSession, admin_id: str, location_id: str, reason: Optional[str] = None
) -> Dict:
    """
    Soft-delete a location.

    Raises:
        NotFoundError: Unknown location
        InvalidStateError: Games at the location are still scheduled or running
    """
    location = await _get_location(session, location_id)
    open_games = await count_open_games(session, location_id)
    if open_games:
        raise InvalidStateError("Cannot delete location with active games", activeGames=open_games)

    total_games = await _count(session, select(func.count(Game.id)).where(Game.location_id == location_id))
    previous = {"isActive": bool(location.is_active)}
    location.is_active = False
    _record(
        session,
        admin_id,
        "location_deleted",
        "Location",
        location_id,
        {
            "reason": reason,
            "locationName": location.name,
            "totalGames": total_games,
            "previousValues": previous,
            "newValues": {"isActive": False},
        },
    )
    await session.commit()
    logger.info(f"Admin {admin_id} deleted location {location_id}")
    return {"message": "Location deleted successfully"}


# ---------------------------------------------------------------------------
# Games and logs
# ---------------------------------------------------------------------------


async def list_games(
    session: AsyncSession, *, page: int = 1, limit: int = DEFAULT_PAGE_SIZE, status: str = "all"
) -> Dict:
    conditions = [] if status == "all" else [Game.status == status]
    total = await _count(session, select(func.count(Game.id)).where(*conditions))
    result = await session.execute(
        game_query()
        .where(*conditions)
        .order_by(Game.scheduled_time.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return {
        "games": [game_to_dict(game) for game in result.scalars().all()],
        "pagination": _pagination(page, limit, total),
    }


async def list_logs(
    session: AsyncSession,
    *,
    page: int = 1,
    limit: int = DEFAULT_LOG_PAGE_SIZE,
    action: Optional[str] = None,
    admin_id: Optional[str] = None,
) -> Dict:
    conditions = []
    if action:
        conditions.append(AdminLog.action == action)
    if admin_id:
        conditions.append(AdminLog.admin_id == admin_id)

    total = await _count(session, select(func.count(AdminLog.id)).where(*conditions))
    result = await session.execute(
        select(AdminLog)
        .options(selectinload(AdminLog.admin))
        .where(*conditions)
        .order_by(AdminLog.created_at.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return {
        "logs": [admin_log_to_dict(log) for log in result.scalars().all()],
        "pagination": _pagination(page, limit, total),
    }
