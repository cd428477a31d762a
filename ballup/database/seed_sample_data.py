"""
Seed a development database with sample players, courts and games.

Run with: python -m ballup.database.seed_sample_data

Idempotent: does nothing when any of the sample accounts already exists.
Games are created through game_service so participant counts stay consistent.
"""

import asyncio
import logging
from datetime import timedelta

from sqlalchemy import select

from ballup.database import db
from ballup.database.models import Location, User, UserRole
from ballup.services import auth_service, game_service
from ballup.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

SAMPLE_PASSWORD = "Password123!"

SAMPLE_USERS = [
    {
        "email": "john.doe@example.com",
        "username": "johndoe",
        "first_name": "John",
        "last_name": "Doe",
        "skill_level": "intermediate",
        "preferred_position": "point_guard",
        "bio": "Love playing pickup basketball!",
    },
    {
        "email": "mike.jordan@example.com",
        "username": "mikej23",
        "first_name": "Mike",
        "last_name": "Jordan",
        "skill_level": "advanced",
        "preferred_position": "shooting_guard",
        "bio": "Former college player, competitive games only!",
    },
    {
        "email": "sarah.wilson@example.com",
        "username": "sarahw",
        "first_name": "Sarah",
        "last_name": "Wilson",
        "skill_level": "beginner",
        "preferred_position": "small_forward",
        "bio": "Just getting started, looking for friendly games!",
    },
    {
        "email": "admin@ballup.com",
        "username": "admin",
        "first_name": "Admin",
        "last_name": "User",
        "skill_level": "intermediate",
        "role": UserRole.SUPER_ADMIN.value,
    },
]

SAMPLE_LOCATIONS = [
    {
        "name": "Central Park Basketball Courts",
        "address": "Central Park, New York, NY 10024",
        "latitude": 40.7829,
        "longitude": -73.9654,
        "description": "Outdoor courts with great views of the park",
        "court_type": "outdoor",
        "surface_type": "asphalt",
        "hoop_count": 6,
        "amenities": ["lights", "water_fountain", "restrooms"],
    },
    {
        "name": "West 4th Street Courts",
        "address": "W 4th St & 6th Ave, New York, NY 10014",
        "latitude": 40.7311,
        "longitude": -74.0009,
        "description": "The Cage. Famous streetball court, competitive runs",
        "court_type": "outdoor",
        "surface_type": "asphalt",
        "hoop_count": 2,
        "amenities": ["spectator_seating"],
    },
    {
        "name": "Chelsea Recreation Center",
        "address": "430 W 25th St, New York, NY 10001",
        "latitude": 40.7484,
        "longitude": -74.0023,
        "description": "Indoor gym, membership required on weekdays",
        "court_type": "indoor",
        "surface_type": "hardwood",
        "hoop_count": 4,
        "amenities": ["locker_rooms", "water_fountain", "parking"],
    },
]


async def seed_sample_data() -> bool:
    """Insert the sample data. Returns False if it was already present."""
    async with db.AsyncSessionLocal() as session:
        emails = [user["email"] for user in SAMPLE_USERS]
        existing = await session.execute(select(User.id).where(User.email.in_(emails)).limit(1))
        if existing.scalar_one_or_none() is not None:
            logger.info("Sample data already present, skipping")
            return False

        password_hash = auth_service.hash_password(SAMPLE_PASSWORD)
        users = []
        for data in SAMPLE_USERS:
            user = User(password_hash=password_hash, is_verified=True, **data)
            session.add(user)
            users.append(user)
        await session.flush()

        admin = users[-1]
        now = utcnow()
        locations = []
        for data in SAMPLE_LOCATIONS:
            location = Location(
                created_by=users[0].id,
                is_approved=True,
                approved_by=admin.id,
                approved_at=now,
                **data,
            )
            session.add(location)
            locations.append(location)
        await session.commit()

        john, mike, sarah = users[0], users[1], users[2]
        evening = (now + timedelta(days=1)).replace(hour=18, minute=0, second=0, microsecond=0)
        run = await game_service.create_game(
            session,
            creator_id=john.id,
            location_id=locations[0].id,
            scheduled_time=evening,
            max_players=10,
            duration_minutes=120,
            skill_level="intermediate",
            title="Evening Pickup Game",
            description="Casual 5v5, all welcome",
        )
        await game_service.join_game(session, sarah.id, run["id"])

        await game_service.create_game(
            session,
            creator_id=mike.id,
            location_id=locations[1].id,
            scheduled_time=evening + timedelta(days=1),
            max_players=6,
            duration_minutes=90,
            skill_level="advanced",
            title="Competitive 3v3",
        )

    logger.info(
        f"Seeded {len(SAMPLE_USERS)} users, {len(SAMPLE_LOCATIONS)} locations and 2 games "
        f"(password for all accounts: {SAMPLE_PASSWORD})"
    )
    return True


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    asyncio.run(seed_sample_data())
