"""
Shared pytest configuration.

Each test gets a fresh database: a throwaway SQLite file by default, or the
server named by TEST_DATABASE_URL (its name must contain "test" since tables
are dropped after every test). The application's session factory is pointed
at the test engine so routes, services and the WebSocket endpoint all share it.
"""

import os
import tempfile

# Configure the environment before any ballup module reads it
os.environ["ENV"] = "test"
os.environ.setdefault("JWT_SECRET", "ballup-test-secret-0123456789-abcdefghijklmnop")
os.environ.setdefault(
    "DATABASE_URL", f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), 'ballup_test.db')}"
)
os.environ.setdefault("ENABLE_REQUEST_LOGGING", "false")

from datetime import timedelta

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from ballup.api.main import app
from ballup.api.rate_limit import limiter
from ballup.database import db
from ballup.database.db import Base
from ballup.database.models import Location, User, UserRole
from ballup.services import auth_service, game_service, user_service
from ballup.services.event_bus import get_event_bus
from ballup.utils.datetime_utils import utcnow

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

DEFAULT_PASSWORD = "Hoops4Life!"


def _test_database_url(tmp_path) -> str:
    if TEST_DATABASE_URL:
        db_name = TEST_DATABASE_URL.rsplit("/", 1)[-1].split("?")[0]
        if "test" not in db_name.lower():
            raise RuntimeError(
                f"Refusing to run tests against database {db_name!r}: its name must contain 'test'"
            )
        return TEST_DATABASE_URL
    return f"sqlite+aiosqlite:///{tmp_path / 'ballup_test.db'}"


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    """Cheap bcrypt cost factor; hashes stay valid bcrypt."""
    monkeypatch.setattr(auth_service, "BCRYPT_ROUNDS", 4)


@pytest.fixture(autouse=True)
def rate_limiting_disabled():
    """Rate limiting is off unless a test turns it on; counters never leak between tests."""
    limiter.enabled = False
    limiter.reset()
    yield
    limiter.enabled = False
    limiter.reset()


@pytest.fixture
def published_events():
    """Record every (topic, event, payload) published on the event bus."""
    events = []

    async def recorder(topic, event, payload):
        events.append((topic, event, payload))

    bus = get_event_bus()
    bus.subscribe(recorder)
    yield events
    bus.unsubscribe(recorder)


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(_test_database_url(tmp_path), poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine, monkeypatch):
    factory = async_sessionmaker(
        db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )
    monkeypatch.setattr(db, "AsyncSessionLocal", factory)
    return factory


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def make_user(db_session):
    """Factory: register a user and return its private dict."""
    counter = {"n": 0}

    async def _make_user(username=None, role=None, password=DEFAULT_PASSWORD):
        counter["n"] += 1
        username = username or f"player{counter['n']}"
        user = await user_service.register_user(
            db_session, email=f"{username}@example.com", username=username, password=password
        )
        if role is not None:
            model = await db_session.get(User, user["id"])
            model.role = role
            await db_session.commit()
            user["role"] = role
        return user

    return _make_user


@pytest_asyncio.fixture
async def creator(make_user):
    return await make_user("creator")


@pytest_asyncio.fixture
async def admin(make_user):
    return await make_user("moderator", role=UserRole.ADMIN.value)


@pytest_asyncio.fixture
async def location(db_session, creator):
    court = Location(
        name="Rucker Park",
        address="155th St & Frederick Douglass Blvd, New York, NY",
        latitude=40.8296,
        longitude=-73.9362,
        court_type="outdoor",
        surface_type="asphalt",
        hoop_count=2,
        amenities=["lights"],
        is_approved=True,
        is_active=True,
        created_by=creator["id"],
    )
    db_session.add(court)
    await db_session.commit()
    return court


@pytest_asyncio.fixture
async def make_game(db_session, creator, location):
    """Factory: schedule a game at the shared location."""

    async def _make_game(max_players=10, creator_id=None, hours_ahead=24, **kwargs):
        return await game_service.create_game(
            db_session,
            creator_id=creator_id or creator["id"],
            location_id=location.id,
            scheduled_time=utcnow() + timedelta(hours=hours_ahead),
            max_players=max_players,
            **kwargs,
        )

    return _make_game


@pytest.fixture
def auth_headers():
    """Factory: bearer header for a user dict."""

    def _auth_headers(user) -> dict:
        return {"Authorization": f"Bearer {user_service.issue_token(user)}"}

    return _auth_headers


@pytest_asyncio.fixture
async def client(session_factory):
    transport = httpx.ASGITransport(app=app, client=("203.0.113.10", 50000))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
