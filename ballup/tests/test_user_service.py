"""
Tests for user service - registration, authentication and profiles.
"""
import pytest
from sqlalchemy import func, select

from ballup.api.errors import ConflictError, ForbiddenError, NotFoundError, UnauthenticatedError
from ballup.database.models import User
from ballup.services import auth_service, game_service, user_service

DEFAULT_PASSWORD = "Hoops4Life!"


@pytest.mark.asyncio
async def test_register_user(db_session):
    user = await user_service.register_user(
        db_session,
        email="Hooper@Example.com",
        username="hooper",
        password=DEFAULT_PASSWORD,
        first_name="Hoop",
    )

    assert user["email"] == "hooper@example.com"
    assert user["username"] == "hooper"
    assert user["role"] == "user"
    assert user["skillLevel"] == "beginner"
    assert user["isActive"] is True
    assert "passwordHash" not in user and "password_hash" not in user

    stored = await db_session.get(User, user["id"])
    assert stored.password_hash != DEFAULT_PASSWORD
    assert auth_service.verify_password(DEFAULT_PASSWORD, stored.password_hash)


@pytest.mark.asyncio
async def test_register_duplicate_email_leaves_first_account(db_session):
    first = await user_service.register_user(
        db_session, email="dup@example.com", username="original", password=DEFAULT_PASSWORD
    )

    with pytest.raises(ConflictError, match="Email is already registered"):
        await user_service.register_user(
            db_session, email="DUP@example.com", username="copycat", password="Other1Pass!"
        )

    count = (await db_session.execute(select(func.count(User.id)))).scalar()
    assert count == 1
    authenticated = await user_service.authenticate_user(db_session, "dup@example.com", DEFAULT_PASSWORD)
    assert authenticated["id"] == first["id"]
    assert authenticated["username"] == "original"


@pytest.mark.asyncio
async def test_register_duplicate_username(db_session):
    await user_service.register_user(
        db_session, email="one@example.com", username="samename", password=DEFAULT_PASSWORD
    )
    with pytest.raises(ConflictError, match="Username is already taken"):
        await user_service.register_user(
            db_session, email="two@example.com", username="SameName", password=DEFAULT_PASSWORD
        )


@pytest.mark.asyncio
async def test_authenticate_bad_credentials_share_message(db_session, make_user):
    await make_user("known")

    with pytest.raises(UnauthenticatedError) as wrong_password:
        await user_service.authenticate_user(db_session, "known@example.com", "Wrong1Pass!")
    with pytest.raises(UnauthenticatedError) as unknown_email:
        await user_service.authenticate_user(db_session, "nobody@example.com", DEFAULT_PASSWORD)

    assert wrong_password.value.message == unknown_email.value.message == "Invalid credentials"


@pytest.mark.asyncio
async def test_authenticate_records_login(db_session, make_user):
    await make_user("loginner")
    user = await user_service.authenticate_user(db_session, "loginner@example.com", DEFAULT_PASSWORD)
    assert user["lastLoginAt"] is not None


@pytest.mark.asyncio
async def test_authenticate_deactivated_account(db_session, make_user):
    user = await make_user("benched")
    model = await db_session.get(User, user["id"])
    model.is_active = False
    await db_session.commit()

    with pytest.raises(ForbiddenError, match="deactivated"):
        await user_service.authenticate_user(db_session, "benched@example.com", DEFAULT_PASSWORD)


@pytest.mark.asyncio
async def test_issue_token_claims(make_user):
    user = await make_user("tokened")
    payload = auth_service.verify_token(user_service.issue_token(user))
    assert payload["user_id"] == user["id"]
    assert payload["email"] == "tokened@example.com"
    assert payload["role"] == "user"


@pytest.mark.asyncio
async def test_update_profile_ignores_unknown_fields(db_session, make_user):
    user = await make_user("editor")
    updated = await user_service.update_profile(
        db_session,
        user["id"],
        {"bio": "Lefty shooter", "skill_level": "advanced", "role": "super_admin"},
    )
    assert updated["bio"] == "Lefty shooter"
    assert updated["skillLevel"] == "advanced"
    assert updated["role"] == "user"


@pytest.mark.asyncio
async def test_update_profile_unknown_user(db_session):
    with pytest.raises(NotFoundError):
        await user_service.update_profile(db_session, "missing", {"bio": "x"})


@pytest.mark.asyncio
async def test_profile_counts(db_session, creator, make_game):
    await make_game()
    profile = await user_service.get_profile(db_session, creator["id"])
    assert profile["counts"] == {"createdGames": 1, "gameParticipants": 1, "createdLocations": 1}
    assert (await game_service.get_user_games(db_session, creator["id"]))["createdGames"]
