"""
Tests for auth service - password hashing and access tokens.
"""
from datetime import timedelta

import jwt

from ballup import config
from ballup.services import auth_service
from ballup.utils.datetime_utils import utcnow


def test_hash_and_verify_password():
    password_hash = auth_service.hash_password("Hoops4Life!")
    assert password_hash != "Hoops4Life!"
    assert password_hash.startswith("$2")
    assert auth_service.verify_password("Hoops4Life!", password_hash)
    assert not auth_service.verify_password("hoops4life!", password_hash)


def test_hashes_are_salted():
    assert auth_service.hash_password("Same1Pass!") != auth_service.hash_password("Same1Pass!")


def test_verify_password_with_malformed_hash():
    assert auth_service.verify_password("anything", "not-a-bcrypt-hash") is False
    assert auth_service.verify_password("anything", "") is False


def test_normalize_email():
    assert auth_service.normalize_email("  Player@Example.COM ") == "player@example.com"


def test_token_round_trip():
    token = auth_service.create_access_token({"user_id": "abc", "email": "a@example.com"})
    payload = auth_service.verify_token(token)
    assert payload["user_id"] == "abc"
    assert payload["exp"] > payload["iat"]


def test_expired_token_is_rejected():
    token = auth_service.create_access_token({"user_id": "abc"}, expires_delta=timedelta(seconds=-1))
    assert auth_service.verify_token(token) is None


def test_token_signed_with_other_secret_is_rejected():
    forged = jwt.encode(
        {"user_id": "abc", "exp": utcnow() + timedelta(hours=1)},
        "some-other-secret-that-is-long-enough",
        algorithm=config.JWT_ALGORITHM,
    )
    assert auth_service.verify_token(forged) is None


def test_garbage_token_is_rejected():
    assert auth_service.verify_token("not.a.token") is None
