"""
Credential and token handling: bcrypt password hashes and signed JWT access tokens.
"""

import logging
from datetime import timedelta
from typing import Dict, Optional

import bcrypt
import jwt

from ballup import config
from ballup.utils.constants import BCRYPT_ROUNDS
from ballup.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    """Hash a password with a per-password salt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a plaintext password against a stored bcrypt hash."""
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in storage
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


def normalize_email(email: str) -> str:
    return email.strip().lower()


def create_access_token(data: Dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed access token.

    Args:
        data: Claims to embed (user_id, email, optional role)
        expires_delta: Lifetime override; defaults to JWT_EXPIRATION_HOURS

    Returns:
        Encoded JWT string
    """
    now = utcnow()
    expire = now + (expires_delta or timedelta(hours=config.JWT_EXPIRATION_HOURS))
    payload = {**data, "iat": now, "exp": expire}
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def verify_token(token: str) -> Optional[Dict]:
    """
    Decode and verify an access token.

    Returns:
        The token payload, or None if the signature is invalid or the token expired
    """
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired token")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"Rejected invalid token: {e}")
        return None
