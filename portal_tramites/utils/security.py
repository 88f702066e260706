"""
Security utilities for the Portal de Trámites authentication system.

Provides JWT token creation/verification (python-jose) and bcrypt password
hashing. All configuration comes from the application settings so that
secrets are never hard-coded in source files.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import JWTError, jwt

from portal_tramites.config import get_settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Password helpers
# ---------------------------------------------------------------------------


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# ---------------------------------------------------------------------------
# JWT helpers
# ---------------------------------------------------------------------------


def create_access_token(data: dict[str, Any]) -> str:
    """Create a signed JWT access token.

    The payload is a copy of *data* plus ``exp`` and ``iat`` claims. The
    caller sets ``sub`` (``str(user.id)``).

    Args:
        data: Claims to embed in the token payload.

    Returns:
        A compact JWT string signed with the configured algorithm.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = data.copy()
    payload["exp"] = now + timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)
    payload["iat"] = now
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> dict[str, Any]:
    """Decode and verify a JWT access token.

    Args:
        token: A JWT string obtained from ``create_access_token``.

    Returns:
        The decoded payload dictionary.

    Raises:
        ValueError: If the token is invalid, expired, or cannot be decoded.
    """
    settings = get_settings()
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        logger.debug("JWT verification failed: %s", exc)
        raise ValueError("Token inválido o expirado") from exc
