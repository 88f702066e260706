"""
Authentication business logic for the Portal de Trámites backoffice.

Provides:
- ``authenticate_user``: credential verification against ``profiles``.
- ``get_current_user``: FastAPI dependency that extracts and validates
  the Bearer JWT from the ``Authorization`` header.
- ``require_role``: dependency factory that enforces role-based access
  control on top of ``get_current_user``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal_tramites.database import get_db
from portal_tramites.models.usuario import Usuario
from portal_tramites.utils.security import verify_password, verify_token

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# OAuth2 scheme: ``tokenUrl`` must match the login endpoint path.
# ---------------------------------------------------------------------------

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


# ---------------------------------------------------------------------------
# Core authentication function
# ---------------------------------------------------------------------------


def authenticate_user(db: Session, email: str, password: str) -> Usuario | None:
    """Verify email/password credentials against the database.

    Returns ``None`` instead of raising so that callers control the HTTP
    error response.

    Args:
        db: An active SQLAlchemy session.
        email: Login email submitted by the client (case-insensitive).
        password: Plain-text password submitted by the client.

    Returns:
        The ``Usuario`` on success, or ``None`` for an unknown user, an
        inactive account or a wrong password.
    """
    user: Usuario | None = (
        db.query(Usuario)
        .filter(Usuario.email == email.strip().lower(), Usuario.is_active.is_(True))
        .first()
    )

    if user is None:
        logger.debug("authenticate_user: unknown or inactive user '%s'", email)
        return None

    if not verify_password(password, user.password_hash):
        logger.debug("authenticate_user: wrong password for user '%s'", email)
        return None

    # Best-effort last-access timestamp
    try:
        user.ultimo_acceso = datetime.now(timezone.utc)
        db.commit()
    except SQLAlchemyError:  # pragma: no cover
        db.rollback()
        logger.warning("Could not update ultimo_acceso for user '%s'", email)

    return user


# ---------------------------------------------------------------------------
# FastAPI dependency: current authenticated user
# ---------------------------------------------------------------------------


def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: Annotated[Session, Depends(get_db)],
) -> Usuario:
    """Resolve the caller's identity from the Bearer JWT.

    Raises:
        HTTPException 401: If the token is missing, invalid or expired, or
                           if the referenced user no longer exists or has
                           been deactivated.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="No autorizado",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = verify_token(token)
    except ValueError:
        raise credentials_exception

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise credentials_exception

    user: Usuario | None = (
        db.query(Usuario)
        .filter(Usuario.id == user_id, Usuario.is_active.is_(True))
        .first()
    )
    if user is None:
        raise credentials_exception

    return user


# ---------------------------------------------------------------------------
# Role enforcement dependency factory
# ---------------------------------------------------------------------------


def require_role(*roles: str):
    """Return a FastAPI dependency that restricts access to the given roles.

    .. code-block:: python

        @router.delete("/{tramite_id}")
        def delete_tramite(
            current_user: Annotated[Usuario, Depends(require_role("admin"))],
        ):
            ...

    Args:
        *roles: Role codes from ``constants.ROLES`` allowed on the endpoint.

    Raises:
        HTTPException 403: If the authenticated user's role is not allowed.
    """
    allowed = frozenset(roles)

    def _check_role(
        current_user: Annotated[Usuario, Depends(get_current_user)],
    ) -> Usuario:
        if current_user.role not in allowed:
            logger.warning(
                "Forbidden: user='%s' role='%s' required=%s",
                current_user.email, current_user.role, sorted(allowed),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Acceso denegado: permisos insuficientes",
            )
        return current_user

    return _check_role
