"""
Backoffice session endpoints, mounted under ``/api/auth``.

The login form is the OAuth2 password form: the ``username`` field carries
the account e-mail. Tokens embed ``sub`` (user id), ``email`` and ``role``.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from portal_tramites.database import get_db
from portal_tramites.models.usuario import Usuario
from portal_tramites.schemas.auth import TokenResponse, UserResponse
from portal_tramites.services.auth_service import authenticate_user, get_current_user
from portal_tramites.utils.security import create_access_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])

UsuarioActual = Annotated[Usuario, Depends(get_current_user)]


def _emitir_token(usuario: Usuario) -> TokenResponse:
    claims = {"sub": str(usuario.id), "email": usuario.email, "role": usuario.role}
    return TokenResponse(access_token=create_access_token(data=claims))


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Iniciar sesión en el backoffice",
    responses={401: {"description": "Credenciales incorrectas o cuenta inactiva."}},
)
def iniciar_sesion(
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    db: Annotated[Session, Depends(get_db)],
) -> TokenResponse:
    """Exchange e-mail and password for an access token.

    Inactive accounts are rejected with the same message as a wrong
    password.
    """
    usuario = authenticate_user(db, form_data.username, form_data.password)
    if usuario is None:
        logger.warning("Rejected login for '%s'", form_data.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Credenciales incorrectas o cuenta inactiva",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.info("Login ok: %s (%s)", usuario.email, usuario.role)
    return _emitir_token(usuario)


@router.post("/refresh", response_model=TokenResponse, summary="Renovar el token de sesión")
def renovar_token(usuario: UsuarioActual) -> TokenResponse:
    logger.debug("Token renewed for %s", usuario.email)
    return _emitir_token(usuario)


@router.get("/me", response_model=UserResponse, summary="Perfil del usuario en sesión")
def perfil(usuario: UsuarioActual) -> UserResponse:
    return UserResponse.model_validate(usuario)
