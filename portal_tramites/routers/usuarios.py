"""
User management router (admin only).

Mounts under ``/api/admin/users`` (prefix set in ``main.py``).

Endpoints
---------
GET  /          List users.
POST /          Create a user.
POST /toggle    Enable / disable an account.
GET  /{id}      User detail.
PUT  /{id}      Partial update (a new password is re-hashed).
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from portal_tramites.database import get_db
from portal_tramites.models.usuario import Usuario
from portal_tramites.schemas.usuario import (
    UsuarioCreate,
    UsuarioResponse,
    UsuarioToggleRequest,
    UsuarioUpdate,
)
from portal_tramites.services import usuario_service
from portal_tramites.services.auth_service import require_role
from portal_tramites.utils.constants import ROLES_ADMIN

router = APIRouter(tags=["Usuarios"])

AdminUser = Annotated[Usuario, Depends(require_role(*ROLES_ADMIN))]


@router.get("", response_model=list[UsuarioResponse], summary="Listar usuarios")
def listar(
    db: Annotated[Session, Depends(get_db)],
    _current_user: AdminUser,
) -> list[UsuarioResponse]:
    return usuario_service.listar_usuarios(db)


@router.post(
    "",
    response_model=UsuarioResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Crear usuario",
    responses={
        400: {"description": "Rol no válido."},
        409: {"description": "Correo ya registrado."},
    },
)
def crear(
    data: UsuarioCreate,
    db: Annotated[Session, Depends(get_db)],
    current_user: AdminUser,
) -> UsuarioResponse:
    return usuario_service.create_usuario(db, data, current_user)


@router.post(
    "/toggle",
    response_model=UsuarioResponse,
    summary="Activar o desactivar usuario",
    responses={
        400: {"description": "Un administrador no puede desactivarse a sí mismo."},
        404: {"description": "Usuario no encontrado."},
    },
)
def toggle(
    data: UsuarioToggleRequest,
    db: Annotated[Session, Depends(get_db)],
    current_user: AdminUser,
) -> UsuarioResponse:
    return usuario_service.toggle_usuario(db, data.user_id, data.is_active, current_user)


@router.get(
    "/{user_id}",
    response_model=UsuarioResponse,
    summary="Detalle de usuario",
    responses={404: {"description": "Usuario no encontrado."}},
)
def detalle(
    user_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: AdminUser,
) -> UsuarioResponse:
    return usuario_service.get_usuario(db, user_id)


@router.put(
    "/{user_id}",
    response_model=UsuarioResponse,
    summary="Actualizar usuario",
    responses={
        400: {"description": "Rol no válido o cambio sobre la propia cuenta."},
        404: {"description": "Usuario no encontrado."},
        409: {"description": "Correo ya registrado."},
    },
)
def actualizar(
    user_id: int,
    data: UsuarioUpdate,
    db: Annotated[Session, Depends(get_db)],
    current_user: AdminUser,
) -> UsuarioResponse:
    return usuario_service.update_usuario(db, user_id, data, current_user)
