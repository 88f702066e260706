"""
User management service (admin only).

Passwords are hashed with bcrypt before storage and never leave this
module; responses are built from ``UsuarioResponse``. Every change writes
an audit entry with the ``password_hash`` column excluded.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal_tramites.models.usuario import Usuario
from portal_tramites.schemas.usuario import UsuarioCreate, UsuarioResponse, UsuarioUpdate
from portal_tramites.services.auditoria_service import registrar_auditoria, snapshot
from portal_tramites.utils.constants import ROLES
from portal_tramites.utils.errores import error_base_datos
from portal_tramites.utils.security import hash_password

logger = logging.getLogger(__name__)


def _get_or_404(db: Session, user_id: int) -> Usuario:
    user: Usuario | None = db.query(Usuario).filter(Usuario.id == user_id).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Usuario no encontrado")
    return user


def _validar_rol(role: str) -> None:
    if role not in ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Rol '{role}' no válido. Valores permitidos: {', '.join(ROLES)}",
        )


def _validar_email_libre(db: Session, email: str, excluir_id: int | None = None) -> None:
    q = db.query(Usuario.id).filter(Usuario.email == email)
    if excluir_id is not None:
        q = q.filter(Usuario.id != excluir_id)
    if q.first() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"El correo {email} ya está registrado",
        )


def _commit(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise error_base_datos(
            exc,
            mensaje_duplicado="El correo ya está registrado",
            mensaje_general="Error al guardar el usuario",
        ) from exc


def listar_usuarios(db: Session) -> list[UsuarioResponse]:
    rows = db.query(Usuario).order_by(Usuario.created_at.desc(), Usuario.id.desc()).all()
    return [UsuarioResponse.model_validate(u) for u in rows]


def get_usuario(db: Session, user_id: int) -> UsuarioResponse:
    return UsuarioResponse.model_validate(_get_or_404(db, user_id))


def create_usuario(db: Session, data: UsuarioCreate, actor: Usuario) -> UsuarioResponse:
    """Create a backoffice account.

    Raises:
        HTTPException 400: Unknown role.
        HTTPException 409: Email already registered.
    """
    email = data.email.strip().lower()
    _validar_rol(data.role)
    _validar_email_libre(db, email)

    user = Usuario(
        email=email,
        full_name=data.full_name.strip(),
        role=data.role,
        dependencia=data.dependencia,
        password_hash=hash_password(data.password),
        is_active=True,
    )
    db.add(user)
    db.flush()
    registrar_auditoria(
        db, usuario=actor, accion="INSERT", tabla="profiles",
        registro_id=user.id, despues=snapshot(user),
    )
    _commit(db)
    db.refresh(user)
    logger.info("create_usuario: id=%d email=%s role=%s by=%s", user.id, user.email, user.role, actor.email)
    return UsuarioResponse.model_validate(user)


def update_usuario(db: Session, user_id: int, data: UsuarioUpdate, actor: Usuario) -> UsuarioResponse:
    """Partial update; a new ``password`` replaces the stored hash.

    An admin cannot remove their own admin role or deactivate themselves.
    """
    user = _get_or_404(db, user_id)
    datos = data.model_dump(exclude_unset=True)

    if datos.get("role") is not None:
        _validar_rol(datos["role"])
    if datos.get("email") is not None:
        datos["email"] = datos["email"].strip().lower()
        _validar_email_libre(db, datos["email"], excluir_id=user.id)
    if user.id == actor.id and (
        datos.get("is_active") is False or (datos.get("role") or user.role) != user.role
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No puede cambiar su propio rol ni desactivar su propia cuenta",
        )

    antes = snapshot(user)
    password = datos.pop("password", None)
    if password:
        user.password_hash = hash_password(password)
    for field, value in datos.items():
        if value is not None:
            setattr(user, field, value)

    registrar_auditoria(
        db, usuario=actor, accion="UPDATE", tabla="profiles",
        registro_id=user.id, antes=antes, despues=snapshot(user),
    )
    _commit(db)
    db.refresh(user)
    logger.info("update_usuario: id=%d fields=%s by=%s", user.id, sorted(datos), actor.email)
    return UsuarioResponse.model_validate(user)


def toggle_usuario(db: Session, user_id: int, is_active: bool, actor: Usuario) -> UsuarioResponse:
    """Enable or disable an account. Admins cannot disable themselves."""
    user = _get_or_404(db, user_id)
    if user.id == actor.id and not is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No puede desactivar su propia cuenta",
        )
    antes = snapshot(user)
    user.is_active = is_active
    registrar_auditoria(
        db, usuario=actor, accion="UPDATE", tabla="profiles",
        registro_id=user.id, antes=antes, despues=snapshot(user),
    )
    _commit(db)
    db.refresh(user)
    logger.info("toggle_usuario: id=%d is_active=%s by=%s", user.id, is_active, actor.email)
    return UsuarioResponse.model_validate(user)
