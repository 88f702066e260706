"""
Pydantic v2 schemas for user management (admin only).

Write schemas (``UsuarioCreate``, ``UsuarioUpdate``) are separate from the
read schema so that passwords never appear in responses.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from portal_tramites.schemas.auth import UserResponse
from portal_tramites.utils.constants import ROLES


class UsuarioResponse(UserResponse):
    ultimo_acceso: datetime | None = None
    created_at: datetime | None = None


class UsuarioCreate(BaseModel):
    """Payload for ``POST /api/admin/users``.

    Attributes:
        email: Login email; must be unique.
        password: Plain-text password, hashed with bcrypt before storage.
        full_name: Display name.
        role: One of ``constants.ROLES``.
        dependencia: Name of the unit the user belongs to.
    """

    email: EmailStr = Field(..., description="Correo electrónico institucional")
    password: str = Field(..., min_length=8, max_length=128)
    full_name: str = Field(..., min_length=3, max_length=300)
    role: str = Field(default="user", description=f"Valores permitidos: {ROLES}")
    dependencia: str | None = Field(default=None, max_length=300)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "m.rodriguez@chia.gov.co",
                "password": "Chia2025Segura!",
                "full_name": "María Rodríguez",
                "role": "supervisor",
                "dependencia": "Secretaría de Planeación",
            }
        }
    )


class UsuarioUpdate(BaseModel):
    """Partial update; omitting ``password`` keeps the stored hash."""

    email: EmailStr | None = None
    password: str | None = Field(default=None, min_length=8, max_length=128)
    full_name: str | None = Field(default=None, min_length=3, max_length=300)
    role: str | None = None
    dependencia: str | None = Field(default=None, max_length=300)
    is_active: bool | None = None


class UsuarioToggleRequest(BaseModel):
    """Body of ``POST /api/admin/users/toggle``."""

    user_id: int
    is_active: bool
