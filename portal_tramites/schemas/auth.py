"""
Pydantic v2 schemas for the authentication endpoints.

Covers the JWT token response and the public user representation
returned by ``GET /api/auth/me``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class TokenResponse(BaseModel):
    """Response body returned after a successful authentication.

    Attributes:
        access_token: Signed JWT to send as ``Authorization: Bearer <token>``.
        token_type: Always ``"bearer"`` per OAuth2 convention.
    """

    access_token: str = Field(..., description="JWT de acceso firmado con HS256")
    token_type: str = Field(default="bearer", description="Tipo de token OAuth2")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "access_token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
                "token_type": "bearer",
            }
        }
    )


class UserResponse(BaseModel):
    """Public representation of a backoffice user.

    ``password_hash`` is deliberately excluded.
    """

    id: int
    email: str
    full_name: str | None
    role: str
    dependencia: str | None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)
