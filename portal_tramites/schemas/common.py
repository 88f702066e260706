"""
Shared Pydantic v2 schemas reused across multiple modules.

Provides pagination parameters, the paginated envelope, and generic
message / validation-error responses.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class PaginationParams(BaseModel):
    """Pagination parameters for list endpoints.

    Attributes:
        page: 1-based page number.
        page_size: Number of rows per page (capped at 200 to protect the DB).
    """

    page: int = Field(default=1, ge=1, description="Número de página (base 1).")
    page_size: int = Field(
        default=20,
        ge=1,
        le=200,
        description="Registros por página (máximo 200).",
    )


class PaginationMeta(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int


class MessageResponse(BaseModel):
    """Generic message envelope for operations that do not return a resource.

    Attributes:
        success: Always ``True`` on 2xx responses.
        message: Short human-readable result summary.
        detail: Optional extended information.
    """

    success: bool = Field(default=True)
    message: str = Field(..., description="Resumen del resultado de la operación.")
    detail: str | None = Field(
        default=None,
        description="Información adicional (contexto, sugerencia, etc.).",
    )


class ValidationErrorDetail(BaseModel):
    """Body of the ``detail`` field in a 400 validation response."""

    error: str = Field(default="Errores de validación")
    details: list[Any] = Field(default_factory=list)
