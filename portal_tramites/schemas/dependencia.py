"""Pydantic v2 schemas for organizational units (dependencias)."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, Field, field_validator

from portal_tramites.schemas.common import PaginationMeta


class DependenciaBase(BaseModel):
    codigo: str | None = Field(default=None, max_length=20)
    sigla: str | None = Field(default=None, max_length=30)
    nombre: str | None = Field(default=None, max_length=300)
    descripcion: str | None = None
    tipo: str | None = None
    dependencia_padre_id: int | None = None
    orden: int | None = None
    is_active: bool | None = None
    responsable: str | None = None
    correo_electronico: str | None = None
    extension_telefonica: str | None = None
    direccion: str | None = None
    horario_atencion: str | None = None
    telefono_directo: str | None = None
    enlace_web: str | None = None


class DependenciaCreate(DependenciaBase):
    """Payload for ``POST /api/admin/dependencias``.

    ``codigo``, ``nombre`` and ``tipo`` are checked by the service so that
    missing fields produce the same 400 envelope as other validation errors.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "codigo": "010",
                "sigla": "SPLA",
                "nombre": "Secretaría de Planeación",
                "tipo": "dependencia",
                "orden": 1,
            }
        }
    )


class DependenciaUpdate(DependenciaBase):
    """Partial update of a unit."""


class DependenciaEstadoUpdate(BaseModel):
    # Any JSON value is accepted so a non-boolean yields the 400 envelope.
    is_active: Any = None


class DependenciaResponse(DependenciaBase):
    id: int
    codigo: str
    nombre: str
    tipo: str
    nivel: int
    orden: int
    is_active: bool
    dependencia_padre_nombre: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class DependenciaListResponse(BaseModel):
    data: list[DependenciaResponse]
    pagination: PaginationMeta


class DependenciaArbolNodo(DependenciaResponse):
    hijos: list["DependenciaArbolNodo"] = Field(default_factory=list)


class ImportacionError(BaseModel):
    row: int
    error: str
    data: dict[str, Any] | None = None


class ImportacionDependenciasResponse(BaseModel):
    """Summary of a dependencias CSV import.

    Attributes:
        success: True when no critical error stopped the import.
        dependencias_creadas: Top-level units inserted.
        subdependencias_creadas: Sub-units inserted.
        warnings: Rows that were skipped or adjusted.
        message: Human-readable summary.
    """

    success: bool = True
    dependencias_creadas: int = 0
    subdependencias_creadas: int = 0
    warnings: list[str] = Field(default_factory=list)
    message: str = ""


class ImportacionContactosResponse(BaseModel):
    success: bool = True
    total_imported: int = 0
    total_skipped: int = 0
    errors: list[ImportacionError] = Field(default_factory=list)
    message: str = ""


class ImportacionTramitesResponse(BaseModel):
    success: bool = True
    total_imported: int = 0
    total_skipped: int = 0
    errors: list[ImportacionError] = Field(default_factory=list)
    message: str = ""


class ContactoFila(BaseModel):
    """One row of the contacts CSV, keyed by its header names."""

    model_config = ConfigDict(populate_by_name=True)

    codigo: str = Field(alias="CODIGO")
    sigla: str | None = Field(default=None, alias="SIGLA")
    dependencia: str = Field(alias="DEPENDENCIA")
    responsable: str | None = Field(default=None, alias="RESPONSABLE")
    correo_electronico: str | None = Field(default=None, alias="CORREO ELECTRONICO")
    extension: str | None = Field(default=None, alias="EXT")
    direccion: str | None = Field(default=None, alias="DIRECCIÓN")

    @field_validator("codigo")
    @classmethod
    def _codigo_requerido(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("El código es requerido")
        return v.strip()

    @field_validator("dependencia")
    @classmethod
    def _dependencia_requerida(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("La dependencia es requerida")
        return v.strip()

    @field_validator("correo_electronico")
    @classmethod
    def _correo_valido(cls, v: str | None) -> str | None:
        if not v:
            return None
        try:
            validate_email(v, check_deliverability=False)
        except EmailNotValidError:
            raise ValueError("Formato de correo inválido")
        return v


DependenciaArbolNodo.model_rebuild()
