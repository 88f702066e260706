"""
Pydantic v2 schemas for trámites (public catalog and backoffice).

Write payloads accept loose strings for ``requiere_pago``: the business
rules (allowed values, payment details pairing) are checked by the service
so that every violation is reported together in one 400 response.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class DependenciaRef(BaseModel):
    id: int
    nombre: str
    tipo: str

    model_config = ConfigDict(from_attributes=True)


class TramiteBase(BaseModel):
    nombre_tramite: str | None = None
    descripcion: str | None = None
    categoria: str | None = None
    modalidad: str | None = None
    formulario: str | None = None
    dependencia_id: int | None = None
    subdependencia_id: int | None = None
    requiere_pago: str | None = None
    informacion_pago: str | None = None
    tiempo_respuesta: str | None = None
    requisitos: str | None = None
    instrucciones: str | None = None
    url_suit: str | None = None
    url_gov: str | None = None


class TramiteCreate(TramiteBase):
    """Payload for ``POST /api/admin/tramites/create``.

    ``dependencia_nombre`` / ``subdependencia_nombre`` are accepted for
    older clients that send unit names instead of ids.
    """

    dependencia_nombre: str | None = None
    subdependencia_nombre: str | None = None
    is_active: bool = True

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "nombre_tramite": "Licencia de construcción",
                "descripcion": "Autorización para adelantar obras de construcción.",
                "categoria": "Urbanismo",
                "modalidad": "Presencial",
                "dependencia_id": 1,
                "subdependencia_id": 2,
                "requiere_pago": "Sí",
                "informacion_pago": "Expensas según estrato y metros cuadrados.",
                "tiempo_respuesta": "45 días hábiles",
                "requisitos": "Formulario único nacional; planos arquitectónicos.",
                "instrucciones": "Radique la solicitud en la ventanilla de Planeación.",
            }
        }
    )


class TramiteUpdate(TramiteBase):
    """Payload for ``PUT /api/admin/tramites/{id}`` (full form submission)."""


class TramiteEstadoUpdate(BaseModel):
    is_active: bool


class TramiteResponse(TramiteBase):
    """Trámite as returned by the API, with resolved unit names."""

    id: int
    dependencia_nombre: str | None = None
    subdependencia_nombre: str | None = None
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class FormularioEdicion(BaseModel):
    """Initial state of the admin edit form for one trámite.

    Attributes:
        requiere_pago: Radio value to pre-select ("Sí", "No" or "").
        mostrar_informacion_pago: Whether the payment textarea is visible.
        informacion_pago: Text to pre-fill in the payment textarea.
        seleccion: State of the cascading unit selector.
    """

    requiere_pago: str
    mostrar_informacion_pago: bool
    informacion_pago: str
    seleccion: dict[str, Any]


class TramiteDetalleResponse(TramiteResponse):
    dependencia: DependenciaRef | None = None
    subdependencia: DependenciaRef | None = None
    formulario_edicion: FormularioEdicion | None = None


class TramiteMutacionResponse(BaseModel):
    """Envelope returned by create / update so the client knows where to go next."""

    success: bool = True
    message: str
    data: TramiteDetalleResponse
    redirect_to: str = "/admin/tramites"


class CatalogoResponse(BaseModel):
    """One page of the public catalog plus the data the filter sidebar needs.

    Attributes:
        items: Trámites on the requested page.
        pagination: Page metadata.
        categorias: Category -> count over the search-filtered list (chips).
        modalidades: Distinct modalities of active trámites.
        dependencias: Distinct owning unit names of active trámites.
    """

    items: list[TramiteResponse]
    pagination: dict[str, int]
    categorias: dict[str, int]
    modalidades: list[str]
    dependencias: list[str]
