"""
Public catalog router.

Mounts under ``/api/tramites`` (prefix set in ``main.py``). No
authentication: only active trámites are ever returned.

Endpoints
---------
GET /        Search, filter and paginate the active trámites.
GET /{id}    One active trámite.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from portal_tramites.database import get_db
from portal_tramites.schemas.tramite import CatalogoResponse, TramiteResponse
from portal_tramites.services import tramite_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Catálogo"])


@router.get(
    "",
    response_model=CatalogoResponse,
    summary="Buscar trámites",
    description=(
        "Búsqueda insensible a tildes y mayúsculas sobre nombre, descripción, categoría, "
        "dependencia y requisitos. Varias palabras deben coincidir todas; una sola palabra "
        "se amplía con sinónimos. Los conteos de ``categorias`` reflejan la búsqueda "
        "antes de aplicar el filtro de categoría."
    ),
    responses={
        200: {"description": "Página de resultados con conteos por categoría."},
    },
)
def buscar(
    db: Annotated[Session, Depends(get_db)],
    q: Annotated[str | None, Query(max_length=200, description="Texto libre.")] = None,
    categoria: Annotated[str | None, Query(max_length=150)] = None,
    modalidad: Annotated[str | None, Query(max_length=100)] = None,
    pago: Annotated[str | None, Query(description="con_pago | sin_pago; otro valor no filtra")] = None,
    dependencia: Annotated[str | None, Query(max_length=300)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int | None, Query(ge=1, le=100)] = None,
) -> CatalogoResponse:
    logger.debug("GET /tramites q=%r categoria=%r page=%d", q, categoria, page)
    return tramite_service.get_catalogo(
        db,
        query=q,
        categoria=categoria,
        modalidad=modalidad,
        pago=pago,
        dependencia=dependencia,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/{tramite_id}",
    response_model=TramiteResponse,
    summary="Detalle público de un trámite",
    responses={404: {"description": "Trámite inexistente o inactivo."}},
)
def detalle(
    tramite_id: int,
    db: Annotated[Session, Depends(get_db)],
) -> TramiteResponse:
    return tramite_service.get_publico(db, tramite_id)
