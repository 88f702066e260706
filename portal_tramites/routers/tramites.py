"""
Backoffice trámites router.

Mounts under ``/api/admin/tramites`` (prefix set in ``main.py``).

Every endpoint requires the admin or supervisor role; ``DELETE`` is
restricted to admins. Validation failures answer 400 with
``{"error": ..., "details": [...]}`` listing every problem found.

Endpoints
---------
GET    /              List all trámites (newest first).
GET    /export        Download the trámites CSV.
POST   /import        Upload a trámites CSV / XLSX.
POST   /create        Create a trámite.
GET    /{id}          Detail with unit objects and edit-form state.
PUT    /{id}          Update from the edit form.
PATCH  /{id}/estado   Activate / deactivate.
DELETE /{id}          Permanently delete (admin only).
"""

from __future__ import annotations

import io
import logging
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from portal_tramites.database import get_db
from portal_tramites.models.usuario import Usuario
from portal_tramites.schemas.common import MessageResponse
from portal_tramites.schemas.dependencia import ImportacionTramitesResponse
from portal_tramites.schemas.tramite import (
    TramiteCreate,
    TramiteDetalleResponse,
    TramiteEstadoUpdate,
    TramiteMutacionResponse,
    TramiteResponse,
    TramiteUpdate,
)
from portal_tramites.services import exportacion_service, importacion_service, tramite_service
from portal_tramites.services.auth_service import require_role
from portal_tramites.utils.constants import ROLES_ADMIN, ROLES_GESTION

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Trámites (admin)"])

_VALIDATION_RESPONSES = {
    400: {"description": "Errores de validación (``details`` lista todos)."},
    401: {"description": "Token JWT ausente o inválido."},
    403: {"description": "Rol insuficiente."},
}


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


@router.get(
    "",
    response_model=list[TramiteResponse],
    summary="Listar trámites",
    description="Todos los trámites, activos e inactivos, con los nombres de sus dependencias.",
)
def listar(
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[Usuario, Depends(require_role(*ROLES_GESTION))],
    include_inactive: Annotated[bool, Query()] = True,
) -> list[TramiteResponse]:
    return tramite_service.listar_admin(db, include_inactive=include_inactive)


@router.get(
    "/export",
    summary="Exportar trámites a CSV",
    response_class=StreamingResponse,
    responses={200: {"description": "Archivo CSV.", "content": {"text/csv": {}}}},
)
def exportar(
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[Usuario, Depends(require_role(*ROLES_GESTION))],
    include_inactive: Annotated[bool, Query(description="Incluir trámites inactivos.")] = False,
) -> StreamingResponse:
    file_bytes = exportacion_service.exportar_tramites_csv(db, include_inactive=include_inactive)
    filename = f"tramites-{date.today().isoformat()}.csv"
    return StreamingResponse(
        io.BytesIO(file_bytes),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post(
    "/import",
    response_model=ImportacionTramitesResponse,
    summary="Importar trámites desde CSV",
    description=(
        "Archivo con 14 columnas posicionales: id (ignorado), nombre_tramite, descripcion, "
        "categoria, modalidad, formulario, dependencia, subdependencia, requiere_pago, "
        "tiempo_respuesta, requisitos, instrucciones, url_suit, url_gov. Las dependencias "
        "pueden indicarse por id o por nombre."
    ),
    responses={
        200: {"description": "Resumen por fila de la importación."},
        400: {"description": "Archivo vacío, ilegible o con columnas insuficientes."},
    },
)
async def importar(
    file: Annotated[UploadFile, File(description="Archivo .csv o .xlsx")],
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[Usuario, Depends(require_role(*ROLES_GESTION))],
) -> ImportacionTramitesResponse:
    logger.info("import tramites: user='%s' file='%s'", current_user.email, file.filename)
    return await importacion_service.importar_tramites(db, file, current_user)


@router.post(
    "/create",
    response_model=TramiteMutacionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Crear trámite",
    responses={**_VALIDATION_RESPONSES, 409: {"description": "Registro duplicado."}},
)
def crear(
    data: TramiteCreate,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[Usuario, Depends(require_role(*ROLES_GESTION))],
) -> TramiteMutacionResponse:
    tramite = tramite_service.create_tramite(db, data, current_user)
    return TramiteMutacionResponse(message="Trámite creado exitosamente", data=tramite)


# ---------------------------------------------------------------------------
# Item
# ---------------------------------------------------------------------------


@router.get(
    "/{tramite_id}",
    response_model=TramiteDetalleResponse,
    summary="Detalle de un trámite",
    description=(
        "Incluye los objetos ``dependencia`` y ``subdependencia`` y el bloque "
        "``formulario_edicion`` con el estado inicial del formulario de edición."
    ),
    responses={404: {"description": "Trámite no encontrado."}},
)
def detalle(
    tramite_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[Usuario, Depends(require_role(*ROLES_GESTION))],
) -> TramiteDetalleResponse:
    return tramite_service.get_detalle(db, tramite_id)


@router.put(
    "/{tramite_id}",
    response_model=TramiteMutacionResponse,
    summary="Actualizar trámite",
    description=(
        "Valida campos obligatorios, dependencias activas y coherentes, y la regla "
        "``requiere_pago`` / ``informacion_pago``. La respuesta incluye ``redirect_to``."
    ),
    responses={**_VALIDATION_RESPONSES, 404: {"description": "Trámite no encontrado."}},
)
def actualizar(
    tramite_id: int,
    data: TramiteUpdate,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[Usuario, Depends(require_role(*ROLES_GESTION))],
) -> TramiteMutacionResponse:
    tramite = tramite_service.update_tramite(db, tramite_id, data, current_user)
    return TramiteMutacionResponse(message="Trámite actualizado exitosamente", data=tramite)


@router.patch(
    "/{tramite_id}/estado",
    response_model=TramiteResponse,
    summary="Activar o desactivar trámite",
    responses={404: {"description": "Trámite no encontrado."}},
)
def cambiar_estado(
    tramite_id: int,
    data: TramiteEstadoUpdate,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[Usuario, Depends(require_role(*ROLES_GESTION))],
) -> TramiteResponse:
    return tramite_service.set_estado(db, tramite_id, data.is_active, current_user)


@router.delete(
    "/{tramite_id}",
    response_model=MessageResponse,
    summary="Eliminar trámite",
    description="Elimina el trámite definitivamente. Solo administradores.",
    responses={403: {"description": "Solo administradores."}, 404: {"description": "Trámite no encontrado."}},
)
def eliminar(
    tramite_id: int,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[Usuario, Depends(require_role(*ROLES_ADMIN))],
) -> MessageResponse:
    tramite_service.delete_tramite(db, tramite_id, current_user)
    return MessageResponse(message="Trámite eliminado exitosamente")
