"""
Backoffice organizational-units router.

Mounts under ``/api/admin/dependencias`` (prefix set in ``main.py``).

Requires the admin or supervisor role; ``DELETE`` is restricted to admins.
Static paths (``/arbol``, ``/importar``, ``/exportar/...``) are declared
before ``/{id}`` so they are not captured by the id parameter.

Endpoints
---------
GET    /                    Paginated list with filters.
GET    /arbol               Hierarchical tree.
POST   /importar            Import units from CSV / XLSX.
POST   /import-contactos    Import contact data for existing units.
GET    /import-contactos    Contacts template.
GET    /exportar/csv        CSV export (re-importable layout).
GET    /exportar/json       Hierarchical JSON export.
GET    /exportar/excel      Styled Excel report.
GET    /exportar/plantilla  Empty import template.
POST   /                    Create.
GET    /{id}                Detail.
GET    /{id}/hijos          Children.
PUT    /{id}                Update.
PUT    /{id}/estado         Activate / deactivate.
DELETE /{id}                Delete (admin only).
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
from portal_tramites.schemas.common import MessageResponse, PaginationParams
from portal_tramites.schemas.dependencia import (
    DependenciaArbolNodo,
    DependenciaCreate,
    DependenciaEstadoUpdate,
    DependenciaListResponse,
    DependenciaResponse,
    DependenciaUpdate,
    ImportacionContactosResponse,
    ImportacionDependenciasResponse,
)
from portal_tramites.services import dependencia_service, exportacion_service, importacion_service
from portal_tramites.services.auth_service import require_role
from portal_tramites.utils.constants import ROLES_ADMIN, ROLES_GESTION

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Dependencias (admin)"])

_MEDIA_XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _make_filename(base: str, ext: str) -> str:
    """``dependencias-export-2025-03-01.csv`` style attachment name."""
    return f"{base}-{date.today().isoformat()}.{ext}"


def _descarga(contenido: bytes, media_type: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        io.BytesIO(contenido),
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


@router.get(
    "",
    response_model=DependenciaListResponse,
    summary="Listar dependencias",
    description="Ordenadas por nivel, orden y nombre. ``search`` filtra por nombre.",
)
def listar(
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[Usuario, Depends(require_role(*ROLES_GESTION))],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=200)] = 10,
    search: Annotated[str | None, Query(max_length=200)] = None,
    tipo: Annotated[str | None, Query()] = None,
    is_active: Annotated[bool | None, Query()] = None,
    nivel: Annotated[int | None, Query(ge=1)] = None,
    dependencia_padre_id: Annotated[int | None, Query(ge=1)] = None,
) -> DependenciaListResponse:
    return dependencia_service.listar(
        db,
        PaginationParams(page=page, page_size=limit),
        search=search,
        tipo=tipo,
        is_active=is_active,
        nivel=nivel,
        dependencia_padre_id=dependencia_padre_id,
    )


@router.get(
    "/arbol",
    response_model=list[DependenciaArbolNodo],
    summary="Árbol de dependencias",
)
def arbol(
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[Usuario, Depends(require_role(*ROLES_GESTION))],
    is_active: Annotated[bool | None, Query()] = None,
) -> list[DependenciaArbolNodo]:
    return dependencia_service.get_arbol(db, is_active=is_active)


@router.post(
    "",
    response_model=DependenciaResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Crear dependencia",
    responses={
        400: {"description": "Campos faltantes, tipo inválido o dependencia padre inválida."},
        409: {"description": "Código o sigla en uso."},
    },
)
def crear(
    data: DependenciaCreate,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[Usuario, Depends(require_role(*ROLES_GESTION))],
) -> DependenciaResponse:
    return DependenciaResponse.model_validate(
        dependencia_service.create_dependencia(db, data, current_user)
    )


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


@router.post(
    "/importar",
    response_model=ImportacionDependenciasResponse,
    summary="Importar dependencias",
    description=(
        "Encabezados: CODIGO SUBDEPENDENCIA, SIGLA, Subdependencia, Dependencias, "
        "CODIGO DEPENDENCIA. Una fila con Subdependencia = \"Directo\" o sin código de "
        "dependencia es una dependencia principal."
    ),
    responses={400: {"description": "Archivo inválido o sin filas válidas."}},
)
async def importar(
    file: Annotated[UploadFile, File(description="Archivo .csv o .xlsx")],
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[Usuario, Depends(require_role(*ROLES_GESTION))],
) -> ImportacionDependenciasResponse:
    logger.info("import dependencias: user='%s' file='%s'", current_user.email, file.filename)
    return await importacion_service.importar_dependencias(db, file, current_user)


@router.post(
    "/import-contactos",
    response_model=ImportacionContactosResponse,
    summary="Importar contactos de dependencias",
    description=(
        "Encabezados: CODIGO, SIGLA, DEPENDENCIA, RESPONSABLE, CORREO ELECTRONICO, EXT, "
        "DIRECCIÓN. Actualiza las dependencias existentes por código."
    ),
)
async def importar_contactos(
    file: Annotated[UploadFile, File(description="Archivo .csv o .xlsx")],
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[Usuario, Depends(require_role(*ROLES_GESTION))],
) -> ImportacionContactosResponse:
    logger.info("import contactos: user='%s' file='%s'", current_user.email, file.filename)
    return await importacion_service.importar_contactos(db, file, current_user)


@router.get(
    "/import-contactos",
    summary="Plantilla de contactos",
    response_class=StreamingResponse,
    responses={200: {"content": {"text/csv": {}}}},
)
def plantilla_contactos(
    _current_user: Annotated[Usuario, Depends(require_role(*ROLES_GESTION))],
) -> StreamingResponse:
    return _descarga(
        exportacion_service.plantilla_contactos(),
        "text/csv; charset=utf-8",
        "plantilla-contactos.csv",
    )


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


@router.get(
    "/exportar/csv",
    summary="Exportar dependencias a CSV",
    response_class=StreamingResponse,
    responses={200: {"content": {"text/csv": {}}}, 404: {"description": "No hay dependencias."}},
)
def exportar_csv(
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[Usuario, Depends(require_role(*ROLES_GESTION))],
    is_active: Annotated[bool | None, Query()] = None,
) -> StreamingResponse:
    return _descarga(
        exportacion_service.exportar_dependencias_csv(db, is_active),
        "text/csv; charset=utf-8",
        _make_filename("dependencias-export", "csv"),
    )


@router.get(
    "/exportar/json",
    summary="Exportar dependencias a JSON jerárquico",
    response_class=StreamingResponse,
    responses={200: {"content": {"application/json": {}}}, 404: {"description": "No hay dependencias."}},
)
def exportar_json(
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[Usuario, Depends(require_role(*ROLES_GESTION))],
    is_active: Annotated[bool | None, Query()] = None,
) -> StreamingResponse:
    return _descarga(
        exportacion_service.exportar_dependencias_json(db, is_active),
        "application/json",
        _make_filename("dependencias-export", "json"),
    )


@router.get(
    "/exportar/excel",
    summary="Exportar dependencias a Excel",
    response_class=StreamingResponse,
    responses={200: {"content": {_MEDIA_XLSX: {}}}, 404: {"description": "No hay dependencias."}},
)
def exportar_excel(
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[Usuario, Depends(require_role(*ROLES_GESTION))],
    is_active: Annotated[bool | None, Query()] = None,
) -> StreamingResponse:
    return _descarga(
        exportacion_service.exportar_dependencias_excel(db, is_active),
        _MEDIA_XLSX,
        _make_filename("dependencias-export", "xlsx"),
    )


@router.get(
    "/exportar/plantilla",
    summary="Plantilla de importación de dependencias",
    response_class=StreamingResponse,
    responses={200: {"content": {"text/csv": {}}}},
)
def plantilla(
    _current_user: Annotated[Usuario, Depends(require_role(*ROLES_GESTION))],
) -> StreamingResponse:
    return _descarga(
        exportacion_service.plantilla_dependencias(),
        "text/csv; charset=utf-8",
        "plantilla-dependencias.csv",
    )


# ---------------------------------------------------------------------------
# Item
# ---------------------------------------------------------------------------


@router.get(
    "/{dependencia_id}",
    response_model=DependenciaResponse,
    summary="Detalle de dependencia",
    responses={404: {"description": "Dependencia no encontrada."}},
)
def detalle(
    dependencia_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[Usuario, Depends(require_role(*ROLES_GESTION))],
) -> DependenciaResponse:
    return dependencia_service.get_dependencia(db, dependencia_id)


@router.get(
    "/{dependencia_id}/hijos",
    response_model=list[DependenciaResponse],
    summary="Subdependencias de una dependencia",
    description="Alimenta el selector de subdependencia del formulario de trámites.",
    responses={404: {"description": "Dependencia no encontrada."}},
)
def hijos(
    dependencia_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[Usuario, Depends(require_role(*ROLES_GESTION))],
    is_active: Annotated[bool | None, Query()] = True,
) -> list[DependenciaResponse]:
    return dependencia_service.get_hijos(db, dependencia_id, is_active=is_active)


@router.put(
    "/{dependencia_id}",
    response_model=DependenciaResponse,
    summary="Actualizar dependencia",
    responses={
        400: {"description": "Datos inválidos."},
        404: {"description": "Dependencia no encontrada."},
        409: {"description": "Código o sigla en uso."},
    },
)
def actualizar(
    dependencia_id: int,
    data: DependenciaUpdate,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[Usuario, Depends(require_role(*ROLES_GESTION))],
) -> DependenciaResponse:
    return DependenciaResponse.model_validate(
        dependencia_service.update_dependencia(db, dependencia_id, data, current_user)
    )


@router.put(
    "/{dependencia_id}/estado",
    response_model=DependenciaResponse,
    summary="Activar o desactivar dependencia",
    responses={
        400: {"description": "Valor no booleano o trámites asociados."},
        404: {"description": "Dependencia no encontrada."},
    },
)
def cambiar_estado(
    dependencia_id: int,
    data: DependenciaEstadoUpdate,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[Usuario, Depends(require_role(*ROLES_GESTION))],
) -> DependenciaResponse:
    return DependenciaResponse.model_validate(
        dependencia_service.set_estado(db, dependencia_id, data.is_active, current_user)
    )


@router.delete(
    "/{dependencia_id}",
    response_model=MessageResponse,
    summary="Eliminar dependencia",
    responses={
        400: {"description": "Tiene trámites o subdependencias asociadas."},
        403: {"description": "Solo administradores."},
        404: {"description": "Dependencia no encontrada."},
    },
)
def eliminar(
    dependencia_id: int,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[Usuario, Depends(require_role(*ROLES_ADMIN))],
) -> MessageResponse:
    dependencia_service.delete_dependencia(db, dependencia_id, current_user)
    return MessageResponse(message="Dependencia eliminada exitosamente")
