"""
Audit log and backoffice summary router.

Mounts under ``/api/admin`` (prefix set in ``main.py``). The audit log is
read-only: there are no update or delete endpoints.

Endpoints
---------
GET /auditoria   Paginated audit entries (admin).
GET /resumen     Counters for the backoffice landing page (admin, supervisor).
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from portal_tramites.database import get_db
from portal_tramites.models.usuario import Usuario
from portal_tramites.schemas.auditoria import AuditLogListResponse, ResumenAdminResponse
from portal_tramites.schemas.common import PaginationParams
from portal_tramites.services import auditoria_service
from portal_tramites.services.auth_service import require_role
from portal_tramites.utils.constants import ROLES_ADMIN, ROLES_GESTION

router = APIRouter(tags=["Auditoría"])


@router.get(
    "/auditoria",
    response_model=AuditLogListResponse,
    summary="Registro de auditoría",
    description=(
        "Entradas más recientes primero. ``search`` busca en acción y tabla; "
        "``tabla`` filtra por nombre exacto de tabla."
    ),
)
def listar_auditoria(
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[Usuario, Depends(require_role(*ROLES_ADMIN))],
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=200)] = 20,
    search: Annotated[str | None, Query(max_length=100)] = None,
    tabla: Annotated[str | None, Query(max_length=100)] = None,
) -> AuditLogListResponse:
    return auditoria_service.listar_auditoria(
        db, PaginationParams(page=page, page_size=page_size), search=search, tabla=tabla
    )


@router.get("/resumen", response_model=ResumenAdminResponse, summary="Resumen del backoffice")
def resumen(
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[Usuario, Depends(require_role(*ROLES_GESTION))],
) -> ResumenAdminResponse:
    return auditoria_service.get_resumen(db)
