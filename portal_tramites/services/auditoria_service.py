"""
Audit trail service.

``registrar_auditoria`` is called by every mutating service inside the
caller's transaction: the entry is committed (or rolled back) together
with the change it describes. Entries are never updated or deleted.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import inspect, or_
from sqlalchemy.orm import Session

from portal_tramites.models.audit_log import AuditLog
from portal_tramites.models.dependencia import Dependencia
from portal_tramites.models.tramite import Tramite
from portal_tramites.models.usuario import Usuario
from portal_tramites.schemas.auditoria import (
    AuditLogListResponse,
    AuditLogResponse,
    ResumenAdminResponse,
)
from portal_tramites.schemas.common import PaginationMeta, PaginationParams

logger = logging.getLogger(__name__)

# Never written to audit snapshots
_CAMPOS_EXCLUIDOS: frozenset[str] = frozenset({"password_hash", "api_key"})


def _valor_json(valor: Any) -> Any:
    if isinstance(valor, (datetime, date)):
        return valor.isoformat()
    if isinstance(valor, Decimal):
        return float(valor)
    return valor


def snapshot(instancia: Any) -> dict[str, Any]:
    """JSON-safe dict of the mapped column values of an ORM instance."""
    mapper = inspect(instancia).mapper
    return {
        attr.key: _valor_json(getattr(instancia, attr.key))
        for attr in mapper.column_attrs
        if attr.key not in _CAMPOS_EXCLUIDOS
    }


def registrar_auditoria(
    db: Session,
    *,
    usuario: Usuario | None,
    accion: str,
    tabla: str,
    registro_id: int | None = None,
    antes: dict[str, Any] | None = None,
    despues: dict[str, Any] | None = None,
) -> AuditLog:
    """Add an ``AuditLog`` row to the current session (no commit)."""
    entrada = AuditLog(
        user_id=usuario.id if usuario is not None else None,
        user_email=usuario.email if usuario is not None else None,
        action=accion,
        table_name=tabla,
        record_id=registro_id,
        old_data=antes,
        new_data=despues,
    )
    db.add(entrada)
    logger.debug("audit %s %s id=%s by=%s", accion, tabla, registro_id, entrada.user_email)
    return entrada


def listar_auditoria(
    db: Session,
    pagination: PaginationParams,
    search: str | None = None,
    tabla: str | None = None,
) -> AuditLogListResponse:
    """Newest-first page of audit entries.

    Args:
        db: Active SQLAlchemy session.
        pagination: Page and page size.
        search: Case-insensitive substring over action and table name.
        tabla: Exact table name filter.
    """
    q = db.query(AuditLog)
    if search:
        patron = f"%{search.strip()}%"
        q = q.filter(or_(AuditLog.action.ilike(patron), AuditLog.table_name.ilike(patron)))
    if tabla:
        q = q.filter(AuditLog.table_name == tabla)

    total = q.count()
    rows = (
        q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset((pagination.page - 1) * pagination.page_size)
        .limit(pagination.page_size)
        .all()
    )
    return AuditLogListResponse(
        data=[AuditLogResponse.model_validate(r) for r in rows],
        pagination=PaginationMeta(
            page=pagination.page,
            page_size=pagination.page_size,
            total=total,
            total_pages=math.ceil(total / pagination.page_size),
        ),
    )


def get_resumen(db: Session) -> ResumenAdminResponse:
    """Counters for the backoffice landing page."""
    return ResumenAdminResponse(
        total_tramites=db.query(Tramite).count(),
        tramites_activos=db.query(Tramite).filter(Tramite.is_active.is_(True)).count(),
        total_dependencias=db.query(Dependencia).count(),
        total_usuarios=db.query(Usuario).count(),
        total_auditoria=db.query(AuditLog).count(),
    )
