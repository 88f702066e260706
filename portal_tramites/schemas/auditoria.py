"""Pydantic v2 schemas for the audit log and the admin dashboard summary."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from portal_tramites.schemas.common import PaginationMeta


class AuditLogResponse(BaseModel):
    id: int
    user_id: int | None
    user_email: str | None
    action: str
    table_name: str
    record_id: int | None
    old_data: Any | None = None
    new_data: Any | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditLogListResponse(BaseModel):
    data: list[AuditLogResponse]
    pagination: PaginationMeta


class ResumenAdminResponse(BaseModel):
    """Counters shown on the backoffice landing page."""

    total_tramites: int
    tramites_activos: int
    total_dependencias: int
    total_usuarios: int
    total_auditoria: int
