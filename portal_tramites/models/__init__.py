"""SQLAlchemy models package for the Portal de Trámites.

Importing all models here ensures that SQLAlchemy's mapper registry is
populated before ``Base.metadata.create_all()`` or Alembic migrations run.
Parent tables are registered before their children.

Usage from other modules:
    from portal_tramites.models import Dependencia, Tramite
"""

# Organizational hierarchy
from portal_tramites.models.dependencia import Dependencia  # noqa: F401

# Catalog
from portal_tramites.models.tramite import Tramite  # noqa: F401

# Backoffice users and audit trail
from portal_tramites.models.usuario import Usuario  # noqa: F401
from portal_tramites.models.audit_log import AuditLog  # noqa: F401

# Chat integration
from portal_tramites.models.n8n_config import N8nConfig  # noqa: F401

__all__ = [
    "Dependencia",
    "Tramite",
    "Usuario",
    "AuditLog",
    "N8nConfig",
]
