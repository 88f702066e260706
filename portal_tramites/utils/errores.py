"""
Helpers that turn validation results and database errors into
``HTTPException`` instances with the portal's Spanish error envelope.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from portal_tramites.config import get_settings

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE codes
PG_UNIQUE_VIOLATION = "23505"
PG_FOREIGN_KEY_VIOLATION = "23503"


def error_validacion(detalles: list[Any], mensaje: str = "Errores de validación") -> HTTPException:
    """400 with ``{"error": mensaje, "details": detalles}`` as detail."""
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"error": mensaje, "details": detalles},
    )


def _codigo_integridad(exc: IntegrityError) -> str | None:
    """Return the SQLSTATE of *exc*, inferring it from the message on SQLite."""
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode:
        return pgcode
    texto = str(exc.orig).upper()
    if "UNIQUE" in texto:
        return PG_UNIQUE_VIOLATION
    if "FOREIGN KEY" in texto:
        return PG_FOREIGN_KEY_VIOLATION
    return None


def error_base_datos(
    exc: SQLAlchemyError,
    *,
    mensaje_duplicado: str = "Ya existe un registro con estos datos",
    mensaje_general: str = "Error interno del servidor",
) -> HTTPException:
    """Map a database exception to the HTTP error the client should see.

    - unique violation -> 409 with *mensaje_duplicado*
    - foreign-key violation -> 400
    - anything else -> 500; the driver message is only included outside
      production.
    """
    if isinstance(exc, IntegrityError):
        codigo = _codigo_integridad(exc)
        if codigo == PG_UNIQUE_VIOLATION:
            logger.warning("Unique constraint violation: %s", exc.orig)
            return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=mensaje_duplicado)
        if codigo == PG_FOREIGN_KEY_VIOLATION:
            logger.warning("Foreign key violation: %s", exc.orig)
            return error_validacion(
                ["La dependencia o subdependencia seleccionada no existe en la base de datos"],
                mensaje="Dependencia o subdependencia no válida",
            )

    logger.error("Unexpected database error: %s", exc)
    detalle: dict[str, Any] = {"error": mensaje_general}
    if not get_settings().is_production:
        detalle["details"] = str(getattr(exc, "orig", None) or exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detalle)
