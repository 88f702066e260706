"""
SQLAlchemy engine, session factory and declarative base.

``get_db`` is the FastAPI dependency used by every router; it yields one
session per request and always closes it, even when the handler raises.

``verificar_claves_foraneas`` checks that the named foreign-key constraints
the trámite queries rely on exist in the live schema. It runs once at
startup and only logs; it never alters the schema.
"""

from __future__ import annotations

import logging
from typing import Any, Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from portal_tramites.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

_connect_args: dict[str, Any] = {}
if settings.DATABASE_URL.startswith("sqlite"):
    _connect_args["check_same_thread"] = False

engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    connect_args=_connect_args,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# ---------------------------------------------------------------------------
# Foreign-key constraint check
# ---------------------------------------------------------------------------

# table -> constraint names that must exist
CLAVES_FORANEAS_ESPERADAS: dict[str, tuple[str, ...]] = {
    "tramites": (
        "tramites_dependencia_id_fkey",
        "tramites_subdependencia_id_fkey",
    ),
    "dependencias": ("dependencias_dependencia_padre_id_fkey",),
}


def verificar_claves_foraneas(inspector: Any) -> list[str]:
    """Return the expected foreign-key constraint names missing from the schema.

    Args:
        inspector: A SQLAlchemy ``Inspector`` (``sqlalchemy.inspect(engine)``)
            or any object exposing ``get_table_names()`` and
            ``get_foreign_keys(table)``.

    Returns:
        Names of missing constraints, in declaration order. An empty list
        means every constraint is present.
    """
    tablas = set(inspector.get_table_names())
    faltantes: list[str] = []

    for tabla, esperadas in CLAVES_FORANEAS_ESPERADAS.items():
        if tabla not in tablas:
            faltantes.extend(esperadas)
            continue
        presentes = {fk.get("name") for fk in inspector.get_foreign_keys(tabla)}
        faltantes.extend(nombre for nombre in esperadas if nombre not in presentes)

    for nombre in faltantes:
        logger.warning("Foreign key constraint '%s' not found in schema", nombre)
    return faltantes
