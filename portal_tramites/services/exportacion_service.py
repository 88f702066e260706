"""
Export service layer.

Builds the downloadable files of the backoffice. Tabular CSVs are written
with pandas so quoting of commas, quotes and line breaks is handled in one
place; the Excel report goes through ``ExcelExporter``.

Supported exports
-----------------
- Dependencias: CSV (re-importable layout plus TIPO / ESTADO / NIVEL),
  hierarchical JSON, styled Excel report, and the empty import template.
- Contactos: CSV template for the contacts import.
- Trámites: CSV in the positional import layout with unit names, plus
  ``is_active`` / ``created_at`` / ``updated_at``.

Every function returns raw bytes; the routers wrap them in a
``StreamingResponse`` with an ``attachment`` disposition.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import pandas as pd
from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from portal_tramites.exporters.excel_exporter import ExcelExporter
from portal_tramites.models.dependencia import Dependencia
from portal_tramites.models.tramite import Tramite
from portal_tramites.services.importacion_service import PLANTILLA_CONTACTOS
from portal_tramites.utils.constants import (
    COLUMNAS_EXPORT_DEPENDENCIAS,
    COLUMNAS_EXPORT_TRAMITES_EXTRA,
    COLUMNAS_IMPORT_DEPENDENCIAS,
    COLUMNAS_TRAMITES,
    MARCA_DEPENDENCIA_DIRECTA,
    TIPO_DEPENDENCIA,
)

logger = logging.getLogger(__name__)

_CSV_ENCODING = "utf-8-sig"

_FILAS_PLANTILLA_DEPENDENCIAS: list[list[str]] = [
    ["000", "DA", MARCA_DEPENDENCIA_DIRECTA, "Despacho Alcalde", "000"],
    ["001", "OAJ", "Oficina Asesora Jurídica", "Despacho Alcalde", "000"],
    ["010", "SP", MARCA_DEPENDENCIA_DIRECTA, "Secretaría de Planeación", "010"],
    ["011", "OSIE", "Dirección Sistemas de la Información y Estadísticas", "Secretaría de Planeación", "010"],
]

_COLUMNAS_EXCEL_DEPENDENCIAS: list[str] = [
    "CODIGO",
    "SIGLA",
    "NOMBRE",
    "TIPO",
    "DEPENDENCIA_PADRE",
    "CODIGO_PADRE",
    "NIVEL",
    "ESTADO",
    "RESPONSABLE",
    "EMAIL",
    "EXTENSION",
    "DIRECCION",
    "HORARIO_ATENCION",
    "FECHA_CREACION",
    "FECHA_ACTUALIZACION",
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _df_to_csv(df: pd.DataFrame) -> bytes:
    return df.to_csv(index=False, lineterminator="\n").encode(_CSV_ENCODING)


def _estado(is_active: bool) -> str:
    return "Activa" if is_active else "Inactiva"


def _fecha(valor: Any) -> str:
    return valor.isoformat() if valor is not None else ""


def _dependencias_para_exportar(db: Session, is_active: bool | None) -> list[Dependencia]:
    """Units ordered by nivel, orden, nombre.

    Raises:
        HTTPException 404: Nothing to export.
    """
    q = db.query(Dependencia)
    if is_active is not None:
        q = q.filter(Dependencia.is_active.is_(is_active))
    rows = q.order_by(Dependencia.nivel, Dependencia.orden, Dependencia.nombre).all()
    if not rows:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No hay dependencias para exportar",
        )
    return rows


# ---------------------------------------------------------------------------
# Dependencias
# ---------------------------------------------------------------------------


def exportar_dependencias_csv(db: Session, is_active: bool | None = None) -> bytes:
    """CSV in the import layout; top-level units point at themselves.

    A top-level unit is written with ``Subdependencia = "Directo"`` and its
    own name and code in the parent columns, so the file imports back into
    the same tree.
    """
    filas = []
    for dep in _dependencias_para_exportar(db, is_active):
        padre = dep.padre
        if padre is not None:
            nombre_padre, codigo_padre = padre.nombre, padre.codigo
        elif dep.tipo == TIPO_DEPENDENCIA:
            nombre_padre, codigo_padre = dep.nombre, dep.codigo
        else:
            nombre_padre, codigo_padre = "", ""
        filas.append([
            dep.codigo,
            dep.sigla or "",
            MARCA_DEPENDENCIA_DIRECTA if dep.tipo == TIPO_DEPENDENCIA else dep.nombre,
            nombre_padre,
            codigo_padre,
            dep.tipo,
            _estado(dep.is_active),
            dep.nivel,
        ])
    logger.info("exportar_dependencias_csv: %d rows", len(filas))
    return _df_to_csv(pd.DataFrame(filas, columns=COLUMNAS_EXPORT_DEPENDENCIAS))


def _nodo_json(dep: Dependencia, hijos_por_padre: dict[int | None, list[Dependencia]]) -> dict[str, Any]:
    return {
        "id": dep.id,
        "codigo": dep.codigo,
        "sigla": dep.sigla,
        "nombre": dep.nombre,
        "tipo": dep.tipo,
        "nivel": dep.nivel,
        "orden": dep.orden,
        "is_active": dep.is_active,
        "responsable": dep.responsable,
        "correo_electronico": dep.correo_electronico,
        "extension_telefonica": dep.extension_telefonica,
        "direccion": dep.direccion,
        "horario_atencion": dep.horario_atencion,
        "created_at": _fecha(dep.created_at),
        "updated_at": _fecha(dep.updated_at),
        "parent": (
            {"nombre": dep.padre.nombre, "codigo": dep.padre.codigo}
            if dep.padre is not None
            else None
        ),
        "children": [_nodo_json(h, hijos_por_padre) for h in hijos_por_padre.get(dep.id, [])],
    }


def exportar_dependencias_json(db: Session, is_active: bool | None = None) -> bytes:
    """Hierarchical JSON: top-level units with their sub-units under ``children``.

    A sub-unit whose parent was filtered out is listed at the top level.
    """
    rows = _dependencias_para_exportar(db, is_active)
    ids = {d.id for d in rows}
    hijos_por_padre: dict[int | None, list[Dependencia]] = {}
    for dep in rows:
        padre_id = dep.dependencia_padre_id if dep.dependencia_padre_id in ids else None
        hijos_por_padre.setdefault(padre_id, []).append(dep)

    arbol = [_nodo_json(d, hijos_por_padre) for d in hijos_por_padre.get(None, [])]
    return json.dumps(arbol, ensure_ascii=False, indent=2).encode("utf-8")


def exportar_dependencias_excel(db: Session, is_active: bool | None = None) -> bytes:
    """Styled ``.xlsx`` report with a summary row and one line per unit."""
    rows = _dependencias_para_exportar(db, is_active)

    filas = []
    for dep in rows:
        if dep.padre is not None:
            nombre_padre, codigo_padre = dep.padre.nombre, dep.padre.codigo
        elif dep.tipo == TIPO_DEPENDENCIA:
            nombre_padre, codigo_padre = "N/A", "N/A"
        else:
            nombre_padre, codigo_padre = "Sin padre", "Sin codigo"
        filas.append([
            dep.codigo,
            dep.sigla or "",
            dep.nombre,
            dep.tipo,
            nombre_padre,
            codigo_padre,
            dep.nivel,
            _estado(dep.is_active),
            dep.responsable or "",
            dep.correo_electronico or "",
            dep.extension_telefonica or "",
            dep.direccion or "",
            dep.horario_atencion or "",
            _fecha(dep.created_at),
            _fecha(dep.updated_at),
        ])

    filtros = {}
    if is_active is not None:
        filtros["Estado"] = "Activas" if is_active else "Inactivas"

    exporter = ExcelExporter(title="Dependencias", filters=filtros, sheet_name="Dependencias")
    exporter.add_header(num_cols=len(_COLUMNAS_EXCEL_DEPENDENCIAS))
    exporter.add_summary_row({
        "Total": len(rows),
        "Dependencias": sum(1 for d in rows if d.tipo == TIPO_DEPENDENCIA),
        "Subdependencias": sum(1 for d in rows if d.tipo != TIPO_DEPENDENCIA),
        "Activas": sum(1 for d in rows if d.is_active),
    })
    exporter.add_data_table(_COLUMNAS_EXCEL_DEPENDENCIAS, filas)
    file_bytes = exporter.finalize()

    logger.info("exportar_dependencias_excel: %d rows, %d bytes", len(filas), len(file_bytes))
    return file_bytes


def plantilla_dependencias() -> bytes:
    """Import template with example rows for two units and their sub-units."""
    df = pd.DataFrame(_FILAS_PLANTILLA_DEPENDENCIAS, columns=COLUMNAS_IMPORT_DEPENDENCIAS)
    return _df_to_csv(df)


def plantilla_contactos() -> bytes:
    return PLANTILLA_CONTACTOS.encode(_CSV_ENCODING)


# ---------------------------------------------------------------------------
# Trámites
# ---------------------------------------------------------------------------


def exportar_tramites_csv(db: Session, include_inactive: bool = False) -> bytes:
    """All trámites by id, in the import column order plus state and dates.

    The ``dependencia`` / ``subdependencia`` columns hold unit names, which
    the trámites import resolves back to ids.
    """
    q = db.query(Tramite)
    if not include_inactive:
        q = q.filter(Tramite.is_active.is_(True))
    tramites = q.order_by(Tramite.id).all()

    filas = []
    for t in tramites:
        fila: dict[str, Any] = {col: getattr(t, col, None) for col in COLUMNAS_TRAMITES}
        fila["dependencia"] = t.dependencia_nombre or ""
        fila["subdependencia"] = t.subdependencia_nombre or ""
        fila["is_active"] = "true" if t.is_active else "false"
        fila["created_at"] = _fecha(t.created_at)
        fila["updated_at"] = _fecha(t.updated_at)
        filas.append(fila)

    df = pd.DataFrame(filas, columns=[*COLUMNAS_TRAMITES, *COLUMNAS_EXPORT_TRAMITES_EXTRA])
    logger.info("exportar_tramites_csv: %d rows include_inactive=%s", len(filas), include_inactive)
    return _df_to_csv(df.fillna(""))
