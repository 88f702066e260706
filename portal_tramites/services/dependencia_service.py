"""
Dependencias (organizational units) service layer.

All database access for ``/api/admin/dependencias`` lives here, except the
CSV import/export which live in ``importacion_service`` and
``exportacion_service``.

Design notes
------------
- The hierarchy has two levels. ``nivel`` is derived from ``tipo`` on every
  write, never taken from the client.
- A ``subdependencia`` must point to an existing top-level ``dependencia``;
  a ``dependencia`` never keeps a parent.
- ``codigo`` and ``sigla`` uniqueness is checked up front to answer 409 with
  a readable message; the database constraint is the final guard.
- ``tipo`` and the parent are frozen while any trámite references the unit.
"""

from __future__ import annotations

import logging
import math

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal_tramites.models.dependencia import Dependencia
from portal_tramites.models.tramite import Tramite
from portal_tramites.models.usuario import Usuario
from portal_tramites.schemas.common import PaginationMeta, PaginationParams
from portal_tramites.schemas.dependencia import (
    DependenciaArbolNodo,
    DependenciaCreate,
    DependenciaListResponse,
    DependenciaResponse,
    DependenciaUpdate,
)
from portal_tramites.services.auditoria_service import registrar_auditoria, snapshot
from portal_tramites.services.selector_dependencias import cargar_hijos
from portal_tramites.utils.constants import (
    TIPO_DEPENDENCIA,
    TIPO_SUBDEPENDENCIA,
    TIPOS_DEPENDENCIA,
)
from portal_tramites.utils.errores import error_base_datos

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _get_or_404(db: Session, dependencia_id: int) -> Dependencia:
    dep: Dependencia | None = db.query(Dependencia).filter(Dependencia.id == dependencia_id).first()
    if dep is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Dependencia no encontrada",
        )
    return dep


def _bad_request(mensaje: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=mensaje)


def nivel_para(tipo: str) -> int:
    return 2 if tipo == TIPO_SUBDEPENDENCIA else 1


def _validar_estructura(
    db: Session,
    codigo: str | None,
    nombre: str | None,
    tipo: str | None,
    dependencia_padre_id: int | None,
    propia_id: int | None = None,
) -> None:
    """Required fields, allowed ``tipo`` and the parent invariant.

    Raises:
        HTTPException 400: First violated rule.
    """
    if not codigo or not nombre or not tipo:
        raise _bad_request("Los campos codigo, nombre y tipo son requeridos")
    if tipo not in TIPOS_DEPENDENCIA:
        raise _bad_request("El campo tipo debe ser 'dependencia' o 'subdependencia'")
    if tipo == TIPO_SUBDEPENDENCIA:
        if not dependencia_padre_id:
            raise _bad_request("Las subdependencias deben tener una dependencia padre")
        if propia_id is not None and dependencia_padre_id == propia_id:
            raise _bad_request("Una dependencia no puede ser su propia dependencia padre")
        padre = db.query(Dependencia).filter(Dependencia.id == dependencia_padre_id).first()
        if padre is None or padre.tipo != TIPO_DEPENDENCIA:
            raise _bad_request("La dependencia padre no existe o no es una dependencia principal")


def _validar_unicidad(
    db: Session,
    codigo: str,
    sigla: str | None,
    excluir_id: int | None = None,
) -> None:
    """Raise 409 if *codigo* or *sigla* belongs to another unit."""
    q = db.query(Dependencia.id).filter(Dependencia.codigo == codigo)
    if excluir_id is not None:
        q = q.filter(Dependencia.id != excluir_id)
    if q.first() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"El código {codigo} ya está en uso",
        )
    if sigla:
        q = db.query(Dependencia.id).filter(Dependencia.sigla == sigla)
        if excluir_id is not None:
            q = q.filter(Dependencia.id != excluir_id)
        if q.first() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"La sigla {sigla} ya está en uso",
            )


def _commit(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise error_base_datos(
            exc,
            mensaje_duplicado="El código o la sigla ya están en uso",
            mensaje_general="Error al guardar la dependencia",
        ) from exc


def _contar_tramites(db: Session, dependencia_id: int) -> int:
    return (
        db.query(Tramite)
        .filter(
            (Tramite.dependencia_id == dependencia_id)
            | (Tramite.subdependencia_id == dependencia_id)
        )
        .count()
    )


# ---------------------------------------------------------------------------
# Read operations
# ---------------------------------------------------------------------------


def listar(
    db: Session,
    pagination: PaginationParams,
    *,
    search: str | None = None,
    tipo: str | None = None,
    is_active: bool | None = None,
    nivel: int | None = None,
    dependencia_padre_id: int | None = None,
) -> DependenciaListResponse:
    """Paginated units ordered by nivel, orden, nombre."""
    q = db.query(Dependencia)
    if search:
        q = q.filter(Dependencia.nombre.ilike(f"%{search.strip()}%"))
    if tipo:
        q = q.filter(Dependencia.tipo == tipo)
    if is_active is not None:
        q = q.filter(Dependencia.is_active.is_(is_active))
    if nivel is not None:
        q = q.filter(Dependencia.nivel == nivel)
    if dependencia_padre_id is not None:
        q = q.filter(Dependencia.dependencia_padre_id == dependencia_padre_id)

    total = q.count()
    rows = (
        q.order_by(Dependencia.nivel, Dependencia.orden, Dependencia.nombre)
        .offset((pagination.page - 1) * pagination.page_size)
        .limit(pagination.page_size)
        .all()
    )
    return DependenciaListResponse(
        data=[DependenciaResponse.model_validate(d) for d in rows],
        pagination=PaginationMeta(
            page=pagination.page,
            page_size=pagination.page_size,
            total=total,
            total_pages=math.ceil(total / pagination.page_size),
        ),
    )


def get_dependencia(db: Session, dependencia_id: int) -> DependenciaResponse:
    return DependenciaResponse.model_validate(_get_or_404(db, dependencia_id))


def get_hijos(db: Session, dependencia_id: int, is_active: bool | None = None) -> list[DependenciaResponse]:
    """Children of a unit, ordered by orden then nombre.

    ``is_active=None`` returns every child; ``True``/``False`` filter.
    """
    _get_or_404(db, dependencia_id)
    hijos = cargar_hijos(db, dependencia_id, solo_activos=False)
    if is_active is not None:
        hijos = [h for h in hijos if h.is_active == is_active]
    return [DependenciaResponse.model_validate(h) for h in hijos]


def get_arbol(db: Session, is_active: bool | None = None) -> list[DependenciaArbolNodo]:
    """Top-level units with their children nested under ``hijos``.

    Children whose parent is filtered out are dropped.
    """
    q = db.query(Dependencia)
    if is_active is not None:
        q = q.filter(Dependencia.is_active.is_(is_active))
    rows = q.order_by(Dependencia.nivel, Dependencia.orden, Dependencia.nombre).all()

    nodos: dict[int, DependenciaArbolNodo] = {
        d.id: DependenciaArbolNodo(**DependenciaResponse.model_validate(d).model_dump())
        for d in rows
    }
    raices: list[DependenciaArbolNodo] = []
    for d in rows:
        nodo = nodos[d.id]
        if d.dependencia_padre_id is None:
            raices.append(nodo)
        elif d.dependencia_padre_id in nodos:
            nodos[d.dependencia_padre_id].hijos.append(nodo)
    return raices


# ---------------------------------------------------------------------------
# Write operations
# ---------------------------------------------------------------------------


def create_dependencia(db: Session, data: DependenciaCreate, usuario: Usuario) -> Dependencia:
    """Create a unit.

    Raises:
        HTTPException 400: Missing fields, bad tipo, or bad parent.
        HTTPException 409: Duplicate codigo or sigla.
    """
    codigo = (data.codigo or "").strip()
    sigla = (data.sigla or "").strip() or None
    _validar_estructura(db, codigo, data.nombre, data.tipo, data.dependencia_padre_id)
    _validar_unicidad(db, codigo, sigla)

    dep = Dependencia(
        **data.model_dump(
            exclude={"codigo", "sigla", "tipo", "dependencia_padre_id", "orden", "is_active"}
        ),
        codigo=codigo,
        sigla=sigla,
        tipo=data.tipo,
        dependencia_padre_id=data.dependencia_padre_id if data.tipo == TIPO_SUBDEPENDENCIA else None,
        nivel=nivel_para(data.tipo),
        orden=data.orden or 0,
        is_active=data.is_active is not False,
        created_by=usuario.id,
        updated_by=usuario.id,
    )
    db.add(dep)
    try:
        db.flush()
    except SQLAlchemyError as exc:
        db.rollback()
        raise error_base_datos(exc, mensaje_duplicado="El código o la sigla ya están en uso") from exc

    registrar_auditoria(
        db, usuario=usuario, accion="INSERT", tabla="dependencias",
        registro_id=dep.id, despues=snapshot(dep),
    )
    _commit(db)
    db.refresh(dep)
    logger.info("create_dependencia: id=%d codigo=%s by=%s", dep.id, dep.codigo, usuario.email)
    return dep


def update_dependencia(
    db: Session,
    dependencia_id: int,
    data: DependenciaUpdate,
    usuario: Usuario,
) -> Dependencia:
    """Apply a partial update; the merged result must still satisfy every rule.

    Raises:
        HTTPException 404: Unit not found.
        HTTPException 400: Structural rule violated, or tipo / parent change
                           on a unit that trámites reference.
        HTTPException 409: Duplicate codigo or sigla.
    """
    dep = _get_or_404(db, dependencia_id)
    cambios = data.model_dump(exclude_unset=True)
    for campo in ("orden", "is_active"):
        if cambios.get(campo, 0) is None:
            cambios.pop(campo)
    if "codigo" in cambios:
        cambios["codigo"] = (cambios["codigo"] or "").strip()
    if "sigla" in cambios:
        cambios["sigla"] = (cambios["sigla"] or "").strip() or None

    codigo = cambios.get("codigo", dep.codigo)
    nombre = cambios.get("nombre", dep.nombre)
    tipo = cambios.get("tipo", dep.tipo)
    padre_id = cambios.get("dependencia_padre_id", dep.dependencia_padre_id)

    _validar_estructura(db, codigo, nombre, tipo, padre_id, propia_id=dep.id)
    _validar_unicidad(db, codigo, cambios.get("sigla", dep.sigla), excluir_id=dep.id)

    if tipo == TIPO_SUBDEPENDENCIA and dep.tipo == TIPO_DEPENDENCIA:
        if db.query(Dependencia).filter(Dependencia.dependencia_padre_id == dep.id).count():
            raise _bad_request(
                "No se puede convertir en subdependencia una dependencia con subdependencias asociadas"
            )

    nuevo_padre = padre_id if tipo == TIPO_SUBDEPENDENCIA else None
    if tipo != dep.tipo or nuevo_padre != dep.dependencia_padre_id:
        asociados = _contar_tramites(db, dep.id)
        if asociados:
            raise _bad_request(
                f'No se puede cambiar el tipo ni la dependencia padre de "{dep.nombre}" '
                f"porque tiene {asociados} trámites asociados"
            )

    antes = snapshot(dep)
    for field, value in cambios.items():
        setattr(dep, field, value)
    dep.nivel = nivel_para(tipo)
    if tipo == TIPO_DEPENDENCIA:
        dep.dependencia_padre_id = None
    dep.updated_by = usuario.id

    registrar_auditoria(
        db, usuario=usuario, accion="UPDATE", tabla="dependencias",
        registro_id=dep.id, antes=antes, despues=snapshot(dep),
    )
    _commit(db)
    db.refresh(dep)
    logger.info("update_dependencia: id=%d fields=%s by=%s", dep.id, list(cambios.keys()), usuario.email)
    return dep


def set_estado(db: Session, dependencia_id: int, is_active: object, usuario: Usuario) -> Dependencia:
    """Activate or deactivate a unit.

    Raises:
        HTTPException 400: ``is_active`` is not a boolean, or deactivation
                           while trámites still reference the unit.
        HTTPException 404: Unit not found.
    """
    if not isinstance(is_active, bool):
        raise _bad_request("El campo is_active debe ser un valor booleano")

    dep = _get_or_404(db, dependencia_id)
    if not is_active:
        asociados = _contar_tramites(db, dep.id)
        if asociados:
            raise _bad_request(
                f'No se puede desactivar la dependencia "{dep.nombre}" porque tiene '
                f"{asociados} trámites asociados"
            )

    antes = snapshot(dep)
    dep.is_active = is_active
    dep.updated_by = usuario.id
    registrar_auditoria(
        db, usuario=usuario, accion="UPDATE", tabla="dependencias",
        registro_id=dep.id, antes=antes, despues=snapshot(dep),
    )
    _commit(db)
    db.refresh(dep)
    logger.info("set_estado: dependencia id=%d is_active=%s by=%s", dep.id, is_active, usuario.email)
    return dep


def delete_dependencia(db: Session, dependencia_id: int, usuario: Usuario) -> None:
    """Delete a unit that no trámite and no child unit references.

    Raises:
        HTTPException 400: Trámites or sub-units still reference it.
        HTTPException 404: Unit not found.
    """
    dep = _get_or_404(db, dependencia_id)

    asociados = _contar_tramites(db, dep.id)
    if asociados:
        raise _bad_request(
            f'No se puede eliminar la dependencia "{dep.nombre}" porque tiene '
            f"{asociados} trámites asociados"
        )
    hijos = db.query(Dependencia).filter(Dependencia.dependencia_padre_id == dep.id).count()
    if hijos:
        raise _bad_request(
            f'No se puede eliminar la dependencia "{dep.nombre}" porque tiene '
            f"{hijos} subdependencias asociadas"
        )

    antes = snapshot(dep)
    db.delete(dep)
    registrar_auditoria(
        db, usuario=usuario, accion="DELETE", tabla="dependencias",
        registro_id=dependencia_id, antes=antes,
    )
    _commit(db)
    logger.info("delete_dependencia: id=%d by=%s", dependencia_id, usuario.email)
