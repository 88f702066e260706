"""
Trámites service layer.

All database access for ``/api/tramites`` (public catalog) and
``/api/admin/tramites`` (backoffice) lives here. Functions receive a
SQLAlchemy ``Session`` and return schema instances or ORM objects ready for
serialisation by FastAPI.

Design notes
------------
- Unit names are resolved through the explicitly named foreign keys on
  ``Tramite``; nothing relies on relationship inference.
- Form validation gathers every problem before answering, so the client
  receives one 400 with the complete ``details`` list.
- Every mutation writes an ``audit_logs`` row in the same transaction.
- Deactivation (``PATCH /estado``) is the normal way to retire a trámite;
  ``DELETE`` removes the row and is reserved to admins.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal_tramites.config import get_settings
from portal_tramites.models.dependencia import Dependencia
from portal_tramites.models.tramite import Tramite
from portal_tramites.models.usuario import Usuario
from portal_tramites.schemas.tramite import (
    CatalogoResponse,
    FormularioEdicion,
    TramiteCreate,
    TramiteDetalleResponse,
    TramiteResponse,
    TramiteUpdate,
)
from portal_tramites.services import busqueda_service
from portal_tramites.services.auditoria_service import registrar_auditoria, snapshot
from portal_tramites.services.selector_dependencias import (
    SeleccionDependencia,
    SeleccionInvalida,
    cargar_hijos,
    resolver_par_dependencias,
)
from portal_tramites.utils.constants import TIPO_DEPENDENCIA, TIPO_SUBDEPENDENCIA, VALORES_REQUIERE_PAGO
from portal_tramites.utils.errores import error_base_datos, error_validacion
from portal_tramites.utils.validacion import (
    normalizar_requiere_pago,
    validar_tramite,
)

logger = logging.getLogger(__name__)

# Text columns stored trimmed, with "" for optional link/form fields
_CAMPOS_TEXTO_RECORTADO: tuple[str, ...] = (
    "nombre_tramite",
    "descripcion",
    "tiempo_respuesta",
    "requisitos",
    "instrucciones",
)
_CAMPOS_OPCIONALES_VACIOS: tuple[str, ...] = ("formulario", "url_suit", "url_gov")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _get_or_404(db: Session, tramite_id: int) -> Tramite:
    tramite: Tramite | None = db.query(Tramite).filter(Tramite.id == tramite_id).first()
    if tramite is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Trámite no encontrado",
        )
    return tramite


def _limpiar(datos: dict[str, Any]) -> dict[str, Any]:
    """Trim text fields and normalise optional ones before persisting."""
    limpio = dict(datos)
    for campo in _CAMPOS_TEXTO_RECORTADO:
        if isinstance(limpio.get(campo), str):
            limpio[campo] = limpio[campo].strip()
    for campo in _CAMPOS_OPCIONALES_VACIOS:
        if campo in limpio:
            limpio[campo] = (limpio[campo] or "").strip()
    if "informacion_pago" in limpio:
        limpio["informacion_pago"] = (limpio["informacion_pago"] or "").strip() or None
    if "requiere_pago" in limpio:
        limpio["requiere_pago"] = normalizar_requiere_pago(limpio["requiere_pago"])
    for campo in ("dependencia_id", "subdependencia_id"):
        if campo in limpio:
            limpio[campo] = limpio[campo] or None
    return limpio


def resolver_id_por_nombre(db: Session, nombre: str, tipo: str) -> int | None:
    dep = (
        db.query(Dependencia)
        .filter(func.lower(Dependencia.nombre) == nombre.strip().lower(), Dependencia.tipo == tipo)
        .first()
    )
    return dep.id if dep is not None else None


def _seleccion_de(db: Session, tramite: Tramite) -> SeleccionDependencia:
    """Rebuild the selector state of a stored trámite for the edit form."""
    seleccion = SeleccionDependencia()
    if tramite.dependencia_id is None:
        return seleccion
    hijos = [h.id for h in cargar_hijos(db, tramite.dependencia_id, solo_activos=False)]
    seleccion = seleccion.seleccionar_dependencia(tramite.dependencia_id, hijos)
    if tramite.subdependencia_id is not None:
        try:
            seleccion = seleccion.seleccionar_subdependencia(tramite.subdependencia_id)
        except SeleccionInvalida:
            logger.warning(
                "Tramite %d: subdependencia %d is not a child of dependencia %d",
                tramite.id, tramite.subdependencia_id, tramite.dependencia_id,
            )
    return seleccion


def construir_formulario_edicion(db: Session, tramite: Tramite) -> FormularioEdicion:
    """Initial state of the admin edit form for *tramite*."""
    radio = tramite.requiere_pago if tramite.requiere_pago in VALORES_REQUIERE_PAGO else ""
    seleccion = _seleccion_de(db, tramite)
    return FormularioEdicion(
        requiere_pago=radio,
        mostrar_informacion_pago=radio == "Sí",
        informacion_pago=tramite.informacion_pago or "",
        seleccion={
            "estado": seleccion.estado.value,
            "dependencia_id": seleccion.dependencia_id,
            "subdependencia_id": seleccion.subdependencia_id,
            "hijos": list(seleccion.hijos),
        },
    )


def _detalle(db: Session, tramite: Tramite) -> TramiteDetalleResponse:
    detalle = TramiteDetalleResponse.model_validate(tramite)
    detalle.formulario_edicion = construir_formulario_edicion(db, tramite)
    return detalle


def _commit(db: Session, mensaje_duplicado: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise error_base_datos(
            exc,
            mensaje_duplicado=mensaje_duplicado,
            mensaje_general="Error al guardar el trámite",
        ) from exc


# ---------------------------------------------------------------------------
# Public catalog
# ---------------------------------------------------------------------------


def listar_activos(db: Session) -> list[Tramite]:
    return (
        db.query(Tramite)
        .filter(Tramite.is_active.is_(True))
        .order_by(Tramite.nombre_tramite)
        .all()
    )


def get_catalogo(
    db: Session,
    *,
    query: str | None = None,
    categoria: str | None = None,
    modalidad: str | None = None,
    pago: str | None = None,
    dependencia: str | None = None,
    page: int = 1,
    page_size: int | None = None,
) -> CatalogoResponse:
    """Filter, paginate and summarise the active trámites for the catalog.

    Category chip counts are computed after the text search but before the
    category filter, so every chip shows how many results it would yield.
    """
    page_size = page_size or get_settings().CATALOGO_PAGE_SIZE
    activos = [TramiteResponse.model_validate(t) for t in listar_activos(db)]

    buscados = busqueda_service.buscar_tramites(activos, query)
    filtrados = busqueda_service.aplicar_filtros(
        buscados,
        categoria=categoria,
        modalidad=modalidad,
        pago=pago,
        dependencia=dependencia,
    )
    items, total_pages = busqueda_service.paginar(filtrados, page, page_size)

    return CatalogoResponse(
        items=items,
        pagination={
            "page": page,
            "page_size": page_size,
            "total": len(filtrados),
            "total_pages": total_pages,
        },
        categorias=busqueda_service.contar_por_categoria(buscados),
        modalidades=sorted({t.modalidad for t in activos if t.modalidad}),
        dependencias=sorted({t.dependencia_nombre for t in activos if t.dependencia_nombre}),
    )


def get_publico(db: Session, tramite_id: int) -> TramiteResponse:
    tramite = _get_or_404(db, tramite_id)
    if not tramite.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trámite no encontrado")
    return TramiteResponse.model_validate(tramite)


# ---------------------------------------------------------------------------
# Backoffice: read operations
# ---------------------------------------------------------------------------


def listar_admin(db: Session, include_inactive: bool = True) -> list[TramiteResponse]:
    """All trámites, newest first, with unit names resolved."""
    q = db.query(Tramite)
    if not include_inactive:
        q = q.filter(Tramite.is_active.is_(True))
    rows = q.order_by(Tramite.created_at.desc(), Tramite.id.desc()).all()
    return [TramiteResponse.model_validate(t) for t in rows]


def get_detalle(db: Session, tramite_id: int) -> TramiteDetalleResponse:
    """Full record with unit objects and the prefilled edit-form state.

    Raises:
        HTTPException 404: Trámite not found.
    """
    return _detalle(db, _get_or_404(db, tramite_id))


# ---------------------------------------------------------------------------
# Backoffice: write operations
# ---------------------------------------------------------------------------


def create_tramite(db: Session, data: TramiteCreate, usuario: Usuario) -> TramiteDetalleResponse:
    """Create a trámite after validating the complete form.

    ``requiere_pago`` is mandatory on creation and must be "Sí" or "No".
    Unit names are accepted in place of ids for older clients.

    Raises:
        HTTPException 400: Validation errors (all of them, in ``details``).
        HTTPException 409: Unique constraint conflict.
    """
    datos = data.model_dump()

    if not datos.get("dependencia_id") and datos.get("dependencia_nombre"):
        datos["dependencia_id"] = resolver_id_por_nombre(
            db, datos["dependencia_nombre"], TIPO_DEPENDENCIA
        )
    if not datos.get("subdependencia_id") and datos.get("subdependencia_nombre"):
        datos["subdependencia_id"] = resolver_id_por_nombre(
            db, datos["subdependencia_nombre"], TIPO_SUBDEPENDENCIA
        )

    errores = validar_tramite(datos)
    if datos.get("requiere_pago") not in VALORES_REQUIERE_PAGO:
        errores = [e for e in errores if not e.startswith("El campo 'requiere_pago'")]
        errores.insert(
            0,
            "El campo 'requiere_pago' debe contener 'Sí' o 'No'. La información "
            "detallada del pago debe ir en el campo correspondiente.",
        )

    seleccion, errores_unidades = resolver_par_dependencias(
        db, datos.get("dependencia_id"), datos.get("subdependencia_id")
    )
    errores.extend(errores_unidades)
    if errores:
        raise error_validacion(errores)

    datos["dependencia_id"] = seleccion.dependencia_id
    datos["subdependencia_id"] = seleccion.subdependencia_id
    datos.pop("dependencia_nombre", None)
    datos.pop("subdependencia_nombre", None)
    datos = _limpiar(datos)

    tramite = Tramite(**datos, created_by=usuario.id, updated_by=usuario.id)
    db.add(tramite)
    try:
        db.flush()
    except SQLAlchemyError as exc:
        db.rollback()
        raise error_base_datos(exc, mensaje_duplicado="Ya existe un trámite con este nombre") from exc

    registrar_auditoria(
        db,
        usuario=usuario,
        accion="INSERT",
        tabla="tramites",
        registro_id=tramite.id,
        despues=snapshot(tramite),
    )
    _commit(db, "Ya existe un trámite con este nombre")
    db.refresh(tramite)

    logger.info("create_tramite: id=%d '%s' by=%s", tramite.id, tramite.nombre_tramite, usuario.email)
    return _detalle(db, tramite)


def update_tramite(
    db: Session,
    tramite_id: int,
    data: TramiteUpdate,
    usuario: Usuario,
) -> TramiteDetalleResponse:
    """Validate and apply a full edit-form submission.

    Checks, all reported together:
        - required text fields are present and non-blank;
        - at least one unit is given; units exist and are active; the
          sub-unit belongs to the primary unit;
        - ``requiere_pago`` is "Sí", "No" or null, and the payment details
          are present for "Sí" and empty for "No".

    Raises:
        HTTPException 404: Trámite not found (checked before validation).
        HTTPException 400: Validation errors.
        HTTPException 409: Unique constraint conflict.
    """
    tramite = _get_or_404(db, tramite_id)
    datos = data.model_dump(exclude_unset=True)

    errores = validar_tramite(datos)
    seleccion, errores_unidades = resolver_par_dependencias(
        db, datos.get("dependencia_id"), datos.get("subdependencia_id")
    )
    errores.extend(errores_unidades)
    if errores:
        logger.info("update_tramite: id=%d rejected: %s", tramite_id, errores)
        raise error_validacion(errores)

    if "dependencia_id" in datos or "subdependencia_id" in datos:
        datos["dependencia_id"] = seleccion.dependencia_id
        datos["subdependencia_id"] = seleccion.subdependencia_id

    antes = snapshot(tramite)
    for field, value in _limpiar(datos).items():
        setattr(tramite, field, value)
    tramite.updated_by = usuario.id

    registrar_auditoria(
        db,
        usuario=usuario,
        accion="UPDATE",
        tabla="tramites",
        registro_id=tramite.id,
        antes=antes,
        despues=snapshot(tramite),
    )
    _commit(db, "Ya existe un trámite con este nombre")
    db.refresh(tramite)

    logger.info("update_tramite: id=%d fields=%s by=%s", tramite_id, list(datos.keys()), usuario.email)
    return _detalle(db, tramite)


def set_estado(db: Session, tramite_id: int, is_active: bool, usuario: Usuario) -> TramiteResponse:
    """Activate or soft-deactivate a trámite."""
    tramite = _get_or_404(db, tramite_id)
    antes = snapshot(tramite)
    tramite.is_active = is_active
    tramite.updated_by = usuario.id
    registrar_auditoria(
        db,
        usuario=usuario,
        accion="UPDATE",
        tabla="tramites",
        registro_id=tramite.id,
        antes=antes,
        despues=snapshot(tramite),
    )
    _commit(db, "Ya existe un trámite con este nombre")
    db.refresh(tramite)
    logger.info("set_estado: tramite id=%d is_active=%s by=%s", tramite_id, is_active, usuario.email)
    return TramiteResponse.model_validate(tramite)


def delete_tramite(db: Session, tramite_id: int, usuario: Usuario) -> None:
    """Permanently delete a trámite (admin only)."""
    tramite = _get_or_404(db, tramite_id)
    antes = snapshot(tramite)
    db.delete(tramite)
    registrar_auditoria(
        db,
        usuario=usuario,
        accion="DELETE",
        tabla="tramites",
        registro_id=tramite_id,
        antes=antes,
    )
    _commit(db, "No se pudo eliminar el trámite")
    logger.info("delete_tramite: id=%d by=%s", tramite_id, usuario.email)
