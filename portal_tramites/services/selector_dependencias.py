"""
Cascading dependencia / subdependencia selection.

The pair selector used by the trámite form has three states, made explicit
by ``EstadoSeleccion``:

    SIN_SELECCION ──seleccionar_dependencia──▶ SOLO_DEPENDENCIA
    SOLO_DEPENDENCIA ──seleccionar_subdependencia──▶ DEPENDENCIA_Y_SUBDEPENDENCIA
    any ──limpiar_dependencia──▶ SIN_SELECCION
    DEPENDENCIA_Y_SUBDEPENDENCIA ──limpiar_subdependencia──▶ SOLO_DEPENDENCIA

Selecting a (new) primary unit receives that unit's children; a previously
chosen sub-unit survives only if it is one of them. ``SeleccionDependencia``
is immutable: every transition returns a new value.

``resolver_par_dependencias`` drives the same state machine server-side to
validate the unit pair submitted with a trámite.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from typing import Iterable

from sqlalchemy.orm import Session

from portal_tramites.models.dependencia import Dependencia

logger = logging.getLogger(__name__)


class EstadoSeleccion(str, enum.Enum):
    SIN_SELECCION = "sin_seleccion"
    SOLO_DEPENDENCIA = "solo_dependencia"
    DEPENDENCIA_Y_SUBDEPENDENCIA = "dependencia_y_subdependencia"


class SeleccionInvalida(ValueError):
    """Raised when a transition is not allowed from the current state."""


@dataclass(frozen=True)
class SeleccionDependencia:
    """Current value of the pair selector.

    Attributes:
        estado: Explicit state tag.
        dependencia_id: Selected primary unit, if any.
        subdependencia_id: Selected sub-unit, if any.
        hijos: Ids of the children of the selected primary unit.
    """

    estado: EstadoSeleccion = EstadoSeleccion.SIN_SELECCION
    dependencia_id: int | None = None
    subdependencia_id: int | None = None
    hijos: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        esperado = {
            EstadoSeleccion.SIN_SELECCION: (False, False),
            EstadoSeleccion.SOLO_DEPENDENCIA: (True, False),
            EstadoSeleccion.DEPENDENCIA_Y_SUBDEPENDENCIA: (True, True),
        }[self.estado]
        actual = (self.dependencia_id is not None, self.subdependencia_id is not None)
        if actual != esperado:
            raise SeleccionInvalida(
                f"Estado {self.estado.value} incompatible con "
                f"dependencia={self.dependencia_id} subdependencia={self.subdependencia_id}"
            )

    # -----------------------------------------------------------------------
    # Transitions
    # -----------------------------------------------------------------------

    def seleccionar_dependencia(
        self, dependencia_id: int | None, hijos: Iterable[int] = ()
    ) -> SeleccionDependencia:
        """Select a primary unit and revalidate the current sub-unit.

        Passing ``None`` is equivalent to ``limpiar_dependencia``.
        """
        if dependencia_id is None:
            return self.limpiar_dependencia()

        hijos_t = tuple(hijos)
        if self.subdependencia_id is not None and self.subdependencia_id in hijos_t:
            return replace(
                self,
                estado=EstadoSeleccion.DEPENDENCIA_Y_SUBDEPENDENCIA,
                dependencia_id=dependencia_id,
                hijos=hijos_t,
            )

        if self.subdependencia_id is not None:
            logger.debug(
                "Subdependencia %s cleared: not a child of dependencia %s",
                self.subdependencia_id, dependencia_id,
            )
        return SeleccionDependencia(
            estado=EstadoSeleccion.SOLO_DEPENDENCIA,
            dependencia_id=dependencia_id,
            hijos=hijos_t,
        )

    def limpiar_dependencia(self) -> SeleccionDependencia:
        return SeleccionDependencia()

    def seleccionar_subdependencia(self, subdependencia_id: int | None) -> SeleccionDependencia:
        """Select one of the loaded children of the primary unit.

        Raises:
            SeleccionInvalida: No primary unit is selected, or the id is not
                one of its children.
        """
        if subdependencia_id is None:
            return self.limpiar_subdependencia()
        if self.estado is EstadoSeleccion.SIN_SELECCION:
            raise SeleccionInvalida("Seleccione primero una dependencia")
        if subdependencia_id not in self.hijos:
            raise SeleccionInvalida("La subdependencia no pertenece a la dependencia seleccionada")
        return replace(
            self,
            estado=EstadoSeleccion.DEPENDENCIA_Y_SUBDEPENDENCIA,
            subdependencia_id=subdependencia_id,
        )

    def limpiar_subdependencia(self) -> SeleccionDependencia:
        if self.estado is EstadoSeleccion.SIN_SELECCION:
            return self
        return replace(self, estado=EstadoSeleccion.SOLO_DEPENDENCIA, subdependencia_id=None)


# ---------------------------------------------------------------------------
# Database-backed helpers
# ---------------------------------------------------------------------------


def cargar_hijos(db: Session, dependencia_id: int, solo_activos: bool = True) -> list[Dependencia]:
    """Children of *dependencia_id* ordered by ``orden`` then ``nombre``."""
    q = db.query(Dependencia).filter(Dependencia.dependencia_padre_id == dependencia_id)
    if solo_activos:
        q = q.filter(Dependencia.is_active.is_(True))
    return q.order_by(Dependencia.orden, Dependencia.nombre).all()


def _activa(db: Session, dependencia_id: int) -> Dependencia | None:
    return (
        db.query(Dependencia)
        .filter(Dependencia.id == dependencia_id, Dependencia.is_active.is_(True))
        .first()
    )


def resolver_par_dependencias(
    db: Session,
    dependencia_id: int | None,
    subdependencia_id: int | None,
) -> tuple[SeleccionDependencia, list[str]]:
    """Validate a submitted unit pair against the database.

    When only a sub-unit is supplied, its parent becomes the primary unit.

    Args:
        db: Active SQLAlchemy session.
        dependencia_id: Submitted primary unit id (falsy = none).
        subdependencia_id: Submitted sub-unit id (falsy = none).

    Returns:
        The resolved selection and a list of Spanish error messages; the
        selection is only meaningful when the list is empty.
    """
    errores: list[str] = []
    seleccion = SeleccionDependencia()

    dependencia = _activa(db, dependencia_id) if dependencia_id else None
    if dependencia_id and dependencia is None:
        errores.append("La dependencia seleccionada no existe o no está activa")

    subdependencia = _activa(db, subdependencia_id) if subdependencia_id else None
    if subdependencia_id and subdependencia is None:
        errores.append("La subdependencia seleccionada no existe o no está activa")

    if errores:
        return seleccion, errores

    if dependencia is None and subdependencia is not None:
        dependencia = (
            _activa(db, subdependencia.dependencia_padre_id)
            if subdependencia.dependencia_padre_id
            else None
        )
        if dependencia is None:
            errores.append("La subdependencia no tiene una dependencia padre activa")
            return seleccion, errores

    if dependencia is not None:
        hijos = [h.id for h in cargar_hijos(db, dependencia.id)]
        seleccion = seleccion.seleccionar_dependencia(dependencia.id, hijos)

    if subdependencia is not None:
        try:
            seleccion = seleccion.seleccionar_subdependencia(subdependencia.id)
        except SeleccionInvalida as exc:
            errores.append(str(exc))

    return seleccion, errores
