"""
Tests for the cascading dependencia / subdependencia selector.
"""

import pytest

from portal_tramites.services.selector_dependencias import (
    EstadoSeleccion,
    SeleccionDependencia,
    SeleccionInvalida,
    cargar_hijos,
    resolver_par_dependencias,
)


class TestSeleccionDependencia:
    """Pure state machine."""

    def test_initial_state(self) -> None:
        seleccion = SeleccionDependencia()
        assert seleccion.estado is EstadoSeleccion.SIN_SELECCION
        assert seleccion.dependencia_id is None
        assert seleccion.subdependencia_id is None

    def test_select_primary_then_child(self) -> None:
        seleccion = SeleccionDependencia().seleccionar_dependencia(1, [10, 11])
        assert seleccion.estado is EstadoSeleccion.SOLO_DEPENDENCIA
        assert seleccion.hijos == (10, 11)

        seleccion = seleccion.seleccionar_subdependencia(11)
        assert seleccion.estado is EstadoSeleccion.DEPENDENCIA_Y_SUBDEPENDENCIA
        assert (seleccion.dependencia_id, seleccion.subdependencia_id) == (1, 11)

    def test_changing_primary_clears_foreign_child(self) -> None:
        seleccion = (
            SeleccionDependencia()
            .seleccionar_dependencia(1, [10, 11])
            .seleccionar_subdependencia(10)
            .seleccionar_dependencia(2, [20, 21])
        )
        assert seleccion.estado is EstadoSeleccion.SOLO_DEPENDENCIA
        assert seleccion.dependencia_id == 2
        assert seleccion.subdependencia_id is None

    def test_changing_primary_keeps_child_that_still_belongs(self) -> None:
        seleccion = (
            SeleccionDependencia()
            .seleccionar_dependencia(1, [10])
            .seleccionar_subdependencia(10)
            .seleccionar_dependencia(3, [10, 30])
        )
        assert seleccion.estado is EstadoSeleccion.DEPENDENCIA_Y_SUBDEPENDENCIA
        assert seleccion.subdependencia_id == 10

    def test_transitions_return_new_values(self) -> None:
        inicial = SeleccionDependencia()
        siguiente = inicial.seleccionar_dependencia(1, [10])
        assert inicial.estado is EstadoSeleccion.SIN_SELECCION
        assert siguiente is not inicial

    def test_child_requires_primary(self) -> None:
        with pytest.raises(SeleccionInvalida, match="Seleccione primero una dependencia"):
            SeleccionDependencia().seleccionar_subdependencia(10)

    def test_child_must_belong_to_primary(self) -> None:
        seleccion = SeleccionDependencia().seleccionar_dependencia(1, [10])
        with pytest.raises(SeleccionInvalida, match="no pertenece"):
            seleccion.seleccionar_subdependencia(99)

    def test_clearing(self) -> None:
        completa = SeleccionDependencia().seleccionar_dependencia(1, [10]).seleccionar_subdependencia(10)

        solo = completa.limpiar_subdependencia()
        assert solo.estado is EstadoSeleccion.SOLO_DEPENDENCIA
        assert solo.dependencia_id == 1

        assert completa.limpiar_dependencia() == SeleccionDependencia()
        assert completa.seleccionar_dependencia(None) == SeleccionDependencia()
        assert completa.seleccionar_subdependencia(None) == solo

        vacia = SeleccionDependencia()
        assert vacia.limpiar_subdependencia() is vacia

    def test_inconsistent_state_is_rejected(self) -> None:
        with pytest.raises(SeleccionInvalida):
            SeleccionDependencia(estado=EstadoSeleccion.SOLO_DEPENDENCIA)
        with pytest.raises(SeleccionInvalida):
            SeleccionDependencia(subdependencia_id=5)


class TestResolverParDependencias:
    """Server-side validation of a submitted pair."""

    def test_valid_pair(self, db_session, unidades) -> None:
        seleccion, errores = resolver_par_dependencias(
            db_session, unidades.planeacion.id, unidades.urbanismo.id
        )
        assert errores == []
        assert seleccion.estado is EstadoSeleccion.DEPENDENCIA_Y_SUBDEPENDENCIA
        assert set(seleccion.hijos) == {unidades.ordenamiento.id, unidades.urbanismo.id}

    def test_only_subdependencia_infers_parent(self, db_session, unidades) -> None:
        seleccion, errores = resolver_par_dependencias(db_session, None, unidades.rentas.id)
        assert errores == []
        assert seleccion.dependencia_id == unidades.hacienda.id
        assert seleccion.subdependencia_id == unidades.rentas.id

    def test_mismatched_pair(self, db_session, unidades) -> None:
        _, errores = resolver_par_dependencias(
            db_session, unidades.planeacion.id, unidades.rentas.id
        )
        assert errores == ["La subdependencia no pertenece a la dependencia seleccionada"]

    def test_inactive_or_missing_units(self, db_session, unidades) -> None:
        _, errores = resolver_par_dependencias(db_session, unidades.archivo.id, 9999)
        assert errores == [
            "La dependencia seleccionada no existe o no está activa",
            "La subdependencia seleccionada no existe o no está activa",
        ]

    def test_nothing_selected(self, db_session, unidades) -> None:
        seleccion, errores = resolver_par_dependencias(db_session, None, None)
        assert errores == []
        assert seleccion.estado is EstadoSeleccion.SIN_SELECCION

    def test_cargar_hijos_ordering_and_activity(self, db_session, unidades) -> None:
        unidades.urbanismo.is_active = False
        db_session.commit()

        activos = cargar_hijos(db_session, unidades.planeacion.id)
        todos = cargar_hijos(db_session, unidades.planeacion.id, solo_activos=False)
        assert [h.codigo for h in activos] == ["011"]
        assert [h.codigo for h in todos] == ["011", "012"]
