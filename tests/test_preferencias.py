"""
Tests for the accessibility preferences store.
"""

import pytest

from portal_tramites.services.preferencias import (
    CLAVE_CONTRASTE,
    CLAVE_TAMANO_TEXTO,
    PreferenciasAccesibilidad,
)


class TestPreferenciasAccesibilidad:
    """load / apply / persist / reset over a plain dict."""

    def test_defaults_when_storage_is_empty(self) -> None:
        prefs = PreferenciasAccesibilidad.cargar({})
        assert prefs == PreferenciasAccesibilidad()
        assert prefs.aplicar() == ["text-normal"]

    def test_load_stored_values(self) -> None:
        storage = {CLAVE_TAMANO_TEXTO: "xlarge", CLAVE_CONTRASTE: "high"}
        prefs = PreferenciasAccesibilidad.cargar(storage)
        assert prefs.aplicar() == ["text-xlarge", "high-contrast"]

    def test_invalid_stored_values_fall_back(self) -> None:
        storage = {CLAVE_TAMANO_TEXTO: "gigante", CLAVE_CONTRASTE: "inverso"}
        assert PreferenciasAccesibilidad.cargar(storage) == PreferenciasAccesibilidad()

    def test_save_then_load(self) -> None:
        storage: dict[str, str] = {}
        PreferenciasAccesibilidad(tamano_texto="large", contraste="high").guardar(storage)

        assert storage == {CLAVE_TAMANO_TEXTO: "large", CLAVE_CONTRASTE: "high"}
        assert PreferenciasAccesibilidad.cargar(storage).tamano_texto == "large"

    def test_reset_clears_storage(self) -> None:
        storage = {CLAVE_TAMANO_TEXTO: "large", CLAVE_CONTRASTE: "high", "theme": "dark"}
        prefs = PreferenciasAccesibilidad.restablecer(storage)
        assert prefs == PreferenciasAccesibilidad()
        assert storage == {"theme": "dark"}

    @pytest.mark.parametrize(
        "kwargs", [{"tamano_texto": "enorme"}, {"contraste": "bajo"}]
    )
    def test_invalid_values_rejected_on_construction(self, kwargs) -> None:
        with pytest.raises(ValueError):
            PreferenciasAccesibilidad(**kwargs)
