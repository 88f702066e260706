"""
Tests for the trámite payload validators and the database error mapping.
"""

from unittest.mock import Mock, patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from portal_tramites.utils.errores import error_base_datos, error_validacion
from portal_tramites.utils.validacion import (
    es_requiere_pago_valido,
    normalizar_requiere_pago,
    validar_campos_obligatorios,
    validar_informacion_pago,
    validar_tramite,
)

FORMULARIO_COMPLETO = {
    "nombre_tramite": "Licencia de construcción",
    "descripcion": "Autorización de obra",
    "categoria": "Urbanismo",
    "modalidad": "Presencial",
    "tiempo_respuesta": "45 días hábiles",
    "requisitos": "Planos",
    "instrucciones": "Radicar en ventanilla",
    "dependencia_id": 1,
    "requiere_pago": "Sí",
    "informacion_pago": "Liquidación por metro cuadrado",
}


class TestRequierePago:
    """Allowed values of requiere_pago."""

    @pytest.mark.parametrize("valor", ["Sí", "No", "", None])
    def test_valid_values(self, valor) -> None:
        assert es_requiere_pago_valido(valor) is True

    @pytest.mark.parametrize("valor", ["SI", "si", "sí", "Si", "no ", "NO", "Yes", "Si, $20.000", 1])
    def test_rejects_variants(self, valor) -> None:
        assert es_requiere_pago_valido(valor) is False

    def test_normalizar(self) -> None:
        assert normalizar_requiere_pago("Sí") == "Sí"
        assert normalizar_requiere_pago("No") == "No"
        assert normalizar_requiere_pago("") is None
        assert normalizar_requiere_pago(None) is None


class TestInformacionPago:
    """requiere_pago / informacion_pago pairing."""

    def test_si_requires_details(self) -> None:
        errores = validar_informacion_pago("Sí", "")
        assert errores == [
            "Cuando 'requiere_pago' es 'Sí', el campo 'informacion_pago' es requerido"
        ]
        assert validar_informacion_pago("Sí", "   ") == errores

    def test_no_forbids_details(self) -> None:
        assert validar_informacion_pago("No", "Pago en banco") == [
            "Cuando 'requiere_pago' es 'No', el campo 'informacion_pago' debe estar vacío"
        ]

    def test_valid_pairs(self) -> None:
        assert validar_informacion_pago("Sí", "Pago en banco") == []
        assert validar_informacion_pago("No", None) == []
        assert validar_informacion_pago("No", "  ") == []
        assert validar_informacion_pago(None, None) == []
        assert validar_informacion_pago("", "texto libre") == []

    def test_invalid_value(self) -> None:
        assert validar_informacion_pago("SI", None) == [
            "El campo 'requiere_pago' debe ser 'Sí' o 'No'"
        ]


class TestValidarTramite:
    """Whole-form validation collects every problem."""

    def test_complete_form_is_valid(self) -> None:
        assert validar_tramite(FORMULARIO_COMPLETO) == []

    def test_empty_form_reports_everything(self) -> None:
        errores = validar_tramite({})
        assert "El campo 'nombre_tramite' es requerido" in errores
        assert "El campo 'instrucciones' es requerido" in errores
        assert "Debe seleccionar al menos una dependencia o subdependencia" in errores
        assert len(validar_campos_obligatorios({})) == 7

    def test_blank_text_counts_as_missing(self) -> None:
        datos = {**FORMULARIO_COMPLETO, "descripcion": "   "}
        assert validar_tramite(datos) == ["El campo 'descripcion' es requerido"]

    def test_subdependencia_alone_is_enough(self) -> None:
        datos = {**FORMULARIO_COMPLETO, "dependencia_id": None, "subdependencia_id": 5}
        assert validar_tramite(datos) == []


class TestErrorBaseDatos:
    """SQLAlchemy exceptions mapped to HTTP errors."""

    @staticmethod
    def _integrity(pgcode: str | None, mensaje: str = "error") -> IntegrityError:
        orig = Exception(mensaje)
        orig.pgcode = pgcode
        return IntegrityError("INSERT ...", {}, orig)

    def test_unique_violation_is_409(self) -> None:
        exc = error_base_datos(self._integrity("23505"), mensaje_duplicado="Duplicado")
        assert exc.status_code == 409
        assert exc.detail == "Duplicado"

    def test_foreign_key_violation_is_400(self) -> None:
        exc = error_base_datos(self._integrity("23503"))
        assert exc.status_code == 400
        assert exc.detail["error"] == "Dependencia o subdependencia no válida"

    def test_sqlite_message_is_recognised(self) -> None:
        exc = error_base_datos(self._integrity(None, "UNIQUE constraint failed: dependencias.codigo"))
        assert exc.status_code == 409

    def test_other_errors_are_500_with_details_outside_production(self) -> None:
        exc = error_base_datos(OperationalError("SELECT 1", {}, Exception("conexión perdida")))
        assert exc.status_code == 500
        assert exc.detail["error"] == "Error interno del servidor"
        assert "conexión perdida" in exc.detail["details"]

    def test_production_hides_details(self) -> None:
        with patch(
            "portal_tramites.utils.errores.get_settings",
            return_value=Mock(is_production=True),
        ):
            exc = error_base_datos(OperationalError("SELECT 1", {}, Exception("secreto")))
        assert exc.status_code == 500
        assert "details" not in exc.detail

    def test_error_validacion_envelope(self) -> None:
        exc = error_validacion(["a", "b"])
        assert exc.status_code == 400
        assert exc.detail == {"error": "Errores de validación", "details": ["a", "b"]}
