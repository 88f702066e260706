"""
Business-rule validation for trámite payloads.

Each helper returns a list of Spanish error messages instead of raising,
so that the caller can gather every problem of a form submission into a
single 400 response.
"""

from __future__ import annotations

from typing import Any, Mapping

from portal_tramites.utils.constants import (
    CAMPOS_OBLIGATORIOS_TRAMITE,
    VALORES_REQUIERE_PAGO,
)


def es_requiere_pago_valido(valor: Any) -> bool:
    """True only for ``"Sí"``, ``"No"``, ``""`` and ``None``.

    Case or whitespace variants such as ``"SI"`` or ``"no "`` are rejected.
    """
    return valor is None or valor == "" or valor in VALORES_REQUIERE_PAGO


def normalizar_requiere_pago(valor: Any) -> str | None:
    """Keep ``"Sí"``/``"No"``; map anything else (including ``""``) to ``None``."""
    return valor if valor in VALORES_REQUIERE_PAGO else None


def _en_blanco(valor: Any) -> bool:
    return valor is None or not str(valor).strip()


def validar_informacion_pago(requiere_pago: Any, informacion_pago: Any) -> list[str]:
    """Check the requiere_pago / informacion_pago pairing.

    Returns:
        Error messages; empty when the combination is valid.
    """
    errores: list[str] = []
    if not es_requiere_pago_valido(requiere_pago):
        errores.append("El campo 'requiere_pago' debe ser 'Sí' o 'No'")
    if requiere_pago == "Sí" and _en_blanco(informacion_pago):
        errores.append(
            "Cuando 'requiere_pago' es 'Sí', el campo 'informacion_pago' es requerido"
        )
    if requiere_pago == "No" and not _en_blanco(informacion_pago):
        errores.append(
            "Cuando 'requiere_pago' es 'No', el campo 'informacion_pago' debe estar vacío"
        )
    return errores


def validar_campos_obligatorios(datos: Mapping[str, Any]) -> list[str]:
    """Return one message per required trámite field that is missing or blank."""
    return [
        f"El campo '{campo}' es requerido"
        for campo in CAMPOS_OBLIGATORIOS_TRAMITE
        if _en_blanco(datos.get(campo))
    ]


def validar_tramite(datos: Mapping[str, Any]) -> list[str]:
    """Run the payload-only checks of a full trámite form.

    Unit existence and hierarchy are checked against the database by
    ``selector_dependencias.resolver_par_dependencias``.
    """
    errores = validar_campos_obligatorios(datos)
    if not datos.get("dependencia_id") and not datos.get("subdependencia_id"):
        errores.append("Debe seleccionar al menos una dependencia o subdependencia")
    errores.extend(
        validar_informacion_pago(datos.get("requiere_pago"), datos.get("informacion_pago"))
    )
    return errores
