"""
Accessibility preferences of the public portal.

The browser keeps two keys in ``localStorage`` and applies them as CSS
classes on the document root. This module models that contract over any
``MutableMapping`` so it can be served, stored server-side or tested
without a browser.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Final, MutableMapping

logger = logging.getLogger(__name__)

CLAVE_TAMANO_TEXTO: Final[str] = "accessibility-text-size"
CLAVE_CONTRASTE: Final[str] = "accessibility-contrast"

TAMANOS_TEXTO: Final[tuple[str, ...]] = ("normal", "large", "xlarge")
CONTRASTES: Final[tuple[str, ...]] = ("normal", "high")

CLASE_ALTO_CONTRASTE: Final[str] = "high-contrast"


@dataclass
class PreferenciasAccesibilidad:
    tamano_texto: str = "normal"
    contraste: str = "normal"

    def __post_init__(self) -> None:
        if self.tamano_texto not in TAMANOS_TEXTO:
            raise ValueError(f"Tamaño de texto no válido: {self.tamano_texto}")
        if self.contraste not in CONTRASTES:
            raise ValueError(f"Contraste no válido: {self.contraste}")

    @classmethod
    def cargar(cls, storage: MutableMapping[str, str]) -> "PreferenciasAccesibilidad":
        """Read stored values; unknown or missing ones fall back to defaults."""
        tamano = storage.get(CLAVE_TAMANO_TEXTO, "normal")
        contraste = storage.get(CLAVE_CONTRASTE, "normal")
        if tamano not in TAMANOS_TEXTO:
            logger.debug("Ignoring stored text size %r", tamano)
            tamano = "normal"
        if contraste not in CONTRASTES:
            logger.debug("Ignoring stored contrast %r", contraste)
            contraste = "normal"
        return cls(tamano_texto=tamano, contraste=contraste)

    def aplicar(self) -> list[str]:
        """CSS classes for the document root, e.g. ``["text-large", "high-contrast"]``."""
        clases = [f"text-{self.tamano_texto}"]
        if self.contraste == "high":
            clases.append(CLASE_ALTO_CONTRASTE)
        return clases

    def guardar(self, storage: MutableMapping[str, str]) -> None:
        storage[CLAVE_TAMANO_TEXTO] = self.tamano_texto
        storage[CLAVE_CONTRASTE] = self.contraste

    @classmethod
    def restablecer(cls, storage: MutableMapping[str, str]) -> "PreferenciasAccesibilidad":
        """Remove both keys and return the defaults."""
        storage.pop(CLAVE_TAMANO_TEXTO, None)
        storage.pop(CLAVE_CONTRASTE, None)
        return cls()
