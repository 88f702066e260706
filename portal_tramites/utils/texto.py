"""Text normalization shared by search, filters and CSV parsing."""

from __future__ import annotations

import unicodedata


def normalizar_texto(texto: str | None) -> str:
    """Fold *texto* for accent- and case-insensitive comparison.

    Decomposes to NFD, drops combining marks, lower-cases and trims.
    ``None`` is treated as the empty string. The function is idempotent.

    Example::

        >>> normalizar_texto("  Construcción ")
        'construccion'
    """
    if not texto:
        return ""
    descompuesto = unicodedata.normalize("NFD", str(texto))
    sin_tildes = "".join(c for c in descompuesto if not unicodedata.combining(c))
    return sin_tildes.lower().strip()
