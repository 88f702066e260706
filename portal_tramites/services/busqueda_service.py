"""
Catalog search and filtering over an in-memory list of trámites.

Every function accepts ORM rows, Pydantic objects or plain dicts: fields
are read by attribute first and by key as a fallback. None of them mutate
their input; they return new lists.

Design notes
------------
- Comparisons always go through ``normalizar_texto`` so that accented and
  unaccented spellings match.
- Tokens of two characters or fewer are discarded before matching, so a
  query made only of short tokens ("en", "de") matches nothing.
- Synonym expansion only applies to single-token queries. Multi-token
  queries are conjunctive over the literal tokens.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from typing import Any, Iterable, Sequence, TypeVar

from portal_tramites.utils.texto import normalizar_texto

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Lookup tables
# ---------------------------------------------------------------------------

SINONIMOS: dict[str, tuple[str, ...]] = {
    "casa": ("vivienda", "construccion", "edificacion", "obra", "inmueble"),
    "impuesto": ("pago", "tributo", "contribucion", "tasa", "tarifa"),
    "carro": ("vehiculo", "transito", "automovil", "moto", "motocicleta"),
    "salud": ("eps", "medico", "hospital", "clinica", "sanitario"),
    "educacion": ("colegio", "escuela", "estudio", "academico", "educativo"),
    "ambiente": ("ambiental", "ecologia", "naturaleza", "verde", "ecologico"),
    "negocio": ("empresa", "emprendimiento", "comercio", "establecimiento", "comercial"),
    "certificado": ("certificacion", "constancia", "documento"),
    "residencia": ("domicilio", "vivienda", "habitacion", "direccion"),
    "licencia": ("permiso", "autorizacion", "habilitacion"),
}

CAMPOS_BUSQUEDA: tuple[str, ...] = (
    "nombre_tramite",
    "descripcion",
    "categoria",
    "dependencia_nombre",
    "requisitos",
)

_LONGITUD_MINIMA_TOKEN = 3


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _campo(registro: Any, nombre: str) -> Any:
    """Read *nombre* from an object attribute or, failing that, a mapping key."""
    if isinstance(registro, dict):
        return registro.get(nombre)
    return getattr(registro, nombre, None)


def _tokens(query: str) -> list[str]:
    return [t for t in normalizar_texto(query).split() if len(t) >= _LONGITUD_MINIMA_TOKEN]


def _expandir(token: str) -> set[str]:
    """Return *token* plus its synonym group when *token* is a group key."""
    return {token, *SINONIMOS.get(token, ())}


def texto_buscable(registro: Any) -> str:
    """Concatenate and normalize the searchable fields of one trámite."""
    partes = (_campo(registro, c) or "" for c in CAMPOS_BUSQUEDA)
    return normalizar_texto(" ".join(str(p) for p in partes))


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


def buscar_tramites(tramites: Sequence[T], query: str | None) -> list[T]:
    """Filter *tramites* by a free-text query.

    Algorithm:
        1. Normalize the query and keep whitespace tokens longer than two
           characters.
        2. More than one token: a record matches when its searchable text
           contains every token.
        3. Exactly one token: the token is expanded with its synonym group
           and a record matches when any expanded term is a substring.

    Args:
        tramites: Records exposing the ``CAMPOS_BUSQUEDA`` fields.
        query: Raw user input. Empty or whitespace-only returns every record.

    Returns:
        Matching records in their original order.
    """
    if query is None or not query.strip():
        return list(tramites)

    tokens = _tokens(query)
    if not tokens:
        return []

    if len(tokens) > 1:
        return [t for t in tramites if all(tok in texto_buscable(t) for tok in tokens)]

    terminos = _expandir(tokens[0])
    return [t for t in tramites if any(term in texto_buscable(t) for term in terminos)]


# ---------------------------------------------------------------------------
# Category / advanced filters
# ---------------------------------------------------------------------------


def filtrar_por_categoria(tramites: Sequence[T], categoria: str | None) -> list[T]:
    """Exact category match; ``None`` or empty returns the list unchanged."""
    if not categoria:
        return list(tramites)
    return [t for t in tramites if _campo(t, "categoria") == categoria]


def obtener_categorias(tramites: Iterable[Any]) -> list[str]:
    """Sorted list of the distinct non-empty categories."""
    return sorted({c for c in (_campo(t, "categoria") for t in tramites) if c})


def contar_por_categoria(tramites: Iterable[Any]) -> dict[str, int]:
    """Category -> number of trámites, for the category chips."""
    conteo = Counter(c for c in (_campo(t, "categoria") for t in tramites) if c)
    return dict(sorted(conteo.items()))


def filtrar_por_modalidad(tramites: Sequence[T], modalidad: str | None) -> list[T]:
    """Normalized substring match on ``modalidad``."""
    if not modalidad:
        return list(tramites)
    buscado = normalizar_texto(modalidad)
    return [t for t in tramites if buscado in normalizar_texto(_campo(t, "modalidad"))]


def requiere_pago(tramite: Any) -> bool:
    """True when the stored payment text is neither empty nor "no"."""
    valor = normalizar_texto(_campo(tramite, "requiere_pago"))
    return valor not in ("", "no")


def filtrar_por_pago(tramites: Sequence[T], filtro: str | None) -> list[T]:
    """``"con_pago"`` keeps paid procedures, ``"sin_pago"`` free ones.

    Any other value leaves the list unchanged.
    """
    if filtro == "con_pago":
        return [t for t in tramites if requiere_pago(t)]
    if filtro == "sin_pago":
        return [t for t in tramites if not requiere_pago(t)]
    return list(tramites)


def filtrar_por_dependencia(tramites: Sequence[T], dependencia: str | None) -> list[T]:
    """Normalized substring match on the owning unit name."""
    if not dependencia:
        return list(tramites)
    buscado = normalizar_texto(dependencia)
    return [
        t for t in tramites
        if buscado in normalizar_texto(_campo(t, "dependencia_nombre"))
    ]


def aplicar_filtros(
    tramites: Sequence[T],
    *,
    query: str | None = None,
    categoria: str | None = None,
    modalidad: str | None = None,
    pago: str | None = None,
    dependencia: str | None = None,
) -> list[T]:
    """Apply search then each advanced filter in sequence."""
    resultado = buscar_tramites(tramites, query)
    resultado = filtrar_por_categoria(resultado, categoria)
    resultado = filtrar_por_modalidad(resultado, modalidad)
    resultado = filtrar_por_pago(resultado, pago)
    resultado = filtrar_por_dependencia(resultado, dependencia)
    logger.debug(
        "aplicar_filtros: q=%r categoria=%r modalidad=%r pago=%r dependencia=%r -> %d/%d",
        query, categoria, modalidad, pago, dependencia, len(resultado), len(tramites),
    )
    return resultado


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------


def paginar(items: Sequence[T], page: int, page_size: int) -> tuple[list[T], int]:
    """Slice one 1-based page out of *items*.

    Returns:
        ``(page_items, total_pages)``. ``total_pages`` is 0 for an empty list;
        a page past the end yields an empty slice.
    """
    total_pages = math.ceil(len(items) / page_size) if page_size > 0 else 0
    inicio = (max(page, 1) - 1) * page_size
    return list(items[inicio:inicio + page_size]), total_pages
