"""Import parsers for the CSV / Excel files uploaded to the backoffice."""

from portal_tramites.parsers.base_parser import BaseParser, ParseResult  # noqa: F401
from portal_tramites.parsers.contactos_parser import ContactosParser  # noqa: F401
from portal_tramites.parsers.dependencias_parser import DependenciasParser  # noqa: F401
from portal_tramites.parsers.tramites_parser import TramitesParser  # noqa: F401

__all__ = [
    "BaseParser",
    "ParseResult",
    "ContactosParser",
    "DependenciasParser",
    "TramitesParser",
]
