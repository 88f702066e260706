"""
Application-wide constants for the Portal de Trámites.

Defines roles, catalog vocabularies, import column layouts and the chat
fallback text used across routers, services and parsers.
"""

from typing import Final

# ---------------------------------------------------------------------------
# User roles
# ---------------------------------------------------------------------------

ROLES: Final[list[str]] = [
    "admin",
    "supervisor",
    "user",
]

# Roles allowed into the backoffice (view, create, edit, import, export)
ROLES_GESTION: Final[tuple[str, ...]] = ("admin", "supervisor")

# Roles allowed to delete and to manage users / chat configuration
ROLES_ADMIN: Final[tuple[str, ...]] = ("admin",)

# ---------------------------------------------------------------------------
# Trámites
# ---------------------------------------------------------------------------

VALORES_REQUIERE_PAGO: Final[tuple[str, ...]] = ("Sí", "No")

CAMPOS_OBLIGATORIOS_TRAMITE: Final[tuple[str, ...]] = (
    "nombre_tramite",
    "descripcion",
    "categoria",
    "modalidad",
    "tiempo_respuesta",
    "requisitos",
    "instrucciones",
)

# ---------------------------------------------------------------------------
# Dependencias
# ---------------------------------------------------------------------------

TIPO_DEPENDENCIA: Final[str] = "dependencia"
TIPO_SUBDEPENDENCIA: Final[str] = "subdependencia"
TIPOS_DEPENDENCIA: Final[tuple[str, ...]] = (TIPO_DEPENDENCIA, TIPO_SUBDEPENDENCIA)

# ---------------------------------------------------------------------------
# CSV import / export layouts
# ---------------------------------------------------------------------------

COLUMNAS_IMPORT_DEPENDENCIAS: Final[list[str]] = [
    "CODIGO SUBDEPENDENCIA",
    "SIGLA",
    "Subdependencia",
    "Dependencias",
    "CODIGO DEPENDENCIA",
]

COLUMNAS_EXPORT_DEPENDENCIAS: Final[list[str]] = [
    *COLUMNAS_IMPORT_DEPENDENCIAS,
    "TIPO",
    "ESTADO",
    "NIVEL",
]

COLUMNAS_IMPORT_CONTACTOS: Final[list[str]] = [
    "CODIGO",
    "SIGLA",
    "DEPENDENCIA",
    "RESPONSABLE",
    "CORREO ELECTRONICO",
    "EXT",
    "DIRECCIÓN",
]

# Positional layout of the trámites CSV (import and export share it)
COLUMNAS_TRAMITES: Final[list[str]] = [
    "id",
    "nombre_tramite",
    "descripcion",
    "categoria",
    "modalidad",
    "formulario",
    "dependencia",
    "subdependencia",
    "requiere_pago",
    "tiempo_respuesta",
    "requisitos",
    "instrucciones",
    "url_suit",
    "url_gov",
]

COLUMNAS_EXPORT_TRAMITES_EXTRA: Final[list[str]] = [
    "is_active",
    "created_at",
    "updated_at",
]

# Subdependencia cell value marking a top-level unit row in the import file
MARCA_DEPENDENCIA_DIRECTA: Final[str] = "Directo"

# ---------------------------------------------------------------------------
# Chat assistant
# ---------------------------------------------------------------------------

CHAT_HISTORIAL_MAXIMO: Final[int] = 5
CHAT_TIMEOUT_MAXIMO_SEGUNDOS: Final[int] = 60
CHAT_BACKOFF_MAXIMO_SEGUNDOS: Final[int] = 5

CHAT_RESPUESTA_RESPALDO: Final[str] = (
    "Gracias por tu mensaje. El asistente virtual está temporalmente no disponible. "
    "Para asistencia inmediata, por favor contacta a nuestros puntos PACO o llama "
    "al +57 (1) 123 4567."
)

CHAT_MENSAJE_PRUEBA: Final[str] = "Hola, este es un mensaje de prueba desde el panel de administración."
