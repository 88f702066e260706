"""Portal de Trámites: backend FastAPI del catálogo municipal de trámites."""

__version__ = "1.0.0"
