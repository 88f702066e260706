"""
Pytest configuration and fixtures for the Portal de Trámites.

Every test runs against a fresh in-memory SQLite database shared through a
``StaticPool``; the application's ``get_db`` dependency is overridden to
hand out the same session the fixtures write to.
"""

import os

# Must be set before the application settings are first read
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["CHAT_WEBHOOK_URL"] = ""

from types import SimpleNamespace
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from portal_tramites.database import Base, get_db
from portal_tramites.main import app
from portal_tramites.models import Dependencia, Tramite, Usuario
from portal_tramites.services.chat_service import get_chat_proxy
from portal_tramites.utils.security import create_access_token, hash_password

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

PASSWORD = "Clave123!"
# bcrypt is slow on purpose; hash once per session
PASSWORD_HASH = hash_password(PASSWORD)


# ---------------------------------------------------------------------------
# Database / client
# ---------------------------------------------------------------------------


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        get_chat_proxy.cache_clear()


# ---------------------------------------------------------------------------
# Users and tokens
# ---------------------------------------------------------------------------


def crear_usuario(db: Session, email: str, role: str, is_active: bool = True) -> Usuario:
    user = Usuario(
        email=email,
        full_name=email.split("@")[0].title(),
        role=role,
        password_hash=PASSWORD_HASH,
        is_active=is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user: Usuario) -> dict[str, str]:
    token = create_access_token({"sub": str(user.id), "email": user.email, "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin(db_session: Session) -> Usuario:
    return crear_usuario(db_session, "admin@chia.gov.co", "admin")


@pytest.fixture
def supervisor(db_session: Session) -> Usuario:
    return crear_usuario(db_session, "supervisor@chia.gov.co", "supervisor")


@pytest.fixture
def ciudadano(db_session: Session) -> Usuario:
    return crear_usuario(db_session, "consulta@chia.gov.co", "user")


@pytest.fixture
def admin_headers(admin: Usuario) -> dict[str, str]:
    return auth_headers(admin)


@pytest.fixture
def supervisor_headers(supervisor: Usuario) -> dict[str, str]:
    return auth_headers(supervisor)


@pytest.fixture
def user_headers(ciudadano: Usuario) -> dict[str, str]:
    return auth_headers(ciudadano)


# ---------------------------------------------------------------------------
# Sample organization and catalog
# ---------------------------------------------------------------------------


@pytest.fixture
def unidades(db_session: Session) -> SimpleNamespace:
    """Two active top-level units with sub-units, plus one inactive unit."""
    planeacion = Dependencia(
        codigo="010", sigla="SPLA", nombre="Secretaría de Planeación",
        tipo="dependencia", nivel=1, orden=1,
    )
    hacienda = Dependencia(
        codigo="020", sigla="SHAC", nombre="Secretaría de Hacienda",
        tipo="dependencia", nivel=1, orden=2,
    )
    archivo = Dependencia(
        codigo="090", sigla="ARCH", nombre="Oficina de Archivo",
        tipo="dependencia", nivel=1, orden=9, is_active=False,
    )
    db_session.add_all([planeacion, hacienda, archivo])
    db_session.flush()

    ordenamiento = Dependencia(
        codigo="011", sigla="DOT", nombre="Dirección de Ordenamiento Territorial",
        tipo="subdependencia", nivel=2, orden=1, dependencia_padre_id=planeacion.id,
    )
    urbanismo = Dependencia(
        codigo="012", sigla="DUR", nombre="Dirección de Urbanismo",
        tipo="subdependencia", nivel=2, orden=2, dependencia_padre_id=planeacion.id,
    )
    rentas = Dependencia(
        codigo="021", sigla="DREN", nombre="Dirección de Rentas",
        tipo="subdependencia", nivel=2, orden=1, dependencia_padre_id=hacienda.id,
    )
    db_session.add_all([ordenamiento, urbanismo, rentas])
    db_session.commit()

    return SimpleNamespace(
        planeacion=planeacion,
        hacienda=hacienda,
        archivo=archivo,
        ordenamiento=ordenamiento,
        urbanismo=urbanismo,
        rentas=rentas,
    )


def _tramite(**kwargs) -> Tramite:
    base = {
        "descripcion": "Descripción del trámite.",
        "formulario": "",
        "tiempo_respuesta": "15 días hábiles",
        "requisitos": "Documento de identidad",
        "instrucciones": "Radique la solicitud en la ventanilla única.",
        "url_suit": "",
        "url_gov": "",
        "is_active": True,
    }
    base.update(kwargs)
    return Tramite(**base)


@pytest.fixture
def tramites(db_session: Session, unidades: SimpleNamespace) -> SimpleNamespace:
    """Three active trámites (two paid) and one inactive one."""
    licencia = _tramite(
        nombre_tramite="Licencia de construcción",
        descripcion="Autorización para adelantar obras de construcción en predios urbanos.",
        categoria="Urbanismo",
        modalidad="Presencial",
        dependencia_id=unidades.planeacion.id,
        subdependencia_id=unidades.urbanismo.id,
        requiere_pago="Sí",
        informacion_pago="Liquidación según metros cuadrados",
        tiempo_respuesta="45 días hábiles",
        requisitos="Planos arquitectónicos; certificado de tradición",
    )
    predial = _tramite(
        nombre_tramite="Impuesto predial unificado",
        descripcion="Pago anual del tributo sobre inmuebles del municipio.",
        categoria="Impuestos",
        modalidad="Presencial y virtual",
        dependencia_id=unidades.hacienda.id,
        subdependencia_id=unidades.rentas.id,
        requiere_pago="Sí",
        informacion_pago="Factura disponible en línea",
    )
    estratificacion = _tramite(
        nombre_tramite="Certificado de estratificación",
        descripcion="Constancia del estrato socioeconómico de un predio.",
        categoria="Certificados",
        modalidad="Virtual",
        dependencia_id=unidades.planeacion.id,
        requiere_pago="No",
    )
    quema = _tramite(
        nombre_tramite="Permiso de quema controlada",
        categoria="Ambiente",
        modalidad="Presencial",
        dependencia_id=unidades.hacienda.id,
        requiere_pago="No",
        is_active=False,
    )
    db_session.add_all([licencia, predial, estratificacion, quema])
    db_session.commit()

    return SimpleNamespace(
        licencia=licencia,
        predial=predial,
        estratificacion=estratificacion,
        quema=quema,
    )
