"""
Tests for the schema foreign-key check, the startup seed and the health
endpoint.
"""

import logging
from unittest.mock import patch

from sqlalchemy import inspect

from portal_tramites.database import Base, CLAVES_FORANEAS_ESPERADAS, verificar_claves_foraneas
from portal_tramites.main import _check_schema, _seed_admin_user
from portal_tramites.models import Usuario
from tests.conftest import TestingSessionLocal, engine


class InspectorFalso:
    def __init__(self, tablas: dict[str, list[str]]) -> None:
        self.tablas = tablas

    def get_table_names(self) -> list[str]:
        return list(self.tablas)

    def get_foreign_keys(self, tabla: str) -> list[dict]:
        return [{"name": nombre} for nombre in self.tablas[tabla]]


class TestVerificarClavesForaneas:
    """Named constraints the trámite queries rely on."""

    def test_all_present(self) -> None:
        inspector = InspectorFalso({tabla: list(nombres) for tabla, nombres in CLAVES_FORANEAS_ESPERADAS.items()})
        assert verificar_claves_foraneas(inspector) == []

    def test_reports_missing_constraints(self) -> None:
        inspector = InspectorFalso({"tramites": ["tramites_dependencia_id_fkey", "otra_fk"]})
        assert verificar_claves_foraneas(inspector) == [
            "tramites_subdependencia_id_fkey",
            "dependencias_dependencia_padre_id_fkey",
        ]

    def test_metadata_declares_named_constraints(self) -> None:
        nombres = {
            fk.name
            for tabla in Base.metadata.tables.values()
            for fk in tabla.foreign_key_constraints
        }
        for esperadas in CLAVES_FORANEAS_ESPERADAS.values():
            assert set(esperadas) <= nombres

    def test_live_schema(self, db_session) -> None:
        assert verificar_claves_foraneas(inspect(engine)) == []

    def test_startup_check_only_logs(self, db_session, caplog) -> None:
        with caplog.at_level(logging.INFO), patch("portal_tramites.database.engine", engine):
            _check_schema()
        assert "all foreign key constraints present" in caplog.text


class TestSeedAdmin:
    """Default admin account created at startup."""

    def test_creates_admin_once(self, db_session) -> None:
        with patch("portal_tramites.database.SessionLocal", TestingSessionLocal):
            _seed_admin_user()
            _seed_admin_user()

        admins = db_session.query(Usuario).filter(Usuario.role == "admin").all()
        assert len(admins) == 1
        assert admins[0].email == "admin@chia.gov.co"
        assert admins[0].password_hash != "Admin123!"

    def test_keeps_existing_account(self, db_session, admin) -> None:
        hash_original = admin.password_hash
        with patch("portal_tramites.database.SessionLocal", TestingSessionLocal):
            _seed_admin_user()
        db_session.refresh(admin)
        assert admin.password_hash == hash_original
        assert db_session.query(Usuario).count() == 1


class TestHealth:
    def test_health(self, client) -> None:
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
