"""
Tests for the organizational-units backoffice API: CRUD, hierarchy,
imports, exports and templates.
"""

import io
import json

import pandas as pd

from portal_tramites.models import AuditLog, Dependencia
from portal_tramites.utils.constants import COLUMNAS_IMPORT_DEPENDENCIAS

BASE = "/api/admin/dependencias"

ENCABEZADO_DEPENDENCIAS = ",".join(COLUMNAS_IMPORT_DEPENDENCIAS)
ENCABEZADO_CONTACTOS = "CODIGO,SIGLA,DEPENDENCIA,RESPONSABLE,CORREO ELECTRONICO,EXT,DIRECCIÓN"


def _csv(*lineas: str) -> bytes:
    return "\n".join(lineas).encode("utf-8")


def _subir(client, ruta: str, contenido: bytes, headers, nombre: str = "archivo.csv"):
    return client.post(f"{BASE}{ruta}", files={"file": (nombre, contenido, "text/csv")}, headers=headers)


class TestDependenciasLectura:
    """List, detail, children and tree."""

    def test_list_paginates_with_limit(self, client, unidades, supervisor_headers) -> None:
        data = client.get(BASE, params={"limit": 2}, headers=supervisor_headers).json()
        assert len(data["data"]) == 2
        assert data["pagination"] == {"page": 1, "page_size": 2, "total": 6, "total_pages": 3}
        assert [d["codigo"] for d in data["data"]] == ["010", "020"]

    def test_list_filters(self, client, unidades, supervisor_headers) -> None:
        por_nombre = client.get(BASE, params={"search": "hacienda"}, headers=supervisor_headers).json()
        assert [d["codigo"] for d in por_nombre["data"]] == ["020"]

        subs = client.get(BASE, params={"tipo": "subdependencia"}, headers=supervisor_headers).json()
        assert subs["pagination"]["total"] == 3
        assert all(d["nivel"] == 2 for d in subs["data"])

        inactivas = client.get(BASE, params={"is_active": False}, headers=supervisor_headers).json()
        assert [d["codigo"] for d in inactivas["data"]] == ["090"]

    def test_detail(self, client, unidades, supervisor_headers) -> None:
        data = client.get(f"{BASE}/{unidades.urbanismo.id}", headers=supervisor_headers).json()
        assert data["sigla"] == "DUR"
        assert data["dependencia_padre_nombre"] == "Secretaría de Planeación"

        response = client.get(f"{BASE}/9999", headers=supervisor_headers)
        assert response.status_code == 404
        assert response.json()["detail"] == "Dependencia no encontrada"

    def test_children(self, client, db_session, unidades, supervisor_headers) -> None:
        unidades.urbanismo.is_active = False
        db_session.commit()
        url = f"{BASE}/{unidades.planeacion.id}/hijos"

        activos = client.get(url, headers=supervisor_headers).json()
        assert [h["codigo"] for h in activos] == ["011"]

        inactivos = client.get(url, params={"is_active": False}, headers=supervisor_headers).json()
        assert [h["codigo"] for h in inactivos] == ["012"]

        assert client.get(f"{BASE}/9999/hijos", headers=supervisor_headers).status_code == 404

    def test_tree(self, client, unidades, supervisor_headers) -> None:
        arbol = client.get(f"{BASE}/arbol", headers=supervisor_headers).json()
        assert [n["codigo"] for n in arbol] == ["010", "020", "090"]
        assert [h["codigo"] for h in arbol[0]["hijos"]] == ["011", "012"]
        assert arbol[0]["hijos"][0]["hijos"] == []

        activas = client.get(f"{BASE}/arbol", params={"is_active": True}, headers=supervisor_headers).json()
        assert [n["codigo"] for n in activas] == ["010", "020"]

    def test_plain_user_forbidden(self, client, unidades, user_headers) -> None:
        assert client.get(BASE, headers=user_headers).status_code == 403


class TestDependenciasEscritura:
    """Create, update, state and delete."""

    def test_create_top_level(self, client, db_session, unidades, supervisor_headers) -> None:
        response = client.post(
            BASE,
            json={"codigo": " 030 ", "sigla": "SGOB", "nombre": "Secretaría de Gobierno", "tipo": "dependencia"},
            headers=supervisor_headers,
        )
        assert response.status_code == 201
        data = response.json()
        assert data["codigo"] == "030"
        assert data["nivel"] == 1
        assert data["dependencia_padre_id"] is None
        assert data["is_active"] is True
        assert db_session.query(AuditLog).filter(AuditLog.table_name == "dependencias").count() == 1

    def test_create_subdependencia(self, client, unidades, admin_headers) -> None:
        response = client.post(
            BASE,
            json={
                "codigo": "022",
                "nombre": "Dirección de Tesorería",
                "tipo": "subdependencia",
                "dependencia_padre_id": unidades.hacienda.id,
            },
            headers=admin_headers,
        )
        assert response.status_code == 201
        assert response.json()["nivel"] == 2
        assert response.json()["dependencia_padre_nombre"] == "Secretaría de Hacienda"

    def test_create_rejections(self, client, unidades, admin_headers) -> None:
        casos = [
            ({"codigo": "030", "tipo": "dependencia"}, 400, "Los campos codigo, nombre y tipo son requeridos"),
            (
                {"codigo": "030", "nombre": "X", "tipo": "oficina"},
                400,
                "El campo tipo debe ser 'dependencia' o 'subdependencia'",
            ),
            (
                {"codigo": "030", "nombre": "X", "tipo": "subdependencia"},
                400,
                "Las subdependencias deben tener una dependencia padre",
            ),
            (
                {
                    "codigo": "030",
                    "nombre": "X",
                    "tipo": "subdependencia",
                    "dependencia_padre_id": unidades.rentas.id,
                },
                400,
                "La dependencia padre no existe o no es una dependencia principal",
            ),
            ({"codigo": "010", "nombre": "X", "tipo": "dependencia"}, 409, "El código 010 ya está en uso"),
            (
                {"codigo": "030", "sigla": "SPLA", "nombre": "X", "tipo": "dependencia"},
                409,
                "La sigla SPLA ya está en uso",
            ),
        ]
        for payload, codigo_http, mensaje in casos:
            response = client.post(BASE, json=payload, headers=admin_headers)
            assert response.status_code == codigo_http, payload
            assert response.json()["detail"] == mensaje

    def test_update_promotes_subdependencia(self, client, unidades, admin_headers) -> None:
        response = client.put(
            f"{BASE}/{unidades.rentas.id}", json={"tipo": "dependencia"}, headers=admin_headers
        )
        assert response.status_code == 200
        data = response.json()
        assert data["tipo"] == "dependencia"
        assert data["nivel"] == 1
        assert data["dependencia_padre_id"] is None

    def test_update_keeps_hierarchy_of_referenced_units(
        self, client, db_session, tramites, unidades, admin_headers
    ) -> None:
        promover = client.put(
            f"{BASE}/{unidades.rentas.id}", json={"tipo": "dependencia"}, headers=admin_headers
        )
        assert promover.status_code == 400
        assert promover.json()["detail"] == (
            'No se puede cambiar el tipo ni la dependencia padre de "Dirección de Rentas" '
            "porque tiene 1 trámites asociados"
        )

        mover = client.put(
            f"{BASE}/{unidades.urbanismo.id}",
            json={"dependencia_padre_id": unidades.hacienda.id},
            headers=admin_headers,
        )
        assert mover.status_code == 400

        renombrar = client.put(
            f"{BASE}/{unidades.rentas.id}",
            json={"nombre": "Dirección de Rentas Municipales", "tipo": "subdependencia"},
            headers=admin_headers,
        )
        assert renombrar.status_code == 200

        detalle = client.get(
            f"/api/admin/tramites/{tramites.predial.id}", headers=admin_headers
        ).json()
        assert detalle["formulario_edicion"]["seleccion"]["estado"] == "dependencia_y_subdependencia"

    def test_update_cannot_demote_unit_with_children(self, client, unidades, admin_headers) -> None:
        response = client.put(
            f"{BASE}/{unidades.planeacion.id}",
            json={"tipo": "subdependencia", "dependencia_padre_id": unidades.hacienda.id},
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == (
            "No se puede convertir en subdependencia una dependencia con subdependencias asociadas"
        )

    def test_update_rejects_self_parent_and_duplicate_code(self, client, unidades, admin_headers) -> None:
        propio = client.put(
            f"{BASE}/{unidades.rentas.id}",
            json={"dependencia_padre_id": unidades.rentas.id},
            headers=admin_headers,
        )
        assert propio.status_code == 400

        duplicado = client.put(
            f"{BASE}/{unidades.rentas.id}", json={"codigo": "011"}, headers=admin_headers
        )
        assert duplicado.status_code == 409

    def test_estado_requires_boolean(self, client, unidades, admin_headers) -> None:
        response = client.put(
            f"{BASE}/{unidades.archivo.id}/estado", json={"is_active": "si"}, headers=admin_headers
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "El campo is_active debe ser un valor booleano"

    def test_estado_blocked_by_tramites(self, client, tramites, unidades, admin_headers) -> None:
        response = client.put(
            f"{BASE}/{unidades.planeacion.id}/estado", json={"is_active": False}, headers=admin_headers
        )
        assert response.status_code == 400
        assert response.json()["detail"].endswith("porque tiene 2 trámites asociados")

    def test_estado_reactivates(self, client, unidades, admin_headers) -> None:
        response = client.put(
            f"{BASE}/{unidades.archivo.id}/estado", json={"is_active": True}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["is_active"] is True

    def test_delete_rules(self, client, db_session, tramites, unidades, admin_headers) -> None:
        con_tramites = client.delete(f"{BASE}/{unidades.urbanismo.id}", headers=admin_headers)
        assert con_tramites.status_code == 400
        assert "1 trámites asociados" in con_tramites.json()["detail"]

        response = client.delete(f"{BASE}/{unidades.archivo.id}", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["message"] == "Dependencia eliminada exitosamente"
        assert db_session.query(Dependencia).filter(Dependencia.codigo == "090").first() is None

    def test_delete_blocked_by_children(self, client, unidades, admin_headers) -> None:
        response = client.delete(f"{BASE}/{unidades.planeacion.id}", headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["detail"].endswith("porque tiene 2 subdependencias asociadas")

    def test_delete_is_admin_only(self, client, unidades, supervisor_headers) -> None:
        response = client.delete(f"{BASE}/{unidades.archivo.id}", headers=supervisor_headers)
        assert response.status_code == 403


class TestImportarDependencias:
    """POST /importar"""

    def test_import_builds_hierarchy(self, client, db_session, unidades, admin_headers) -> None:
        contenido = _csv(
            ENCABEZADO_DEPENDENCIAS,
            "040,SDS,Directo,Secretaría de Salud,040",
            "041,DSP,Dirección de Salud Pública,Secretaría de Salud,040",
            "010,SPX,Directo,Planeación duplicada,010",
            "042,SPLA,Dirección de Aseguramiento,Secretaría de Salud,040",
            "099,,Oficina huérfana,Secretaría Desconocida,098",
            ",,,,",
            "043,,,Secretaría de Salud,040",
        )

        response = _subir(client, "/importar", contenido, admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["dependencias_creadas"] == 2
        assert body["subdependencias_creadas"] == 2
        assert body["message"] == "Importación completada: 2 dependencias y 2 subdependencias creadas"
        assert 'Línea 4: Código "010" ya existe, saltando' in body["warnings"]
        assert 'Línea 5: Sigla "SPLA" ya existe, se omitirá' in body["warnings"]
        assert (
            'Línea 6: Dependencia padre con código "098" no encontrada, '
            "se creará como dependencia principal"
        ) in body["warnings"]
        assert "Línea 8: Campos requeridos vacíos, saltando fila" in body["warnings"]

        salud = db_session.query(Dependencia).filter(Dependencia.codigo == "040").one()
        publica = db_session.query(Dependencia).filter(Dependencia.codigo == "041").one()
        aseguramiento = db_session.query(Dependencia).filter(Dependencia.codigo == "042").one()
        huerfana = db_session.query(Dependencia).filter(Dependencia.codigo == "099").one()
        assert publica.dependencia_padre_id == salud.id
        assert publica.nivel == 2
        assert aseguramiento.sigla is None
        assert huerfana.tipo == "dependencia"
        assert huerfana.nombre == "Oficina huérfana"

        entrada = db_session.query(AuditLog).filter(AuditLog.action == "IMPORT").one()
        assert entrada.new_data["subdependencias_creadas"] == 2

    def test_import_xlsx(self, client, db_session, admin_headers) -> None:
        df = pd.DataFrame(
            [
                ["000", "DA", "Directo", "Despacho Alcalde", "000"],
                ["001", "OAJ", "Oficina Asesora Jurídica", "Despacho Alcalde", "000"],
            ],
            columns=COLUMNAS_IMPORT_DEPENDENCIAS,
        )
        buffer = io.BytesIO()
        df.to_excel(buffer, index=False)

        response = client.post(
            f"{BASE}/importar",
            files={"file": ("dependencias.xlsx", buffer.getvalue(), "application/octet-stream")},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["subdependencias_creadas"] == 1
        oaj = db_session.query(Dependencia).filter(Dependencia.sigla == "OAJ").one()
        assert oaj.padre.codigo == "000"

    def test_malformed_rows_are_critical(self, client, admin_headers) -> None:
        response = _subir(client, "/importar", _csv(ENCABEZADO_DEPENDENCIAS, "050,X"), admin_headers)
        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["error"] == "Errores críticos en el archivo CSV"
        assert detail["errors"][0].startswith("Línea 2: Formato de fila inválido")

    def test_nothing_new_to_import(self, client, unidades, admin_headers) -> None:
        response = _subir(
            client, "/importar", _csv(ENCABEZADO_DEPENDENCIAS, "010,SPLA,Directo,Planeación,010"), admin_headers
        )
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "No se encontraron dependencias válidas para importar"

    def test_missing_headers(self, client, admin_headers) -> None:
        response = _subir(client, "/importar", _csv("codigo,nombre", "1,A"), admin_headers)
        assert response.status_code == 400
        assert response.json()["detail"].startswith("El archivo debe contener los encabezados")

    def test_wrong_extension(self, client, admin_headers) -> None:
        response = _subir(client, "/importar", b"x", admin_headers, nombre="dependencias.pdf")
        assert response.status_code == 400
        assert response.json()["detail"].startswith("El archivo debe ser CSV o Excel")


class TestImportarContactos:
    """POST /import-contactos"""

    def test_rows_are_independent(self, client, db_session, unidades, admin_headers) -> None:
        contenido = _csv(
            ENCABEZADO_CONTACTOS,
            "010,SPLA,Secretaría de Planeación,Ana Gómez,planeacion@chia.gov.co,101,Carrera 11 # 11-29",
            "020,SHAC,Secretaría de Hacienda,Luis Pérez,planeacion@chia.gov.co,201,Calle 12",
            "999,XX,Inexistente,Nadie,nadie@chia.gov.co,1,Sin dirección",
            "021,DREN,Dirección de Rentas,Marta Ruiz,correo-invalido,3,Calle 13",
            ",,Sin código,,,,",
        )

        response = _subir(client, "/import-contactos", contenido, admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["total_imported"] == 1
        assert body["total_skipped"] == 4
        assert body["message"] == "Importación parcial: 1 actualizados, 4 errores"
        errores = {e["row"]: e["error"] for e in body["errors"]}
        assert errores[3] == "El correo planeacion@chia.gov.co ya está registrado en otra dependencia"
        assert errores[4] == "No se encontró dependencia con código 999"
        assert errores[5] == "Formato de correo inválido"
        assert errores[6] == "El código es requerido"

        db_session.refresh(unidades.planeacion)
        assert unidades.planeacion.responsable == "Ana Gómez"
        assert unidades.planeacion.extension_telefonica == "101"
        assert unidades.hacienda.correo_electronico is None

    def test_all_rows_applied(self, client, unidades, admin_headers) -> None:
        contenido = _csv(
            ENCABEZADO_CONTACTOS,
            "011,DOT,Dirección de Ordenamiento Territorial,Carlos Díaz,dot@chia.gov.co,110,Piso 2",
        )
        body = _subir(client, "/import-contactos", contenido, admin_headers).json()
        assert body["success"] is True
        assert body["message"] == "Importación completada exitosamente: 1 registros actualizados"

    def test_template(self, client, supervisor_headers) -> None:
        response = client.get(f"{BASE}/import-contactos", headers=supervisor_headers)
        assert response.status_code == 200
        lineas = response.content.decode("utf-8-sig").splitlines()
        assert lineas[0] == ENCABEZADO_CONTACTOS
        assert len(lineas) == 3


class TestExportarDependencias:
    """GET /exportar/*"""

    def test_csv_round_trips_layout(self, client, unidades, supervisor_headers) -> None:
        response = client.get(f"{BASE}/exportar/csv", headers=supervisor_headers)

        assert response.status_code == 200
        assert "dependencias-export-" in response.headers["content-disposition"]
        lineas = response.content.decode("utf-8-sig").splitlines()
        assert lineas[0] == ENCABEZADO_DEPENDENCIAS + ",TIPO,ESTADO,NIVEL"
        assert lineas[1] == "010,SPLA,Directo,Secretaría de Planeación,010,dependencia,Activa,1"
        assert (
            "011,DOT,Dirección de Ordenamiento Territorial,Secretaría de Planeación,010,subdependencia,Activa,2"
            in lineas
        )
        assert len(lineas) == 7

    def test_csv_state_filter(self, client, unidades, supervisor_headers) -> None:
        response = client.get(
            f"{BASE}/exportar/csv", params={"is_active": False}, headers=supervisor_headers
        )
        lineas = response.content.decode("utf-8-sig").splitlines()
        assert lineas[1:] == ["090,ARCH,Directo,Oficina de Archivo,090,dependencia,Inactiva,1"]

    def test_exported_csv_imports_into_empty_database(
        self, client, db_session, unidades, admin_headers
    ) -> None:
        exportado = client.get(f"{BASE}/exportar/csv", headers=admin_headers).content
        db_session.query(Dependencia).filter(Dependencia.tipo == "subdependencia").delete()
        db_session.query(Dependencia).delete()
        db_session.commit()
        db_session.expunge_all()

        body = _subir(client, "/importar", exportado, admin_headers).json()

        assert body["dependencias_creadas"] == 3
        assert body["subdependencias_creadas"] == 3

    def test_json_is_hierarchical(self, client, unidades, supervisor_headers) -> None:
        response = client.get(f"{BASE}/exportar/json", headers=supervisor_headers)
        arbol = json.loads(response.content)
        planeacion = next(n for n in arbol if n["codigo"] == "010")
        assert planeacion["parent"] is None
        assert [h["codigo"] for h in planeacion["children"]] == ["011", "012"]
        assert planeacion["children"][0]["parent"] == {"nombre": "Secretaría de Planeación", "codigo": "010"}

    def test_excel(self, client, unidades, supervisor_headers) -> None:
        response = client.get(f"{BASE}/exportar/excel", headers=supervisor_headers)
        assert response.status_code == 200
        assert response.content[:2] == b"PK"
        assert response.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )

    def test_empty_export_is_404(self, client, supervisor_headers) -> None:
        for formato in ("csv", "json", "excel"):
            response = client.get(f"{BASE}/exportar/{formato}", headers=supervisor_headers)
            assert response.status_code == 404
            assert response.json()["detail"] == "No hay dependencias para exportar"

    def test_template(self, client, supervisor_headers) -> None:
        response = client.get(f"{BASE}/exportar/plantilla", headers=supervisor_headers)
        lineas = response.content.decode("utf-8-sig").splitlines()
        assert lineas[0] == ENCABEZADO_DEPENDENCIAS
        assert "001,OAJ,Oficina Asesora Jurídica,Despacho Alcalde,000" in lineas
