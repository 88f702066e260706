"""Seed data script for the Portal de Trámites database.

Populates the database with a small demo organization: backoffice users,
the top-level units with a few sub-units, and a handful of trámites so
the public catalog has something to search. The script is idempotent:
each step skips its table when it already has data.

Usage (from the repository root, after ``alembic upgrade head``):
    python seed_data.py
"""

from __future__ import annotations

from portal_tramites.database import SessionLocal
from portal_tramites.models import Dependencia, Tramite, Usuario
from portal_tramites.utils.constants import TIPO_DEPENDENCIA, TIPO_SUBDEPENDENCIA
from portal_tramites.utils.security import hash_password

# ---------------------------------------------------------------------------
# Seed functions
# ---------------------------------------------------------------------------


def seed_usuarios(session) -> None:
    """Insert one user per role if the table is empty."""
    if session.query(Usuario).count() > 0:
        print("  [SKIP] Usuario: table already has data.")
        return

    registros = [
        Usuario(
            email="admin@chia.gov.co",
            password_hash=hash_password("Admin123!"),
            full_name="Administrador del Portal",
            role="admin",
            dependencia="Secretaría General",
            is_active=True,
        ),
        Usuario(
            email="supervisor@chia.gov.co",
            password_hash=hash_password("Super123!"),
            full_name="Laura Gómez",
            role="supervisor",
            dependencia="Secretaría de Planeación",
            is_active=True,
        ),
        Usuario(
            email="consulta@chia.gov.co",
            password_hash=hash_password("Consulta123!"),
            full_name="Andrés Rojas",
            role="user",
            is_active=True,
        ),
    ]
    session.add_all(registros)
    session.flush()
    print(f"  [OK] Usuario: {len(registros)} registros insertados.")


def seed_dependencias(session) -> dict[str, Dependencia]:
    """Insert the demo hierarchy and return it keyed by codigo."""
    if session.query(Dependencia).count() > 0:
        print("  [SKIP] Dependencia: table already has data.")
        return {d.codigo: d for d in session.query(Dependencia).all()}

    principales = [
        # codigo, sigla, nombre
        ("000", "DA", "Despacho del Alcalde"),
        ("010", "SPLA", "Secretaría de Planeación"),
        ("020", "SHAC", "Secretaría de Hacienda"),
        ("030", "SGOB", "Secretaría de Gobierno"),
    ]
    por_codigo: dict[str, Dependencia] = {}
    for orden, (codigo, sigla, nombre) in enumerate(principales):
        dep = Dependencia(
            codigo=codigo, sigla=sigla, nombre=nombre,
            tipo=TIPO_DEPENDENCIA, nivel=1, orden=orden, is_active=True,
        )
        session.add(dep)
        por_codigo[codigo] = dep
    session.flush()

    subdependencias = [
        # codigo, sigla, nombre, codigo_padre
        ("001", "OAJ", "Oficina Asesora Jurídica", "000"),
        ("011", "DOT", "Dirección de Ordenamiento Territorial", "010"),
        ("012", "DUR", "Dirección de Urbanismo", "010"),
        ("021", "DREN", "Dirección de Rentas", "020"),
        ("031", "DIC", "Dirección de Inspección y Control", "030"),
    ]
    for orden, (codigo, sigla, nombre, padre) in enumerate(subdependencias):
        sub = Dependencia(
            codigo=codigo, sigla=sigla, nombre=nombre,
            tipo=TIPO_SUBDEPENDENCIA, nivel=2, orden=orden, is_active=True,
            dependencia_padre_id=por_codigo[padre].id,
        )
        session.add(sub)
        por_codigo[codigo] = sub
    session.flush()
    print(f"  [OK] Dependencia: {len(por_codigo)} registros insertados.")
    return por_codigo


def seed_tramites(session, deps: dict[str, Dependencia]) -> None:
    """Insert a few catalog entries spread over the demo units."""
    if session.query(Tramite).count() > 0:
        print("  [SKIP] Tramite: table already has data.")
        return

    datos = [
        # nombre, categoria, modalidad, dep, sub, pago, info_pago, tiempo
        ("Licencia de construcción", "Urbanismo", "Presencial", "010", "012", "Sí",
         "Liquidación según metraje en la Dirección de Urbanismo", "45 días hábiles"),
        ("Certificado de uso del suelo", "Urbanismo", "Virtual", "010", "011", "Sí",
         "Pago en línea por PSE", "10 días hábiles"),
        ("Impuesto predial unificado", "Impuestos", "Presencial y virtual", "020", "021", "Sí",
         "Factura generada en el portal de Hacienda", "Inmediato"),
        ("Certificado de residencia", "Certificados", "Virtual", "030", None, "No",
         None, "5 días hábiles"),
        ("Permiso para eventos públicos", "Seguridad y convivencia", "Presencial", "030", "031", "No",
         None, "15 días hábiles"),
    ]

    registros = []
    for nombre, categoria, modalidad, dep, sub, pago, info, tiempo in datos:
        registros.append(
            Tramite(
                nombre_tramite=nombre,
                descripcion=f"Solicitud de {nombre.lower()} ante el municipio.",
                categoria=categoria,
                modalidad=modalidad,
                formulario="",
                dependencia_id=deps[dep].id,
                subdependencia_id=deps[sub].id if sub else None,
                requiere_pago=pago,
                informacion_pago=info,
                tiempo_respuesta=tiempo,
                requisitos="Documento de identidad\nFormulario diligenciado",
                instrucciones="Radique la solicitud y espere la notificación.",
                url_suit="",
                url_gov="",
                is_active=True,
            )
        )
    session.add_all(registros)
    session.flush()
    print(f"  [OK] Tramite: {len(registros)} registros insertados.")


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Run the complete seed process within a single database transaction."""
    print("=" * 60)
    print("  Portal de Trámites: Seed Data Script")
    print("=" * 60)

    session = SessionLocal()
    try:
        print("\n[1/3] Usuarios...")
        seed_usuarios(session)

        print("\n[2/3] Dependencias...")
        deps = seed_dependencias(session)

        print("\n[3/3] Trámites...")
        seed_tramites(session, deps)

        session.commit()
        print("\n" + "=" * 60)
        print("  Seed completado exitosamente.")
        print("=" * 60)

    except Exception as exc:
        session.rollback()
        print("\n[ERROR] Seed fallido, se hizo rollback.")
        print(f"  Detalle: {exc}")
        raise
    finally:
        session.close()


if __name__ == "__main__":
    main()
