"""
Import service layer.

Handles the CSV / Excel uploads of the backoffice end-to-end:

1. Read the upload and hand it to the matching ``BaseParser`` subclass.
2. Resolve codes and names against the database, row by row.
3. Insert or update the valid rows.
4. Write one ``IMPORT`` audit row in the same transaction.
5. Return a summary the admin UI shows to the operator.

Imports
-------
- Dependencias: creates top-level units first, then sub-units whose parent
  is looked up by code (including units created earlier in the same file).
- Contactos: updates the contact fields of existing units matched by code.
- Trámites: creates trámites from the positional 14-column layout.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, UploadFile, status
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal_tramites.models.dependencia import Dependencia
from portal_tramites.models.tramite import Tramite
from portal_tramites.models.usuario import Usuario
from portal_tramites.parsers import ContactosParser, DependenciasParser, ParseResult, TramitesParser
from portal_tramites.schemas.dependencia import (
    ContactoFila,
    ImportacionContactosResponse,
    ImportacionDependenciasResponse,
    ImportacionError,
    ImportacionTramitesResponse,
)
from portal_tramites.services.auditoria_service import registrar_auditoria
from portal_tramites.services.selector_dependencias import resolver_par_dependencias
from portal_tramites.services.tramite_service import resolver_id_por_nombre
from portal_tramites.utils.constants import TIPO_DEPENDENCIA, TIPO_SUBDEPENDENCIA
from portal_tramites.utils.errores import error_base_datos
from portal_tramites.utils.validacion import es_requiere_pago_valido, normalizar_requiere_pago

logger = logging.getLogger(__name__)

PLANTILLA_CONTACTOS = (
    "CODIGO,SIGLA,DEPENDENCIA,RESPONSABLE,CORREO ELECTRONICO,EXT,DIRECCIÓN\n"
    "000,DA,DESPACHO DEL ALCALDE,Nombre Responsable,correo@ejemplo.com,1234,Dirección Completa\n"
    "001,OAJ,Oficina Asesora Jurídica,Nombre Responsable2,correo2@ejemplo.com,5678,Dirección 2"
)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


async def _leer_upload(file: UploadFile) -> tuple[bytes, str]:
    raw: bytes = await file.read()
    filename: str = file.filename or "archivo.csv"
    if not raw:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="El archivo está vacío")
    return raw, filename


def _validar_extension(filename: str, permitidas: tuple[str, ...]) -> None:
    if not filename.lower().endswith(permitidas):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="El archivo debe ser CSV o Excel (" + ", ".join(permitidas) + ")",
        )


def _sin_claves_internas(registro: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in registro.items() if not k.startswith("_")}


def _commit_importacion(db: Session, mensaje_duplicado: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Import commit failed")
        raise error_base_datos(
            exc,
            mensaje_duplicado=mensaje_duplicado,
            mensaje_general="Error al guardar los registros importados",
        ) from exc


def _mensaje_resumen(importados: int, errores: int, sustantivo: str) -> str:
    if errores == 0:
        return f"Importación completada exitosamente: {importados} {sustantivo}"
    return f"Importación parcial: {importados} {sustantivo.split()[-1]}, {errores} errores"


# ---------------------------------------------------------------------------
# Dependencias
# ---------------------------------------------------------------------------


def _crear_unidad(
    db: Session,
    registro: dict[str, Any],
    tipo: str,
    padre_id: int | None,
    usuario: Usuario,
) -> Dependencia:
    dep = Dependencia(
        codigo=registro["codigo"],
        sigla=registro["sigla"],
        nombre=registro["nombre"],
        tipo=tipo,
        dependencia_padre_id=padre_id,
        nivel=2 if tipo == TIPO_SUBDEPENDENCIA else 1,
        orden=0,
        is_active=True,
        created_by=usuario.id,
        updated_by=usuario.id,
    )
    db.add(dep)
    return dep


def importar_dependencias_desde_bytes(
    db: Session,
    raw: bytes,
    filename: str,
    usuario: Usuario,
) -> ImportacionDependenciasResponse:
    """Create units from the five-column organizational-units file.

    Rows whose code already exists (in the database or earlier in the file)
    are skipped with a warning; a duplicated sigla is dropped and the unit
    is created without one. A sub-unit whose parent code is unknown is
    created as a top-level unit.

    Raises:
        HTTPException 400: Unreadable file, missing headers, malformed rows,
            or no valid unit to import.
    """
    result: ParseResult = DependenciasParser(raw, filename).parse()
    if result.errors:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.errors[0])

    warnings = list(result.warnings)
    if result.row_errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "Errores críticos en el archivo CSV",
                "errors": [e["error"] for e in result.row_errors],
                "warnings": warnings,
            },
        )

    codigos = {c for (c,) in db.query(Dependencia.codigo).all()}
    siglas = {s for (s,) in db.query(Dependencia.sigla).filter(Dependencia.sigla.isnot(None)).all()}

    principales: list[dict[str, Any]] = []
    subordinadas: list[dict[str, Any]] = []
    for registro in result.records:
        linea = registro["_row"]
        if registro["codigo"] in codigos:
            warnings.append(f'Línea {linea}: Código "{registro["codigo"]}" ya existe, saltando')
            continue
        codigos.add(registro["codigo"])

        sigla = registro["sigla"]
        if sigla and sigla in siglas:
            warnings.append(f'Línea {linea}: Sigla "{sigla}" ya existe, se omitirá')
            registro["sigla"] = None
        elif sigla:
            siglas.add(sigla)

        if registro["tipo"] == TIPO_DEPENDENCIA:
            principales.append(registro)
        else:
            subordinadas.append(registro)

    if not principales and not subordinadas:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "No se encontraron dependencias válidas para importar",
                "warnings": warnings,
            },
        )

    creadas_principales = 0
    creadas_sub = 0
    try:
        for registro in principales:
            _crear_unidad(db, registro, TIPO_DEPENDENCIA, None, usuario)
            creadas_principales += 1
        db.flush()

        for registro in subordinadas:
            padre = (
                db.query(Dependencia)
                .filter(
                    Dependencia.codigo == registro["codigo_padre"],
                    Dependencia.tipo == TIPO_DEPENDENCIA,
                )
                .first()
            )
            if padre is None:
                warnings.append(
                    f'Línea {registro["_row"]}: Dependencia padre con código '
                    f'"{registro["codigo_padre"]}" no encontrada, se creará como dependencia principal'
                )
                _crear_unidad(db, registro, TIPO_DEPENDENCIA, None, usuario)
                creadas_principales += 1
            else:
                _crear_unidad(db, registro, TIPO_SUBDEPENDENCIA, padre.id, usuario)
                creadas_sub += 1
            db.flush()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("importar_dependencias: insert failed for '%s'", filename)
        raise error_base_datos(
            exc,
            mensaje_duplicado="El código o la sigla ya están en uso",
            mensaje_general="Error al insertar dependencias en la base de datos",
        ) from exc

    registrar_auditoria(
        db,
        usuario=usuario,
        accion="IMPORT",
        tabla="dependencias",
        despues={
            "archivo": filename,
            "dependencias_creadas": creadas_principales,
            "subdependencias_creadas": creadas_sub,
            "warnings": len(warnings),
        },
    )
    _commit_importacion(db, "El código o la sigla ya están en uso")

    logger.info(
        "importar_dependencias: file='%s' principales=%d sub=%d warnings=%d by=%s",
        filename, creadas_principales, creadas_sub, len(warnings), usuario.email,
    )
    return ImportacionDependenciasResponse(
        success=True,
        dependencias_creadas=creadas_principales,
        subdependencias_creadas=creadas_sub,
        warnings=warnings,
        message=(
            f"Importación completada: {creadas_principales} dependencias y "
            f"{creadas_sub} subdependencias creadas"
        ),
    )


async def importar_dependencias(
    db: Session, file: UploadFile, usuario: Usuario
) -> ImportacionDependenciasResponse:
    raw, filename = await _leer_upload(file)
    _validar_extension(filename, (".csv", ".xlsx"))
    return importar_dependencias_desde_bytes(db, raw, filename, usuario)


# ---------------------------------------------------------------------------
# Contactos
# ---------------------------------------------------------------------------


def _mensajes_validacion(exc: ValidationError) -> str:
    mensajes = []
    for err in exc.errors():
        ctx_error = (err.get("ctx") or {}).get("error")
        mensajes.append(str(ctx_error) if ctx_error else err["msg"])
    return ", ".join(mensajes)


def importar_contactos_desde_bytes(
    db: Session,
    raw: bytes,
    filename: str,
    usuario: Usuario,
) -> ImportacionContactosResponse:
    """Update responsable, email, extension and address of existing units.

    Each row is handled independently: invalid rows, unknown codes and
    emails already used by another unit are reported in ``errors`` and
    skipped while the remaining rows are still applied.

    Raises:
        HTTPException 400: Unreadable file or missing headers.
    """
    result: ParseResult = ContactosParser(raw, filename).parse()
    if result.errors:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.errors[0])

    importados = 0
    omitidos = 0
    errores: list[ImportacionError] = []

    for registro in result.records:
        fila = registro["_row"]
        datos = _sin_claves_internas(registro)
        try:
            contacto = ContactoFila.model_validate(datos)
        except ValidationError as exc:
            omitidos += 1
            errores.append(ImportacionError(row=fila, error=_mensajes_validacion(exc), data=datos))
            continue

        dep = db.query(Dependencia).filter(Dependencia.codigo == contacto.codigo).first()
        if dep is None:
            omitidos += 1
            errores.append(
                ImportacionError(
                    row=fila,
                    error=f"No se encontró dependencia con código {contacto.codigo}",
                    data=datos,
                )
            )
            continue

        if contacto.correo_electronico:
            duplicado = (
                db.query(Dependencia.id)
                .filter(
                    Dependencia.correo_electronico == contacto.correo_electronico,
                    Dependencia.id != dep.id,
                )
                .first()
            )
            if duplicado is not None:
                omitidos += 1
                errores.append(
                    ImportacionError(
                        row=fila,
                        error=(
                            f"El correo {contacto.correo_electronico} ya está "
                            "registrado en otra dependencia"
                        ),
                        data=datos,
                    )
                )
                continue

        dep.responsable = contacto.responsable or None
        dep.correo_electronico = contacto.correo_electronico or None
        dep.extension_telefonica = contacto.extension or None
        dep.direccion = contacto.direccion or None
        dep.updated_by = usuario.id
        db.flush()
        importados += 1

    registrar_auditoria(
        db,
        usuario=usuario,
        accion="IMPORT",
        tabla="dependencias",
        despues={
            "archivo": filename,
            "contactos_actualizados": importados,
            "errores": len(errores),
        },
    )
    _commit_importacion(db, "El correo ya está registrado en otra dependencia")

    logger.info(
        "importar_contactos: file='%s' updated=%d skipped=%d by=%s",
        filename, importados, omitidos, usuario.email,
    )
    return ImportacionContactosResponse(
        success=importados > 0 and not errores,
        total_imported=importados,
        total_skipped=omitidos,
        errors=errores,
        message=_mensaje_resumen(importados, len(errores), "registros actualizados"),
    )


async def importar_contactos(
    db: Session, file: UploadFile, usuario: Usuario
) -> ImportacionContactosResponse:
    raw, filename = await _leer_upload(file)
    _validar_extension(filename, (".csv", ".xlsx"))
    return importar_contactos_desde_bytes(db, raw, filename, usuario)


# ---------------------------------------------------------------------------
# Trámites
# ---------------------------------------------------------------------------


def _resolver_unidades(db: Session, registro: dict[str, Any]) -> tuple[int | None, int | None]:
    dep_id = registro.get("dependencia_id")
    sub_id = registro.get("subdependencia_id")
    if dep_id is None and registro.get("dependencia_nombre"):
        dep_id = resolver_id_por_nombre(db, registro["dependencia_nombre"], TIPO_DEPENDENCIA)
    if sub_id is None and registro.get("subdependencia_nombre"):
        sub_id = resolver_id_por_nombre(db, registro["subdependencia_nombre"], TIPO_SUBDEPENDENCIA)
    return dep_id, sub_id


def _errores_fila_tramite(db: Session, registro: dict[str, Any]) -> tuple[list[str], Any]:
    errores: list[str] = []
    if not registro.get("nombre_tramite"):
        errores.append("El campo 'nombre_tramite' es requerido")
    if not es_requiere_pago_valido(registro.get("requiere_pago")):
        errores.append("El campo 'requiere_pago' debe ser 'Sí', 'No' o estar vacío")

    dep_id, sub_id = _resolver_unidades(db, registro)
    if dep_id is None and registro.get("dependencia_nombre"):
        errores.append(f"No se encontró la dependencia '{registro['dependencia_nombre']}'")
    if sub_id is None and registro.get("subdependencia_nombre"):
        errores.append(f"No se encontró la subdependencia '{registro['subdependencia_nombre']}'")

    seleccion, errores_unidades = resolver_par_dependencias(db, dep_id, sub_id)
    errores.extend(errores_unidades)
    return errores, seleccion


def importar_tramites_desde_bytes(
    db: Session,
    raw: bytes,
    filename: str,
    usuario: Usuario,
) -> ImportacionTramitesResponse:
    """Create trámites from the positional 14-column file.

    The first column (``id``) is ignored; every valid row creates a new
    active trámite. Rows with a missing name, an invalid ``requiere_pago``
    or unknown / inconsistent units are reported and skipped.

    Raises:
        HTTPException 400: Unreadable file or too few columns.
    """
    result: ParseResult = TramitesParser(raw, filename).parse()
    if result.errors:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.errors[0])

    errores = [ImportacionError(**e) for e in result.row_errors]
    importados = 0

    for registro in result.records:
        fila = registro["_row"]
        datos = _sin_claves_internas(registro)
        mensajes, seleccion = _errores_fila_tramite(db, registro)
        if mensajes:
            errores.append(ImportacionError(row=fila, error="; ".join(mensajes), data=datos))
            continue

        tramite = Tramite(
            nombre_tramite=registro["nombre_tramite"],
            descripcion=registro.get("descripcion") or None,
            categoria=registro.get("categoria") or None,
            modalidad=registro.get("modalidad") or None,
            formulario=registro.get("formulario", ""),
            dependencia_id=seleccion.dependencia_id,
            subdependencia_id=seleccion.subdependencia_id,
            requiere_pago=normalizar_requiere_pago(registro.get("requiere_pago")),
            tiempo_respuesta=registro.get("tiempo_respuesta") or None,
            requisitos=registro.get("requisitos") or None,
            instrucciones=registro.get("instrucciones") or None,
            url_suit=registro.get("url_suit", ""),
            url_gov=registro.get("url_gov", ""),
            is_active=True,
            created_by=usuario.id,
            updated_by=usuario.id,
        )
        db.add(tramite)
        importados += 1

    registrar_auditoria(
        db,
        usuario=usuario,
        accion="IMPORT",
        tabla="tramites",
        despues={"archivo": filename, "tramites_creados": importados, "errores": len(errores)},
    )
    _commit_importacion(db, "Ya existe un trámite con este nombre")

    logger.info(
        "importar_tramites: file='%s' created=%d errors=%d by=%s",
        filename, importados, len(errores), usuario.email,
    )
    return ImportacionTramitesResponse(
        success=importados > 0 and not errores,
        total_imported=importados,
        total_skipped=len(errores),
        errors=errores,
        message=_mensaje_resumen(importados, len(errores), "trámites importados"),
    )


async def importar_tramites(
    db: Session, file: UploadFile, usuario: Usuario
) -> ImportacionTramitesResponse:
    raw, filename = await _leer_upload(file)
    _validar_extension(filename, (".csv", ".xlsx"))
    return importar_tramites_desde_bytes(db, raw, filename, usuario)
