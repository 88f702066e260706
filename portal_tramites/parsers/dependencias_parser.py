"""Parser for the organizational-units CSV.

Expected headers::

    CODIGO SUBDEPENDENCIA, SIGLA, Subdependencia, Dependencias, CODIGO DEPENDENCIA

A row describes a top-level unit when ``Subdependencia`` is "Directo" or
``CODIGO DEPENDENCIA`` is empty; its code is ``CODIGO SUBDEPENDENCIA`` and
its name ``Dependencias``. Any other row is a sub-unit named by
``Subdependencia`` whose parent code is ``CODIGO DEPENDENCIA``.

Parent resolution and duplicate detection need the database and are left
to ``importacion_service``.
"""

from __future__ import annotations

import pandas as pd

from portal_tramites.parsers.base_parser import BaseParser
from portal_tramites.utils.constants import (
    COLUMNAS_IMPORT_DEPENDENCIAS,
    MARCA_DEPENDENCIA_DIRECTA,
    TIPO_DEPENDENCIA,
    TIPO_SUBDEPENDENCIA,
)


class DependenciasParser(BaseParser):
    FORMAT_NAME = "DEPENDENCIAS"
    EXPECTED_HEADERS = COLUMNAS_IMPORT_DEPENDENCIAS

    def parse_rows(self, df: pd.DataFrame) -> None:
        for i, row in enumerate(df.itertuples(index=False)):
            linea = self._line_number(i)
            if not self.is_excel and any(isinstance(v, float) and pd.isna(v) for v in row):
                self.result.row_errors.append(
                    {
                        "row": linea,
                        "error": f"Línea {linea}: Formato de fila inválido (se esperaban "
                        f"{len(COLUMNAS_IMPORT_DEPENDENCIAS)} columnas)",
                        "data": None,
                    }
                )
                continue
            valores = dict(zip(df.columns, row))
            codigo_sub = self._clean_str(valores["CODIGO SUBDEPENDENCIA"])
            sigla = self._clean_str(valores["SIGLA"])
            nombre_sub = self._clean_str(valores["Subdependencia"])
            nombre_dep = self._clean_str(valores["Dependencias"])
            codigo_dep = self._clean_str(valores["CODIGO DEPENDENCIA"])

            if not codigo_sub and not sigla and not nombre_sub and not nombre_dep and not codigo_dep:
                continue
            if not codigo_sub or not nombre_sub or not nombre_dep:
                self.result.warnings.append(
                    f"Línea {linea}: Campos requeridos vacíos, saltando fila"
                )
                continue

            es_principal = nombre_sub == MARCA_DEPENDENCIA_DIRECTA or not codigo_dep
            self.result.records.append(
                {
                    "_row": linea,
                    "codigo": codigo_sub,
                    "sigla": sigla or None,
                    "nombre": nombre_dep if es_principal else nombre_sub,
                    "tipo": TIPO_DEPENDENCIA if es_principal else TIPO_SUBDEPENDENCIA,
                    "codigo_padre": None if es_principal else codigo_dep,
                }
            )
