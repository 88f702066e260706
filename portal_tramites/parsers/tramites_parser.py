"""Parser for the trámites CSV or XLSX upload.

Columns are positional (the header text is not checked)::

    id, nombre_tramite, descripcion, categoria, modalidad, formulario,
    dependencia, subdependencia, requiere_pago, tiempo_respuesta,
    requisitos, instrucciones, url_suit, url_gov

The ``id`` column is ignored on import. ``dependencia`` and
``subdependencia`` hold either a numeric id or a unit name; numeric values
become ``*_id`` keys and anything else ``*_nombre`` keys. Extra trailing
columns (``is_active``, ``created_at``, ... from an export) are ignored.
A short CSV row is a row error; blank Excel cells are read as empty values.
"""

from __future__ import annotations

import pandas as pd

from portal_tramites.parsers.base_parser import BaseParser
from portal_tramites.utils.constants import COLUMNAS_TRAMITES

_NUM_COLUMNAS = len(COLUMNAS_TRAMITES)


class TramitesParser(BaseParser):
    FORMAT_NAME = "TRAMITES"

    def parse_rows(self, df: pd.DataFrame) -> None:
        if len(df.columns) < _NUM_COLUMNAS:
            self.result.errors.append(
                f"El archivo debe tener al menos {_NUM_COLUMNAS} columnas: "
                + ", ".join(COLUMNAS_TRAMITES)
            )
            return

        for i, row in enumerate(df.itertuples(index=False)):
            linea = self._line_number(i)
            celdas = list(row)[:_NUM_COLUMNAS]
            if not self.is_excel and any(isinstance(c, float) and pd.isna(c) for c in celdas):
                self.result.row_errors.append(
                    {
                        "row": linea,
                        "error": f"Formato de fila inválido (se esperaban {_NUM_COLUMNAS} columnas)",
                        "data": None,
                    }
                )
                continue

            valores = dict(zip(COLUMNAS_TRAMITES, (self._clean_str(c) for c in celdas)))
            if not any(valores.values()):
                continue

            registro = {"_row": linea}
            for campo, valor in valores.items():
                if campo == "id":
                    continue
                if campo in ("dependencia", "subdependencia"):
                    if valor.isdigit():
                        registro[f"{campo}_id"] = int(valor)
                    elif valor:
                        registro[f"{campo}_nombre"] = valor
                    continue
                registro[campo] = valor
            self.result.records.append(registro)
