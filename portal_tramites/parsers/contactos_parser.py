"""Parser for the unit-contacts CSV.

Expected headers::

    CODIGO, SIGLA, DEPENDENCIA, RESPONSABLE, CORREO ELECTRONICO, EXT, DIRECCIÓN

Rows are returned as-is (cleaned strings keyed by header); field
validation is done by ``ContactoFila`` in the service.
"""

from __future__ import annotations

import pandas as pd

from portal_tramites.parsers.base_parser import BaseParser
from portal_tramites.utils.constants import COLUMNAS_IMPORT_CONTACTOS


class ContactosParser(BaseParser):
    FORMAT_NAME = "CONTACTOS"
    EXPECTED_HEADERS = COLUMNAS_IMPORT_CONTACTOS

    def parse_rows(self, df: pd.DataFrame) -> None:
        for i, row in enumerate(df.itertuples(index=False)):
            valores = {
                col: self._clean_str(val)
                for col, val in zip(df.columns, row)
                if col in COLUMNAS_IMPORT_CONTACTOS
            }
            if not any(valores.values()):
                continue
            self.result.records.append({"_row": self._line_number(i), **valores})
