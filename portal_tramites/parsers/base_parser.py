"""Abstract base class for the CSV / Excel import parsers.

Provides shared infrastructure for loading an uploaded table with pandas,
checking its headers and normalising cell values before format-specific
subclasses turn rows into records.
"""

from __future__ import annotations

import io
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import pandas as pd

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result container
# ---------------------------------------------------------------------------


@dataclass
class ParseResult:
    """Container returned by every parser after processing a file.

    Attributes:
        records: One dict per usable row. Each carries ``_row``, the 1-based
            line number in the file (header is line 1).
        errors: Structural problems that make the whole file unusable.
        warnings: Rows that were skipped or adjusted.
        row_errors: Rows rejected individually, as ``{row, error, data}``.
        format_name: Identifier of the parser that produced the result.
    """

    records: list[dict[str, Any]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    row_errors: list[dict[str, Any]] = field(default_factory=list)
    format_name: str = "DESCONOCIDO"

    @property
    def ok(self) -> bool:
        """True when no structural errors were collected."""
        return len(self.errors) == 0

    def summary(self) -> str:
        status = "OK" if self.ok else "ERROR"
        return (
            f"[{status}] format={self.format_name} "
            f"records={len(self.records)} "
            f"errors={len(self.errors)} "
            f"row_errors={len(self.row_errors)} "
            f"warnings={len(self.warnings)}"
        )


# ---------------------------------------------------------------------------
# Base parser
# ---------------------------------------------------------------------------


class BaseParser(ABC):
    """Abstract base for all import parsers.

    Subclasses must implement ``parse_rows(df)``. They may set
    ``EXPECTED_HEADERS`` to have the header row checked automatically.

    The constructor takes the raw upload bytes and the client file name;
    ``.xlsx`` files are read with openpyxl, anything else as UTF-8 CSV.
    Every cell is read as a string so codes like "010" keep their zeros.
    """

    FORMAT_NAME: str = "DESCONOCIDO"
    EXPECTED_HEADERS: list[str] = []

    def __init__(self, content: bytes, filename: str = "archivo.csv") -> None:
        self.content = content
        self.filename = filename or "archivo.csv"
        self.result = ParseResult(format_name=self.FORMAT_NAME)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @property
    def is_excel(self) -> bool:
        return self.filename.lower().endswith((".xlsx", ".xlsm"))

    def _load_table(self) -> pd.DataFrame | None:
        """Read the upload into a DataFrame of strings, or record an error."""
        try:
            if self.is_excel:
                df = pd.read_excel(
                    io.BytesIO(self.content), sheet_name=0, dtype=str, engine="openpyxl"
                )
            else:
                df = pd.read_csv(
                    io.BytesIO(self.content),
                    dtype=str,
                    encoding="utf-8-sig",
                    keep_default_na=False,
                    skip_blank_lines=True,
                )
        except (ValueError, UnicodeDecodeError, pd.errors.ParserError) as exc:
            msg = f"No se pudo leer el archivo '{self.filename}': {exc}"
            logger.error(msg)
            self.result.errors.append(msg)
            return None

        df.columns = [self._clean_str(c) for c in df.columns]
        return df

    def _check_headers(self, df: pd.DataFrame) -> bool:
        faltantes = [h for h in self.EXPECTED_HEADERS if h not in df.columns]
        if faltantes:
            self.result.errors.append(
                "El archivo debe contener los encabezados: " + ", ".join(self.EXPECTED_HEADERS)
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def parse(self) -> ParseResult:
        df = self._load_table()
        if df is None:
            return self.result
        if self.EXPECTED_HEADERS and not self._check_headers(df):
            return self.result
        if df.empty:
            self.result.errors.append(
                "El archivo debe contener encabezados y al menos una fila de datos"
            )
            return self.result

        self.parse_rows(df)
        logger.info("%s: %s", self.filename, self.result.summary())
        return self.result

    @abstractmethod
    def parse_rows(self, df: pd.DataFrame) -> None:
        """Populate ``self.result`` from the loaded table."""

    # ------------------------------------------------------------------
    # Value normalisation helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _clean_str(value: Any) -> str:
        """Return a stripped string, converting NaN/None to empty string."""
        if value is None:
            return ""
        if isinstance(value, float) and pd.isna(value):
            return ""
        return str(value).strip().strip('"').strip()

    @staticmethod
    def _line_number(index: int) -> int:
        """File line of the *index*-th data row (header is line 1)."""
        return index + 2
