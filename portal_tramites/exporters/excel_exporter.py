"""
Excel export helper wrapping xlsxwriter.

Provides ``ExcelExporter``, a stateful builder that constructs a styled
workbook in memory and returns its bytes for streaming via FastAPI's
``StreamingResponse``.

Usage example::

    exporter = ExcelExporter(title="Dependencias", filters={"Estado": "Activas"})
    exporter.add_header()
    exporter.add_summary_row({"Total": 42, "Activas": 40})
    exporter.add_data_table(headers, rows)
    file_bytes = exporter.finalize()

Design notes
------------
- Uses ``xlsxwriter`` in in-memory mode (``BytesIO``).
- Column widths follow the longest cell of each column, capped at 60.
- Every other data row is shaded light grey.
- The header uses the portal's institutional green.
"""

from __future__ import annotations

import io
from datetime import datetime, timezone
from typing import Any, Sequence

import xlsxwriter
from xlsxwriter.workbook import Workbook
from xlsxwriter.worksheet import Worksheet

from portal_tramites.config import get_settings

_COLOR_PRIMARY = "#1F6F43"
_COLOR_SUBHEADER_BG = "#14432A"
_COLOR_WHITE = "#FFFFFF"
_COLOR_LIGHT_GREY = "#F3F4F6"
_COLOR_BORDER = "#E5E7EB"

_MAX_COL_WIDTH = 60
_MIN_COL_WIDTH = 8


class ExcelExporter:
    """Single-sheet workbook builder for backoffice exports.

    Args:
        title: Report title, e.g. ``"Dependencias"``.
        filters: Applied filter labels shown under the title,
                 e.g. ``{"Estado": "Activas"}``.
        sheet_name: Worksheet tab name (default: ``"Datos"``).
    """

    def __init__(
        self,
        title: str,
        filters: dict[str, str] | None = None,
        sheet_name: str = "Datos",
    ) -> None:
        self._title = title
        self._filters = filters or {}

        self._buffer = io.BytesIO()
        self._workbook: Workbook = xlsxwriter.Workbook(self._buffer, {"in_memory": True})
        self._worksheet: Worksheet = self._workbook.add_worksheet(sheet_name)

        self._current_row: int = 0
        self._formats: dict[str, Any] = self._build_formats()

    # -----------------------------------------------------------------------
    # Format factory
    # -----------------------------------------------------------------------

    def _build_formats(self) -> dict[str, Any]:
        wb = self._workbook
        celda = {
            "font_size": 9,
            "font_color": "#111827",
            "align": "left",
            "valign": "vcenter",
            "border": 1,
            "border_color": _COLOR_BORDER,
        }
        return {
            "title": wb.add_format({
                "bold": True,
                "font_size": 14,
                "font_color": _COLOR_WHITE,
                "bg_color": _COLOR_PRIMARY,
                "align": "center",
                "valign": "vcenter",
            }),
            "subtitle": wb.add_format({
                "font_size": 9,
                "font_color": _COLOR_WHITE,
                "bg_color": _COLOR_SUBHEADER_BG,
                "align": "center",
                "valign": "vcenter",
            }),
            "filter_key": wb.add_format({
                "bold": True,
                "font_size": 9,
                "bg_color": "#E5E7EB",
                "align": "right",
            }),
            "filter_value": wb.add_format({"font_size": 9, "bg_color": "#F9FAFB"}),
            "summary_label": wb.add_format({
                "bold": True,
                "font_size": 9,
                "bg_color": "#ECFDF5",
                "align": "center",
                "border": 1,
                "border_color": "#A7F3D0",
            }),
            "summary_value": wb.add_format({
                "bold": True,
                "font_size": 11,
                "font_color": _COLOR_PRIMARY,
                "bg_color": "#ECFDF5",
                "align": "center",
                "border": 1,
                "border_color": "#A7F3D0",
            }),
            "col_header": wb.add_format({
                "bold": True,
                "font_size": 10,
                "font_color": _COLOR_WHITE,
                "bg_color": _COLOR_SUBHEADER_BG,
                "align": "center",
                "valign": "vcenter",
                "border": 1,
                "text_wrap": True,
            }),
            "data_plain": wb.add_format({**celda, "bg_color": _COLOR_WHITE}),
            "data_alt": wb.add_format({**celda, "bg_color": _COLOR_LIGHT_GREY}),
        }

    # -----------------------------------------------------------------------
    # Public builder methods
    # -----------------------------------------------------------------------

    def add_header(self, num_cols: int = 6) -> "ExcelExporter":
        """Write the title, generation timestamp and filter rows.

        Returns:
            ``self`` for method chaining.
        """
        ws = self._worksheet
        ultima = max(num_cols, 3) - 1
        institucion = get_settings().APP_NAME

        ws.set_row(self._current_row, 28)
        ws.merge_range(
            self._current_row, 0, self._current_row, ultima,
            f"{institucion}: {self._title}", self._formats["title"],
        )
        self._current_row += 1

        generado = datetime.now(timezone.utc).strftime("%d/%m/%Y %H:%M UTC")
        ws.merge_range(
            self._current_row, 0, self._current_row, ultima,
            f"Generado: {generado}", self._formats["subtitle"],
        )
        self._current_row += 1

        for key, value in self._filters.items():
            ws.write(self._current_row, 0, key, self._formats["filter_key"])
            ws.merge_range(
                self._current_row, 1, self._current_row, ultima,
                value, self._formats["filter_value"],
            )
            self._current_row += 1

        self._current_row += 1
        return self

    def add_summary_row(self, summary: dict[str, Any]) -> "ExcelExporter":
        """Write label cells above value cells, one column per entry."""
        ws = self._worksheet
        for col, (label, value) in enumerate(summary.items()):
            ws.write(self._current_row, col, label, self._formats["summary_label"])
            ws.write(self._current_row + 1, col, value, self._formats["summary_value"])
        self._current_row += 3
        return self

    def add_data_table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[Any]],
    ) -> "ExcelExporter":
        """Write a styled data table with alternating row shading.

        Args:
            headers: Column header strings.
            rows: Data rows, each matching the length of ``headers``.

        Returns:
            ``self`` for method chaining.
        """
        ws = self._worksheet
        col_widths: list[int] = [len(str(h)) for h in headers]

        ws.set_row(self._current_row, 20)
        for ci, hdr in enumerate(headers):
            ws.write(self._current_row, ci, hdr, self._formats["col_header"])
        self._current_row += 1

        for ri, data_row in enumerate(rows):
            fmt = self._formats["data_alt"] if ri % 2 == 1 else self._formats["data_plain"]
            for ci, cell_val in enumerate(data_row):
                ws.write(self._current_row, ci, "" if cell_val is None else cell_val, fmt)
                cell_str = "" if cell_val is None else str(cell_val)
                col_widths[ci] = min(_MAX_COL_WIDTH, max(col_widths[ci], len(cell_str)))
            self._current_row += 1

        for ci, width in enumerate(col_widths):
            ws.set_column(ci, ci, max(width + 2, _MIN_COL_WIDTH))

        return self

    def finalize(self) -> bytes:
        """Close the workbook and return the ``.xlsx`` bytes.

        The exporter must not be reused afterwards.
        """
        self._workbook.close()
        self._buffer.seek(0)
        return self._buffer.read()
