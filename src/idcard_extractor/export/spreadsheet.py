"""Spreadsheet export of the result table."""

from __future__ import annotations

import io
import os
from typing import Sequence

import pandas as pd

from ..domain.constants import EXPORT_SHEET_NAME
from ..domain.models import Cell
from ..logging import get_logger
from ..paths import expand_abs

LOG = get_logger("export")


def _keep_text_literal(ws, headers: Sequence[str], rows: Sequence[Sequence[Cell]]) -> None:
    """Text starting with "=" stays text; openpyxl would otherwise store it as a formula."""
    for col, header in enumerate(headers, start=1):
        if isinstance(header, str) and header.startswith("="):
            ws.cell(row=1, column=col).data_type = "s"
    for row_idx, row in enumerate(rows, start=2):
        for col, value in enumerate(row, start=1):
            if isinstance(value, str) and value.startswith("="):
                ws.cell(row=row_idx, column=col).data_type = "s"


class SpreadsheetExporter:
    """Interface: ordered headers + ordered rows -> one spreadsheet artifact."""

    def render(self, headers: Sequence[str], rows: Sequence[Sequence[Cell]]) -> bytes:
        raise NotImplementedError

    def write(self, path: str, headers: Sequence[str], rows: Sequence[Sequence[Cell]]) -> str:
        """Render and write to `path`; returns the absolute path written."""
        target = expand_abs(path)
        parent = os.path.dirname(target)
        if parent:
            os.makedirs(parent, exist_ok=True)
        payload = self.render(headers, rows)
        with open(target, "wb") as fh:
            fh.write(payload)
        LOG.info(f"Wrote {len(rows)} row(s) to {target}")
        return target


class ExcelExporter(SpreadsheetExporter):
    """Single-sheet .xlsx: header row first, rows placed literally in order."""

    def __init__(self, sheet_name: str = EXPORT_SHEET_NAME) -> None:
        self.sheet_name = sheet_name

    def render(self, headers: Sequence[str], rows: Sequence[Sequence[Cell]]) -> bytes:
        width = len(headers)
        for index, row in enumerate(rows):
            if len(row) != width:
                raise ValueError(f"Row {index} has {len(row)} cell(s); expected {width}")

        df = pd.DataFrame([list(row) for row in rows], columns=list(headers))
        output = io.BytesIO()
        with pd.ExcelWriter(output, engine="openpyxl") as writer:
            df.to_excel(writer, index=False, sheet_name=self.sheet_name)
            _keep_text_literal(writer.sheets[self.sheet_name], headers, rows)
        output.seek(0)
        LOG.debug(f"Rendered sheet {self.sheet_name!r} with {len(rows)} row(s) x {width} column(s)")
        return output.getvalue()
