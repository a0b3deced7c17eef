"""Turn raw extraction rows into serial-numbered, expiry-annotated table rows."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from ..domain.constants import DAYS_AFTER_EXPIRY_HEADER, EXPIRY_FIELD, SERIAL_HEADER
from ..domain.expiry import classify
from ..domain.models import UNKNOWN_EXPIRY, Cell, ExtractedData, ProcessedRow


def project(
    results: Sequence[ExtractedData],
    field_order: Sequence[str],
    *,
    today: Optional[date] = None,
) -> List[ProcessedRow]:
    """Serial numbers start at 1; expiry flags come from the Expiry Date value."""
    rows: List[ProcessedRow] = []
    for index, data in enumerate(results):
        expiry_text = data.get(EXPIRY_FIELD)
        status = classify(expiry_text, today=today) if expiry_text else UNKNOWN_EXPIRY
        rows.append(
            ProcessedRow(
                serial=index + 1,
                values=dict(data),
                is_expired=status.is_expired,
                is_expiring_soon=status.is_expiring_soon,
                days_after_expiry=status.days_after_expiry,
            )
        )
    return rows


class ResultTable:
    """Processed rows plus the column order they are displayed and exported in."""

    def __init__(self, rows: Sequence[ProcessedRow], field_order: Sequence[str]) -> None:
        self.rows = list(rows)
        self.field_order = list(field_order)

    @classmethod
    def from_results(
        cls,
        results: Sequence[ExtractedData],
        field_order: Sequence[str],
        *,
        today: Optional[date] = None,
    ) -> "ResultTable":
        return cls(project(results, field_order, today=today), field_order)

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def display_headers(self) -> List[str]:
        return [SERIAL_HEADER, *self.field_order]

    @property
    def display_rows(self) -> List[List[Cell]]:
        return [[row.serial, *row.cells(self.field_order)] for row in self.rows]

    @property
    def export_headers(self) -> List[str]:
        return [SERIAL_HEADER, *self.field_order, DAYS_AFTER_EXPIRY_HEADER]

    @property
    def export_rows(self) -> List[List[Cell]]:
        return [[row.serial, *row.cells(self.field_order), row.days_after_expiry] for row in self.rows]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "headers": self.display_headers,
            "export_headers": self.export_headers,
            "rows": [row.as_dict(self.field_order) for row in self.rows],
        }
