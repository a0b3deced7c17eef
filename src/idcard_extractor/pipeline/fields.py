"""Field selection handling: the user's ordered (field, language) choices."""

from __future__ import annotations

import uuid
from typing import Iterable, List, Optional, Sequence

from ..domain.constants import DEFAULT_LANGUAGE, ID_CARD_FIELDS, LANGUAGE_VALUES
from ..domain.models import FieldRequest, FieldSelection
from ..errors import UnknownField, UnknownLanguage, UnknownSelection
from ..logging import get_logger

LOG = get_logger("fields")


def build_spec(selections: Iterable[FieldSelection]) -> List[FieldRequest]:
    """Turn the ordered selections into the request contract.

    Rows without a field are skipped. The resulting order is also the output
    column order, so a repeated field is kept only at its first position.
    """
    spec: List[FieldRequest] = []
    seen = set()
    for sel in selections:
        if not sel.field:
            continue
        if sel.field in seen:
            LOG.warning(f"Field {sel.field!r} selected more than once; keeping the first occurrence")
            continue
        seen.add(sel.field)
        spec.append(FieldRequest(field=sel.field, language=sel.language))
    return spec


def field_order(spec: Sequence[FieldRequest]) -> List[str]:
    return [req.field for req in spec]


def available_fields(selections: Iterable[FieldSelection]) -> List[str]:
    """Catalog fields not yet chosen by any non-empty selection, in catalog order."""
    chosen = {sel.field for sel in selections if sel.field}
    return [name for name in ID_CARD_FIELDS if name not in chosen]


def _new_id() -> str:
    return uuid.uuid4().hex


class FieldSelectionList:
    """Ordered, mutable list of selections that always holds at least one row."""

    def __init__(self) -> None:
        self._rows: List[FieldSelection] = [FieldSelection(selection_id=_new_id())]

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self):
        return iter(list(self._rows))

    @property
    def rows(self) -> List[FieldSelection]:
        return list(self._rows)

    def get(self, selection_id: str) -> FieldSelection:
        for row in self._rows:
            if row.selection_id == selection_id:
                return row
        raise UnknownSelection(selection_id)

    @property
    def can_add(self) -> bool:
        return len(self._rows) < len(ID_CARD_FIELDS)

    def add(self) -> Optional[FieldSelection]:
        """Append an unset row with the default language; None once every field has a row."""
        if not self.can_add:
            LOG.debug("All catalog fields already have a row; not adding another")
            return None
        row = FieldSelection(selection_id=_new_id())
        self._rows.append(row)
        return row

    def update(
        self,
        selection_id: str,
        *,
        field: Optional[str] = None,
        language: Optional[str] = None,
    ) -> FieldSelection:
        row = self.get(selection_id)
        if field is not None:
            if field and field not in ID_CARD_FIELDS:
                raise UnknownField(field)
            row.field = field
        if language is not None:
            if language not in LANGUAGE_VALUES:
                raise UnknownLanguage(language)
            row.language = language
        return row

    def remove(self, selection_id: str) -> bool:
        """Remove a row; the last remaining row is kept and False is returned."""
        row = self.get(selection_id)
        if len(self._rows) <= 1:
            LOG.debug("Refusing to remove the last field selection row")
            return False
        self._rows.remove(row)
        return True

    def reset(self) -> None:
        self._rows = [FieldSelection(selection_id=_new_id(), language=DEFAULT_LANGUAGE)]

    def options_for(self, selection_id: str) -> List[str]:
        """Field choices for one row: its own field first, then the unused catalog fields."""
        row = self.get(selection_id)
        own = [row.field] if row.field else []
        return own + available_fields(self._rows)

    def spec(self) -> List[FieldRequest]:
        return build_spec(self._rows)
