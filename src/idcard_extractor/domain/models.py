from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Union

from .constants import DEFAULT_LANGUAGE

if TYPE_CHECKING:
    from ..pipeline.images import PreviewHandle

# Partial mapping of ID-card field name -> extracted value for one image.
ExtractedData = Dict[str, str]

Cell = Union[str, int]


@dataclass
class FieldSelection:
    """One user-chosen row: which field to extract and in which language."""

    selection_id: str
    field: str = ""
    language: str = DEFAULT_LANGUAGE

    def as_dict(self) -> Dict[str, str]:
        return {"id": self.selection_id, "field": self.field, "language": self.language}


@dataclass(frozen=True)
class FieldRequest:
    field: str
    language: str


@dataclass
class UploadedImage:
    name: str
    data: bytes
    mime_type: str
    preview: Optional["PreviewHandle"] = None

    @property
    def byte_size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class ExpiryStatus:
    is_expired: bool = False
    is_expiring_soon: bool = False
    days_after_expiry: int = 0


UNKNOWN_EXPIRY = ExpiryStatus()


@dataclass
class ProcessedRow:
    serial: int
    values: ExtractedData = field(default_factory=dict)
    is_expired: bool = False
    is_expiring_soon: bool = False
    days_after_expiry: int = 0

    def cells(self, field_order: Sequence[str]) -> List[str]:
        """Values in `field_order`; absent fields render as empty strings."""
        return [self.values.get(name) or "" for name in field_order]

    def as_dict(self, field_order: Sequence[str]) -> Dict[str, Any]:
        return {
            "serial": self.serial,
            "values": dict(zip(field_order, self.cells(field_order))),
            "is_expired": self.is_expired,
            "is_expiring_soon": self.is_expiring_soon,
            "days_after_expiry": self.days_after_expiry,
        }
