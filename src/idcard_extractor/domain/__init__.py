"""Domain types, catalog constants and expiry rules."""

from .expiry import classify
from .models import (
    ExpiryStatus,
    ExtractedData,
    FieldRequest,
    FieldSelection,
    ProcessedRow,
    UploadedImage,
)

__all__ = [
    "classify",
    "ExpiryStatus",
    "ExtractedData",
    "FieldRequest",
    "FieldSelection",
    "ProcessedRow",
    "UploadedImage",
]
