"""Client-side extraction pipeline: images, field specs, batch run, result table."""

from .batch import BatchOrchestrator, progress_message
from .fields import FieldSelectionList, available_fields, build_spec, field_order
from .images import AddResult, ImageSet, IncomingFile, PreviewHandle
from .results import ResultTable, project
from .session import ExtractionSession

__all__ = [
    "AddResult",
    "BatchOrchestrator",
    "ExtractionSession",
    "FieldSelectionList",
    "ImageSet",
    "IncomingFile",
    "PreviewHandle",
    "ResultTable",
    "available_fields",
    "build_spec",
    "field_order",
    "progress_message",
    "project",
]
