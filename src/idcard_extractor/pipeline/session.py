"""Explicit per-user session state passed to every pipeline operation."""

from __future__ import annotations

import threading
from datetime import date
from typing import Callable, Iterable, Optional

from ..domain.constants import EXPORT_FILENAME
from ..errors import IdExtractorError, MissingInput, SessionBusy
from ..export.spreadsheet import SpreadsheetExporter
from ..extraction.base import ExtractionClient
from ..logging import get_logger
from .batch import BatchOrchestrator
from .fields import FieldSelectionList, field_order
from .images import AddResult, ImageSet, IncomingFile
from .results import ResultTable

LOG = get_logger("session")


class ExtractionSession:
    """Images, field selections and the last result table of one user session.

    Nothing is persisted; `reset()` returns to the initial state and releases
    every preview handle.
    """

    export_filename = EXPORT_FILENAME

    def __init__(self, images: Optional[ImageSet] = None, selections: Optional[FieldSelectionList] = None) -> None:
        self.images = images if images is not None else ImageSet()
        self.selections = selections if selections is not None else FieldSelectionList()
        self.table: Optional[ResultTable] = None
        self.progress = ""
        self.error = ""
        self._lock = threading.Lock()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def _ensure_idle(self) -> None:
        if self._running:
            raise SessionBusy()

    # ---- images ----------------------------------------------------------------
    def add_files(self, files: Iterable[IncomingFile]) -> AddResult:
        self._ensure_idle()
        try:
            result = self.images.add(files)
        except IdExtractorError as exc:
            self.error = exc.message
            raise
        self.table = None
        self.error = "\n".join(result.errors)
        return result

    def remove_image(self, index: int) -> None:
        self._ensure_idle()
        self.images.remove(index)

    def reset(self) -> None:
        self._ensure_idle()
        try:
            self.images.reset()
        finally:
            self.selections.reset()
            self.table = None
            self.progress = ""
            self.error = ""
        LOG.info("Session reset")

    # ---- extraction ------------------------------------------------------------
    def _set_progress(self, message: str) -> None:
        self.progress = message

    def run(
        self,
        client: ExtractionClient,
        *,
        on_progress: Optional[Callable[[str], None]] = None,
        today: Optional[date] = None,
    ) -> ResultTable:
        """Extract every image with the current selections; all-or-nothing."""
        with self._lock:
            self._ensure_idle()
            self._running = True

        def _progress(message: str) -> None:
            self._set_progress(message)
            if on_progress is not None:
                on_progress(message)

        try:
            spec = self.selections.spec()
            self.error = ""
            self.table = None
            results = BatchOrchestrator(client, on_progress=_progress).run(self.images.snapshot(), spec)
            self.table = ResultTable.from_results(results, field_order(spec), today=today)
            LOG.info(f"Successfully extracted data from {len(self.table)} ID card(s)")
            return self.table
        except IdExtractorError as exc:
            self.error = exc.message
            raise
        finally:
            self.progress = ""
            self._running = False

    # ---- export ----------------------------------------------------------------
    def export(self, exporter: SpreadsheetExporter) -> bytes:
        if self.table is None:
            raise MissingInput("no results")
        return exporter.render(self.table.export_headers, self.table.export_rows)

    def export_to(self, exporter: SpreadsheetExporter, path: Optional[str] = None) -> str:
        if self.table is None:
            raise MissingInput("no results")
        return exporter.write(path or self.export_filename, self.table.export_headers, self.table.export_rows)
