"""Sequential batch driver: one extraction call per image, fail fast."""

from __future__ import annotations

import time
from typing import Any, Callable, List, Mapping, Optional, Sequence

from ..domain.models import ExtractedData, FieldRequest, UploadedImage
from ..errors import ExtractionFailed, MalformedResponse, MissingInput
from ..extraction.base import ExtractionClient
from ..logging import get_logger

LOG = get_logger("batch")

ProgressCallback = Callable[[str], None]


def progress_message(index: int, total: int) -> str:
    return f"Processing image {index + 1} of {total}"


def _checked(data: Any) -> ExtractedData:
    """Clients must hand back a flat mapping of field name -> string."""
    if not isinstance(data, Mapping):
        raise MalformedResponse(f"Expected a field mapping, got {type(data).__name__}.")
    for key, value in data.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise MalformedResponse(f"Field {key!r} has a non-text value.")
    return dict(data)


class BatchOrchestrator:
    """Drive an ExtractionClient over a batch of images, strictly in order.

    At most one call is in flight. The first failing image aborts the run and
    no partial results are returned.
    """

    def __init__(self, client: ExtractionClient, on_progress: Optional[ProgressCallback] = None) -> None:
        self.client = client
        self.on_progress = on_progress

    def _emit(self, message: str) -> None:
        LOG.info(message)
        if self.on_progress is not None:
            self.on_progress(message)

    def run(
        self,
        images: Sequence[UploadedImage],
        field_spec: Sequence[FieldRequest],
    ) -> List[ExtractedData]:
        # Snapshot both inputs so later mutations of the caller's lists cannot tear the run.
        batch = tuple(images)
        spec = tuple(field_spec)
        if not batch:
            raise MissingInput("no images")
        if not spec:
            raise MissingInput("no fields")

        total = len(batch)
        LOG.info(f"Starting extraction of {total} image(s) with fields: {[req.field for req in spec]}")
        t0 = time.perf_counter()

        results: List[ExtractedData] = []
        for index, image in enumerate(batch):
            self._emit(progress_message(index, total))
            try:
                data = _checked(self.client.extract(image.data, image.mime_type, spec))
            except Exception as exc:
                LOG.error(
                    f"Extraction failed on image {index + 1}/{total} ({image.name}): "
                    f"{exc.__class__.__name__}: {exc}"
                )
                raise ExtractionFailed(index, exc) from exc
            LOG.debug(f"Image {index + 1} ({image.name}) -> {sorted(data.keys())}")
            results.append(data)

        LOG.info(f"Extraction finished for {total} image(s) in {time.perf_counter() - t0:.2f}s")
        return results
