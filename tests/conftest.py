from __future__ import annotations

import io
from pathlib import Path
from typing import Dict, List, Sequence

import pytest
from PIL import Image

from idcard_extractor.domain.models import ExtractedData, FieldRequest
from idcard_extractor.extraction.base import ExtractionClient
from idcard_extractor.pipeline.images import ImageSet, IncomingFile


def _image_bytes(fmt: str = "JPEG", color=(200, 30, 30), size=(64, 40)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


class StubClient(ExtractionClient):
    """Returns queued responses in call order; queued exceptions are raised instead."""

    backend = "stub"

    def __init__(self, responses: Sequence[object] = ()) -> None:
        self.responses: List[object] = list(responses)
        self.calls: List[Dict[str, object]] = []

    def extract(self, image_bytes: bytes, mime_type: str, field_spec: Sequence[FieldRequest]) -> ExtractedData:
        self.calls.append({"bytes": image_bytes, "mime_type": mime_type, "spec": list(field_spec)})
        outcome = self.responses.pop(0) if self.responses else {}
        if isinstance(outcome, BaseException):
            raise outcome
        return dict(outcome)


@pytest.fixture
def image_bytes():
    return _image_bytes


@pytest.fixture
def make_jpeg():
    def _make(name: str = "card.jpg", color=(200, 30, 30)) -> IncomingFile:
        return IncomingFile.from_bytes(name, "image/jpeg", _image_bytes("JPEG", color=color))

    return _make


@pytest.fixture
def stub_client():
    return StubClient


@pytest.fixture
def preview_dir(tmp_path: Path) -> Path:
    path = tmp_path / "previews"
    path.mkdir()
    return path


@pytest.fixture
def image_set(preview_dir: Path):
    images = ImageSet(preview_dir=str(preview_dir))
    yield images
    images.reset()
