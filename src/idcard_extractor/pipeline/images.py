"""Bounded collection of uploaded ID-card images and their preview thumbnails."""

from __future__ import annotations

import io
import mimetypes
import os
import tempfile
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from PIL import Image

from ..domain.constants import ALLOWED_MIME_TYPES, MAX_FILES
from ..domain.models import UploadedImage
from ..errors import IndexOutOfRange, InvalidFileType, LimitExceeded
from ..logging import get_logger
from ..paths import expand_abs, find_project_root, preview_dir as default_preview_dir

LOG = get_logger("images")

PREVIEW_SIZE = (256, 256)

_EXTENSION_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".jpe": "image/jpeg",
    ".jfif": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}


def guess_mime_type(filename: str) -> Optional[str]:
    ext = os.path.splitext(filename)[1].lower()
    if ext in _EXTENSION_TYPES:
        return _EXTENSION_TYPES[ext]
    mime, _ = mimetypes.guess_type(filename)
    return mime


@dataclass
class IncomingFile:
    """A file offered for upload; `reader` is only called once the batch is accepted."""

    name: str
    mime_type: Optional[str]
    reader: Callable[[], bytes]

    @classmethod
    def from_bytes(cls, name: str, mime_type: Optional[str], data: bytes) -> "IncomingFile":
        return cls(name=name, mime_type=mime_type, reader=lambda: data)

    @classmethod
    def from_path(cls, path: str) -> "IncomingFile":
        resolved = expand_abs(path)

        def _read() -> bytes:
            with open(resolved, "rb") as fh:
                return fh.read()

        return cls(name=os.path.basename(resolved), mime_type=guess_mime_type(resolved), reader=_read)


class PreviewHandle:
    """A PNG thumbnail on disk; must be released when its image goes away."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            os.remove(self.path)
        except FileNotFoundError:
            LOG.debug(f"Preview already gone: {self.path}")

    def __repr__(self) -> str:
        state = "released" if self._released else "live"
        return f"PreviewHandle({self.path!r}, {state})"


def create_preview(data: bytes, directory: str, *, size: Tuple[int, int] = PREVIEW_SIZE) -> PreviewHandle:
    """Decode `data` with Pillow and write a thumbnail into `directory`."""
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        thumb = img.convert("RGBA") if img.mode not in ("RGB", "RGBA", "L") else img.copy()
    thumb.thumbnail(size)
    fd, path = tempfile.mkstemp(prefix="preview_", suffix=".png", dir=directory)
    try:
        with os.fdopen(fd, "wb") as fh:
            thumb.save(fh, format="PNG")
    except Exception:
        os.remove(path)
        raise
    return PreviewHandle(path)


@dataclass
class AddResult:
    added: List[UploadedImage] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class ImageSet:
    """Owns the uploaded images and their preview handles.

    Order is insertion order; removal shifts later entries down by one.
    """

    def __init__(self, preview_dir: Optional[str] = None, *, max_files: int = MAX_FILES) -> None:
        self._preview_dir = preview_dir
        self.max_files = max_files
        self._images: List[UploadedImage] = []

    def __len__(self) -> int:
        return len(self._images)

    def __getitem__(self, index: int) -> UploadedImage:
        self._check_index(index)
        return self._images[index]

    def __iter__(self):
        return iter(self.snapshot())

    def __enter__(self) -> "ImageSet":
        return self

    def __exit__(self, *exc) -> None:
        self.reset()

    @property
    def preview_dir(self) -> str:
        if self._preview_dir is None:
            self._preview_dir = default_preview_dir(find_project_root())
        else:
            os.makedirs(self._preview_dir, exist_ok=True)
        return self._preview_dir

    @property
    def remaining(self) -> int:
        return max(0, self.max_files - len(self._images))

    def snapshot(self) -> Tuple[UploadedImage, ...]:
        return tuple(self._images)

    def _check_index(self, index: int) -> None:
        if not isinstance(index, int) or index < 0 or index >= len(self._images):
            raise IndexOutOfRange(index, len(self._images))

    def validate(self, files: Sequence[IncomingFile]) -> None:
        """Whole-batch checks; raising here means nothing from the batch is added."""
        if len(self._images) + len(files) > self.max_files:
            LOG.warning(
                f"Rejecting upload of {len(files)} file(s): {len(self._images)} already present, limit {self.max_files}"
            )
            raise LimitExceeded(len(self._images), len(files), self.max_files)
        for incoming in files:
            if incoming.mime_type not in ALLOWED_MIME_TYPES:
                LOG.warning(f"Rejecting {incoming.name!r}: media type {incoming.mime_type!r} not allowed")
                raise InvalidFileType(incoming.name, incoming.mime_type)

    def add(self, files: Iterable[IncomingFile]) -> AddResult:
        """Validate the batch, then read and append each file independently.

        Read or decode failures are collected per file in the result and do
        not stop the other files of the batch.
        """
        batch = list(files)
        self.validate(batch)

        result = AddResult()
        for incoming in batch:
            try:
                data = incoming.reader()
                preview = create_preview(data, self.preview_dir)
            except Exception as exc:
                LOG.error(f"Failed to read {incoming.name!r}: {exc.__class__.__name__}: {exc}")
                result.errors.append(f"Failed to read file: {incoming.name}.")
                continue
            image = UploadedImage(name=incoming.name, data=data, mime_type=incoming.mime_type, preview=preview)
            self._images.append(image)
            result.added.append(image)

        LOG.info(
            f"Added {len(result.added)} of {len(batch)} file(s); collection now {len(self._images)}/{self.max_files}"
        )
        return result

    def remove(self, index: int) -> UploadedImage:
        self._check_index(index)
        image = self._images.pop(index)
        if image.preview is not None:
            image.preview.release()
        LOG.info(f"Removed image {index} ({image.name}); {len(self._images)} left")
        return image

    def reset(self) -> None:
        """Release every preview handle and empty the collection."""
        images, self._images = self._images, []
        self._release_all(images)
        if images:
            LOG.info(f"Reset image set; released {len(images)} preview(s)")

    @staticmethod
    def _release_all(images: List[UploadedImage]) -> None:
        # Every handle gets a release attempt; the first failure is re-raised afterwards.
        first_error: Optional[OSError] = None
        for image in images:
            if image.preview is None:
                continue
            try:
                image.preview.release()
            except OSError as exc:
                LOG.error(f"Failed to release preview for {image.name!r}: {exc}")
                first_error = first_error or exc
        if first_error is not None:
            raise first_error
