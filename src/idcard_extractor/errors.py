"""Error kinds surfaced by the extraction pipeline.

Every error carries a single human-readable message suitable for showing to
the user as-is. None of them is fatal; callers recover by retrying the action
that triggered them.
"""

from __future__ import annotations

from typing import Optional


class IdExtractorError(Exception):
    """Base class for all pipeline errors."""

    @property
    def message(self) -> str:
        return str(self)


class InvalidFileType(IdExtractorError):
    def __init__(self, filename: str, mime_type: Optional[str]) -> None:
        self.filename = filename
        self.mime_type = mime_type
        super().__init__(f'File "{filename}" has an invalid type. Only JPG, PNG, or WEBP are allowed.')


class LimitExceeded(IdExtractorError):
    def __init__(self, current: int, incoming: int, limit: int) -> None:
        self.current = current
        self.incoming = incoming
        self.limit = limit
        super().__init__(f"You can only upload a maximum of {limit} files.")


class MissingInput(IdExtractorError):
    MESSAGES = {
        "no images": "Please upload at least one ID card image.",
        "no fields": "Please select at least one field to extract.",
        "no results": "There are no extraction results to export yet.",
    }

    def __init__(self, what: str) -> None:
        self.what = what
        super().__init__(self.MESSAGES.get(what, f"Missing input: {what}."))


class MissingCredential(IdExtractorError):
    def __init__(self, backend: str) -> None:
        self.backend = backend
        super().__init__(f"No API key available for the {backend} extraction service.")


class MalformedResponse(IdExtractorError):
    def __init__(self, detail: str, raw: Optional[str] = None) -> None:
        self.detail = detail
        self.raw = raw
        super().__init__(f"Could not parse the data from the ID card. {detail}")


class ServiceError(IdExtractorError):
    """The extraction service could not be reached or answered with an error status."""

    def __init__(self, detail: str, status_code: Optional[int] = None) -> None:
        self.detail = detail
        self.status_code = status_code
        super().__init__(detail)


class ExtractionFailed(IdExtractorError):
    def __init__(self, index: int, cause: BaseException) -> None:
        self.index = index
        self.cause = cause
        reason = str(cause) or cause.__class__.__name__
        super().__init__(f"An error occurred during extraction of image {index + 1}: {reason}")


class IndexOutOfRange(IdExtractorError, IndexError):
    def __init__(self, index: int, size: int) -> None:
        self.index = index
        self.size = size
        super().__init__(f"Image index {index} is out of range (0..{size - 1}).")


class UnknownField(IdExtractorError, ValueError):
    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"Unknown ID card field: {field!r}.")


class UnknownLanguage(IdExtractorError, ValueError):
    def __init__(self, language: str) -> None:
        self.language = language
        super().__init__(f"Unsupported language: {language!r}.")


class UnknownSelection(IdExtractorError, KeyError):
    def __init__(self, selection_id: str) -> None:
        self.selection_id = selection_id
        super().__init__(f"No field selection with id {selection_id!r}.")

    def __str__(self) -> str:
        return str(self.args[0])


class SessionBusy(IdExtractorError):
    def __init__(self) -> None:
        super().__init__("An extraction is already running; wait for it to finish.")
