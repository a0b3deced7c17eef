"""Extraction backends: one image + requested fields -> field/value mapping."""

from __future__ import annotations

from ..config import ExtractorSettings
from ..logging import get_logger
from .base import ExtractionClient, backend_class, decode_response, registered_backends
from .openai_backend import OpenAIExtractionClient
from .openrouter import OpenRouterExtractionClient

LOG = get_logger("extraction-factory")


def create_client(settings: ExtractorSettings) -> ExtractionClient:
    """Instantiate the backend named by `settings.backend`."""
    cls = backend_class(settings.backend)
    LOG.info(f"Extraction backend: {settings.backend} (model {settings.model})")
    return cls.from_settings(settings)


__all__ = [
    "ExtractionClient",
    "OpenAIExtractionClient",
    "OpenRouterExtractionClient",
    "create_client",
    "decode_response",
    "registered_backends",
]
