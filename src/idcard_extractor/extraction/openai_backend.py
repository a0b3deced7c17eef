from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAI

from ..config import BACKEND_OPENAI, DEFAULT_MODELS, DEFAULT_TIMEOUT_SECONDS
from ..domain.models import ExtractedData, FieldRequest
from ..errors import MissingCredential, ServiceError
from ..logging import get_logger
from .base import (
    ExtractionClient,
    build_messages,
    decode_response,
    json_schema_response_format,
    register,
)

LOG = get_logger("extraction-openai")


@dataclass(frozen=True)
class OpenAIConfig:
    api_key: Optional[str]
    model_name: str = DEFAULT_MODELS[BACKEND_OPENAI]
    base_url: Optional[str] = None
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS


class OpenAIExtractionClient(ExtractionClient):
    """Vision extraction through the official OpenAI SDK (chat completions)."""

    backend = BACKEND_OPENAI

    def __init__(self, config: OpenAIConfig) -> None:
        self.config = config

    @classmethod
    def from_settings(cls, settings) -> "OpenAIExtractionClient":
        return cls(
            OpenAIConfig(
                api_key=settings.api_key,
                model_name=settings.model,
                base_url=settings.base_url,
                timeout_seconds=settings.timeout_seconds,
            )
        )

    def _http_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(connect=10.0, read=float(self.config.timeout_seconds), write=30.0, pool=10.0),
        )

    def extract(
        self,
        image_bytes: bytes,
        mime_type: str,
        field_spec: Sequence[FieldRequest],
    ) -> ExtractedData:
        if not self.config.api_key:
            raise MissingCredential(self.backend)

        if (os.environ.get("OPENAI_LOG") or "").lower() == "debug":
            logging.getLogger("httpx").setLevel(logging.DEBUG)

        http_client = self._http_client()
        client = OpenAI(
            api_key=self.config.api_key,
            base_url=self.config.base_url,
            http_client=http_client,
            max_retries=0,
        )
        LOG.info("Calling OpenAI chat completions model='%s' for %d field(s)", self.config.model_name, len(field_spec))
        t0 = time.perf_counter()
        try:
            completion = client.chat.completions.create(
                model=self.config.model_name,
                messages=build_messages(image_bytes, mime_type, field_spec),
                response_format=json_schema_response_format(field_spec),
                timeout=float(self.config.timeout_seconds),
            )
        except (APIConnectionError, APITimeoutError) as exc:
            LOG.error("Network/timeout while calling OpenAI: %s", exc)
            raise ServiceError(f"OpenAI request failed: {exc}") from exc
        except APIStatusError as exc:
            body = getattr(getattr(exc, "response", None), "text", None)
            LOG.error("OpenAI API returned %s. Body preview: %r", exc.status_code, (body[:300] if body else None))
            raise ServiceError(f"OpenAI returned HTTP {exc.status_code}", status_code=exc.status_code) from exc
        finally:
            http_client.close()

        choice = completion.choices[0] if getattr(completion, "choices", None) else None
        text = choice.message.content if choice and getattr(choice, "message", None) else None
        usage = getattr(completion, "usage", None)
        usage_dict = {k: getattr(usage, k, None) if usage else None for k in ("prompt_tokens", "completion_tokens", "total_tokens")}
        LOG.info(
            "Chat completion finished in %.2fs id=%s usage=%s",
            time.perf_counter() - t0,
            getattr(completion, "id", None),
            usage_dict,
        )
        return decode_response(text, field_spec)


register(BACKEND_OPENAI, OpenAIExtractionClient)
