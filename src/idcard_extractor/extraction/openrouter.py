from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import requests

from ..config import BACKEND_OPENROUTER, DEFAULT_MODELS, DEFAULT_TIMEOUT_SECONDS
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

LOG = get_logger("extraction-openrouter")


@dataclass(frozen=True)
class OpenRouterConfig:
    """Configuration set required to talk to the OpenRouter API."""

    api_key: Optional[str]
    model_name: str = DEFAULT_MODELS[BACKEND_OPENROUTER]
    temperature: float = 0.0
    max_tokens: int = 2000
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS


class OpenRouterExtractionClient(ExtractionClient):
    """Thin wrapper around OpenRouter chat completions with structured output."""

    backend = BACKEND_OPENROUTER
    ENDPOINT = "https://openrouter.ai/api/v1/chat/completions"

    def __init__(self, config: OpenRouterConfig) -> None:
        self.config = config

    @classmethod
    def from_settings(cls, settings) -> "OpenRouterExtractionClient":
        return cls(
            OpenRouterConfig(
                api_key=settings.api_key,
                model_name=settings.model,
                timeout_seconds=settings.timeout_seconds,
            )
        )

    def chat(self, messages: List[Dict[str, Any]], *, response_format: Optional[Dict[str, Any]] = None) -> str:
        if not self.config.api_key:
            raise MissingCredential(self.backend)

        payload: Dict[str, Any] = {
            "model": self.config.model_name,
            "messages": messages,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }
        if response_format:
            payload["response_format"] = response_format
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
        try:
            resp = requests.post(
                self.ENDPOINT,
                headers=headers,
                json=payload,
                timeout=self.config.timeout_seconds,
            )
        except requests.RequestException as exc:
            LOG.error("OpenRouter request failed: %s", exc)
            raise ServiceError(f"OpenRouter request failed: {exc}") from exc

        if resp.status_code >= 400:
            LOG.error("OpenRouter HTTP %s: %s", resp.status_code, resp.text[:500])
            raise ServiceError(
                f"OpenRouter returned HTTP {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )

        try:
            body = resp.json()
        except ValueError as exc:
            raise ServiceError("OpenRouter returned a non-JSON body") from exc

        choices = body.get("choices") or []
        if not choices:
            LOG.error("OpenRouter returned no choices: %s", body)
            raise ServiceError(f"OpenRouter returned no choices: {body.get('error') or body}")
        message = choices[0].get("message") or {}
        usage = body.get("usage") or {}
        LOG.debug("OpenRouter id=%s usage=%s", body.get("id"), usage)
        return message.get("content") or ""

    def extract(
        self,
        image_bytes: bytes,
        mime_type: str,
        field_spec: Sequence[FieldRequest],
    ) -> ExtractedData:
        LOG.info(
            "Calling OpenRouter model='%s' for %d field(s), image %.1f KiB",
            self.config.model_name,
            len(field_spec),
            len(image_bytes) / 1024,
        )
        t0 = time.perf_counter()
        text = self.chat(
            build_messages(image_bytes, mime_type, field_spec),
            response_format=json_schema_response_format(field_spec),
        )
        LOG.info("OpenRouter answered in %.2fs", time.perf_counter() - t0)
        return decode_response(text, field_spec)


register(BACKEND_OPENROUTER, OpenRouterExtractionClient)
