"""Request/response contract shared by every extraction backend.

A backend receives one image plus the ordered field requests and must return
a flat mapping of field name -> string. The JSON schema, prompt and response
decoding live here so all backends agree on them.
"""

from __future__ import annotations

import base64
import json
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type

from ..domain.constants import EXPIRY_FIELD
from ..domain.models import ExtractedData, FieldRequest
from ..domain.normalize import normalize_date_iso
from ..errors import MalformedResponse
from ..logging import get_logger

LOG = get_logger("extraction")

SCHEMA_NAME = "id_card_fields"

SYSTEM_INSTRUCTION = (
    "You are an expert multilingual ID card data extraction agent. Your task is to accurately analyze "
    "an ID card image and extract specified fields in the requested language.\n"
    "- For names requested in Arabic, provide the exact Arabic script from the card.\n"
    "- For names requested in English, provide the English version from the card.\n"
    "- For all other fields, extract the information and translate it to the requested language if the "
    "original script is different. For example, if the country is written in Arabic and English is "
    "requested, provide the English translation.\n"
    "- Pay close attention to dates and numbers.\n"
    "- Return the data ONLY in the structured JSON format defined by the provided schema. Do not include "
    "any extra text, apologies, or explanations."
)


class ExtractionClient:
    """Interface for extraction backends.

    Implementations raise on any failure (transport, missing credential,
    undecodable response); they never return partial placeholders.
    """

    backend: str = "base"

    @classmethod
    def from_settings(cls, settings) -> "ExtractionClient":
        raise NotImplementedError

    def extract(
        self,
        image_bytes: bytes,
        mime_type: str,
        field_spec: Sequence[FieldRequest],
    ) -> ExtractedData:
        raise NotImplementedError


_REGISTRY: Dict[str, Type[ExtractionClient]] = {}


def register(key: str, client_cls: Type[ExtractionClient]) -> None:
    """Register a backend class under its configuration key."""
    _REGISTRY[key] = client_cls
    LOG.debug(f"Registered extraction backend {key} -> {client_cls.__name__}")


def registered_backends() -> Tuple[str, ...]:
    return tuple(_REGISTRY)


def backend_class(key: str) -> Type[ExtractionClient]:
    try:
        return _REGISTRY[key]
    except KeyError:
        raise ValueError(f"Unknown extraction backend {key!r}; known: {', '.join(_REGISTRY)}") from None


# ---------- request side ----------


def schema_key(field: str) -> str:
    """`ID Number` -> `ID_Number`; schema property names cannot hold spaces."""
    return re.sub(r"\s+", "_", field.strip())


def field_from_key(key: str) -> str:
    return key.replace("_", " ")


def field_description(req: FieldRequest) -> str:
    if req.field == EXPIRY_FIELD:
        return "The Expiry Date extracted from the card, formatted as YYYY-MM-DD."
    return f"The {req.field} extracted from the ID card in {req.language}."


def build_response_schema(field_spec: Sequence[FieldRequest]) -> Dict[str, Any]:
    properties = {
        schema_key(req.field): {"type": "string", "description": field_description(req)}
        for req in field_spec
    }
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


def build_prompt(field_spec: Sequence[FieldRequest]) -> str:
    lines = "\n".join(f"- **{req.field}**: in **{req.language}**" for req in field_spec)
    return (
        "Please analyze the provided ID card image.\n"
        "Extract the following information, adhering to the language requirements for each field:\n"
        f"{lines}\n"
    )


def image_data_url(image_bytes: bytes, mime_type: str) -> str:
    b64 = base64.b64encode(image_bytes).decode("ascii")
    return f"data:{mime_type};base64,{b64}"


def build_messages(image_bytes: bytes, mime_type: str, field_spec: Sequence[FieldRequest]) -> List[Dict[str, Any]]:
    """Chat-completions style messages: system instruction, then prompt + image."""
    return [
        {"role": "system", "content": SYSTEM_INSTRUCTION},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": build_prompt(field_spec)},
                {"type": "image_url", "image_url": {"url": image_data_url(image_bytes, mime_type)}},
            ],
        },
    ]


def json_schema_response_format(field_spec: Sequence[FieldRequest]) -> Dict[str, Any]:
    return {
        "type": "json_schema",
        "json_schema": {
            "name": SCHEMA_NAME,
            "strict": True,
            "schema": build_response_schema(field_spec),
        },
    }


# ---------- response side ----------


def _strip_fences(text: str) -> str:
    match = re.search(r"```(?:json)?\s*(.*?)```", text, re.DOTALL)
    if match and match.group(1):
        return match.group(1).strip()
    return text


def _scavenge_object(text: str) -> Optional[Any]:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        return json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise MalformedResponse(f"Expected a string value, got {type(value).__name__}.")


def decode_response(text: Optional[str], field_spec: Sequence[FieldRequest]) -> ExtractedData:
    """Decode the service's JSON text into the requested field mapping.

    Only requested fields are kept. Expiry dates printed day-first are turned
    into YYYY-MM-DD.
    """
    if not isinstance(text, str) or not text.strip():
        raise MalformedResponse("The response was empty.")

    cleaned = _strip_fences(text.strip())
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        parsed = _scavenge_object(cleaned)
        if parsed is None:
            LOG.error(f"Response was not valid JSON; first 300 chars: {text[:300]!r}")
            raise MalformedResponse("The response was not valid JSON.", raw=text) from None

    if not isinstance(parsed, dict):
        raise MalformedResponse("The response was not a JSON object.", raw=text)

    wanted = {req.field for req in field_spec}
    out: ExtractedData = {}
    for key, value in parsed.items():
        name = field_from_key(str(key))
        if name not in wanted:
            LOG.debug(f"Ignoring unrequested key {key!r} in response")
            continue
        as_text = _as_text(value)
        if as_text is None:
            continue
        if name == EXPIRY_FIELD:
            as_text = normalize_date_iso(as_text) or as_text
        out[name] = as_text
    return out
