from __future__ import annotations

import json
from typing import Any, Dict, List

from pydantic import RootModel, StrictStr, ValidationError

from .exceptions import MalformedPayload


class GrantsPayload(RootModel[Dict[StrictStr, List[StrictStr]]]):
    """Structured grant form: resource key -> ordered operation names."""


def validate_payload(data: Any) -> Dict[str, List[str]]:
    """
    Validate an already-decoded structured payload.

    Key order is preserved. Operation names are not checked against any
    vocabulary here; that happens when capabilities are built.
    """
    try:
        return GrantsPayload.model_validate(data).root
    except ValidationError as e:
        raise MalformedPayload(f"Payload must map keys to lists of operation names: {e}") from e


def validate_payload_json(text: Any) -> Dict[str, List[str]]:
    if isinstance(text, (bytes, bytearray)):
        try:
            text = bytes(text).decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedPayload("Payload is not valid UTF-8") from e

    if not isinstance(text, str):
        raise MalformedPayload("JSON payload must be str or bytes")

    try:
        return GrantsPayload.model_validate_json(text).root
    except ValidationError as e:
        raise MalformedPayload(f"Invalid JSON grants payload: {e}") from e


def dump_payload(data: Dict[str, List[str]]) -> str:
    return json.dumps(data, separators=(",", ":"))


def encode_blob(data: Dict[str, List[str]]) -> bytes:
    """Opaque storable form. Only guaranteed to round-trip through decode_blob."""
    return dump_payload(data).encode("utf-8")


def decode_blob(blob: bytes) -> Dict[str, List[str]]:
    if not isinstance(blob, (bytes, bytearray)):
        raise MalformedPayload("Stored payload must be bytes")
    return validate_payload_json(blob)
