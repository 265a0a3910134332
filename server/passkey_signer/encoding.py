"""Conversions between WebAuthn binary values and their JSON representation."""
from __future__ import annotations

import base64
import binascii
import enum
from collections.abc import Mapping
from typing import Any

from fido2.utils import websafe_decode, websafe_encode

__all__ = [
    "decode_binary_value",
    "encode_base64url",
    "make_json_safe",
]


def _add_base64_padding(value: str) -> str:
    return value + "=" * (-len(value) % 4)


def encode_base64url(value: bytes) -> str:
    return websafe_encode(bytes(value))


def decode_binary_value(value: Any) -> bytes:
    """Decode a base64url (or padded standard base64) string into bytes.

    Raises :class:`ValueError` for anything that is not a non-empty string or
    bytes-like object.
    """

    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)

    if not isinstance(value, str):
        raise ValueError("unsupported binary value type")

    candidate = value.strip()
    if not candidate:
        raise ValueError("empty string")

    try:
        return websafe_decode(candidate)
    except (binascii.Error, ValueError):
        pass

    try:
        return base64.b64decode(_add_base64_padding(candidate), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("invalid base64 value") from exc


def make_json_safe(value: Any) -> Any:
    """Recursively convert WebAuthn option values into JSON-friendly data."""

    if isinstance(value, (bytes, bytearray, memoryview)):
        return encode_base64url(bytes(value))
    if isinstance(value, enum.Enum):
        return make_json_safe(value.value)
    if isinstance(value, Mapping):
        return {key: make_json_safe(val) for key, val in value.items() if val is not None}
    if isinstance(value, (list, tuple, set)):
        return [make_json_safe(item) for item in value]
    return value
