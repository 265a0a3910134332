"""Request bodies accepted by the ceremony endpoints.

Each body is validated here, before the orchestrator sees it, so malformed
input is reported as ``InvalidInput`` instead of surfacing from deep inside
verification.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .encoding import decode_binary_value
from .errors import InvalidInputError

__all__ = [
    "AssertionCompleteRequest",
    "AuthenticateBeginRequest",
    "RegisterBeginRequest",
    "RegisterCompleteRequest",
    "SignBeginRequest",
    "SignVerifyRequest",
]


def _require_mapping(payload: Any) -> Mapping:
    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise InvalidInputError("Request body must be a JSON object")
    return payload


def _require_string(payload: Mapping, key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"{key} is required")
    return value.strip()


def _require_object(payload: Mapping, key: str) -> Dict[str, Any]:
    value = payload.get(key)
    if not isinstance(value, Mapping) or not value:
        raise InvalidInputError(f"{key} is required")
    return dict(value)


def _require_binary(payload: Mapping, key: str) -> bytes:
    value = _require_string(payload, key)
    try:
        return decode_binary_value(value)
    except ValueError as exc:
        raise InvalidInputError(f"{key} must be base64url encoded") from exc


@dataclass(frozen=True)
class RegisterBeginRequest:
    username: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "RegisterBeginRequest":
        body = _require_mapping(payload)
        username = body.get("username")
        if username is not None and not isinstance(username, str):
            raise InvalidInputError("username must be a string")
        return cls(username=username)


@dataclass(frozen=True)
class RegisterCompleteRequest:
    user_id: str
    attestation_response: Dict[str, Any]

    @classmethod
    def from_payload(cls, payload: Any) -> "RegisterCompleteRequest":
        body = _require_mapping(payload)
        return cls(
            user_id=_require_string(body, "userId"),
            attestation_response=_require_object(body, "attestationResponse"),
        )


@dataclass(frozen=True)
class AuthenticateBeginRequest:
    user_id: str

    @classmethod
    def from_payload(cls, payload: Any) -> "AuthenticateBeginRequest":
        return cls(user_id=_require_string(_require_mapping(payload), "userId"))


@dataclass(frozen=True)
class AssertionCompleteRequest:
    """Body of both ``/api/authenticate/complete`` and ``/api/sign/complete``."""

    user_id: str
    assertion_response: Dict[str, Any]

    @classmethod
    def from_payload(cls, payload: Any) -> "AssertionCompleteRequest":
        body = _require_mapping(payload)
        return cls(
            user_id=_require_string(body, "userId"),
            assertion_response=_require_object(body, "assertionResponse"),
        )


@dataclass(frozen=True)
class SignBeginRequest:
    user_id: str
    data: str

    @property
    def payload(self) -> bytes:
        return self.data.encode("utf-8")

    @classmethod
    def from_payload(cls, payload: Any) -> "SignBeginRequest":
        body = _require_mapping(payload)
        data = body.get("data")
        if not isinstance(data, str) or not data:
            raise InvalidInputError("No data provided to sign")
        return cls(user_id=_require_string(body, "userId"), data=data)


@dataclass(frozen=True)
class SignVerifyRequest:
    user_id: str
    credential_id: bytes
    data: str
    signature: bytes
    authenticator_data: bytes
    client_data_json: bytes

    @classmethod
    def from_payload(cls, payload: Any) -> "SignVerifyRequest":
        body = _require_mapping(payload)
        data = body.get("data")
        if not isinstance(data, str) or not data:
            raise InvalidInputError("data is required")
        return cls(
            user_id=_require_string(body, "userId"),
            credential_id=_require_binary(body, "credentialId"),
            data=data,
            signature=_require_binary(body, "signature"),
            authenticator_data=_require_binary(body, "authenticatorData"),
            client_data_json=_require_binary(body, "clientDataJSON"),
        )
