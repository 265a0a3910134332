"""Boundary between the ceremony logic and the WebAuthn cryptography.

The orchestrator only talks to :class:`VerificationAdapter`. The production
implementation, :class:`Fido2VerificationAdapter`, delegates option
synthesis, client data checks, attestation parsing and signature verification
to :class:`fido2.server.Fido2Server`.
"""
from __future__ import annotations

import abc
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Sequence, Tuple

from fido2 import cbor
from fido2.cose import CoseKey
from fido2.server import Fido2Server
from fido2.utils import websafe_decode, websafe_encode
from fido2.webauthn import (
    AttestedCredentialData,
    AuthenticationResponse,
    PublicKeyCredentialParameters,
    PublicKeyCredentialRpEntity,
    PublicKeyCredentialType,
    PublicKeyCredentialUserEntity,
    RegistrationResponse,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from .encoding import decode_binary_value, make_json_safe
from .errors import InvalidInputError, VerificationFailedError
from .storage import Credential, User

__all__ = [
    "AuthenticationResult",
    "Fido2VerificationAdapter",
    "RegistrationResult",
    "SUPPORTED_ALGORITHMS",
    "VerificationAdapter",
]

logger = logging.getLogger(__name__)

# ES256 and RS256.
SUPPORTED_ALGORITHMS: Tuple[int, ...] = (-7, -257)

Options = Dict[str, Any]


@dataclass(frozen=True)
class RegistrationResult:
    credential_id: bytes
    public_key: bytes
    sign_count: int
    aaguid: bytes = bytes(16)


@dataclass(frozen=True)
class AuthenticationResult:
    credential_id: bytes
    new_sign_count: int
    signature: bytes
    authenticator_data: bytes
    client_data_json: bytes


class VerificationAdapter(abc.ABC):
    """Synthesises ceremony options and verifies authenticator responses.

    Verification failures are reported by raising
    :class:`~passkey_signer.errors.VerificationFailedError`; responses that
    cannot even be parsed raise :class:`~passkey_signer.errors.InvalidInputError`.
    """

    @abc.abstractmethod
    def registration_options(self, user: User) -> Tuple[Options, bytes]:
        """Return ``(options, challenge)`` for a registration ceremony."""

    @abc.abstractmethod
    def authentication_options(self, challenge: Optional[bytes] = None) -> Tuple[Options, bytes]:
        """Return ``(options, challenge)``; a random challenge is used unless one is given."""

    @abc.abstractmethod
    def verify_registration(self, response: Mapping, challenge: bytes) -> RegistrationResult:
        """Verify an attestation response against the expected challenge."""

    @abc.abstractmethod
    def declared_credential_id(self, response: Mapping) -> bytes:
        """Return the credential id an assertion response claims to come from."""

    @abc.abstractmethod
    def verify_authentication(
        self,
        response: Mapping,
        challenge: bytes,
        credential: Credential,
    ) -> AuthenticationResult:
        """Verify an assertion against the stored credential."""


def _origin_verifier(origins: Iterable[str]) -> Callable[[str], bool]:
    allowed = frozenset(origin.rstrip("/") for origin in origins if origin)

    def verify(origin: str) -> bool:
        return isinstance(origin, str) and origin.rstrip("/") in allowed

    return verify


def _attested_credential(credential: Credential) -> AttestedCredentialData:
    cose_key = CoseKey.parse(cbor.decode(credential.public_key))
    return AttestedCredentialData.create(credential.aaguid, credential.credential_id, cose_key)


class Fido2VerificationAdapter(VerificationAdapter):
    """Adapter backed by :class:`fido2.server.Fido2Server`.

    The server is stateless between calls: the expected challenge is handed
    back in by the orchestrator and turned into the ``state`` mapping that
    ``Fido2Server`` expects.
    """

    def __init__(
        self,
        rp_id: str,
        rp_name: str,
        origins: Sequence[str],
        *,
        attestation: Optional[str] = "direct",
        timeout_ms: Optional[int] = 60000,
        algorithms: Sequence[int] = SUPPORTED_ALGORITHMS,
    ) -> None:
        self.rp = PublicKeyCredentialRpEntity(name=rp_name, id=rp_id)
        self.origins = tuple(origins)
        self.server = Fido2Server(
            self.rp,
            attestation=attestation or None,
            verify_origin=_origin_verifier(self.origins),
        )
        self.server.timeout = timeout_ms
        self.server.allowed_algorithms = [
            PublicKeyCredentialParameters(type=PublicKeyCredentialType.PUBLIC_KEY, alg=alg)
            for alg in algorithms
        ]

    def _state(self, challenge: bytes) -> Dict[str, Any]:
        return {
            "challenge": websafe_encode(challenge),
            "user_verification": UserVerificationRequirement.REQUIRED,
        }

    @staticmethod
    def _public_key_options(options: Any) -> Options:
        payload = make_json_safe(dict(options))
        return payload.get("publicKey", payload)

    def registration_options(self, user: User) -> Tuple[Options, bytes]:
        options, state = self.server.register_begin(
            PublicKeyCredentialUserEntity(
                name=user.name,
                id=user.id.encode("utf-8"),
                display_name=user.display_name,
            ),
            [],
            resident_key_requirement=ResidentKeyRequirement.PREFERRED,
            user_verification=UserVerificationRequirement.REQUIRED,
        )
        return self._public_key_options(options), websafe_decode(state["challenge"])

    def authentication_options(self, challenge: Optional[bytes] = None) -> Tuple[Options, bytes]:
        options, state = self.server.authenticate_begin(
            None,
            user_verification=UserVerificationRequirement.REQUIRED,
            challenge=challenge,
        )
        return self._public_key_options(options), websafe_decode(state["challenge"])

    def verify_registration(self, response: Mapping, challenge: bytes) -> RegistrationResult:
        try:
            parsed = RegistrationResponse.from_dict(response)
        except Exception as exc:  # pylint: disable=broad-except
            raise InvalidInputError(f"Malformed attestation response: {exc}") from exc

        try:
            auth_data = self.server.register_complete(self._state(challenge), parsed)
        except ValueError as exc:
            raise VerificationFailedError(str(exc) or "Verification failed") from exc

        credential_data = auth_data.credential_data
        if credential_data is None:
            raise VerificationFailedError("Attested credential data missing")

        logger.debug(
            "Attestation of format %s verified for RP %s",
            parsed.response.attestation_object.fmt,
            self.rp.id,
        )
        return RegistrationResult(
            credential_id=bytes(credential_data.credential_id),
            public_key=cbor.encode(dict(credential_data.public_key)),
            sign_count=auth_data.counter,
            aaguid=bytes(credential_data.aaguid),
        )

    def declared_credential_id(self, response: Mapping) -> bytes:
        if not isinstance(response, Mapping):
            raise InvalidInputError("Assertion response must be an object")
        raw_id = response.get("rawId") or response.get("id")
        try:
            return decode_binary_value(raw_id)
        except ValueError as exc:
            raise InvalidInputError("Assertion response is missing a credential id") from exc

    def verify_authentication(
        self,
        response: Mapping,
        challenge: bytes,
        credential: Credential,
    ) -> AuthenticationResult:
        try:
            parsed = AuthenticationResponse.from_dict(response)
        except Exception as exc:  # pylint: disable=broad-except
            raise InvalidInputError(f"Malformed assertion response: {exc}") from exc

        try:
            self.server.authenticate_complete(
                self._state(challenge),
                [_attested_credential(credential)],
                parsed,
            )
        except ValueError as exc:
            raise VerificationFailedError(str(exc) or "Verification failed") from exc

        assertion = parsed.response
        return AuthenticationResult(
            credential_id=credential.credential_id,
            new_sign_count=assertion.authenticator_data.counter,
            signature=bytes(assertion.signature),
            authenticator_data=bytes(assertion.authenticator_data),
            client_data_json=bytes(assertion.client_data),
        )
