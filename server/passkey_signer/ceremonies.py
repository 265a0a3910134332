"""Begin/complete state machine for the registration, authentication and
signing ceremonies.

Every *begin* writes exactly one challenge for the user, replacing whatever
was outstanding. Every *complete* starts by atomically taking that challenge,
so a challenge is consumed whether or not the response verifies and a replay
of the same response can never find it again.

Signing reuses the authentication assertion: the challenge is the SHA-256
digest of the payload, so the authenticator's signature over
``authenticatorData || SHA-256(clientDataJSON)`` commits to the payload.
"""
from __future__ import annotations

import hashlib
import logging
import threading
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, Dict, NoReturn, Optional, Tuple, TypeVar

from .challenges import Challenge, ChallengeKind, ChallengeStore
from .errors import (
    CeremonyError,
    ChallengeNotFoundError,
    CounterRegressedError,
    CredentialNotFoundError,
    InvalidInputError,
    NoCredentialsError,
    OptionsUnavailableError,
    UserNotFoundError,
    VerificationFailedError,
    VerificationTimeoutError,
)
from .storage import (
    Credential,
    CredentialStore,
    IdentityStore,
    User,
    default_user_name,
    generate_user_id,
)
from .verification import AuthenticationResult, VerificationAdapter

__all__ = [
    "AuthenticationOutcome",
    "CeremonyOrchestrator",
    "RegistrationBegin",
    "RegistrationOutcome",
    "SigningOutcome",
    "signing_challenge",
]

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


def signing_challenge(data: bytes) -> bytes:
    """Derive the challenge that binds an assertion to ``data``."""

    return hashlib.sha256(data).digest()


@dataclass(frozen=True)
class RegistrationBegin:
    options: Dict[str, Any]
    user: User


@dataclass(frozen=True)
class RegistrationOutcome:
    user_id: str
    credential: Credential
    verified: bool = True


@dataclass(frozen=True)
class AuthenticationOutcome:
    user_id: str
    credential_id: bytes
    sign_count: int
    verified: bool = True


@dataclass(frozen=True)
class SigningOutcome:
    user_id: str
    credential_id: bytes
    data: bytes
    signature: bytes
    authenticator_data: bytes
    client_data_json: bytes
    verified: bool = True


class CeremonyOrchestrator:
    """Drives the three ceremonies against the stores and the adapter.

    ``challenge_lifetime`` (seconds) bounds how long an issued challenge may be
    answered; ``verification_timeout`` (seconds) bounds each adapter
    verification call. Either may be ``None`` to disable the bound.
    """

    def __init__(
        self,
        identities: IdentityStore,
        credentials: CredentialStore,
        challenges: ChallengeStore,
        adapter: VerificationAdapter,
        *,
        challenge_lifetime: Optional[float] = 60.0,
        verification_timeout: Optional[float] = 10.0,
        max_workers: int = 8,
    ) -> None:
        self.identities = identities
        self.credentials = credentials
        self.challenges = challenges
        self.adapter = adapter
        self.challenge_lifetime = challenge_lifetime
        self.verification_timeout = verification_timeout
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="ceremony-verify"
        )

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)

    # Registration

    def register_begin(self, username: Optional[str] = None) -> RegistrationBegin:
        if username is not None and not isinstance(username, str):
            raise InvalidInputError("username must be a string")

        user_id = generate_user_id()
        name = (username or "").strip() or default_user_name(user_id)

        # The user is only stored once options exist.
        try:
            options, challenge = self.adapter.registration_options(
                User(id=user_id, name=name, display_name=name)
            )
        except CeremonyError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Failed to generate registration options for %s", user_id)
            raise OptionsUnavailableError(f"Unable to generate registration options: {exc}") from exc

        user = self.identities.create_user(name, user_id=user_id)
        self.challenges.put(user.id, challenge, ChallengeKind.REGISTRATION)
        logger.info("Registration started for user %s (%s)", user.id, user.name)
        return RegistrationBegin(options=options, user=user)

    def register_complete(self, user_id: str, response: Any) -> RegistrationOutcome:
        self._require_user(user_id)
        challenge = self._take_challenge(user_id, ChallengeKind.REGISTRATION)

        if not isinstance(response, Mapping):
            self._reject(user_id, "registration", InvalidInputError("attestationResponse must be an object"))

        result = self._call_adapter(
            user_id,
            "registration",
            lambda: self.adapter.verify_registration(response, challenge.value),
        )

        credential = Credential(
            credential_id=result.credential_id,
            public_key=result.public_key,
            sign_count=result.sign_count,
            owner_user_id=user_id,
            aaguid=result.aaguid,
        )
        if not self.credentials.add_credential(user_id, credential):
            self._reject(user_id, "registration", UserNotFoundError())

        logger.info(
            "Registered credential for user %s (initial counter %d)",
            user_id,
            credential.sign_count,
        )
        return RegistrationOutcome(user_id=user_id, credential=credential)

    # Authentication

    def authenticate_begin(self, user_id: str) -> Dict[str, Any]:
        self._require_credentials(user_id)
        options = self._issue_assertion_challenge(user_id, ChallengeKind.AUTHENTICATION)
        logger.info("Authentication started for user %s", user_id)
        return options

    def authenticate_complete(self, user_id: str, response: Any) -> AuthenticationOutcome:
        result = self._complete_assertion(user_id, response, ChallengeKind.AUTHENTICATION)[0]
        logger.info("User %s authenticated", user_id)
        return AuthenticationOutcome(
            user_id=user_id,
            credential_id=result.credential_id,
            sign_count=result.new_sign_count,
        )

    # Signing

    def sign_begin(self, user_id: str, data: bytes) -> Dict[str, Any]:
        if not isinstance(data, (bytes, bytearray)) or not data:
            raise InvalidInputError("No data provided to sign")
        data = bytes(data)

        self._require_credentials(user_id)
        options = self._issue_assertion_challenge(
            user_id,
            ChallengeKind.SIGNING,
            challenge=signing_challenge(data),
            data=data,
        )
        logger.info("Signing started for user %s (%d bytes)", user_id, len(data))
        return options

    def sign_complete(self, user_id: str, response: Any) -> SigningOutcome:
        result, challenge = self._complete_assertion(user_id, response, ChallengeKind.SIGNING)
        logger.info("User %s signed %d bytes", user_id, len(challenge.data or b""))
        return SigningOutcome(
            user_id=user_id,
            credential_id=result.credential_id,
            data=challenge.data or b"",
            signature=result.signature,
            authenticator_data=result.authenticator_data,
            client_data_json=result.client_data_json,
        )

    # Shared steps

    def _require_user(self, user_id: str) -> User:
        if not isinstance(user_id, str) or not user_id:
            raise InvalidInputError("userId is required")
        user = self.identities.get_user(user_id)
        if user is None:
            raise UserNotFoundError()
        return user

    def _require_credentials(self, user_id: str) -> None:
        self._require_user(user_id)
        if not self.credentials.list_credentials(user_id):
            raise NoCredentialsError()

    def _issue_assertion_challenge(
        self,
        user_id: str,
        kind: ChallengeKind,
        *,
        challenge: Optional[bytes] = None,
        data: Optional[bytes] = None,
    ) -> Dict[str, Any]:
        try:
            options, issued = self.adapter.authentication_options(challenge)
        except CeremonyError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Failed to generate %s options for %s", kind.value, user_id)
            raise OptionsUnavailableError(f"Unable to generate {kind.value} options: {exc}") from exc

        if challenge is not None and issued != challenge:
            raise OptionsUnavailableError("Adapter did not honour the derived challenge")

        self.challenges.put(user_id, issued, kind, data)
        return options

    def _take_challenge(self, user_id: str, kind: ChallengeKind) -> Challenge:
        challenge = self.challenges.take(user_id)
        if challenge is None:
            self._reject(user_id, kind.value, ChallengeNotFoundError())
        if challenge.owner_user_id != user_id or challenge.kind is not kind:
            self._reject(
                user_id,
                kind.value,
                ChallengeNotFoundError(f"No outstanding {kind.value} challenge"),
            )
        if challenge.is_expired(self.challenge_lifetime):
            self._reject(user_id, kind.value, ChallengeNotFoundError("Challenge expired"))
        if kind is ChallengeKind.SIGNING and not challenge.data:
            self._reject(user_id, kind.value, ChallengeNotFoundError("No data found to verify"))
        return challenge

    def _complete_assertion(
        self, user_id: str, response: Any, kind: ChallengeKind
    ) -> Tuple[AuthenticationResult, Challenge]:
        self._require_user(user_id)
        challenge = self._take_challenge(user_id, kind)

        if not isinstance(response, Mapping):
            self._reject(user_id, kind.value, InvalidInputError("assertionResponse must be an object"))

        try:
            credential_id = self.adapter.declared_credential_id(response)
        except CeremonyError as exc:
            self._reject(user_id, kind.value, exc)

        credential = self.credentials.find_credential(user_id, credential_id)
        if credential is None:
            self._reject(user_id, kind.value, CredentialNotFoundError())

        result: AuthenticationResult = self._call_adapter(
            user_id,
            kind.value,
            lambda: self.adapter.verify_authentication(response, challenge.value, credential),
        )
        self._advance_counter(user_id, credential, result.new_sign_count, kind)
        return result, challenge

    def _advance_counter(
        self,
        user_id: str,
        credential: Credential,
        new_counter: int,
        kind: ChallengeKind,
    ) -> None:
        # Authenticators without counter support always report zero.
        if new_counter == 0 and credential.sign_count == 0:
            return
        if not self.credentials.update_counter(user_id, credential.credential_id, new_counter):
            self._reject(
                user_id,
                kind.value,
                CounterRegressedError(
                    f"Signature counter {new_counter} does not exceed stored value "
                    f"{credential.sign_count}"
                ),
            )

    def _call_adapter(self, user_id: str, ceremony: str, call: Callable[[], _T]) -> _T:
        started = threading.Event()

        def run() -> _T:
            started.set()
            return call()

        future = self._executor.submit(run)
        # The timeout covers the call itself, not the wait for a free worker.
        started.wait()
        try:
            return future.result(timeout=self.verification_timeout)
        except FutureTimeoutError:
            self._reject(user_id, ceremony, VerificationTimeoutError())
        except CeremonyError as exc:
            self._reject(user_id, ceremony, exc)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unexpected %s verification fault for user %s", ceremony, user_id)
            raise VerificationFailedError(str(exc) or None) from exc

    def _reject(self, user_id: str, ceremony: str, error: CeremonyError) -> NoReturn:
        logger.warning(
            "%s ceremony rejected for user %s: %s (%s)",
            ceremony.capitalize(),
            user_id,
            error.kind,
            error.message,
        )
        raise error
