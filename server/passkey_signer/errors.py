"""Failure taxonomy shared by the ceremony orchestrator and the HTTP layer."""
from __future__ import annotations

from typing import Dict

__all__ = [
    "CeremonyError",
    "ChallengeNotFoundError",
    "CounterRegressedError",
    "CredentialNotFoundError",
    "InvalidInputError",
    "NoCredentialsError",
    "NotFoundError",
    "OptionsUnavailableError",
    "UserNotFoundError",
    "VerificationFailedError",
    "VerificationTimeoutError",
]


class CeremonyError(Exception):
    """Base class for every recoverable ceremony failure.

    ``kind`` is a stable identifier clients may branch on; the exception
    message is meant for humans.
    """

    kind = "CeremonyError"
    status_code = 400
    default_message = "Ceremony failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> Dict[str, str]:
        return {"error": self.message, "kind": self.kind}


class InvalidInputError(CeremonyError):
    kind = "InvalidInput"
    default_message = "Invalid request"


class NotFoundError(CeremonyError):
    kind = "NotFound"
    default_message = "Not found"


class UserNotFoundError(NotFoundError):
    kind = "UserNotFound"
    default_message = "User not found"


class CredentialNotFoundError(NotFoundError):
    kind = "CredentialNotFound"
    default_message = "Authenticator not found"


class ChallengeNotFoundError(NotFoundError):
    kind = "ChallengeNotFound"
    default_message = "Challenge not found"


class NoCredentialsError(NotFoundError):
    kind = "NoCredentials"
    default_message = "No authenticators found for user"


class VerificationFailedError(CeremonyError):
    kind = "VerificationFailed"
    default_message = "Verification failed"


class CounterRegressedError(VerificationFailedError):
    """The authenticator reported a counter that did not move forward."""

    kind = "CounterRegressed"
    default_message = "Signature counter did not increase; possible cloned authenticator"


class VerificationTimeoutError(CeremonyError):
    kind = "VerificationTimeout"
    default_message = "Verification timed out"


class OptionsUnavailableError(CeremonyError):
    kind = "OptionsUnavailable"
    status_code = 500
    default_message = "Unable to generate ceremony options"
