"""Passkey relying party exposing registration, authentication and data
signing ceremonies over HTTP."""
from __future__ import annotations

from importlib import import_module
from typing import Any, TYPE_CHECKING

from .ceremonies import CeremonyOrchestrator, signing_challenge
from .challenges import Challenge, ChallengeKind, ChallengeStore, InMemoryChallengeStore
from .errors import CeremonyError
from .signatures import verify_detached_signature
from .storage import (
    Credential,
    CredentialStore,
    IdentityStore,
    InMemoryCredentialStore,
    InMemoryIdentityStore,
    User,
)
from .verification import Fido2VerificationAdapter, VerificationAdapter

__all__ = [
    "CeremonyError",
    "CeremonyOrchestrator",
    "Challenge",
    "ChallengeKind",
    "ChallengeStore",
    "Credential",
    "CredentialStore",
    "Fido2VerificationAdapter",
    "IdentityStore",
    "InMemoryChallengeStore",
    "InMemoryCredentialStore",
    "InMemoryIdentityStore",
    "User",
    "VerificationAdapter",
    "app",
    "main",
    "signing_challenge",
    "verify_detached_signature",
]

_LAZY_ATTRIBUTES = {"app", "main"}


if TYPE_CHECKING:  # pragma: no cover - import only for static analysis.
    from .application import app as _app  # noqa: F401
    from .application import main as _main  # noqa: F401

    app = _app
    main = _main


def __getattr__(name: str) -> Any:
    """Import the Flask application only when it is requested.

    The ceremony core has no dependency on Flask, so library users that only
    need the orchestrator do not pay for route registration.
    """

    if name in _LAZY_ATTRIBUTES:
        module = import_module(".application", __name__)
        return getattr(module, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(__all__))
