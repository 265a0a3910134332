"""Configuration and application setup for the passkey signing server."""
from __future__ import annotations

import os
import re
import threading
from typing import Any, List, Mapping, Optional

from flask import Flask, current_app

from .ceremonies import CeremonyOrchestrator
from .challenges import InMemoryChallengeStore
from .storage import InMemoryCredentialStore, InMemoryIdentityStore
from .verification import Fido2VerificationAdapter

app = Flask(__name__, static_url_path="")

_EXTENSION_KEY = "passkey_signer.orchestrator"
_orchestrator_lock = threading.Lock()


def _env_flag(name: str) -> Optional[bool]:
    """Return ``True`` or ``False`` when the named env var is explicitly set."""

    raw_value = os.environ.get(name)
    if raw_value is None:
        return None

    normalised = raw_value.strip().lower()
    if normalised in {"", "0", "false", "off", "no"}:
        return False
    return True


def _env_number(name: str, default: float) -> float:
    raw_value = os.environ.get(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def parse_origins(raw_value: Any) -> List[str]:
    """Normalise a comma, semicolon or newline separated list of origins."""

    if raw_value is None:
        return []
    if isinstance(raw_value, (list, tuple, set, frozenset)):
        components = [str(item) for item in raw_value]
    else:
        components = re.split(r"[,;\n]+", str(raw_value))

    origins: List[str] = []
    for component in components:
        cleaned = component.strip().rstrip("/")
        if cleaned and cleaned not in origins:
            origins.append(cleaned)
    return origins


app.config.setdefault("FIDO_SERVER_RP_ID", os.environ.get("FIDO_SERVER_RP_ID", "localhost"))
app.config.setdefault("FIDO_SERVER_RP_NAME", os.environ.get("FIDO_SERVER_RP_NAME", "WebAuthn Demo"))
app.config.setdefault(
    "FIDO_SERVER_ORIGINS",
    parse_origins(os.environ.get("FIDO_SERVER_ORIGINS", "http://localhost:3000")),
)
app.config.setdefault("FIDO_SERVER_ATTESTATION", os.environ.get("FIDO_SERVER_ATTESTATION", "direct"))
app.config.setdefault(
    "FIDO_SERVER_CEREMONY_TIMEOUT_MS",
    int(_env_number("FIDO_SERVER_CEREMONY_TIMEOUT_MS", 60000)),
)
app.config.setdefault(
    "FIDO_SERVER_VERIFICATION_TIMEOUT",
    _env_number("FIDO_SERVER_VERIFICATION_TIMEOUT", 10.0),
)
app.config.setdefault(
    "FIDO_SERVER_VERIFICATION_WORKERS",
    int(_env_number("FIDO_SERVER_VERIFICATION_WORKERS", 8)),
)
app.config.setdefault("FIDO_SERVER_HOST", os.environ.get("FIDO_SERVER_HOST", "localhost"))
app.config.setdefault("FIDO_SERVER_PORT", int(_env_number("FIDO_SERVER_PORT", 3000)))

_debug_flag = _env_flag("FIDO_SERVER_DEBUG")
if _debug_flag is not None:
    app.config["DEBUG"] = _debug_flag


def build_orchestrator(config: Mapping[str, Any]) -> CeremonyOrchestrator:
    """Wire the in-memory stores and the fido2 adapter from ``config``."""

    rp_id = config.get("FIDO_SERVER_RP_ID") or "localhost"
    origins = parse_origins(config.get("FIDO_SERVER_ORIGINS"))
    if not origins:
        origins = [f"https://{rp_id}"]

    timeout_ms = config.get("FIDO_SERVER_CEREMONY_TIMEOUT_MS")
    verification_timeout = config.get("FIDO_SERVER_VERIFICATION_TIMEOUT")
    workers = config.get("FIDO_SERVER_VERIFICATION_WORKERS") or 8

    adapter = Fido2VerificationAdapter(
        rp_id,
        config.get("FIDO_SERVER_RP_NAME") or "WebAuthn Demo",
        origins,
        attestation=config.get("FIDO_SERVER_ATTESTATION") or None,
        timeout_ms=int(timeout_ms) if timeout_ms else None,
    )

    identities = InMemoryIdentityStore()
    return CeremonyOrchestrator(
        identities,
        InMemoryCredentialStore(identities),
        InMemoryChallengeStore(),
        adapter,
        challenge_lifetime=(int(timeout_ms) / 1000.0) if timeout_ms else None,
        verification_timeout=float(verification_timeout) if verification_timeout else None,
        max_workers=max(1, int(workers)),
    )


def install_orchestrator(flask_app: Flask, orchestrator: CeremonyOrchestrator) -> CeremonyOrchestrator:
    """Attach ``orchestrator`` to ``flask_app``, replacing any previous one."""

    previous = flask_app.extensions.get(_EXTENSION_KEY)
    flask_app.extensions[_EXTENSION_KEY] = orchestrator
    if previous is not None and previous is not orchestrator:
        previous.shutdown()
    return orchestrator


def get_orchestrator() -> CeremonyOrchestrator:
    """Return the orchestrator of the active application, building it lazily."""

    flask_app = current_app._get_current_object()  # pylint: disable=protected-access
    orchestrator = flask_app.extensions.get(_EXTENSION_KEY)
    if orchestrator is not None:
        return orchestrator

    with _orchestrator_lock:
        orchestrator = flask_app.extensions.get(_EXTENSION_KEY)
        if orchestrator is None:
            orchestrator = install_orchestrator(flask_app, build_orchestrator(flask_app.config))
    return orchestrator


__all__ = [
    "app",
    "build_orchestrator",
    "get_orchestrator",
    "install_orchestrator",
    "parse_origins",
]
