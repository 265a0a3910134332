import pytest

from passkey_signer.application import app
from passkey_signer.config import build_orchestrator, parse_origins
from passkey_signer.verification import Fido2VerificationAdapter


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, []),
        ("https://a.example", ["https://a.example"]),
        ("https://a.example/, https://b.example;https://a.example", ["https://a.example", "https://b.example"]),
        (["https://a.example", " https://c.example/ "], ["https://a.example", "https://c.example"]),
    ],
)
def test_parse_origins(raw, expected):
    assert parse_origins(raw) == expected


def test_build_orchestrator_from_config():
    orchestrator = build_orchestrator({
        "FIDO_SERVER_RP_ID": "example.org",
        "FIDO_SERVER_RP_NAME": "Example",
        "FIDO_SERVER_ORIGINS": "https://example.org",
        "FIDO_SERVER_ATTESTATION": "none",
        "FIDO_SERVER_CEREMONY_TIMEOUT_MS": 30000,
        "FIDO_SERVER_VERIFICATION_TIMEOUT": 2.5,
        "FIDO_SERVER_VERIFICATION_WORKERS": 16,
    })
    try:
        assert isinstance(orchestrator.adapter, Fido2VerificationAdapter)
        assert orchestrator.adapter.rp.id == "example.org"
        assert orchestrator.adapter.origins == ("https://example.org",)
        assert orchestrator.challenge_lifetime == 30.0
        assert orchestrator.verification_timeout == 2.5
        assert orchestrator.max_workers == 16
    finally:
        orchestrator.shutdown()


def test_build_orchestrator_defaults_origin_to_rp_id():
    orchestrator = build_orchestrator({"FIDO_SERVER_RP_ID": "example.org"})
    try:
        assert orchestrator.adapter.origins == ("https://example.org",)
        assert orchestrator.challenge_lifetime is None
    finally:
        orchestrator.shutdown()


def test_default_worker_pool_size():
    orchestrator = build_orchestrator({"FIDO_SERVER_RP_ID": "example.org"})
    try:
        assert orchestrator.max_workers == 8
    finally:
        orchestrator.shutdown()


def test_app_does_not_use_sessions():
    assert app.secret_key is None
