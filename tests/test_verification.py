"""End-to-end ceremonies through ``Fido2VerificationAdapter``."""
from __future__ import annotations

import hashlib

import pytest
from fido2 import cbor
from fido2.cose import CoseKey
from fido2.utils import websafe_decode, websafe_encode

from passkey_fakes import ORIGIN, RP_ID, SoftwareAuthenticator

from passkey_signer.ceremonies import CeremonyOrchestrator
from passkey_signer.challenges import InMemoryChallengeStore
from passkey_signer.errors import (
    ChallengeNotFoundError,
    CounterRegressedError,
    InvalidInputError,
    VerificationFailedError,
)
from passkey_signer.signatures import verify_detached_signature
from passkey_signer.storage import InMemoryCredentialStore, InMemoryIdentityStore
from passkey_signer.verification import Fido2VerificationAdapter


@pytest.fixture
def adapter():
    return Fido2VerificationAdapter(RP_ID, "Example RP", [ORIGIN], attestation="none")


@pytest.fixture
def fido_orchestrator(adapter):
    identities = InMemoryIdentityStore()
    instance = CeremonyOrchestrator(
        identities,
        InMemoryCredentialStore(identities),
        InMemoryChallengeStore(),
        adapter,
        verification_timeout=5.0,
    )
    yield instance
    instance.shutdown()


def _enroll(orchestrator, authenticator, name="alice"):
    begin = orchestrator.register_begin(name)
    orchestrator.register_complete(begin.user.id, authenticator.create(begin.options))
    return begin.user.id


def test_registration_options_shape(adapter, fido_orchestrator):
    begin = fido_orchestrator.register_begin("alice")
    options = begin.options

    assert options["rp"] == {"id": RP_ID, "name": "Example RP"}
    assert options["user"]["name"] == "alice"
    assert websafe_decode(options["user"]["id"]) == begin.user.id.encode("utf-8")
    assert [param["alg"] for param in options["pubKeyCredParams"]] == [-7, -257]
    assert options["authenticatorSelection"]["userVerification"] == "required"
    assert options["authenticatorSelection"]["residentKey"] == "preferred"
    assert options["timeout"] == 60000

    pending = fido_orchestrator.challenges.peek(begin.user.id)
    assert websafe_encode(pending.value) == options["challenge"]


def test_registration_stores_public_key(fido_orchestrator, authenticator):
    user_id = _enroll(fido_orchestrator, authenticator)

    (credential,) = fido_orchestrator.credentials.list_credentials(user_id)
    assert credential.credential_id == authenticator.credential_id
    assert credential.sign_count == 0
    assert credential.aaguid == bytes(16)
    stored_key = CoseKey.parse(cbor.decode(credential.public_key))
    assert dict(stored_key) == dict(authenticator.cose_public_key)


def test_registration_rejects_foreign_origin(fido_orchestrator):
    rogue = SoftwareAuthenticator(RP_ID, "https://evil.example")
    begin = fido_orchestrator.register_begin("alice")

    with pytest.raises(VerificationFailedError):
        fido_orchestrator.register_complete(begin.user.id, rogue.create(begin.options))
    assert fido_orchestrator.credentials.list_credentials(begin.user.id) == []


def test_registration_rejects_malformed_response(fido_orchestrator):
    begin = fido_orchestrator.register_begin("alice")

    with pytest.raises(InvalidInputError):
        fido_orchestrator.register_complete(begin.user.id, {"id": "AAAA", "response": {}})


def test_registration_requires_user_verification(fido_orchestrator, authenticator):
    begin = fido_orchestrator.register_begin("alice")

    with pytest.raises(VerificationFailedError):
        fido_orchestrator.register_complete(
            begin.user.id, authenticator.create(begin.options, user_verified=False)
        )


def test_authentication_round_trip(fido_orchestrator, authenticator):
    user_id = _enroll(fido_orchestrator, authenticator)

    options = fido_orchestrator.authenticate_begin(user_id)
    assert options["rpId"] == RP_ID
    assert options["userVerification"] == "required"

    outcome = fido_orchestrator.authenticate_complete(user_id, authenticator.get(options))

    assert outcome.credential_id == authenticator.credential_id
    assert outcome.sign_count == 1
    assert fido_orchestrator.credentials.find_credential(
        user_id, authenticator.credential_id
    ).sign_count == 1


def test_authentication_rejects_tampered_signature(fido_orchestrator, authenticator):
    user_id = _enroll(fido_orchestrator, authenticator)
    options = fido_orchestrator.authenticate_begin(user_id)
    response = authenticator.get(options)
    signature = bytearray(websafe_decode(response["response"]["signature"]))
    signature[-1] ^= 0x01
    response["response"]["signature"] = websafe_encode(bytes(signature))

    with pytest.raises(VerificationFailedError):
        fido_orchestrator.authenticate_complete(user_id, response)
    assert fido_orchestrator.credentials.find_credential(
        user_id, authenticator.credential_id
    ).sign_count == 0


def test_authentication_rejects_foreign_origin(fido_orchestrator, authenticator):
    user_id = _enroll(fido_orchestrator, authenticator)
    options = fido_orchestrator.authenticate_begin(user_id)

    with pytest.raises(VerificationFailedError):
        fido_orchestrator.authenticate_complete(
            user_id, authenticator.get(options, origin="https://evil.example")
        )


def test_replayed_assertion_is_rejected(fido_orchestrator, authenticator):
    user_id = _enroll(fido_orchestrator, authenticator)
    options = fido_orchestrator.authenticate_begin(user_id)
    response = authenticator.get(options)

    fido_orchestrator.authenticate_complete(user_id, response)
    with pytest.raises(ChallengeNotFoundError):
        fido_orchestrator.authenticate_complete(user_id, response)


def test_cloned_authenticator_is_detected(fido_orchestrator, authenticator):
    user_id = _enroll(fido_orchestrator, authenticator)
    options = fido_orchestrator.authenticate_begin(user_id)
    fido_orchestrator.authenticate_complete(user_id, authenticator.get(options, counter=10))

    options = fido_orchestrator.authenticate_begin(user_id)
    with pytest.raises(CounterRegressedError):
        fido_orchestrator.authenticate_complete(user_id, authenticator.get(options, counter=10))
    assert fido_orchestrator.credentials.find_credential(
        user_id, authenticator.credential_id
    ).sign_count == 10


def test_signing_binds_the_payload(fido_orchestrator, authenticator):
    user_id = _enroll(fido_orchestrator, authenticator)
    payload = b"pay 10 EUR to bob"

    options = fido_orchestrator.sign_begin(user_id, payload)
    assert websafe_decode(options["challenge"]) == hashlib.sha256(payload).digest()

    outcome = fido_orchestrator.sign_complete(user_id, authenticator.get(options))

    assert outcome.data == payload
    assert outcome.credential_id == authenticator.credential_id
    credential = fido_orchestrator.credentials.find_credential(user_id, authenticator.credential_id)
    assert verify_detached_signature(
        credential.public_key,
        payload,
        outcome.client_data_json,
        outcome.authenticator_data,
        outcome.signature,
        rp_id=RP_ID,
    )
    assert not verify_detached_signature(
        credential.public_key,
        b"pay 1000 EUR to bob",
        outcome.client_data_json,
        outcome.authenticator_data,
        outcome.signature,
    )


def test_signing_rejects_assertion_over_other_payload(fido_orchestrator, authenticator):
    user_id = _enroll(fido_orchestrator, authenticator)
    other = fido_orchestrator.sign_begin(user_id, b"something else")
    fido_orchestrator.sign_begin(user_id, b"the real payload")

    with pytest.raises(VerificationFailedError):
        fido_orchestrator.sign_complete(user_id, authenticator.get(other))
