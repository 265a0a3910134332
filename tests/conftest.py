import pytest

from passkey_fakes import ORIGIN, RP_ID, ScriptedAdapter, SoftwareAuthenticator

from passkey_signer.ceremonies import CeremonyOrchestrator
from passkey_signer.challenges import InMemoryChallengeStore
from passkey_signer.storage import InMemoryCredentialStore, InMemoryIdentityStore


@pytest.fixture
def scripted_adapter():
    return ScriptedAdapter()


@pytest.fixture
def orchestrator(scripted_adapter):
    identities = InMemoryIdentityStore()
    instance = CeremonyOrchestrator(
        identities,
        InMemoryCredentialStore(identities),
        InMemoryChallengeStore(),
        scripted_adapter,
        challenge_lifetime=60.0,
        verification_timeout=2.0,
    )
    yield instance
    instance.shutdown()


@pytest.fixture
def authenticator():
    return SoftwareAuthenticator(RP_ID, ORIGIN)


@pytest.fixture
def client():
    from passkey_signer.application import app
    from passkey_signer.config import build_orchestrator, install_orchestrator

    app.config.update(
        TESTING=True,
        FIDO_SERVER_RP_ID=RP_ID,
        FIDO_SERVER_RP_NAME="Example RP",
        FIDO_SERVER_ORIGINS=[ORIGIN],
        FIDO_SERVER_ATTESTATION="none",
    )
    install_orchestrator(app, build_orchestrator(app.config))

    with app.test_client() as test_client:
        yield test_client
