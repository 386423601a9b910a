import pytest
from fastapi.testclient import TestClient

from passkey_auth.core.config import Settings
from passkey_auth.db.base import create_db_engine, create_session_factory, init_db
from passkey_auth.main import create_app
from passkey_auth.services.login_service import LoginService
from passkey_auth.services.registration_service import RegistrationService
from passkey_auth.services.session_service import SessionService
from passkey_auth.services.verifier import (
    AuthenticationVerification,
    RegistrationVerification,
    VerificationError,
)
from passkey_auth.utils.encoding import base64url_to_bytes, bytes_to_base64url

ORIGIN = "https://journal.example"
RP_ID = "journal.example"
JWT_SECRET = "test-signing-secret-0123456789abcdef"


class FakeVerifier:
    """Scripted verifier: trusts the ``counter`` a test puts on the credential."""

    def __init__(self):
        self.reject = False
        self.verified = True
        self.registration_calls = []
        self.authentication_calls = []
        self.on_authenticate = None
        self.attested_id = None

    def verify_registration(
        self, credential, expected_challenge, expected_origin, expected_rp_id, require_user_verification=True
    ):
        self.registration_calls.append(
            {
                "credential": credential,
                "expected_challenge": expected_challenge,
                "expected_origin": expected_origin,
                "expected_rp_id": expected_rp_id,
                "require_user_verification": require_user_verification,
            }
        )
        if self.reject:
            raise VerificationError("attestation rejected")
        return RegistrationVerification(
            verified=self.verified,
            credential_id=self.attested_id or base64url_to_bytes(credential["rawId"]),
            public_key=b"cose-public-key",
            counter=credential.get("counter", 0),
            aaguid="00000000-0000-0000-0000-000000000000",
            fmt="none",
        )

    def verify_authentication(
        self,
        credential,
        expected_challenge,
        expected_origin,
        expected_rp_id,
        authenticator,
        require_user_verification=True,
    ):
        self.authentication_calls.append(
            {
                "credential": credential,
                "expected_challenge": expected_challenge,
                "expected_origin": expected_origin,
                "expected_rp_id": expected_rp_id,
                "authenticator": authenticator,
                "require_user_verification": require_user_verification,
            }
        )
        if self.on_authenticate:
            self.on_authenticate()
        if self.reject:
            raise VerificationError("assertion rejected")
        return AuthenticationVerification(
            verified=self.verified,
            credential_id=authenticator.credential_id,
            new_counter=credential.get("counter", 0),
        )


def build_credential(raw_id: bytes, counter: int = 0, transports=None) -> dict:
    credential_id = bytes_to_base64url(raw_id)
    response = {"clientDataJSON": "e30", "attestationObject": "oA"}
    if transports is not None:
        response["transports"] = transports
    return {
        "id": credential_id,
        "rawId": credential_id,
        "type": "public-key",
        "response": response,
        "counter": counter,
    }


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite://",
        WEBAUTHN_RP_ID=RP_ID,
        WEBAUTHN_RP_NAME="Journal",
        WEBAUTHN_ORIGIN=ORIGIN,
        JWT_SECRET=JWT_SECRET,
    )


@pytest.fixture
def verifier():
    return FakeVerifier()


@pytest.fixture
def db(settings):
    engine = create_db_engine(settings.DATABASE_URL)
    init_db(engine)
    session = create_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def sessions(settings):
    return SessionService.from_settings(settings)


@pytest.fixture
def registration(db, settings, verifier, sessions):
    return RegistrationService(db, settings, verifier, sessions)


@pytest.fixture
def login(db, settings, verifier, sessions):
    return LoginService(db, settings, verifier, sessions)


@pytest.fixture
def registered(registration):
    """A passkey registered through the normal flow, returned as (raw id, token)."""
    raw_id = b"registered-credential"
    started = registration.start()
    token = registration.finish(started.challenge_id, build_credential(raw_id, transports=["internal"]))
    return raw_id, token


@pytest.fixture
def app(settings, verifier):
    return create_app(settings, verifier=verifier)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
