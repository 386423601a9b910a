import pytest
from conftest import ORIGIN, RP_ID, build_credential

from passkey_auth.core.errors import (
    ChallengeTypeMismatch,
    CredentialCounterRegression,
    InvalidChallenge,
    InvalidCredential,
    MissingCredentialId,
    UnknownCredential,
)
from passkey_auth.db.models.challenge import ChallengeType
from passkey_auth.db.models.credential import WebAuthnCredential
from passkey_auth.services import challenge_service, credential_service
from passkey_auth.utils.encoding import base64url_to_bytes, bytes_to_base64url


def _stored(db, raw_id):
    db.expire_all()
    return credential_service.get_credential_by_credential_id(db, bytes_to_base64url(raw_id))


def test_start_requests_discoverable_credential(login, db):
    started = login.start()
    options = started.options

    assert options["rpId"] == RP_ID
    assert options["userVerification"] == "required"
    assert options["timeout"] == 60000
    assert options.get("allowCredentials", []) == []

    stored = challenge_service.load_challenge(db, started.challenge_id)
    assert stored.type == ChallengeType.LOGIN
    assert stored.challenge == options["challenge"]
    assert stored.user_handle is None


def test_finish_signs_in_owner_and_advances_counter(registered, login, db, verifier, sessions):
    raw_id, registration_token = registered
    owner = sessions.decode(registration_token.access_token)["sub"]
    before = _stored(db, raw_id).last_used_at
    started = login.start()

    token = login.finish(started.challenge_id, build_credential(raw_id, counter=4))

    assert sessions.decode(token.access_token)["sub"] == owner
    stored = _stored(db, raw_id)
    assert stored.counter == 4
    assert stored.last_used_at >= before

    call = verifier.authentication_calls[0]
    assert call["expected_challenge"] == base64url_to_bytes(started.options["challenge"])
    assert call["expected_origin"] == [ORIGIN]
    assert call["expected_rp_id"] == RP_ID
    assert call["authenticator"].credential_id == raw_id
    assert call["authenticator"].public_key == b"cose-public-key"
    assert call["authenticator"].counter == 0
    assert call["authenticator"].transports == ["internal"]


def test_finish_consumes_challenge(registered, login):
    raw_id, _ = registered
    started = login.start()
    login.finish(started.challenge_id, build_credential(raw_id, counter=1))

    with pytest.raises(InvalidChallenge):
        login.finish(started.challenge_id, build_credential(raw_id, counter=2))


def test_unknown_credential_leaves_state_untouched(registered, login, db, verifier):
    raw_id, _ = registered
    started = login.start()

    with pytest.raises(UnknownCredential):
        login.finish(started.challenge_id, build_credential(b"somebody-else"))

    assert verifier.authentication_calls == []
    assert challenge_service.load_challenge(db, started.challenge_id) is not None
    assert _stored(db, raw_id).counter == 0


def test_missing_credential_id(login):
    started = login.start()
    credential = build_credential(b"cred")
    credential["id"] = ""
    del credential["rawId"]

    with pytest.raises(MissingCredentialId) as exc_info:
        login.finish(started.challenge_id, credential)
    assert exc_info.value.message == "Invalid credential id"


def test_registration_challenge_is_rejected(registered, registration, login, db):
    raw_id, _ = registered
    started = registration.start()

    with pytest.raises(ChallengeTypeMismatch):
        login.finish(started.challenge_id, build_credential(raw_id, counter=1))
    assert challenge_service.load_challenge(db, started.challenge_id) is not None


def test_rejected_assertion_keeps_counter(registered, login, db, verifier):
    raw_id, _ = registered
    verifier.reject = True
    started = login.start()

    with pytest.raises(InvalidCredential) as exc_info:
        login.finish(started.challenge_id, build_credential(raw_id, counter=9))

    assert exc_info.value.message == "Assertion verification failed"
    assert _stored(db, raw_id).counter == 0
    assert challenge_service.load_challenge(db, started.challenge_id) is None


def test_counter_regression_is_rejected(registered, login, db):
    raw_id, _ = registered
    started = login.start()
    login.finish(started.challenge_id, build_credential(raw_id, counter=5))

    for counter in (5, 3):
        started = login.start()
        with pytest.raises(CredentialCounterRegression):
            login.finish(started.challenge_id, build_credential(raw_id, counter=counter))

    assert _stored(db, raw_id).counter == 5


def test_authenticator_without_counter_can_sign_in_repeatedly(registered, login, db):
    raw_id, _ = registered

    for _ in range(2):
        started = login.start()
        login.finish(started.challenge_id, build_credential(raw_id, counter=0))

    assert _stored(db, raw_id).counter == 0


def test_concurrent_counter_update_is_detected(registered, login, db, verifier):
    raw_id, _ = registered
    credential_id = bytes_to_base64url(raw_id)

    def other_login_wins():
        assert credential_service.update_credential_usage(db, credential_id, previous_counter=0, new_counter=3)

    verifier.on_authenticate = other_login_wins
    started = login.start()

    with pytest.raises(CredentialCounterRegression):
        login.finish(started.challenge_id, build_credential(raw_id, counter=7))

    assert _stored(db, raw_id).counter == 3


def test_lookup_uses_normalized_client_id(registered, login, db):
    raw_id, _ = registered
    credential = build_credential(raw_id, counter=1)
    credential["id"] = credential["id"] + "=="
    started = login.start()

    login.finish(started.challenge_id, credential)

    assert db.query(WebAuthnCredential).one().counter == 1
