import json
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session
from webauthn import generate_authentication_options, options_to_json
from webauthn.helpers.structs import UserVerificationRequirement

from passkey_auth.core.config import Settings
from passkey_auth.core.errors import (
    CredentialCounterRegression,
    InvalidCredential,
    MissingCredentialId,
    UnknownCredential,
)
from passkey_auth.db.models.challenge import ChallengeType
from passkey_auth.db.models.credential import WebAuthnCredential
from passkey_auth.schemas.webauthn import CeremonyStartResponse, TokenResponse
from passkey_auth.services import challenge_service, credential_service
from passkey_auth.services.session_service import SessionService
from passkey_auth.services.verifier import (
    AuthenticationVerification,
    StoredAuthenticator,
    VerificationError,
    Verifier,
)
from passkey_auth.utils.encoding import base64url_to_bytes, try_normalize_base64url

logger = logging.getLogger(__name__)


class LoginService:
    """Usernameless login: the authenticator picks the credential, the server resolves the identity."""

    def __init__(self, db: Session, settings: Settings, verifier: Verifier, sessions: SessionService):
        self.db = db
        self.settings = settings
        self.verifier = verifier
        self.sessions = sessions

    def start(self) -> CeremonyStartResponse:
        challenge = challenge_service.generate_challenge()

        # No allowCredentials: discoverable credentials only
        auth_options = generate_authentication_options(
            rp_id=self.settings.WEBAUTHN_RP_ID,
            challenge=base64url_to_bytes(challenge),
            timeout=self.settings.CEREMONY_TIMEOUT_MS,
            user_verification=UserVerificationRequirement.REQUIRED,
        )

        challenge_id = challenge_service.create_challenge(
            self.db,
            ChallengeType.LOGIN,
            challenge,
            ttl_minutes=self.settings.CHALLENGE_TTL_MINUTES,
        )
        return CeremonyStartResponse(
            options=json.loads(options_to_json(auth_options)),
            challengeId=challenge_id,
        )

    def finish(self, challenge_id: str, credential: Dict[str, Any]) -> TokenResponse:
        db_challenge = challenge_service.get_valid_challenge(self.db, challenge_id, ChallengeType.LOGIN)

        credential_id = _client_credential_id(credential)
        if not credential_id:
            raise MissingCredentialId()

        stored = credential_service.get_credential_by_credential_id(self.db, credential_id)
        if stored is None:
            logger.warning(f"Login attempted with unknown credential {credential_id[:8]}...")
            raise UnknownCredential()

        expected_challenge = base64url_to_bytes(db_challenge.challenge)
        challenge_service.claim_challenge(self.db, challenge_id)

        previous_counter = stored.counter or 0
        verification = self._verify(credential, expected_challenge, stored)
        new_counter = verification.new_counter or 0

        if new_counter <= previous_counter:
            if new_counter == 0 and previous_counter == 0:
                logger.warning(f"Credential {credential_id[:8]}... does not report a signature counter")
            else:
                logger.warning(
                    f"Possible cloned authenticator: credential {credential_id[:8]}... "
                    f"counter went from {previous_counter} to {new_counter}"
                )
                raise CredentialCounterRegression()

        if not credential_service.update_credential_usage(self.db, credential_id, previous_counter, new_counter):
            logger.warning(f"Counter for credential {credential_id[:8]}... changed during login")
            raise CredentialCounterRegression()

        logger.info(f"Passkey login for identity {stored.user_id}")
        return self.sessions.issue(stored.user_id)

    def _verify(
        self,
        credential: Dict[str, Any],
        expected_challenge: bytes,
        stored: WebAuthnCredential,
    ) -> AuthenticationVerification:
        authenticator = StoredAuthenticator(
            credential_id=base64url_to_bytes(stored.credential_id),
            public_key=base64url_to_bytes(stored.public_key),
            counter=stored.counter or 0,
            transports=stored.transports or [],
        )
        try:
            verification = self.verifier.verify_authentication(
                credential,
                expected_challenge=expected_challenge,
                expected_origin=self.settings.allowed_origins,
                expected_rp_id=self.settings.WEBAUTHN_RP_ID,
                authenticator=authenticator,
                require_user_verification=True,
            )
        except VerificationError as e:
            logger.warning(str(e))
            raise InvalidCredential("Assertion verification failed") from e

        if not verification.verified:
            logger.warning("Verifier rejected the assertion")
            raise InvalidCredential("Assertion verification failed")
        return verification


def _client_credential_id(credential: Dict[str, Any]) -> Optional[str]:
    return try_normalize_base64url(credential.get("id")) or try_normalize_base64url(credential.get("rawId"))
