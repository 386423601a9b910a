import json
import logging
import secrets
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session
from webauthn import generate_registration_options, options_to_json
from webauthn.helpers.cose import COSEAlgorithmIdentifier
from webauthn.helpers.structs import (
    AttestationConveyancePreference,
    AuthenticatorSelectionCriteria,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from passkey_auth.core.config import Settings
from passkey_auth.core.errors import (
    CredentialIdExtractionFailed,
    CredentialStoreFailed,
    InvalidCredential,
    MissingUserHandle,
)
from passkey_auth.db.models.challenge import ChallengeType
from passkey_auth.schemas.webauthn import CeremonyStartResponse, TokenResponse
from passkey_auth.services import challenge_service, credential_service
from passkey_auth.services.identity_service import IdentityService
from passkey_auth.services.session_service import SessionService
from passkey_auth.services.verifier import RegistrationVerification, VerificationError, Verifier
from passkey_auth.utils.encoding import base64url_to_bytes, bytes_to_base64url, try_normalize_base64url

logger = logging.getLogger(__name__)

USER_HANDLE_LENGTH_BYTES = 32
# Passkey-only: the user is not identified up-front, so the ceremony gets a placeholder name
CEREMONY_USER_NAME = "passkey"
SUPPORTED_ALGORITHMS = [
    COSEAlgorithmIdentifier.ECDSA_SHA_256,
    COSEAlgorithmIdentifier.RSASSA_PKCS1_v1_5_SHA_256,
]


class RegistrationService:
    """Registers a discoverable credential and creates the identity it belongs to."""

    def __init__(
        self,
        db: Session,
        settings: Settings,
        verifier: Verifier,
        sessions: SessionService,
        identities: Optional[IdentityService] = None,
    ):
        self.db = db
        self.settings = settings
        self.verifier = verifier
        self.sessions = sessions
        self.identities = identities or IdentityService()

    def start(self) -> CeremonyStartResponse:
        user_handle = secrets.token_bytes(USER_HANDLE_LENGTH_BYTES)
        challenge = challenge_service.generate_challenge()

        registration_options = generate_registration_options(
            rp_id=self.settings.WEBAUTHN_RP_ID,
            rp_name=self.settings.WEBAUTHN_RP_NAME,
            user_id=user_handle,
            user_name=CEREMONY_USER_NAME,
            user_display_name=CEREMONY_USER_NAME,
            challenge=base64url_to_bytes(challenge),
            timeout=self.settings.CEREMONY_TIMEOUT_MS,
            attestation=AttestationConveyancePreference.NONE,
            authenticator_selection=AuthenticatorSelectionCriteria(
                resident_key=ResidentKeyRequirement.REQUIRED,
                user_verification=UserVerificationRequirement.REQUIRED,
            ),
            supported_pub_key_algs=SUPPORTED_ALGORITHMS,
        )

        challenge_id = challenge_service.create_challenge(
            self.db,
            ChallengeType.REGISTER,
            challenge,
            user_handle=bytes_to_base64url(user_handle),
            ttl_minutes=self.settings.CHALLENGE_TTL_MINUTES,
        )
        return CeremonyStartResponse(
            options=json.loads(options_to_json(registration_options)),
            challengeId=challenge_id,
        )

    def finish(self, challenge_id: str, credential: Dict[str, Any]) -> TokenResponse:
        db_challenge = challenge_service.get_valid_challenge(self.db, challenge_id, ChallengeType.REGISTER)
        if not db_challenge.user_handle:
            raise MissingUserHandle()

        expected_challenge = base64url_to_bytes(db_challenge.challenge)
        challenge_service.claim_challenge(self.db, challenge_id)

        verification = self._verify(credential, expected_challenge)
        credential_id = self._resolve_credential_id(credential, verification)

        user_id = self.identities.create_identity(self.db)
        try:
            credential_service.add_credential_to_user(
                self.db,
                user_id=user_id,
                credential_id=credential_id,
                public_key=bytes_to_base64url(verification.public_key),
                counter=verification.counter or 0,
                transports=_client_transports(credential),
                aaguid=verification.aaguid,
                attestation_fmt=verification.fmt,
            )
        except CredentialStoreFailed as e:
            logger.error(f"Storing credential for new identity {user_id} failed: {e.detail}")
            if self.identities.delete_identity(self.db, user_id):
                logger.info(f"Removed identity {user_id} left without a credential")
            raise

        logger.info(f"Registered passkey {credential_id[:8]}... for identity {user_id}")
        return self.sessions.issue(user_id)

    def _verify(self, credential: Dict[str, Any], expected_challenge: bytes) -> RegistrationVerification:
        try:
            verification = self.verifier.verify_registration(
                credential,
                expected_challenge=expected_challenge,
                expected_origin=self.settings.allowed_origins,
                expected_rp_id=self.settings.WEBAUTHN_RP_ID,
                require_user_verification=True,
            )
        except VerificationError as e:
            logger.warning(str(e))
            raise InvalidCredential("Attestation verification failed") from e

        if not verification.verified:
            logger.warning("Verifier rejected the attestation")
            raise InvalidCredential("Attestation verification failed")
        return verification

    @staticmethod
    def _resolve_credential_id(credential: Dict[str, Any], verification: RegistrationVerification) -> str:
        client_ids = [try_normalize_base64url(credential.get(key)) for key in ("id", "rawId")]
        client_ids = [client_id for client_id in client_ids if client_id]
        verified_id = bytes_to_base64url(verification.credential_id) if verification.credential_id else None

        # A stored id that differs from the attested one could never match a later assertion
        if verified_id and any(client_id != verified_id for client_id in client_ids):
            logger.warning("Client credential id differs from the attested credential id")
            raise InvalidCredential("Credential id does not match attestation")

        credential_id = (client_ids[0] if client_ids else None) or verified_id
        if not credential_id:
            raise CredentialIdExtractionFailed()
        return credential_id


def _client_transports(credential: Dict[str, Any]) -> Optional[List[str]]:
    response = credential.get("response")
    transports = response.get("transports") if isinstance(response, dict) else None
    if transports is None:
        transports = credential.get("transports")
    if not isinstance(transports, list):
        return None
    return [t for t in transports if isinstance(t, str)]
