"""
WebAuthn response verification.

The orchestrators depend on the ``Verifier`` protocol only. ``WebAuthnVerifier``
binds it to py_webauthn, which performs the attestation/assertion checks
(clientDataJSON, RP id hash, flags, COSE key and signature).
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Union

from webauthn import verify_authentication_response, verify_registration_response
from webauthn.helpers import parse_authentication_credential_json, parse_registration_credential_json
from webauthn.helpers.exceptions import WebAuthnException

logger = logging.getLogger(__name__)


class VerificationError(Exception):
    """The verifier could not process or rejected a response."""


@dataclass
class RegistrationVerification:
    verified: bool
    credential_id: bytes = b""
    public_key: bytes = b""
    counter: int = 0
    aaguid: Optional[str] = None
    fmt: Optional[str] = None


@dataclass
class AuthenticationVerification:
    verified: bool
    credential_id: bytes = b""
    new_counter: int = 0


@dataclass
class StoredAuthenticator:
    credential_id: bytes
    public_key: bytes
    counter: int
    transports: List[str] = field(default_factory=list)


class Verifier(Protocol):
    def verify_registration(
        self,
        credential: Dict[str, Any],
        expected_challenge: bytes,
        expected_origin: Union[str, List[str]],
        expected_rp_id: str,
        require_user_verification: bool = True,
    ) -> RegistrationVerification:
        ...

    def verify_authentication(
        self,
        credential: Dict[str, Any],
        expected_challenge: bytes,
        expected_origin: Union[str, List[str]],
        expected_rp_id: str,
        authenticator: StoredAuthenticator,
        require_user_verification: bool = True,
    ) -> AuthenticationVerification:
        ...


class WebAuthnVerifier:
    """``Verifier`` backed by py_webauthn."""

    def verify_registration(
        self,
        credential: Dict[str, Any],
        expected_challenge: bytes,
        expected_origin: Union[str, List[str]],
        expected_rp_id: str,
        require_user_verification: bool = True,
    ) -> RegistrationVerification:
        try:
            parsed = parse_registration_credential_json(credential)
            verification = verify_registration_response(
                credential=parsed,
                expected_challenge=expected_challenge,
                expected_origin=expected_origin,
                expected_rp_id=expected_rp_id,
                require_user_verification=require_user_verification,
            )
        except (WebAuthnException, ValueError, KeyError, TypeError) as e:
            raise VerificationError(f"Registration verification failed: {e}") from e

        fmt = getattr(verification.fmt, "value", verification.fmt)
        return RegistrationVerification(
            verified=True,
            credential_id=verification.credential_id,
            public_key=verification.credential_public_key,
            counter=verification.sign_count,
            aaguid=verification.aaguid,
            fmt=fmt,
        )

    def verify_authentication(
        self,
        credential: Dict[str, Any],
        expected_challenge: bytes,
        expected_origin: Union[str, List[str]],
        expected_rp_id: str,
        authenticator: StoredAuthenticator,
        require_user_verification: bool = True,
    ) -> AuthenticationVerification:
        try:
            parsed = parse_authentication_credential_json(credential)
        except (WebAuthnException, ValueError, KeyError, TypeError) as e:
            raise VerificationError(f"Could not parse assertion: {e}") from e

        if parsed.raw_id != authenticator.credential_id:
            raise VerificationError("Assertion was produced by a different credential")

        try:
            verification = verify_authentication_response(
                credential=parsed,
                expected_challenge=expected_challenge,
                expected_origin=expected_origin,
                expected_rp_id=expected_rp_id,
                credential_public_key=authenticator.public_key,
                credential_current_sign_count=authenticator.counter,
                require_user_verification=require_user_verification,
            )
        except (WebAuthnException, ValueError, KeyError, TypeError) as e:
            raise VerificationError(f"Assertion verification failed: {e}") from e

        return AuthenticationVerification(
            verified=True,
            credential_id=verification.credential_id,
            new_counter=verification.new_sign_count,
        )
