import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt

from passkey_auth.core.config import Settings
from passkey_auth.core.errors import InvalidSessionToken, SessionMintFailed
from passkey_auth.schemas.webauthn import TokenResponse

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
AUTHENTICATED_ROLE = "authenticated"


class SessionService:
    """Mints and validates the bearer tokens handed out after a ceremony."""

    def __init__(self, secret: str, issuer: str, audience: str, ttl_seconds: int):
        self.secret = secret
        self.issuer = issuer
        self.audience = audience
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionService":
        return cls(
            secret=settings.JWT_SECRET,
            issuer=settings.JWT_ISSUER,
            audience=settings.JWT_AUDIENCE,
            ttl_seconds=settings.SESSION_TTL_SECONDS,
        )

    def issue(self, user_id: str) -> TokenResponse:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "role": AUTHENTICATED_ROLE,
            "aud": self.audience,
            "iss": self.issuer,
            "iat": now,
            "exp": now + timedelta(seconds=self.ttl_seconds),
        }
        try:
            token = jwt.encode(payload, self.secret, algorithm=JWT_ALGORITHM, headers={"typ": "JWT"})
        except (jwt.PyJWTError, TypeError, ValueError) as e:
            raise SessionMintFailed(f"Failed to sign session token for {user_id}: {e}") from e

        return TokenResponse(access_token=token, token_type="bearer", expires_in=self.ttl_seconds)

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[JWT_ALGORITHM],
                audience=self.audience,
                issuer=self.issuer,
                options={"require": ["sub", "exp", "iat"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise InvalidSessionToken("Token has expired") from exc
        except jwt.PyJWTError as exc:
            raise InvalidSessionToken() from exc

        if payload.get("role") != AUTHENTICATED_ROLE:
            raise InvalidSessionToken()
        return payload
