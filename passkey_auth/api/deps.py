import logging

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from passkey_auth.core.config import Settings
from passkey_auth.core.errors import InvalidOrigin, InvalidSessionToken, MissingOrigin
from passkey_auth.db.base import get_db
from passkey_auth.services.identity_service import IdentityService
from passkey_auth.services.login_service import LoginService
from passkey_auth.services.registration_service import RegistrationService
from passkey_auth.services.session_service import SessionService
from passkey_auth.services.verifier import Verifier

logger = logging.getLogger(__name__)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_verifier(request: Request) -> Verifier:
    return request.app.state.verifier


def get_session_service(settings: Settings = Depends(get_app_settings)) -> SessionService:
    return SessionService.from_settings(settings)


def require_allowed_origin(request: Request, settings: Settings = Depends(get_app_settings)) -> str:
    origin = request.headers.get("origin")
    if not origin:
        raise MissingOrigin()
    if origin not in settings.allowed_origins:
        logger.warning(f"Rejected request from origin {origin}")
        raise InvalidOrigin()
    return origin


def get_registration_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    verifier: Verifier = Depends(get_verifier),
    sessions: SessionService = Depends(get_session_service),
) -> RegistrationService:
    return RegistrationService(db, settings, verifier, sessions)


def get_login_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    verifier: Verifier = Depends(get_verifier),
    sessions: SessionService = Depends(get_session_service),
) -> LoginService:
    return LoginService(db, settings, verifier, sessions)


def get_current_session(
    authorization: str = Header(None),
    db: Session = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise InvalidSessionToken("Invalid authorization header")

    payload = sessions.decode(authorization.split(" ", 1)[1])
    if IdentityService.get_identity(db, payload["sub"]) is None:
        raise InvalidSessionToken()
    return payload
