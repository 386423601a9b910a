from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from passkey_auth.api.deps import (
    get_current_session,
    get_login_service,
    get_registration_service,
    require_allowed_origin,
)
from passkey_auth.schemas.webauthn import (
    CeremonyFinishRequest,
    CeremonyStartResponse,
    ErrorResponse,
    SessionInfoResponse,
    TokenResponse,
)
from passkey_auth.services.login_service import LoginService
from passkey_auth.services.registration_service import RegistrationService

router = APIRouter(prefix="/auth/webauthn")

CEREMONY_ERRORS = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


@router.post(
    "/register/start",
    response_model=CeremonyStartResponse,
    responses=CEREMONY_ERRORS,
    dependencies=[Depends(require_allowed_origin)],
    summary="Start passkey registration",
)
def register_start(service: RegistrationService = Depends(get_registration_service)):
    return service.start()


@router.post(
    "/register/finish",
    response_model=TokenResponse,
    responses=CEREMONY_ERRORS,
    dependencies=[Depends(require_allowed_origin)],
    summary="Finish passkey registration",
)
def register_finish(
    request: CeremonyFinishRequest,
    service: RegistrationService = Depends(get_registration_service),
):
    return service.finish(request.challenge_id, request.credential)


@router.post(
    "/login/start",
    response_model=CeremonyStartResponse,
    responses=CEREMONY_ERRORS,
    dependencies=[Depends(require_allowed_origin)],
    summary="Start usernameless passkey login",
)
def login_start(service: LoginService = Depends(get_login_service)):
    return service.start()


@router.post(
    "/login/finish",
    response_model=TokenResponse,
    responses=CEREMONY_ERRORS,
    dependencies=[Depends(require_allowed_origin)],
    summary="Finish passkey login",
)
def login_finish(
    request: CeremonyFinishRequest,
    service: LoginService = Depends(get_login_service),
):
    return service.finish(request.challenge_id, request.credential)


@router.get(
    "/session",
    response_model=SessionInfoResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Describe the session behind a bearer token",
)
def read_session(payload: dict = Depends(get_current_session)):
    return SessionInfoResponse(
        user_id=payload["sub"],
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )
