import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from passkey_auth.api.api_v1.endpoints import webauthn
from passkey_auth.core.config import Settings, get_settings
from passkey_auth.core.errors import PasskeyAuthError
from passkey_auth.db.base import create_db_engine, create_session_factory, init_db
from passkey_auth.services.verifier import Verifier, WebAuthnVerifier

logger = logging.getLogger(__name__)

INVALID_BODY_MESSAGE = "Invalid body: expected { credential, challengeId }"


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PasskeyAuthError)
    async def passkey_auth_error_handler(request: Request, exc: PasskeyAuthError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.detail}", exc_info=exc)
        else:
            logger.info(f"{request.method} {request.url.path} rejected: {exc.detail}")
        return _error(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.info(f"{request.method} {request.url.path} invalid body: {exc.errors()}")
        return _error(400, INVALID_BODY_MESSAGE)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return _error(500, "Internal Server Error")


def create_app(settings: Optional[Settings] = None, verifier: Optional[Verifier] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = create_db_engine(settings.DATABASE_URL)
    init_db(engine)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_V1_STR}/openapi.json"
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.verifier = verifier or WebAuthnVerifier()

    @app.middleware("http")
    async def log_every_request(request: Request, call_next):
        response = await call_next(request)
        logger.info(f"{request.method} {request.url.path} -> {response.status_code}")
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["POST", "GET", "OPTIONS"],
        allow_headers=["authorization", "content-type"],
        max_age=86400,
    )

    register_exception_handlers(app)

    @app.get("/", summary="Health Check")
    def read_root():
        return {"status": "Backend is running"}

    app.include_router(webauthn.router, prefix=settings.API_V1_STR, tags=["Passkey Authentication"])
    return app


if __name__ == "__main__":
    uvicorn.run("passkey_auth.main:create_app", factory=True, host="0.0.0.0", port=8000)
