from .webauthn import (
    CeremonyFinishRequest,
    CeremonyStartResponse,
    ErrorResponse,
    SessionInfoResponse,
    TokenResponse,
)

__all__ = [
    "CeremonyFinishRequest",
    "CeremonyStartResponse",
    "ErrorResponse",
    "SessionInfoResponse",
    "TokenResponse",
]
