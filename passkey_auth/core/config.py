from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Core Project Settings
    PROJECT_NAME: str = "Passkey Auth"
    API_V1_STR: str = "/api/v1"
    DATABASE_URL: str = Field(min_length=1)
    LOG_LEVEL: str = "INFO"

    # Relying party
    WEBAUTHN_RP_ID: str = Field(min_length=1)
    WEBAUTHN_RP_NAME: str = Field(min_length=1)
    WEBAUTHN_ORIGIN: str = Field(min_length=1)
    # Optional comma-separated allowlist, e.g. "http://localhost:5173,https://journal.example"
    WEBAUTHN_ORIGINS: Optional[str] = None
    CEREMONY_TIMEOUT_MS: int = 60000
    CHALLENGE_TTL_MINUTES: int = 5

    # Session tokens
    JWT_SECRET: str = Field(min_length=1)
    JWT_ISSUER: str = "passkey-auth"
    JWT_AUDIENCE: str = "authenticated"
    SESSION_TTL_SECONDS: int = 60 * 60 * 24

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'

    @property
    def allowed_origins(self) -> List[str]:
        """Origins accepted for requests and for clientDataJSON verification."""
        if not self.WEBAUTHN_ORIGINS:
            return [self.WEBAUTHN_ORIGIN]

        origins = [o.strip() for o in self.WEBAUTHN_ORIGINS.split(",") if o.strip()]
        return origins or [self.WEBAUTHN_ORIGIN]


@lru_cache()
def get_settings() -> Settings:
    return Settings()
