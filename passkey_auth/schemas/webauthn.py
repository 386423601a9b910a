from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel, Field


class CeremonyStartResponse(BaseModel):
    options: Dict[str, Any]
    challenge_id: str = Field(alias="challengeId")

    class Config:
        populate_by_name = True


class CeremonyFinishRequest(BaseModel):
    credential: Dict[str, Any]
    challenge_id: str = Field(alias="challengeId", min_length=1)

    class Config:
        populate_by_name = True


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class SessionInfoResponse(BaseModel):
    user_id: str
    expires_at: datetime


class ErrorResponse(BaseModel):
    error: str
