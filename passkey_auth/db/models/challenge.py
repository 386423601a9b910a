import enum
import uuid

from sqlalchemy import Column, DateTime, Enum, String

from passkey_auth.db.base import Base
from passkey_auth.utils.timeutils import utcnow


class ChallengeType(enum.Enum):
    REGISTER = "register"
    LOGIN = "login"


class Challenge(Base):
    __tablename__ = "webauthn_challenges"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    type = Column(Enum(ChallengeType), nullable=False)
    challenge = Column(String, nullable=False)
    user_handle = Column(String, nullable=True)  # register challenges only
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
