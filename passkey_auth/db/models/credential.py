from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String

from passkey_auth.db.base import Base
from passkey_auth.utils.timeutils import utcnow


class WebAuthnCredential(Base):
    __tablename__ = "webauthn_credentials"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    credential_id = Column(String, unique=True, nullable=False, index=True)  # canonical base64url
    public_key = Column(String, nullable=False)  # base64url COSE key
    counter = Column(Integer, default=0, nullable=False)
    transports = Column(JSON, nullable=True)
    aaguid = Column(String, nullable=True)
    attestation_fmt = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_used_at = Column(DateTime, nullable=True)
