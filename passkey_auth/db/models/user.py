import uuid

from sqlalchemy import Column, DateTime, String

from passkey_auth.db.base import Base
from passkey_auth.utils.timeutils import utcnow


class User(Base):
    """Identity owned by the passkey credentials registered against it."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, unique=True, nullable=False)
    auth_method = Column(String, nullable=False, default="passkey")
    created_at = Column(DateTime, default=utcnow, nullable=False)
