import logging
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from passkey_auth.core.errors import IdentityCreationFailed
from passkey_auth.db.models.user import User

logger = logging.getLogger(__name__)

SYNTHETIC_EMAIL_DOMAIN = "passkey.local"


class IdentityService:
    """Creates the identities passkeys are bound to."""

    @staticmethod
    def create_identity(db: Session) -> str:
        """Create a user with a synthetic email and return its id."""
        user_id = str(uuid.uuid4())
        user = User(id=user_id, email=f"{user_id}@{SYNTHETIC_EMAIL_DOMAIN}", auth_method="passkey")
        try:
            db.add(user)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise IdentityCreationFailed(f"Create user failed: {e}") from e

        logger.info(f"Created passkey identity {user_id}")
        return user_id

    @staticmethod
    def delete_identity(db: Session, user_id: str) -> bool:
        """Remove an identity left without a credential. Returns False on failure."""
        try:
            db.query(User).filter(User.id == user_id).delete(synchronize_session=False)
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to remove orphaned identity {user_id}: {e}")
            return False

    @staticmethod
    def get_identity(db: Session, user_id: str):
        return db.query(User).filter(User.id == user_id).first()
