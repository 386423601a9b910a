import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from passkey_auth.core.errors import CredentialStoreFailed, RepositoryError
from passkey_auth.db.models.credential import WebAuthnCredential
from passkey_auth.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


def add_credential_to_user(
    db: Session,
    user_id: str,
    credential_id: str,
    public_key: str,
    counter: int,
    transports: Optional[List[str]] = None,
    aaguid: Optional[str] = None,
    attestation_fmt: Optional[str] = None,
) -> WebAuthnCredential:
    now = utcnow()
    db_credential = WebAuthnCredential(
        user_id=user_id,
        credential_id=credential_id,
        public_key=public_key,
        counter=counter,
        transports=transports,
        aaguid=aaguid,
        attestation_fmt=attestation_fmt,
        created_at=now,
        last_used_at=now,
    )
    try:
        db.add(db_credential)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise CredentialStoreFailed(f"Credential {credential_id} is already registered") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise CredentialStoreFailed(f"Credential insert failed: {e}") from e

    db.refresh(db_credential)
    return db_credential


def get_credential_by_credential_id(db: Session, credential_id: str) -> Optional[WebAuthnCredential]:
    try:
        return db.query(WebAuthnCredential).filter(WebAuthnCredential.credential_id == credential_id).first()
    except SQLAlchemyError as e:
        raise RepositoryError(f"Credential lookup failed: {e}") from e


def update_credential_usage(db: Session, credential_id: str, previous_counter: int, new_counter: int) -> bool:
    """
    Compare-and-set the signature counter.

    Returns False when another login already moved the counter away from
    ``previous_counter``.
    """
    try:
        updated = (
            db.query(WebAuthnCredential)
            .filter(
                WebAuthnCredential.credential_id == credential_id,
                WebAuthnCredential.counter == previous_counter,
            )
            .update(
                {"counter": new_counter, "last_used_at": utcnow()},
                synchronize_session=False,
            )
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise RepositoryError(f"Credential update failed: {e}") from e
    return updated > 0
