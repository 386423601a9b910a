import logging
import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from passkey_auth.core.errors import (
    ChallengeExpired,
    ChallengeStoreFailed,
    ChallengeTypeMismatch,
    InvalidChallenge,
)
from passkey_auth.db.models.challenge import Challenge, ChallengeType
from passkey_auth.utils.encoding import bytes_to_base64url
from passkey_auth.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

CHALLENGE_LENGTH_BYTES = 32
DEFAULT_TTL_MINUTES = 5


def generate_challenge() -> str:
    return bytes_to_base64url(secrets.token_bytes(CHALLENGE_LENGTH_BYTES))


def create_challenge(
    db: Session,
    challenge_type: ChallengeType,
    challenge: str,
    user_handle: Optional[str] = None,
    ttl_minutes: int = DEFAULT_TTL_MINUTES,
) -> str:
    """Persist a single-use challenge and return its id."""
    db_challenge = Challenge(
        type=challenge_type,
        challenge=challenge,
        user_handle=user_handle,
        expires_at=utcnow() + timedelta(minutes=ttl_minutes),
    )
    try:
        db.add(db_challenge)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise ChallengeStoreFailed(f"Failed to store {challenge_type.value} challenge: {e}") from e

    logger.info(f"Created {challenge_type.value} challenge {db_challenge.id}")
    return db_challenge.id


def load_challenge(db: Session, challenge_id: str) -> Optional[Challenge]:
    return db.query(Challenge).filter(Challenge.id == challenge_id).first()


def consume_challenge(db: Session, challenge_id: str) -> bool:
    """
    Delete the challenge and report whether it still existed.

    Concurrent finish calls race on this delete; only the one that removed the
    row may proceed.
    """
    try:
        deleted = (
            db.query(Challenge)
            .filter(Challenge.id == challenge_id)
            .delete(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise ChallengeStoreFailed(f"Failed to consume challenge {challenge_id}: {e}") from e
    return deleted > 0


def discard_challenge(db: Session, challenge_id: str) -> None:
    """Best-effort delete, used for routine cleanup."""
    try:
        consume_challenge(db, challenge_id)
    except ChallengeStoreFailed as e:
        logger.warning(f"Could not discard challenge {challenge_id}: {e.detail}")


def get_valid_challenge(db: Session, challenge_id: str, expected_type: ChallengeType) -> Challenge:
    """
    Load a challenge for a finish call.

    Unknown ids and challenges of the other ceremony are left untouched; an
    expired challenge is discarded before the error is raised.
    """
    try:
        db_challenge = load_challenge(db, challenge_id)
    except SQLAlchemyError as e:
        raise ChallengeStoreFailed(f"Challenge load failed: {e}") from e

    if db_challenge is None:
        logger.warning(f"Finish called with unknown challenge {challenge_id}")
        raise InvalidChallenge()

    if db_challenge.type != expected_type:
        logger.warning(
            f"Challenge {challenge_id} is a {db_challenge.type.value} challenge, expected {expected_type.value}"
        )
        raise ChallengeTypeMismatch()

    if utcnow() >= db_challenge.expires_at:
        logger.info(f"Challenge {challenge_id} expired at {db_challenge.expires_at}")
        discard_challenge(db, challenge_id)
        raise ChallengeExpired()

    return db_challenge


def claim_challenge(db: Session, challenge_id: str) -> None:
    """Consume the challenge for this request or fail if another request already did."""
    if not consume_challenge(db, challenge_id):
        logger.warning(f"Challenge {challenge_id} was already used")
        raise InvalidChallenge()
