"""Email verification and password reset tokens.

Both reuse the session token codec under their own purpose, so neither can be
replayed as a session cookie or as each other.
"""

import hmac
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from tenantgate_api.auth import codec
from tenantgate_api.auth.passwords import hash_password, password_fingerprint
from tenantgate_api.errors import InvalidTokenError
from tenantgate_api.models import User

logger = logging.getLogger(__name__)

EMAIL_VERIFY_TTL_SECONDS = 48 * 60 * 60
PASSWORD_RESET_TTL_SECONDS = 60 * 60


def issue_email_verification_token(user: User) -> str:
    return codec.issue(
        {"uid": user.id, "email": user.email},
        codec.get_session_secret(),
        EMAIL_VERIFY_TTL_SECONDS,
        purpose=codec.PURPOSE_EMAIL_VERIFY,
    )


def confirm_email(db: Session, token: Optional[str]) -> Optional[User]:
    """Mark the user's email verified. None if the token is not valid."""
    payload = codec.verify(
        token,
        codec.get_session_secret(),
        purpose=codec.PURPOSE_EMAIL_VERIFY,
        required=("uid", "email"),
    )
    if not payload:
        return None
    user = db.query(User).filter(User.id == payload["uid"]).first()
    # Token is for the address it was sent to; a changed email invalidates it
    if user is None or user.email != payload["email"]:
        return None
    if user.email_verified_at is None:
        user.email_verified_at = datetime.utcnow()
        db.commit()
    return user


def issue_password_reset_token(user: User) -> str:
    secret = codec.get_session_secret()
    return codec.issue(
        {"uid": user.id, "pwf": password_fingerprint(user.password_hash, secret)},
        secret,
        PASSWORD_RESET_TTL_SECONDS,
        purpose=codec.PURPOSE_PASSWORD_RESET,
    )


def reset_password(db: Session, token: Optional[str], new_password: str) -> User:
    """Set a new password. The token dies with the old hash it was bound to."""
    secret = codec.get_session_secret()
    payload = codec.verify(
        token,
        secret,
        purpose=codec.PURPOSE_PASSWORD_RESET,
        required=("uid", "pwf"),
    )
    if not payload:
        raise InvalidTokenError()
    user = db.query(User).filter(User.id == payload["uid"]).first()
    if user is None or not isinstance(payload["pwf"], str):
        raise InvalidTokenError()
    if not hmac.compare_digest(payload["pwf"], password_fingerprint(user.password_hash, secret)):
        raise InvalidTokenError()

    user.password_hash = hash_password(new_password)
    db.commit()
    logger.info("Password reset", extra={"user_id": user.id})
    return user
