"""Password hashing with scrypt."""

import hashlib
import hmac
from typing import Optional

from passlib.context import CryptContext

# ln=14 -> N=16384, r=8, p=1
pwd_context = CryptContext(schemes=["scrypt"], deprecated="auto", scrypt__rounds=14)

MIN_PASSWORD_LENGTH = 8


def hash_password(password: str) -> str:
    """Hash a password for storage."""
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """Verify a password against a stored hash.

    With no stored hash a dummy verification still runs, so unknown accounts
    and wrong passwords take the same time.
    """
    if not password_hash:
        pwd_context.dummy_verify()
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError):
        return False


def password_fingerprint(password_hash: Optional[str], secret: str) -> str:
    """Short keyed fingerprint of the current hash, used to bind reset tokens."""
    mac = hmac.new(secret.encode("utf-8"), (password_hash or "").encode("utf-8"), hashlib.sha256)
    return mac.hexdigest()[:32]
