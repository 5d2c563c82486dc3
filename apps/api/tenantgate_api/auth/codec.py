"""Compact HMAC-SHA256 signed tokens.

Format: ``base64url(canonical_json(payload)) + "." + base64url(hmac)``.

The HMAC input is ``purpose + "." + payload_segment`` so a token minted for one
purpose (session cookie, email verification, password reset) never verifies
under another. Tokens carry their own ``iat``/``exp`` and need no server-side
store.
"""

import base64
import binascii
import hashlib
import hmac
import json
import time
from typing import Any, Iterable, Optional

from tenantgate_api.errors import MisconfiguredError
from tenantgate_api.settings import get_settings

MIN_SECRET_LENGTH = 32

PURPOSE_SESSION = "session"
PURPOSE_EMAIL_VERIFY = "email-verify"
PURPOSE_PASSWORD_RESET = "password-reset"


def b64url_encode(data: bytes) -> str:
    """Base64url encode without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(segment: str) -> bytes:
    """Decode unpadded base64url. Raises ValueError on malformed input."""
    padding = "=" * (-len(segment) % 4)
    return base64.b64decode(segment + padding, altchars=b"-_", validate=True)


def canonical_json(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


def require_secret(secret: Optional[str], name: str) -> str:
    """Return the secret or raise MisconfiguredError if absent or too short."""
    value = (secret or "").strip()
    if len(value) < MIN_SECRET_LENGTH:
        raise MisconfiguredError(f"{name} is missing or shorter than {MIN_SECRET_LENGTH} chars")
    return value


def get_session_secret() -> str:
    """Signing secret for sessions and account tokens."""
    return require_secret(get_settings().auth_session_secret, "AUTH_SESSION_SECRET")


def _signature(payload_segment: str, secret: str, purpose: str) -> str:
    message = f"{purpose}.{payload_segment}".encode("ascii")
    mac = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()
    return b64url_encode(mac)


def sign(payload: dict[str, Any], secret: str, purpose: str = PURPOSE_SESSION) -> str:
    """Sign a payload and return ``payload.signature``."""
    secret = require_secret(secret, "signing secret")
    payload_segment = b64url_encode(canonical_json(payload))
    return f"{payload_segment}.{_signature(payload_segment, secret, purpose)}"


def issue(
    claims: dict[str, Any],
    secret: str,
    ttl_seconds: int,
    purpose: str = PURPOSE_SESSION,
    now: Optional[int] = None,
) -> str:
    """Sign claims with ``iat`` and ``exp`` added."""
    issued_at = int(time.time()) if now is None else now
    payload = dict(claims)
    payload["iat"] = issued_at
    payload["exp"] = issued_at + int(ttl_seconds)
    return sign(payload, secret, purpose)


def verify(
    token: Optional[str],
    secret: str,
    purpose: str = PURPOSE_SESSION,
    required: Iterable[str] = (),
    now: Optional[int] = None,
) -> Optional[dict[str, Any]]:
    """Return the payload of a valid, unexpired token, else None.

    Forged, malformed, wrong-purpose and expired tokens all return None.
    Configuration errors (bad secret) still raise.
    """
    secret = require_secret(secret, "signing secret")
    if not token or not isinstance(token, str):
        return None

    parts = token.split(".")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return None
    payload_segment, provided_signature = parts

    try:
        expected = _signature(payload_segment, secret, purpose).encode("ascii")
        provided = provided_signature.encode("ascii")
    except UnicodeEncodeError:
        return None
    if not hmac.compare_digest(expected, provided):
        return None

    try:
        payload = json.loads(b64url_decode(payload_segment).decode("utf-8"))
    except (ValueError, binascii.Error, UnicodeDecodeError):
        return None
    if not isinstance(payload, dict):
        return None

    for claim in ("iat", "exp"):
        value = payload.get(claim)
        if not isinstance(value, int) or isinstance(value, bool):
            return None
    for claim in required:
        if payload.get(claim) in (None, ""):
            return None

    current = int(time.time()) if now is None else now
    if payload["exp"] <= current:
        return None

    return payload
