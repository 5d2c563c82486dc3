"""Admin browser sessions: login, logout, cookie handling, identity resolution."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session
from starlette.requests import Request
from starlette.responses import Response

from tenantgate_api.auth import codec
from tenantgate_api.auth.passwords import verify_password
from tenantgate_api.errors import LoginFailedError
from tenantgate_api.models import Tenant, User
from tenantgate_api.settings import get_settings
from tenantgate_api.utils.metrics import login_attempts

logger = logging.getLogger(__name__)

SESSION_CLAIMS = ("uid", "role")
MAX_COOKIE_CHUNKS = 10


@dataclass
class LoginResult:
    user: User
    token: str


@dataclass
class CurrentUser:
    user: User
    tenant: Optional[Tenant]


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def create_session_token(user: User, tenant: Optional[Tenant], ttl_seconds: Optional[int] = None) -> str:
    """Mint a signed session token for a user."""
    settings = get_settings()
    claims = {
        "uid": user.id,
        "tid": user.tenant_id,
        "tslug": tenant.slug if tenant else None,
        "role": user.role,
    }
    return codec.issue(
        claims,
        codec.get_session_secret(),
        ttl_seconds or settings.session_ttl_seconds,
        purpose=codec.PURPOSE_SESSION,
    )


def verify_session_token(token: Optional[str]) -> Optional[dict[str, Any]]:
    """Claims of a valid session token, else None. Expired counts as invalid."""
    return codec.verify(
        token,
        codec.get_session_secret(),
        purpose=codec.PURPOSE_SESSION,
        required=SESSION_CLAIMS,
    )


def _cookie_or_chunks(cookies: dict[str, str], name: str) -> Optional[str]:
    value = cookies.get(name)
    if value:
        return value
    # Chunked variant: name.0, name.1, ...
    chunks = []
    for index in range(MAX_COOKIE_CHUNKS):
        chunk = cookies.get(f"{name}.{index}")
        if chunk is None:
            break
        chunks.append(chunk)
    return "".join(chunks) or None


def read_session_token(request: Request) -> Optional[str]:
    """Session token from the first recognised cookie name.

    Legacy names are tried after the current one; they are migration debt and
    can go once no live session uses them.
    """
    cookies = request.cookies
    for name in get_settings().session_cookie_candidates:
        token = _cookie_or_chunks(cookies, name)
        if token:
            return token
    return None


def set_session_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_ttl_seconds,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
    )


def _should_expire(name: str, recognised: set[str]) -> bool:
    lowered = name.lower()
    base = name.rsplit(".", 1)[0] if "." in name else name
    return (
        name in recognised
        or base in recognised
        or lowered.startswith("tg_")
        or "session" in lowered
    )


def clear_session_cookies(request: Request, response: Response) -> None:
    """Expire every recognised session cookie on the response."""
    settings = get_settings()
    recognised = set(settings.session_cookie_candidates)
    names = set(recognised)
    names.update(name for name in request.cookies if _should_expire(name, recognised))
    for name in sorted(names):
        response.set_cookie(
            key=name,
            value="",
            max_age=0,
            expires=0,
            path="/",
            httponly=True,
            samesite="lax",
            secure=settings.is_production,
        )


def login(db: Session, email: str, password: str) -> LoginResult:
    """Verify credentials and mint a session token.

    Raises LoginFailedError with the same message whether the email is unknown
    or the password is wrong.
    """
    email = normalize_email(email)
    user = db.query(User).filter(User.email == email).first()

    # verify_password runs a dummy hash when there is no stored hash
    password_ok = verify_password(password or "", user.password_hash if user else None)
    if user is None or not password_ok:
        login_attempts.labels(outcome="failed").inc()
        logger.info("Login failed")
        raise LoginFailedError()

    user.last_login_at = datetime.utcnow()
    db.commit()
    db.refresh(user)

    token = create_session_token(user, user.tenant)
    login_attempts.labels(outcome="success").inc()
    logger.info("Login succeeded", extra={"user_id": user.id, "tenant_id": user.tenant_id})
    return LoginResult(user=user, token=token)


def logout(request: Request, response: Response) -> None:
    """Always succeeds; idempotent. The token itself stays valid until exp."""
    clear_session_cookies(request, response)


def resolve_current_user(db: Session, request: Request) -> Optional[CurrentUser]:
    """User and tenant behind the session cookie, or None for anonymous."""
    payload = verify_session_token(read_session_token(request))
    if not payload:
        return None
    user = db.query(User).filter(User.id == payload["uid"]).first()
    if user is None:
        return None
    if payload.get("tid") and payload["tid"] != user.tenant_id:
        return None
    return CurrentUser(user=user, tenant=user.tenant)
