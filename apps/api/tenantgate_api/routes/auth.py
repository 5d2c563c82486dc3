"""Account routes: register, login, logout, me, email verification, password reset."""

import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tenantgate_api.auth import session as auth_session
from tenantgate_api.auth.passwords import hash_password
from tenantgate_api.auth.purpose_tokens import (
    confirm_email,
    issue_email_verification_token,
    issue_password_reset_token,
    reset_password,
)
from tenantgate_api.db.session import get_db
from tenantgate_api.errors import ConflictError, UnauthenticatedError, ValidationFailedError
from tenantgate_api.models import Tenant, User
from tenantgate_api.notifications import deliver_link
from tenantgate_api.schemas import (
    EmailRequest,
    LoginRequest,
    PasswordResetRequest,
    RegisterRequest,
)
from tenantgate_api.security.rate_limit import client_ip, rate_limiter_for
from tenantgate_api.settings import get_settings
from tenantgate_api.utils.responses import json_ok

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.strip().lower()).strip("-")[:48]


def _send_verification(user: User) -> None:
    settings = get_settings()
    token = issue_email_verification_token(user)
    deliver_link(user.email, "Verify your email", f"{settings.public_base_url}/api/auth/verify?token={token}")


def _limit_by_ip(request: Request, scope: str, limit: int) -> None:
    rate_limiter_for(request.app).enforce(f"{scope}:{client_ip(request)}", limit)


def _registration_conflict(db: Session, email: str, slug: str) -> Optional[ConflictError]:
    if db.query(User).filter(User.email == email).first():
        return ConflictError("This email is already registered.", code="EMAIL_TAKEN")
    if db.query(Tenant).filter(Tenant.slug == slug).first():
        return ConflictError("This tenant slug is already taken.", code="SLUG_TAKEN")
    return None


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, request: Request, db: Session = Depends(get_db)):
    """Create a tenant with its owner and sign the owner in."""
    _limit_by_ip(request, "register", get_settings().login_rate_limit_per_minute)

    email = auth_session.normalize_email(body.email)
    if "@" not in email:
        raise ValidationFailedError(details=[{"loc": ["body", "email"], "msg": "Invalid email"}])
    slug = slugify(body.slug or "") or slugify(body.tenant_name)
    if not slug:
        raise ValidationFailedError(details=[{"loc": ["body", "slug"], "msg": "Invalid slug"}])

    conflict = _registration_conflict(db, email, slug)
    if conflict is not None:
        raise conflict

    password_hash = hash_password(body.password)
    try:
        tenant = Tenant(name=body.tenant_name.strip(), slug=slug, country=body.country.strip().upper())
        db.add(tenant)
        db.flush()
        user = User(
            tenant_id=tenant.id,
            email=email,
            role="OWNER",
            password_hash=password_hash,
            first_name=(body.first_name or "").strip() or None,
            last_name=body.last_name.strip(),
        )
        db.add(user)
        db.commit()
    except IntegrityError:
        # A concurrent registration took the email or slug after the check above
        db.rollback()
        raise _registration_conflict(db, email, slug) or ConflictError()
    db.refresh(user)
    db.refresh(tenant)

    logger.info("Registered tenant", extra={"tenant_id": tenant.id, "user_id": user.id})
    _send_verification(user)

    response = json_ok(request, {"tenantId": tenant.id, "userId": user.id}, status_code=status.HTTP_201_CREATED)
    auth_session.set_session_cookie(response, auth_session.create_session_token(user, tenant))
    return response


@router.post("/login")
def login(body: LoginRequest, request: Request, db: Session = Depends(get_db)):
    """Password login; sets the session cookie."""
    _limit_by_ip(request, "login", get_settings().login_rate_limit_per_minute)

    result = auth_session.login(db, body.email, body.password)
    response = json_ok(request, {"userId": result.user.id, "tenantId": result.user.tenant_id})
    auth_session.set_session_cookie(response, result.token)
    return response


@router.post("/logout")
def logout(request: Request):
    response = json_ok(request, {"loggedOut": True})
    auth_session.logout(request, response)
    return response


@router.get("/logout")
def logout_redirect(request: Request):
    """Browser logout link: clear cookies and go to the login page."""
    response = RedirectResponse(url="/login", status_code=status.HTTP_303_SEE_OTHER)
    auth_session.logout(request, response)
    return response


@router.get("/me")
def me(request: Request, db: Session = Depends(get_db)):
    current = auth_session.resolve_current_user(db, request)
    if current is None:
        raise UnauthenticatedError()
    user, tenant = current.user, current.tenant
    return json_ok(
        request,
        {
            "user": {
                "id": user.id,
                "email": user.email,
                "role": user.role,
                "firstName": user.first_name,
                "lastName": user.last_name,
                "emailVerified": user.email_verified_at is not None,
            },
            "tenant": (
                {
                    "id": tenant.id,
                    "slug": tenant.slug,
                    "name": tenant.name,
                    "country": tenant.country,
                    "accentColor": tenant.accent_color,
                    "logoUrl": tenant.logo_url,
                }
                if tenant
                else None
            ),
        },
    )


@router.get("/verify")
def verify_email(token: str = "", db: Session = Depends(get_db)):
    user = confirm_email(db, token)
    verified = "1" if user is not None else "0"
    return RedirectResponse(url=f"/login?verified={verified}", status_code=status.HTTP_303_SEE_OTHER)


@router.post("/verify/resend")
def resend_verification(body: EmailRequest, request: Request, db: Session = Depends(get_db)):
    """Always answers ok, whether or not the address is known."""
    _limit_by_ip(request, "verify", get_settings().login_rate_limit_per_minute)

    user = db.query(User).filter(User.email == auth_session.normalize_email(body.email)).first()
    if user is not None and user.email_verified_at is None:
        _send_verification(user)
    return json_ok(request, {"sent": True})


@router.post("/password/forgot")
def forgot_password(body: EmailRequest, request: Request, db: Session = Depends(get_db)):
    """Always answers ok, whether or not the address is known."""
    _limit_by_ip(request, "forgot", get_settings().login_rate_limit_per_minute)

    user = db.query(User).filter(User.email == auth_session.normalize_email(body.email)).first()
    if user is not None and user.password_hash:
        settings = get_settings()
        token = issue_password_reset_token(user)
        deliver_link(user.email, "Reset your password", f"{settings.public_base_url}/login?reset={token}")
    return json_ok(request, {"sent": True})


@router.post("/password/reset")
def password_reset(body: PasswordResetRequest, request: Request, db: Session = Depends(get_db)):
    _limit_by_ip(request, "reset", get_settings().login_rate_limit_per_minute)

    reset_password(db, body.token, body.password)
    return json_ok(request, {"reset": True})
