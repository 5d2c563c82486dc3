"""Request gate: the single place identity is established.

Every request first loses any client-sent identity headers. Public paths then
pass through; the admin and mobile families must present a valid session
cookie or device key before they reach a handler.
"""

import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import Request
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import RedirectResponse

from tenantgate_api.auth.context import (
    DEVICE_ROLE,
    VerifiedIdentity,
    set_verified_identity,
    strip_identity_headers,
)
from tenantgate_api.auth.session import read_session_token, verify_session_token
from tenantgate_api.db.session import session_factory_for
from tenantgate_api.errors import AppError, MisconfiguredError, UnauthenticatedError
from tenantgate_api.models import ADMIN_ROLES
from tenantgate_api.models.tenant import normalize_role
from tenantgate_api.security.rate_limit import rate_limiter_for
from tenantgate_api.security.redirects import safe_next_path
from tenantgate_api.services.mobile_registry import MobileAuthContext, MobileRegistry
from tenantgate_api.settings import get_settings
from tenantgate_api.utils.metrics import gate_decisions
from tenantgate_api.utils.responses import error_response

logger = logging.getLogger(__name__)

SURFACE_ADMIN_UI = "admin_ui"
SURFACE_ADMIN_API = "admin_api"
SURFACE_MOBILE_API = "mobile_api"

PUBLIC_EXACT = frozenset(
    {
        "/",
        "/health",
        "/ready",
        "/docs",
        "/redoc",
        "/openapi.json",
        "/login",
        "/api/mobile/v1/provisioning/redeem",
        "/api/mobile/v1/health",
    }
)
PUBLIC_PREFIXES = ("/api/auth/", "/static/", "/metrics", "/docs/")

LOGIN_PATH = "/login"


def is_public_path(path: str) -> bool:
    """Paths that never require a credential."""
    if path in PUBLIC_EXACT or path == "/api/auth":
        return True
    return any(path.startswith(prefix) for prefix in PUBLIC_PREFIXES)


def classify(path: str) -> Optional[str]:
    """Protected surface a path belongs to, or None."""
    if path == "/admin" or path.startswith("/admin/"):
        return SURFACE_ADMIN_UI
    if path.startswith("/api/admin/"):
        return SURFACE_ADMIN_API
    if path.startswith("/api/mobile/"):
        return SURFACE_MOBILE_API
    return None


def identity_from_session(request: Request) -> Optional[VerifiedIdentity]:
    """Verified identity from the session cookie, or None.

    Tokens without a tenant or with a role outside the admin roles count as
    no session at all.
    """
    payload = verify_session_token(read_session_token(request))
    if not payload:
        return None
    tenant_id = payload.get("tid")
    tenant_slug = payload.get("tslug")
    role = normalize_role(payload.get("role"))
    if not isinstance(tenant_id, str) or not tenant_id:
        return None
    if not isinstance(tenant_slug, str) or not tenant_slug:
        return None
    if role not in ADMIN_ROLES or not isinstance(payload.get("uid"), str):
        return None
    return VerifiedIdentity(
        tenant_id=tenant_id,
        tenant_slug=tenant_slug,
        role=role,
        user_id=payload["uid"],
    )


def _authenticate_device(session_factory, raw_key: Optional[str]) -> MobileAuthContext:
    db = session_factory()
    try:
        return MobileRegistry(db).authenticate(raw_key)
    finally:
        db.close()


def login_redirect(request: Request) -> RedirectResponse:
    target = request.url.path
    if request.url.query:
        target = f"{target}?{request.url.query}"
    next_path = safe_next_path(target, fallback="/admin")
    return RedirectResponse(url=f"{LOGIN_PATH}?{urlencode({'next': next_path})}", status_code=307)


class RequestGateMiddleware(BaseHTTPMiddleware):
    """Strip, bypass, classify, authenticate, decide."""

    async def dispatch(self, request: Request, call_next):
        # Client-sent identity headers never reach a handler
        strip_identity_headers(request)

        path = request.url.path
        if is_public_path(path):
            return await call_next(request)

        surface = classify(path)
        if surface is None:
            return await call_next(request)

        try:
            if surface == SURFACE_MOBILE_API:
                identity = await self._authenticate_mobile(request)
            else:
                identity = identity_from_session(request)
        except MisconfiguredError as e:
            logger.error(
                f"Request gate misconfigured: {e.reason}",
                extra={"path": path, "trace_id": getattr(request.state, "trace_id", None)},
            )
            gate_decisions.labels(surface=surface, outcome="misconfigured").inc()
            return error_response(request, e)
        except AppError as e:
            gate_decisions.labels(surface=surface, outcome=e.code.lower()).inc()
            return error_response(request, e)

        if identity is None:
            gate_decisions.labels(surface=surface, outcome="unauthenticated").inc()
            if surface == SURFACE_ADMIN_UI:
                return login_redirect(request)
            return error_response(request, UnauthenticatedError())

        set_verified_identity(request, identity)
        gate_decisions.labels(surface=surface, outcome="allowed").inc()
        logger.debug(
            "Authenticated request",
            extra={
                "tenant_id": identity.tenant_id,
                "trace_id": getattr(request.state, "trace_id", None),
                "path": path,
            },
        )
        return await call_next(request)

    async def _authenticate_mobile(self, request: Request) -> VerifiedIdentity:
        """Device identity from the API key header; raises on any failure."""
        settings = get_settings()
        raw_key = request.headers.get(settings.mobile_api_key_header)
        if not raw_key:
            raise UnauthenticatedError()

        session_factory = session_factory_for(request.app)
        context = await run_in_threadpool(_authenticate_device, session_factory, raw_key)

        # Blocking when the store is Redis
        await run_in_threadpool(
            rate_limiter_for(request.app).enforce,
            f"mobile:{context.api_key_id}",
            settings.mobile_rate_limit_per_minute,
        )

        return VerifiedIdentity(
            tenant_id=context.tenant_id,
            tenant_slug=context.tenant_slug,
            role=DEVICE_ROLE,
            device_id=context.device_id,
            api_key_id=context.api_key_id,
        )
