"""Verified identity handed from the request gate to route handlers.

The gate is the only writer. It removes every client-sent value of the trusted
headers before setting the verified ones, and stores a typed
``VerifiedIdentity`` on ``request.state.identity``. Handlers read the typed
object (see ``auth.guard``), never the raw header map.
"""

from dataclasses import dataclass
from typing import Optional

from starlette.requests import Request

HEADER_USER_ID = "x-user-id"
HEADER_TENANT_ID = "x-tenant-id"
HEADER_TENANT_SLUG = "x-tenant-slug"
HEADER_USER_ROLE = "x-user-role"
HEADER_DEVICE_ID = "x-device-id"

TRUSTED_HEADERS = (
    HEADER_USER_ID,
    HEADER_TENANT_ID,
    HEADER_TENANT_SLUG,
    HEADER_USER_ROLE,
    HEADER_DEVICE_ID,
)

DEVICE_ROLE = "DEVICE"


@dataclass(frozen=True)
class VerifiedIdentity:
    """Identity resolved by the gate from a session cookie or a device key."""

    tenant_id: str
    tenant_slug: str
    role: str
    user_id: Optional[str] = None
    device_id: Optional[str] = None
    api_key_id: Optional[str] = None

    @property
    def is_device(self) -> bool:
        return self.device_id is not None

    def as_headers(self) -> dict[str, str]:
        headers = {
            HEADER_TENANT_ID: self.tenant_id,
            HEADER_TENANT_SLUG: self.tenant_slug,
            HEADER_USER_ROLE: self.role,
        }
        if self.user_id:
            headers[HEADER_USER_ID] = self.user_id
        if self.device_id:
            headers[HEADER_DEVICE_ID] = self.device_id
        return headers


@dataclass(frozen=True)
class TenantClaim:
    """Tenant a client asserted via headers; only ever compared, never trusted."""

    tenant_id: Optional[str] = None
    tenant_slug: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.tenant_id and not self.tenant_slug


def strip_identity_headers(request: Request) -> TenantClaim:
    """Remove client-sent trusted headers from the request scope.

    Returns the tenant the client claimed, for the guard to cross-check.
    """
    claim_id = None
    claim_slug = None
    kept = []
    for name, value in request.scope.get("headers", []):
        lowered = name.decode("latin-1").lower()
        if lowered in TRUSTED_HEADERS:
            if lowered == HEADER_TENANT_ID:
                claim_id = value.decode("latin-1").strip() or None
            elif lowered == HEADER_TENANT_SLUG:
                claim_slug = value.decode("latin-1").strip().lower() or None
            continue
        kept.append((name, value))
    request.scope["headers"] = kept
    claim = TenantClaim(tenant_id=claim_id, tenant_slug=claim_slug)
    request.state.identity = None
    request.state.tenant_claim = claim
    return claim


def set_verified_identity(request: Request, identity: VerifiedIdentity) -> None:
    """Replace trusted headers with verified values and attach the identity."""
    strip_identity_headers_keep_claim(request)
    headers = list(request.scope.get("headers", []))
    for name, value in identity.as_headers().items():
        headers.append((name.encode("latin-1"), value.encode("latin-1")))
    request.scope["headers"] = headers
    request.state.identity = identity


def strip_identity_headers_keep_claim(request: Request) -> None:
    """Drop trusted headers without touching an already captured claim."""
    request.scope["headers"] = [
        (name, value)
        for name, value in request.scope.get("headers", [])
        if name.decode("latin-1").lower() not in TRUSTED_HEADERS
    ]


def get_identity(request: Request) -> Optional[VerifiedIdentity]:
    return getattr(request.state, "identity", None)


def get_tenant_claim(request: Request) -> TenantClaim:
    return getattr(request.state, "tenant_claim", None) or TenantClaim()
