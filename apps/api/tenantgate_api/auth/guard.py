"""Tenant-scoping guard for route handlers."""

import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request

from tenantgate_api.auth.context import VerifiedIdentity, get_identity, get_tenant_claim
from tenantgate_api.errors import NotFoundError, UnauthenticatedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantContext:
    tenant_id: str
    tenant_slug: str


def require_identity(request: Request) -> VerifiedIdentity:
    """Identity set by the request gate, or 401."""
    identity = get_identity(request)
    if identity is None:
        raise UnauthenticatedError()
    return identity


def require_tenant_context(request: Request) -> TenantContext:
    """Tenant of the verified identity.

    A tenant the client claimed via x-tenant-id / x-tenant-slug must match the
    verified one; a mismatch gets the same 404 as a missing resource.
    """
    identity = require_identity(request)
    claim = get_tenant_claim(request)
    if claim.tenant_id and claim.tenant_id != identity.tenant_id:
        logger.info(
            "Tenant claim mismatch",
            extra={"tenant_id": identity.tenant_id, "path": request.url.path},
        )
        raise NotFoundError()
    if claim.tenant_slug and claim.tenant_slug != identity.tenant_slug.lower():
        logger.info(
            "Tenant claim mismatch",
            extra={"tenant_id": identity.tenant_id, "path": request.url.path},
        )
        raise NotFoundError()
    return TenantContext(tenant_id=identity.tenant_id, tenant_slug=identity.tenant_slug)


def require_admin_user(request: Request) -> VerifiedIdentity:
    """Identity of a session user; device keys are out of scope here (404)."""
    identity = require_identity(request)
    if identity.is_device or not identity.user_id:
        raise NotFoundError()
    return identity


def require_device(request: Request) -> VerifiedIdentity:
    identity = require_identity(request)
    if not identity.is_device:
        raise NotFoundError()
    return identity


# Type aliases for dependency injection
TenantContextDep = Annotated[TenantContext, Depends(require_tenant_context)]
AdminIdentityDep = Annotated[VerifiedIdentity, Depends(require_admin_user)]
DeviceIdentityDep = Annotated[VerifiedIdentity, Depends(require_device)]
