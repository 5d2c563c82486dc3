"""Device-facing routes."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from tenantgate_api.auth.guard import DeviceIdentityDep, TenantContextDep
from tenantgate_api.db.session import get_db
from tenantgate_api.models import MobileDevice, Tenant
from tenantgate_api.schemas import RedeemRequest
from tenantgate_api.security.rate_limit import client_ip, rate_limiter_for
from tenantgate_api.services.mobile_registry import MobileRegistry
from tenantgate_api.settings import get_settings
from tenantgate_api.utils.responses import json_ok

router = APIRouter(prefix="/api/mobile/v1", tags=["mobile"])


@router.get("/health")
def health(request: Request):
    return json_ok(request, {"status": "ok"})


@router.post("/provisioning/redeem")
def redeem(body: RedeemRequest, request: Request, db: Session = Depends(get_db)):
    """Exchange a provisioning code for an API key. Public; rate limited per IP."""
    rate_limiter_for(request.app).enforce(
        f"redeem:{client_ip(request)}", get_settings().redeem_rate_limit_per_minute
    )
    redeemed = MobileRegistry(db).redeem_provision_token(body.tenant_slug, body.code)
    return json_ok(
        request,
        {
            "apiKey": redeemed.api_key,
            "tenantSlug": redeemed.tenant_slug,
            "deviceId": redeemed.device_id,
        },
    )


@router.get("/me")
def me(
    request: Request,
    tenant: TenantContextDep,
    device_identity: DeviceIdentityDep,
    db: Session = Depends(get_db),
):
    """The calling device and its tenant branding."""
    registry = MobileRegistry(db, tenant_id=tenant.tenant_id)
    device: MobileDevice = registry.get_device(device_identity.device_id)
    tenant_row = db.query(Tenant).filter(Tenant.id == tenant.tenant_id).one()
    return json_ok(
        request,
        {
            "device": {
                "id": device.id,
                "name": device.name,
                "status": device.status,
                "activeEventId": device.active_event_id,
            },
            "tenant": {
                "id": tenant_row.id,
                "slug": tenant_row.slug,
                "name": tenant_row.name,
                "accentColor": tenant_row.accent_color,
                "logoUrl": tenant_row.logo_url,
            },
            "apiKeyId": device_identity.api_key_id,
        },
    )
