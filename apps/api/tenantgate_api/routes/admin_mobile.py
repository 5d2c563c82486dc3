"""Admin routes for mobile keys, devices and provisioning codes.

All handlers are tenant-scoped through the guard; ids of other tenants get the
same 404 as ids that do not exist.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from tenantgate_api.auth.guard import AdminIdentityDep, TenantContextDep
from tenantgate_api.db.session import get_db
from tenantgate_api.schemas import (
    ApiKeyCreate,
    DeviceUpdate,
    ProvisionTokenCreate,
    serialize_api_key,
    serialize_device,
    serialize_provision_token,
)
from tenantgate_api.services.mobile_registry import MobileRegistry
from tenantgate_api.utils.responses import json_ok

router = APIRouter(prefix="/api/admin/v1/mobile", tags=["admin-mobile"])


def get_registry(
    tenant: TenantContextDep,
    _admin: AdminIdentityDep,
    db: Session = Depends(get_db),
) -> MobileRegistry:
    return MobileRegistry(db, tenant_id=tenant.tenant_id)


# Keys


@router.get("/keys")
def list_keys(request: Request, registry: MobileRegistry = Depends(get_registry)):
    return json_ok(request, {"items": [serialize_api_key(key) for key in registry.list_api_keys()]})


@router.post("/keys", status_code=status.HTTP_201_CREATED)
def create_key(body: ApiKeyCreate, request: Request, registry: MobileRegistry = Depends(get_registry)):
    """Create a key; the plaintext is in this response and nowhere else."""
    issued = registry.create_api_key(
        body.name, device_name=body.device_name, create_device=body.create_device
    )
    return json_ok(
        request,
        {
            "id": issued.id,
            "prefix": issued.prefix,
            "apiKey": issued.plaintext_key,
            "deviceId": issued.device_id,
        },
        status_code=status.HTTP_201_CREATED,
    )


@router.post("/keys/{key_id}/revoke")
def revoke_key(key_id: str, request: Request, registry: MobileRegistry = Depends(get_registry)):
    key = registry.revoke_api_key(key_id)
    return json_ok(request, serialize_api_key(key))


@router.delete("/keys/{key_id}")
def delete_key(key_id: str, request: Request, registry: MobileRegistry = Depends(get_registry)):
    registry.delete_api_key(key_id)
    return json_ok(request, {"id": key_id, "deleted": True})


# Devices


@router.get("/devices")
def list_devices(request: Request, registry: MobileRegistry = Depends(get_registry)):
    return json_ok(request, {"items": [serialize_device(device) for device in registry.list_devices()]})


@router.get("/devices/{device_id}")
def get_device(device_id: str, request: Request, registry: MobileRegistry = Depends(get_registry)):
    return json_ok(request, serialize_device(registry.get_device(device_id)))


@router.patch("/devices/{device_id}")
def update_device(
    device_id: str,
    body: DeviceUpdate,
    request: Request,
    registry: MobileRegistry = Depends(get_registry),
):
    changes = {}
    if "active_event_id" in body.model_fields_set:
        changes["active_event_id"] = body.active_event_id
    device = registry.update_device(device_id, name=body.name, status=body.status, **changes)
    return json_ok(request, serialize_device(device))


# Provisioning codes


@router.get("/provision-tokens")
def list_provision_tokens(
    request: Request,
    limit: int = Query(50, ge=1, le=100),
    registry: MobileRegistry = Depends(get_registry),
):
    now = datetime.utcnow()
    tokens = registry.list_provision_tokens(limit=limit)
    return json_ok(request, {"items": [serialize_provision_token(token, now) for token in tokens]})


@router.post("/provision-tokens", status_code=status.HTTP_201_CREATED)
def create_provision_token(
    body: ProvisionTokenCreate,
    request: Request,
    registry: MobileRegistry = Depends(get_registry),
):
    issued = registry.issue_provision_token(
        device_id=body.device_id,
        device_name=body.device_name,
        expires_in_minutes=body.expires_in_minutes,
    )
    return json_ok(
        request,
        {
            "provision": serialize_provision_token(issued.token, datetime.utcnow()),
            "token": issued.code,
            "qrPayload": issued.qr_payload,
        },
        status_code=status.HTTP_201_CREATED,
    )


@router.post("/provision-tokens/{token_id}/reveal")
def reveal_provision_token(token_id: str, request: Request, registry: MobileRegistry = Depends(get_registry)):
    issued = registry.reveal_provision_token(token_id)
    return json_ok(
        request,
        {
            "provision": serialize_provision_token(issued.token, datetime.utcnow()),
            "token": issued.code,
            "qrPayload": issued.qr_payload,
        },
    )


@router.post("/provision-tokens/{token_id}/revoke")
def revoke_provision_token(token_id: str, request: Request, registry: MobileRegistry = Depends(get_registry)):
    token = registry.revoke_provision_token(token_id)
    return json_ok(request, serialize_provision_token(token, datetime.utcnow()))
