"""Request bodies and response shapes shared by the routers.

JSON on the wire is camelCase; Python attributes stay snake_case.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tenantgate_api.models import MobileApiKey, MobileDevice, MobileProvisionToken


class CamelModel(BaseModel):
    """Base model accepting camelCase or snake_case field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Account


class RegisterRequest(CamelModel):
    tenant_name: str = Field(min_length=1, max_length=255)
    country: str = Field(min_length=2, max_length=2)
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=8, max_length=256)
    last_name: str = Field(min_length=1, max_length=120)
    first_name: Optional[str] = Field(default=None, max_length=120)
    slug: Optional[str] = Field(default=None, max_length=64)


class LoginRequest(CamelModel):
    email: str = Field(max_length=320)
    password: str = Field(max_length=256)


class EmailRequest(CamelModel):
    email: str = Field(max_length=320)


class PasswordResetRequest(CamelModel):
    token: str = Field(min_length=1, max_length=2048)
    password: str = Field(min_length=8, max_length=256)


# Mobile admin


class ApiKeyCreate(CamelModel):
    name: str = Field(min_length=1, max_length=120)
    device_name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    create_device: bool = True


class DeviceUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    status: Optional[str] = Field(default=None, pattern="^(ACTIVE|DISABLED)$")
    active_event_id: Optional[str] = Field(default=None, max_length=36)


class ProvisionTokenCreate(CamelModel):
    device_id: Optional[str] = Field(default=None, max_length=36)
    device_name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    expires_in_minutes: Optional[int] = Field(default=None, ge=1, le=24 * 60)


class RedeemRequest(CamelModel):
    tenant_slug: str = Field(min_length=1, max_length=64)
    code: str = Field(min_length=1, max_length=512)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() + "Z" if value else None


def serialize_api_key(key: MobileApiKey) -> dict:
    device = key.device
    return {
        "id": key.id,
        "name": key.name,
        "prefix": key.prefix,
        "status": key.status,
        "createdAt": _iso(key.created_at),
        "revokedAt": _iso(key.revoked_at),
        "lastUsedAt": _iso(key.last_used_at),
        "device": {"id": device.id, "name": device.name, "status": device.status} if device else None,
    }


def serialize_device(device: MobileDevice) -> dict:
    api_key = device.api_key
    return {
        "id": device.id,
        "name": device.name,
        "status": device.status,
        "activeEventId": device.active_event_id,
        "lastSeenAt": _iso(device.last_seen_at),
        "createdAt": _iso(device.created_at),
        "apiKey": {"id": api_key.id, "prefix": api_key.prefix, "status": api_key.status} if api_key else None,
    }


def serialize_provision_token(token: MobileProvisionToken, now: datetime) -> dict:
    return {
        "id": token.id,
        "prefix": token.prefix,
        "status": token.effective_status(now),
        "expiresAt": _iso(token.expires_at),
        "deviceId": token.device_id,
        "requestedDeviceName": token.requested_device_name,
        "usedAt": _iso(token.used_at),
        "usedByDeviceId": token.used_by_device_id,
        "createdAt": _iso(token.created_at),
        "revealable": bool(token.token_plaintext) and token.effective_status(now) == "ACTIVE",
    }
