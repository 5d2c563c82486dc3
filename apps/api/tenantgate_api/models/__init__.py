"""Database models - import all models here for Alembic discovery."""

from tenantgate_api.models.mobile import (
    ApiKeyStatus,
    DeviceStatus,
    MobileApiKey,
    MobileDevice,
    MobileProvisionToken,
    ProvisionTokenStatus,
)
from tenantgate_api.models.tenant import ADMIN_ROLES, Tenant, User

__all__ = [
    "Tenant",
    "User",
    "ADMIN_ROLES",
    "MobileApiKey",
    "MobileDevice",
    "MobileProvisionToken",
    "ApiKeyStatus",
    "DeviceStatus",
    "ProvisionTokenStatus",
]
