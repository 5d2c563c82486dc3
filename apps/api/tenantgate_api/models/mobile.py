"""Mobile API key, device and provision token models."""

import enum
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from tenantgate_api.db.base import Base
from tenantgate_api.models.tenant import new_id


class ApiKeyStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    REVOKED = "REVOKED"


class DeviceStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    DISABLED = "DISABLED"


class ProvisionTokenStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    USED = "USED"
    REVOKED = "REVOKED"
    # Reported only, never stored
    EXPIRED = "EXPIRED"


class MobileApiKey(Base):
    """Device credential. Only the HMAC of the key is stored."""

    __tablename__ = "mobile_api_keys"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    prefix = Column(String(8), nullable=False, index=True)
    key_hash = Column(String(64), nullable=False, unique=True)
    status = Column(String(16), default=ApiKeyStatus.ACTIVE.value, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    last_used_at = Column(DateTime, nullable=True)

    # Relationships
    tenant = relationship("Tenant", back_populates="api_keys")
    device = relationship("MobileDevice", back_populates="api_key", uselist=False)


class MobileDevice(Base):
    """A provisioned device. Holds at most one key (unique api_key_id)."""

    __tablename__ = "mobile_devices"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    api_key_id = Column(String(36), ForeignKey("mobile_api_keys.id"), nullable=True, unique=True)
    status = Column(String(16), default=DeviceStatus.ACTIVE.value, nullable=False)
    active_event_id = Column(String(36), nullable=True)
    last_seen_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    tenant = relationship("Tenant", back_populates="devices")
    api_key = relationship("MobileApiKey", back_populates="device")


class MobileProvisionToken(Base):
    """Short-lived single-use code a device exchanges for an API key."""

    __tablename__ = "mobile_provision_tokens"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    prefix = Column(String(8), nullable=False)
    token_hash = Column(String(64), nullable=False, unique=True)
    token_plaintext = Column(String(64), nullable=True)  # cleared once revealed or redeemed
    status = Column(String(16), default=ProvisionTokenStatus.ACTIVE.value, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    device_id = Column(String(36), ForeignKey("mobile_devices.id"), nullable=True)
    requested_device_name = Column(String(120), nullable=True)
    used_at = Column(DateTime, nullable=True)
    used_by_device_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    device = relationship("MobileDevice", foreign_keys=[device_id])

    def effective_status(self, now: datetime) -> str:
        """Stored status, with ACTIVE-but-past-expiry reported as EXPIRED."""
        if self.status == ProvisionTokenStatus.ACTIVE.value and self.expires_at <= now:
            return ProvisionTokenStatus.EXPIRED.value
        return self.status
