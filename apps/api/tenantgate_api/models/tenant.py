"""Tenant and user models."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from tenantgate_api.db.base import Base

# Roles allowed into the admin area
ADMIN_ROLES = frozenset({"OWNER", "TENANT_OWNER", "ADMIN", "TENANT_ADMIN"})


def new_id() -> str:
    """Opaque primary key."""
    return str(uuid.uuid4())


def normalize_role(role) -> str:
    return str(role or "").strip().upper().replace("-", "_")


class Tenant(Base):
    """Tenant model for multi-tenancy."""

    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=new_id)
    slug = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    country = Column(String(2), nullable=True)
    accent_color = Column(String(16), nullable=True)
    logo_url = Column(String(1024), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    users = relationship("User", back_populates="tenant")
    api_keys = relationship("MobileApiKey", back_populates="tenant", cascade="all, delete-orphan")
    devices = relationship("MobileDevice", back_populates="tenant", cascade="all, delete-orphan")


class User(Base):
    """Admin user; belongs to one tenant once onboarded."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=True, index=True)
    email = Column(String(320), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=True)
    email_verified_at = Column(DateTime, nullable=True)
    role = Column(String(32), default="OWNER", nullable=False)  # OWNER, TENANT_OWNER, ADMIN, TENANT_ADMIN
    first_name = Column(String(120), nullable=True)
    last_name = Column(String(120), nullable=True)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    tenant = relationship("Tenant", back_populates="users")
