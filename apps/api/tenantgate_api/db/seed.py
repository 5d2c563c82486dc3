"""Seed data for development and testing."""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from tenantgate_api.auth.passwords import hash_password
from tenantgate_api.auth.session import normalize_email
from tenantgate_api.models import Tenant, User

DEMO_TENANT_SLUG = "acme"
DEMO_OWNER_EMAIL = "owner@acme.test"
DEMO_OWNER_PASSWORD = "acme-demo-password"


def create_tenant_with_owner(
    db: Session,
    slug: str,
    name: str,
    email: str,
    password: str,
    country: Optional[str] = None,
    role: str = "OWNER",
) -> tuple[Tenant, User]:
    """Create a tenant and its first admin user in one transaction."""
    tenant = Tenant(slug=slug.strip().lower(), name=name, country=country)
    db.add(tenant)
    db.flush()
    user = User(
        tenant_id=tenant.id,
        email=normalize_email(email),
        password_hash=hash_password(password),
        role=role,
        email_verified_at=datetime.utcnow(),
    )
    db.add(user)
    db.commit()
    db.refresh(tenant)
    db.refresh(user)
    return tenant, user


def seed_tenants(db: Session):
    """Seed the demo tenant and its owner."""
    tenant = db.query(Tenant).filter(Tenant.slug == DEMO_TENANT_SLUG).first()
    if tenant:
        print(f"✓ Demo tenant already exists: {tenant.slug}")
        return tenant

    tenant, user = create_tenant_with_owner(
        db,
        slug=DEMO_TENANT_SLUG,
        name="Acme Events",
        email=DEMO_OWNER_EMAIL,
        password=DEMO_OWNER_PASSWORD,
        country="CH",
    )
    print(f"✓ Created demo tenant: {tenant.slug} (ID: {tenant.id})")
    print(f"  Owner: {user.email} / {DEMO_OWNER_PASSWORD}")
    return tenant


def seed_all(db: Session):
    """Seed all initial data."""
    seed_tenants(db)
