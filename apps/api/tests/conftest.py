"""Pytest configuration and fixtures for integration tests."""

import os

# Settings are cached on first use; configure the environment before any import
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("AUTH_SESSION_SECRET", "test-session-secret-0123456789abcdef-xyz")
os.environ.setdefault("MOBILE_API_KEY_SECRET", "test-mobile-key-secret-0123456789abcdef-xyz")
os.environ.setdefault("LOG_FORMAT", "text")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tenantgate_api.db.base import Base
from tenantgate_api.db.seed import create_tenant_with_owner
from tenantgate_api.main import create_app
from tenantgate_api.models import Tenant, User
from tenantgate_api.security.rate_limit import InMemoryRateLimitStore, RateLimiter
from tenantgate_api.services.mobile_registry import MobileRegistry
from tenantgate_api.settings import get_settings

# Use test database URL from environment or default to SQLite in-memory
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")

PASSWORD_A = "correct horse battery"
PASSWORD_B = "another good password"


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Drop cached settings so monkeypatched env vars take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(scope="function")
def engine():
    """
    Create a test database engine.

    For integration tests, use TEST_DATABASE_URL environment variable
    to point to a real PostgreSQL instance.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        # SQLite in-memory for fast unit tests
        engine = create_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        # PostgreSQL for integration tests
        engine = create_engine(TEST_DATABASE_URL)

    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory) -> Session:
    """Create a test database session."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def rate_limiter() -> RateLimiter:
    return RateLimiter(InMemoryRateLimitStore())


@pytest.fixture
def app(session_factory, rate_limiter):
    return create_app(session_factory=session_factory, rate_limiter=rate_limiter)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_client(app):
    """Factory for extra clients, each with its own cookie jar."""
    clients = []

    def _make() -> TestClient:
        test_client = TestClient(app)
        clients.append(test_client)
        return test_client

    yield _make
    for test_client in clients:
        test_client.close()


@pytest.fixture
def tenant_a(db: Session) -> tuple[Tenant, User]:
    """Tenant "acme" with its owner."""
    return create_tenant_with_owner(db, "acme", "Acme Events", "owner@acme.test", PASSWORD_A)


@pytest.fixture
def tenant_b(db: Session) -> tuple[Tenant, User]:
    """Tenant "globex" with its owner."""
    return create_tenant_with_owner(db, "globex", "Globex", "owner@globex.test", PASSWORD_B)


def login(client: TestClient, email: str, password: str):
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response


@pytest.fixture
def admin_a(make_client, tenant_a) -> TestClient:
    """Client signed in as the owner of tenant A."""
    test_client = make_client()
    login(test_client, tenant_a[1].email, PASSWORD_A)
    return test_client


@pytest.fixture
def admin_b(make_client, tenant_b) -> TestClient:
    """Client signed in as the owner of tenant B."""
    test_client = make_client()
    login(test_client, tenant_b[1].email, PASSWORD_B)
    return test_client


@pytest.fixture
def device_a(db: Session, tenant_a):
    """Key with a bound active device in tenant A."""
    return MobileRegistry(db, tenant_id=tenant_a[0].id).create_api_key("Scanner", device_name="Booth 1")


@pytest.fixture
def device_b(db: Session, tenant_b):
    """Key with a bound active device in tenant B."""
    return MobileRegistry(db, tenant_id=tenant_b[0].id).create_api_key("Scanner", device_name="Booth 9")
