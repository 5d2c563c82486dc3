"""Database session management."""

from functools import lru_cache

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from tenantgate_api.settings import get_settings


@lru_cache()
def get_engine() -> Engine:
    """Create the process-wide engine on first use."""
    settings = get_settings()
    url = settings.database_url_computed
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


@lru_cache()
def get_session_factory() -> sessionmaker:
    """Session factory bound to the configured engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine())


def session_factory_for(app) -> sessionmaker:
    """Session factory of an app (injected in tests), else the default one."""
    factory = getattr(app.state, "session_factory", None)
    return factory or get_session_factory()


def get_db(request: Request):
    """Get database session."""
    db = session_factory_for(request.app)()
    try:
        yield db
    finally:
        db.close()
