"""TenantGate API - Main FastAPI application."""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app
from sqlalchemy import text
from sqlalchemy.orm import sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from tenantgate_api.db.schema import find_schema_drift, verify_schema
from tenantgate_api.db.session import get_engine, session_factory_for
from tenantgate_api.errors import AppError, MisconfiguredError
from tenantgate_api.middleware.correlation import TraceIdMiddleware, get_trace_id
from tenantgate_api.middleware.gate import RequestGateMiddleware
from tenantgate_api.routes import admin_mobile, auth, mobile, pages
from tenantgate_api.security.rate_limit import RateLimiter, RedisRateLimitStore, rate_limiter_for
from tenantgate_api.settings import get_settings
from tenantgate_api.utils.responses import error_response, json_error

JSON_LOG_FORMAT = (
    '{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", "module": "%(name)s"}'
)
TEXT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHENTICATED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}

# Configure logging
logging.basicConfig(
    level=get_settings().log_level,
    format=JSON_LOG_FORMAT if get_settings().log_format == "json" else TEXT_LOG_FORMAT,
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


def _engine_of(app: FastAPI):
    factory = getattr(app.state, "session_factory", None)
    if factory is not None and factory.kw.get("bind") is not None:
        return factory.kw["bind"]
    return get_engine()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting TenantGate API...")
    settings = get_settings()
    try:
        # Validate production settings
        settings.validate_production_settings()

        # Refuse to serve against a database that is behind the models
        if settings.verify_schema_on_startup:
            verify_schema(_engine_of(app))
    except Exception as e:
        logger.error(f"Configuration validation failed: {e}")
        raise ValueError(f"Invalid configuration: {e}") from e

    yield
    # Shutdown: Cleanup
    logger.info("Shutting down TenantGate API...")


def register_exception_handlers(app: FastAPI) -> None:
    """Render every error as the uniform envelope."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if isinstance(exc, MisconfiguredError):
            logger.error(
                f"Misconfigured: {exc.reason}",
                extra={"trace_id": get_trace_id(request), "path": request.url.path},
            )
        return error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        # Field hints only; never echo submitted values back
        details = [
            {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
            for error in exc.errors()
        ]
        return json_error(request, 400, "INVALID_BODY", "Invalid request body.", details=details)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        code = HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
        message = "Not found." if exc.status_code == 404 else str(exc.detail)
        return json_error(request, exc.status_code, code, message, headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(
            f"Unhandled error: {exc}",
            exc_info=exc,
            extra={"trace_id": get_trace_id(request), "path": request.url.path},
        )
        return json_error(request, 500, "INTERNAL", "Internal server error.")


def create_app(
    session_factory: Optional[sessionmaker] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    """Build the application. Tests inject their own session factory and limiter."""
    settings = get_settings()

    app = FastAPI(
        title="TenantGate API",
        description="Multi-tenant admin sessions, device keys and request scoping",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.session_factory = session_factory
    app.state.rate_limiter = rate_limiter

    register_exception_handlers(app)

    # Middleware (order matters - last added is first executed)
    app.add_middleware(RequestGateMiddleware)  # Establish identity
    app.add_middleware(TraceIdMiddleware)  # Trace id before anything can fail
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    # Prometheus metrics
    app.mount("/metrics", make_asgi_app())

    # Register routers
    app.include_router(auth.router)
    app.include_router(admin_mobile.router)
    app.include_router(mobile.router)
    app.include_router(pages.router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint (basic liveness)."""
        return {
            "status": "healthy",
            "service": "tenantgate-api",
            "version": "0.1.0",
        }

    @app.get("/ready")
    def readiness_check(request: Request):
        """Readiness check endpoint (verifies dependencies)."""
        from fastapi.responses import JSONResponse

        checks = {"database": False, "schema": False, "rate_limit_store": None}

        db = session_factory_for(request.app)()
        try:
            db.execute(text("SELECT 1"))
            checks["database"] = True
        except Exception as e:
            logger.error(f"Database check failed: {e}")
        finally:
            db.close()

        if checks["database"]:
            try:
                drift = find_schema_drift(_engine_of(request.app))
                checks["schema"] = not drift
                if drift:
                    logger.warning(f"Schema drift: {drift}")
            except Exception as e:
                logger.error(f"Schema check failed: {e}")

        limiter = rate_limiter_for(request.app)
        if isinstance(limiter.store, RedisRateLimitStore):
            try:
                limiter.store.client.ping()
                checks["rate_limit_store"] = True
            except Exception as e:
                logger.error(f"Redis check failed: {e}")
                checks["rate_limit_store"] = False

        all_ready = checks["database"] and checks["schema"] and checks["rate_limit_store"] is not False
        return JSONResponse(
            content={"status": "ready" if all_ready else "not_ready", "checks": checks},
            status_code=200 if all_ready else 503,
        )

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": "TenantGate API",
            "version": "0.1.0",
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()
