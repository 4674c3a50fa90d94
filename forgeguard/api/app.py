"""
FastAPI application for forgeguard.

`create_app()` builds the app with its storage, services and limiters on
`app.state`; the lifespan hook starts error tracking and creates the
initial admin account when one is configured.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from forgeguard.api import documents, messages, projects, users
from forgeguard.auth import routes as auth_routes
from forgeguard.auth.ratelimit import LoginThrottle
from forgeguard.config import Settings, get_settings
from forgeguard.errors import ForgeguardError, RateLimitError, ValidationError
from forgeguard.integrations.sentry import capture_exception, init_sentry
from forgeguard.services import Services
from forgeguard.storage import StorageProvider, create_local_storage

logger = logging.getLogger(__name__)


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup app resources."""
    settings: Settings = app.state.settings

    if init_sentry():
        logger.info("Sentry error tracking enabled")

    if settings.bootstrap_admin_username and settings.bootstrap_admin_password:
        await app.state.services.users.bootstrap_admin(
            username=settings.bootstrap_admin_username,
            email=settings.bootstrap_admin_email or settings.bootstrap_admin_username,
            password=settings.bootstrap_admin_password,
            full_name=settings.bootstrap_admin_full_name,
        )

    logger.info(f"forgeguard API starting in {settings.environment} mode")
    yield
    logger.info("forgeguard API shutting down")


# =============================================================================
# Exception Handlers
# =============================================================================


async def forgeguard_error_handler(request: Request, exc: ForgeguardError) -> JSONResponse:
    content = {"detail": exc.message}
    if isinstance(exc, ValidationError) and exc.errors:
        content["errors"] = exc.errors
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(content), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = {}
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = ".".join(str(part) for part in error["loc"] if part != "body") or "root"
        errors[key] = error["msg"]
    logger.info(f"Request validation error {errors}")
    return JSONResponse(status_code=400, content={"detail": "Validation failed", "errors": errors})


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(status_code=429, content={"detail": RateLimitError.default_message})


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    capture_exception(exc, path=request.url.path)
    settings: Settings = request.app.state.settings
    detail = "Internal server error"
    if settings.debug and not settings.is_production:
        detail = f"{type(exc).__name__}: {exc}"
    return JSONResponse(status_code=500, content={"detail": detail})


# =============================================================================
# App Factory
# =============================================================================


def create_app(settings: Settings | None = None, storage: StorageProvider | None = None) -> FastAPI:
    settings = settings or get_settings()
    storage = storage or create_local_storage(settings.data_dir)

    app = FastAPI(
        title="forgeguard API",
        description="Role-based access control for projects, documents and messages",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.storage = storage
    app.state.services = Services.create(storage)
    app.state.login_throttle = LoginThrottle(settings.login_rate_limit)

    # Global per-IP request limit
    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[settings.rate_limit_default],
        enabled=settings.rate_limit_enabled,
    )
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ForgeguardError, forgeguard_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    app.include_router(auth_routes.router)
    app.include_router(users.router)
    app.include_router(projects.router)
    app.include_router(documents.router)
    app.include_router(messages.router)

    @app.get("/health")
    @limiter.exempt
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "forgeguard-api"}

    return app
