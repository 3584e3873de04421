"""
ISA Hub Application.

FastAPI application serving investigations, their sharing policies and
publication approvals, with structured logging, error handling and
security middleware.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from isahub.api import (
    auth_router,
    gatekeeper_router,
    health_router,
    investigations_router,
    oauth_sessions_router,
)
from isahub.auth.bootstrap import BootstrapRefused, ensure_bootstrap_admin
from isahub.config import get_settings
from isahub.core import (
    CSRFMiddleware,
    RequestContextMiddleware,
    RequestSizeLimitMiddleware,
    SecurityHeadersMiddleware,
    get_logger,
    setup_exception_handlers,
    setup_logging,
)
from isahub.core.startup_checks import run_startup_validations
from isahub.db import dispose_engine, verify_database_connection

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()

    setup_logging(
        level=settings.log_level,
        json_output=not settings.debug,
        log_file=settings.log_file or None,
    )
    logger.info(
        "Starting ISA Hub",
        data={
            "host": settings.host,
            "port": settings.port,
            "debug": settings.debug,
            "cors_origins": settings.cors_origins_list,
            "published_access_tiers": settings.published_access_tiers_list,
        },
    )

    run_startup_validations(settings)

    # Does NOT run migrations.
    if verify_database_connection():
        logger.info("Database connection verified")
        try:
            ensure_bootstrap_admin(settings)
        except BootstrapRefused as exc:
            logger.error("Bootstrap admin failed", data={"error": str(exc)})
    else:
        logger.warning("Database connection failed - run 'alembic upgrade head' to initialize")

    _app.state.start_time = datetime.now(UTC)

    yield

    logger.info("Shutting down ISA Hub")
    dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="ISA Hub",
        description="Investigations, sharing policies and publication approvals",
        version="0.1.0",
        lifespan=lifespan,
        docs_url=settings.docs_url,
    )

    # Must be before middleware.
    setup_exception_handlers(app)

    # Last added = first executed.
    app.add_middleware(CSRFMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_bytes)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    allow_origin_regex = None
    if not settings.is_production:
        allow_origin_regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Content-Disposition"],
        allow_origin_regex=allow_origin_regex,
    )

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(oauth_sessions_router)
    app.include_router(investigations_router)
    app.include_router(gatekeeper_router)

    return app


app = create_app()


def main() -> None:
    settings = get_settings()
    uvicorn.run("isahub.main:app", host=settings.host, port=settings.port, reload=False)


if __name__ == "__main__":
    main()
