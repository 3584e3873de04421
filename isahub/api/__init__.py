"""API routers."""

from isahub.api.auth import router as auth_router
from isahub.api.gatekeeper import router as gatekeeper_router
from isahub.api.health import router as health_router
from isahub.api.investigations import router as investigations_router
from isahub.api.oauth_sessions import router as oauth_sessions_router

__all__ = [
    "auth_router",
    "gatekeeper_router",
    "health_router",
    "investigations_router",
    "oauth_sessions_router",
]
