"""Core module with logging, middleware, and exception handling."""

from isahub.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    IsaHubException,
    NotFoundError,
    NotOwnerError,
    ValidationFailedError,
    setup_exception_handlers,
)
from isahub.core.logging import get_logger, setup_logging
from isahub.core.middleware import (
    CSRFMiddleware,
    RequestContextMiddleware,
    RequestSizeLimitMiddleware,
    SecurityHeadersMiddleware,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "IsaHubException",
    "AuthenticationError",
    "AuthorizationError",
    "ConflictError",
    "NotFoundError",
    "NotOwnerError",
    "ValidationFailedError",
    "CSRFMiddleware",
    "RequestContextMiddleware",
    "RequestSizeLimitMiddleware",
    "SecurityHeadersMiddleware",
    "setup_exception_handlers",
]
