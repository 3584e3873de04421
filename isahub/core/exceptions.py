"""Exception types and handlers for the FastAPI application."""

from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from isahub.core.error_contract import build_error_envelope, http_status_to_code
from isahub.core.logging import get_logger

logger = get_logger(__name__)


class IsaHubException(Exception):
    """Base exception for isahub."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        code: str = "E5000",
        details: Optional[dict] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details or {}
        super().__init__(message)


class AuthenticationError(IsaHubException):
    """No (valid) login."""

    def __init__(self, message: str = "Authentication required", details: Optional[dict] = None):
        super().__init__(
            message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            code="E2000",
            details=details,
        )


class NotOwnerError(IsaHubException):
    """Logged in, but not the account the resource is scoped to."""

    def __init__(self, message: str = "User not found (id not authorized)"):
        super().__init__(message, status_code=status.HTTP_401_UNAUTHORIZED, code="E2002")


class AuthorizationError(IsaHubException):
    """Policy denies the action."""

    def __init__(self, message: str = "Access denied"):
        super().__init__(message, status_code=status.HTTP_403_FORBIDDEN, code="E2001")


class NotFoundError(IsaHubException):
    """Resource not found."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND, code="E4040")


class ValidationFailedError(IsaHubException):
    """Submitted attributes failed validation; nothing was persisted."""

    def __init__(self, errors: dict[str, list[str]], message: str = "Validation failed"):
        self.errors = errors
        super().__init__(
            message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="E4220",
            details={"errors": errors},
        )


class ConflictError(IsaHubException):
    """The action conflicts with the current state of the resource."""

    def __init__(self, message: str):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT, code="E4090")


def _json_error(status_code: int, payload: dict[str, Any], headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=payload, headers=headers)


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers with FastAPI app."""

    @app.exception_handler(IsaHubException)
    async def isahub_exception_handler(request: Request, exc: IsaHubException) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            f"Request failed: {exc.message}",
            data={"status_code": exc.status_code, "code": exc.code},
        )
        return _json_error(
            exc.status_code,
            build_error_envelope(code=exc.code, message=exc.message, extra=exc.details),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.warning("Validation error", data={"errors": exc.errors()})
        return _json_error(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            build_error_envelope(
                code="E4220",
                message="Validation error",
                extra={"errors": jsonable_errors(exc.errors())},
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return _json_error(
            exc.status_code,
            build_error_envelope(
                code=http_status_to_code(exc.status_code),
                message=str(exc.detail),
                detail=exc.detail,
            ),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            f"Unhandled exception: {type(exc).__name__}: {exc}",
            exc_info=True,
        )
        return _json_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            build_error_envelope(code="E5000", message="Internal server error"),
        )


def jsonable_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Strip non-JSON values (exception objects in ``ctx``) from pydantic errors."""
    cleaned = []
    for err in errors:
        item = {k: v for k, v in err.items() if k not in {"ctx", "input", "url"}}
        item["loc"] = [str(part) for part in err.get("loc", ())]
        cleaned.append(item)
    return cleaned
