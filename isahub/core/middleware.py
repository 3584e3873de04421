"""HTTP middleware for isahub."""

import secrets
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from isahub.core.error_contract import build_error_envelope
from isahub.core.logging import get_logger, request_context

logger = get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id to the logging context and log request completion."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or secrets.token_hex(8)
        start_time = time.perf_counter()

        token = request_context.set(
            {
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
            }
        )
        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code}",
                data={"duration_ms": round(duration_ms, 2)},
            )
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            request_context.reset(token)


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject request bodies above ``max_bytes`` based on Content-Length."""

    def __init__(self, app, max_bytes: int = 1048576):
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.max_bytes:
            logger.warning(
                f"Request too large: {content_length} bytes",
                data={"max_bytes": self.max_bytes},
            )
            return JSONResponse(
                status_code=413,
                content=build_error_envelope(code="E4130", message="Request body too large"),
            )
        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add baseline security headers to every response."""

    SECURITY_HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "Referrer-Policy": "no-referrer",
        "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
        "X-Frame-Options": "DENY",
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for header, value in self.SECURITY_HEADERS.items():
            if header not in response.headers:
                response.headers[header] = value
        return response


class CSRFMiddleware(BaseHTTPMiddleware):
    """Double-submit CSRF check for cookie-authenticated API writes.

    When a request carries a valid session cookie, the CSRF cookie, the CSRF
    header and the token stored with the session must all match.
    """

    SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}
    EXEMPT_PATHS = {"/api/auth/login"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        from isahub.config import get_settings

        if request.method in self.SAFE_METHODS or request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)
        if not request.url.path.startswith("/api/"):
            return await call_next(request)

        settings = get_settings()
        session_cookie = request.cookies.get(settings.session_cookie_name)
        if not session_cookie:
            return await call_next(request)

        from isahub.auth.session import validate_session
        from isahub.db.database import get_session_local

        db = get_session_local()()
        try:
            session = validate_session(db, session_cookie)
            expected = session.csrf_token if session else None
        finally:
            db.close()

        # Unknown or expired sessions are rejected by the auth dependencies.
        if expected is None:
            return await call_next(request)

        csrf_cookie = request.cookies.get(settings.csrf_cookie_name)
        csrf_header = request.headers.get(settings.csrf_header_name)
        if (
            not csrf_cookie
            or not csrf_header
            or not secrets.compare_digest(csrf_cookie, csrf_header)
            or not secrets.compare_digest(csrf_cookie, expected)
        ):
            logger.warning("CSRF validation failed", data={"path": request.url.path})
            return JSONResponse(
                status_code=403,
                content=build_error_envelope(code="E2002", message="CSRF validation failed"),
            )
        return await call_next(request)
