"""Canonical API error envelope helpers."""

from __future__ import annotations

from typing import Any

from isahub.core.logging import request_context


def http_status_to_code(status_code: int) -> str:
    """Map HTTP status to the generic error code (401 -> E4010)."""
    return f"E{status_code}0"


def current_request_id() -> str | None:
    ctx = request_context.get()
    return ctx.get("request_id") if ctx else None


def build_error_envelope(
    *,
    code: str,
    message: str,
    detail: Any = None,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the error payload shared by every endpoint.

    ``detail`` mirrors FastAPI's default key so clients written against
    plain HTTPException responses keep working.
    """
    payload: dict[str, Any] = {
        "detail": message if detail is None else detail,
        "error": {
            "code": code,
            "message": message,
            "request_id": current_request_id(),
        },
    }
    if extra:
        payload.update(extra)
    return payload
