"""
Health check endpoints.

Provides liveness and readiness probes for monitoring.
"""

from datetime import UTC, datetime
import os
from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from isahub.config import get_settings
from isahub.db import verify_database_connection

router = APIRouter(tags=["health"])


@router.get("/health")
@router.get("/healthz")
async def healthcheck() -> dict[str, Any]:
    """Liveness probe."""
    settings = get_settings()
    return {
        "status": "ok",
        "version": "0.1.0",
        "timestamp": datetime.now(UTC).isoformat(),
        "build_sha": (os.getenv("BUILD_SHA") or "").strip() or "unknown",
        "environment": settings.environment,
    }


@router.get("/readyz")
async def readiness() -> JSONResponse:
    """Readiness probe; 503 until the database answers."""
    checks: dict[str, bool] = {
        "database": verify_database_connection(),
        "config": True,
    }
    all_ready = all(checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if all_ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if all_ready else "not_ready",
            "timestamp": datetime.now(UTC).isoformat(),
            "checks": checks,
        },
    )
