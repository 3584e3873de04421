"""Audit logging service.

Audit entries are best-effort: a failure to record one never fails the
request that triggered it.
"""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from isahub.core.logging import get_logger
from isahub.db.models import AuditLog

logger = get_logger(__name__)


def _client_ip_from_request(request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for", "")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip() or None
    if request.client:
        return request.client.host
    return None


def build_audit_entry(
    *,
    event_type: str,
    user_id: Optional[str],
    request=None,
    data: Optional[dict[str, Any]] = None,
) -> AuditLog:
    return AuditLog(
        user_id=user_id,
        event_type=event_type,
        ip=_client_ip_from_request(request) if request is not None else None,
        user_agent=request.headers.get("user-agent") if request is not None else None,
        path=request.url.path if request is not None else None,
        method=request.method if request is not None else None,
        data_json=data,
    )


def audit_log_event(
    db: Optional[DBSession],
    *,
    event_type: str,
    user_id: Optional[str],
    request=None,
    data: Optional[dict[str, Any]] = None,
) -> None:
    """Persist an audit log entry in its own commit."""
    if db is None:
        return

    try:
        db.add(build_audit_entry(event_type=event_type, user_id=user_id, request=request, data=data))
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Audit log write failed", data={"event_type": event_type, "error": str(exc)})
