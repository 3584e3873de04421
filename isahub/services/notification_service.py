"""Outbound notifications.

Notifications are written to the ``notifications`` table inside the
caller's transaction, so they only exist if the change that caused them
commits. Delivery runs afterwards through a transport; a delivery failure
marks the row ``failed`` and never undoes the change.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol

from sqlalchemy.orm import Session as DBSession

from isahub.config import get_settings
from isahub.core.logging import get_logger
from isahub.core.time import utcnow
from isahub.db.models import Notification, User

logger = get_logger(__name__)

PUBLISH_APPROVAL_REQUESTED = "publish_approval_requested"
PUBLISH_DECISION = "publish_decision"


class NotificationTransport(Protocol):
    def send(self, notification: Notification, *, sender: str) -> None: ...


class LoggingTransport:
    """Delivers by writing the message to the application log."""

    def send(self, notification: Notification, *, sender: str) -> None:
        logger.info(
            f"Notification {notification.kind} -> {notification.recipient_id}",
            data={
                "from": sender,
                "subject": notification.subject,
                "payload": notification.payload_json,
            },
        )


def get_transport() -> Optional[NotificationTransport]:
    """Transport selected by NOTIFICATION_DELIVERY; None leaves rows queued."""
    if get_settings().notification_delivery == "log":
        return LoggingTransport()
    return None


def enqueue_notification(
    db: DBSession,
    *,
    kind: str,
    recipient: User,
    subject: str,
    payload: Optional[dict[str, Any]] = None,
) -> Notification:
    """Queue a notification in the current transaction (no commit)."""
    notification = Notification(
        kind=kind,
        recipient_id=recipient.id,
        subject=subject,
        payload_json=payload,
        status=Notification.QUEUED,
    )
    db.add(notification)
    return notification


def deliver_queued(
    db: DBSession,
    notification_ids: list[str],
    transport: Optional[NotificationTransport] = None,
) -> int:
    """Deliver the given queued notifications; returns how many were sent."""
    transport = transport or get_transport()
    if transport is None or not notification_ids:
        return 0

    sender = get_settings().notifications_from_address
    rows = (
        db.query(Notification)
        .filter(Notification.id.in_(notification_ids), Notification.status == Notification.QUEUED)
        .all()
    )
    sent = 0
    for row in rows:
        try:
            transport.send(row, sender=sender)
        except Exception as exc:
            row.status = Notification.FAILED
            logger.error(
                "Notification delivery failed",
                data={"notification_id": row.id, "kind": row.kind, "error": str(exc)},
            )
            continue
        row.status = Notification.SENT
        row.sent_at = utcnow()
        sent += 1
    db.commit()
    return sent
