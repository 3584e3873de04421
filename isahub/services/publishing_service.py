"""Publication workflow for access tier changes.

Tiers are split into two groups by PUBLISHED_ACCESS_TIERS: unpublished
(private) and published (externally visible). Moving a resource's public
tier from the unpublished group into the published group is a
publication. When the resource's projects have gatekeepers, a publication
is held: the tier stays where it was, a ``waiting_for_approval`` log row
records the requested tier and each gatekeeper gets one notification.
Moves inside a group apply immediately and notify nobody.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import Session as DBSession

from isahub.auth.policy import AccessTier
from isahub.config import get_settings
from isahub.core.exceptions import AuthorizationError, ConflictError
from isahub.core.logging import get_logger
from isahub.db.models import Investigation, Notification, Project, ResourcePublishLog, User
from isahub.services.notification_service import (
    PUBLISH_APPROVAL_REQUESTED,
    PUBLISH_DECISION,
    enqueue_notification,
)

logger = get_logger(__name__)

RESOURCE_TYPE = "Investigation"


@dataclass
class AccessChange:
    """Outcome of a requested public tier change."""

    previous: AccessTier
    requested: AccessTier
    applied: bool
    awaiting_approval: bool = False
    notifications: list[Notification] = field(default_factory=list)


def published_tiers() -> set[AccessTier]:
    return {AccessTier[name.upper()] for name in get_settings().published_access_tiers_list}


def is_published(tier: AccessTier) -> bool:
    return AccessTier(tier) in published_tiers()


def is_publication(previous: AccessTier, requested: AccessTier) -> bool:
    """True when a change crosses from the unpublished group into the published one."""
    return not is_published(previous) and is_published(requested)


def gatekeepers_for(investigation: Investigation) -> list[User]:
    """Gatekeepers of the investigation's projects, each listed once."""
    seen: dict[str, User] = {}
    for project in investigation.projects:
        for gatekeeper in project.gatekeepers:
            seen.setdefault(gatekeeper.id, gatekeeper)
    return list(seen.values())


def latest_publish_log(db: DBSession, investigation: Investigation) -> Optional[ResourcePublishLog]:
    return (
        db.query(ResourcePublishLog)
        .filter(
            ResourcePublishLog.resource_type == RESOURCE_TYPE,
            ResourcePublishLog.resource_id == investigation.id,
        )
        .order_by(ResourcePublishLog.created_at.desc(), ResourcePublishLog.id.desc())
        .first()
    )


def is_waiting_for_approval(db: DBSession, investigation: Investigation) -> bool:
    log = latest_publish_log(db, investigation)
    return log is not None and log.publish_state == ResourcePublishLog.WAITING_FOR_APPROVAL


def _log(db: DBSession, investigation: Investigation, actor: Optional[User], state: str, **kwargs) -> None:
    db.add(
        ResourcePublishLog(
            resource_type=RESOURCE_TYPE,
            resource_id=investigation.id,
            user_id=actor.id if actor else None,
            publish_state=state,
            **kwargs,
        )
    )


def _request_approval(
    db: DBSession,
    investigation: Investigation,
    actor: User,
    requested: AccessTier,
    gatekeepers: list[User],
) -> list[Notification]:
    already_waiting = is_waiting_for_approval(db, investigation)
    _log(
        db,
        investigation,
        actor,
        ResourcePublishLog.WAITING_FOR_APPROVAL,
        requested_access_type=int(requested),
    )
    if already_waiting:
        return []

    return [
        enqueue_notification(
            db,
            kind=PUBLISH_APPROVAL_REQUESTED,
            recipient=gatekeeper,
            subject=f"Publish approval requested: {investigation.title}",
            payload={
                "resource_type": RESOURCE_TYPE,
                "resource_id": investigation.id,
                "title": investigation.title,
                "requested_by": actor.id,
                "requested_access_type": requested.name,
            },
        )
        for gatekeeper in gatekeepers
    ]


def _withdraw(db: DBSession, investigation: Investigation, actor: User) -> None:
    _log(db, investigation, actor, ResourcePublishLog.WITHDRAWN, comment="Withdrawn by requester")
    logger.info(
        "Held publication withdrawn",
        data={"investigation_id": investigation.id, "user_id": actor.id},
    )


def change_access_tier(
    db: DBSession,
    investigation: Investigation,
    actor: User,
    requested: AccessTier,
    previous: Optional[AccessTier] = None,
) -> AccessChange:
    """Apply, or hold for approval, a change of the public tier (no commit).

    ``previous`` defaults to the policy's current tier; creation passes
    PRIVATE so a new resource is treated as moving out of private.
    """
    policy = investigation.policy
    previous = AccessTier(policy.access_type) if previous is None else previous
    requested = AccessTier(requested)

    # An unpublished request supersedes a held publication.
    if not is_published(requested) and is_waiting_for_approval(db, investigation):
        _withdraw(db, investigation, actor)

    if requested == previous:
        return AccessChange(previous=previous, requested=requested, applied=False)

    if not is_publication(previous, requested):
        policy.access_type = int(requested)
        return AccessChange(previous=previous, requested=requested, applied=True)

    gatekeepers = gatekeepers_for(investigation)
    needs_approval = (
        get_settings().publish_requires_approval
        and gatekeepers
        and not actor.is_admin
        and actor.id not in {g.id for g in gatekeepers}
    )
    if not needs_approval:
        policy.access_type = int(requested)
        _log(db, investigation, actor, ResourcePublishLog.PUBLISHED, requested_access_type=int(requested))
        return AccessChange(previous=previous, requested=requested, applied=True)

    policy.access_type = int(previous)
    notifications = _request_approval(db, investigation, actor, requested, gatekeepers)
    logger.info(
        "Publication held for gatekeeper approval",
        data={
            "investigation_id": investigation.id,
            "requested": requested.name,
            "gatekeepers": len(gatekeepers),
            "notified": len(notifications),
        },
    )
    return AccessChange(
        previous=previous,
        requested=requested,
        applied=False,
        awaiting_approval=True,
        notifications=notifications,
    )


def requested_approvals_for(db: DBSession, gatekeeper: User) -> list[Investigation]:
    """Investigations in the gatekeeper's projects currently waiting for approval."""
    candidates = (
        db.query(Investigation)
        .join(Investigation.projects)
        .filter(Project.id.in_([p.id for p in gatekeeper.gatekeeper_projects]))
        .order_by(Investigation.updated_at.desc())
        .all()
    )
    unique = list(dict.fromkeys(candidates))
    return [inv for inv in unique if is_waiting_for_approval(db, inv)]


def decide_publication(
    db: DBSession,
    investigation: Investigation,
    gatekeeper: User,
    *,
    approve: bool,
    comment: Optional[str] = None,
) -> Optional[Notification]:
    """Record a gatekeeper decision on a held publication (no commit)."""
    if gatekeeper.id not in {g.id for g in gatekeepers_for(investigation)}:
        raise AuthorizationError("Only a gatekeeper of this investigation's projects can decide")

    pending = latest_publish_log(db, investigation)
    if pending is None or pending.publish_state != ResourcePublishLog.WAITING_FOR_APPROVAL:
        raise ConflictError("Investigation is not waiting for publish approval")

    requested = AccessTier(pending.requested_access_type)
    if approve:
        investigation.policy.access_type = int(requested)
        state = ResourcePublishLog.PUBLISHED
    else:
        state = ResourcePublishLog.REJECTED
    _log(db, investigation, gatekeeper, state, requested_access_type=int(requested), comment=comment)

    if investigation.contributor is None:
        return None
    return enqueue_notification(
        db,
        kind=PUBLISH_DECISION,
        recipient=investigation.contributor,
        subject=f"Publication {'approved' if approve else 'rejected'}: {investigation.title}",
        payload={
            "resource_type": RESOURCE_TYPE,
            "resource_id": investigation.id,
            "decision": "approve" if approve else "reject",
            "comment": comment,
        },
    )
