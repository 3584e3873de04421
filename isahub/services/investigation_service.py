"""Investigation persistence and workflow.

Routers call these functions with an already-authenticated actor. Every
write runs in a single transaction: validation errors are raised before
anything is added to the session, and any failure after that rolls the
whole change back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from isahub.auth.policy import REQUIRED_TIER, AccessTier, Permission, can_perform
from isahub.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationFailedError,
)
from isahub.core.logging import get_logger
from isahub.db.models import (
    AssetCreator,
    Investigation,
    PermissionGrant,
    Policy,
    Programme,
    Project,
    User,
)
from isahub.services.audit_service import build_audit_entry
from isahub.services.notification_service import deliver_queued
from isahub.services.publishing_service import AccessChange, change_access_tier

logger = get_logger(__name__)


@dataclass
class GrantSpec:
    contributor_type: str
    contributor_id: str
    access_type: AccessTier


@dataclass
class PolicySpec:
    access_type: Optional[AccessTier] = None
    # None keeps the existing grants; a list replaces them.
    permissions: Optional[list[GrantSpec]] = None


@dataclass
class InvestigationChanges:
    """Attribute changes; fields left as None are not touched."""

    title: Optional[str] = None
    description: Optional[str] = None
    other_creators: Optional[str] = None
    project_ids: Optional[list[str]] = None
    creator_ids: Optional[list[str]] = None


@dataclass
class WriteResult:
    investigation: Investigation
    access_change: Optional[AccessChange] = None
    notification_ids: list[str] = field(default_factory=list)


def get_investigation(db: DBSession, investigation_id: str) -> Investigation:
    investigation = db.query(Investigation).filter(Investigation.id == investigation_id).first()
    if investigation is None:
        raise NotFoundError("Investigation not found")
    return investigation


def authorize(actor: Optional[User], investigation: Investigation, action: Permission) -> None:
    """Raise unless ``actor`` may perform ``action``.

    Anonymous actors get an authentication error flagged ``login_required``
    so clients can prompt for a login; authenticated actors get a 403.
    """
    if can_perform(actor, investigation, action):
        return
    if actor is None:
        raise AuthenticationError(
            "You need to log in to access this investigation",
            details={"login_required": True},
        )
    raise AuthorizationError(f"You are not authorized to {action.value} this investigation")


def _visible_filter(actor: Optional[User]):
    """SQL counterpart of the VIEW check, or None when everything is visible."""
    viewable = int(REQUIRED_TIER[Permission.VIEW])
    public = Investigation.policy.has(Policy.access_type >= viewable)
    if actor is None:
        return public
    if actor.is_admin:
        return None
    granted = Investigation.policy.has(
        Policy.permissions.any(
            and_(
                PermissionGrant.access_type >= viewable,
                or_(
                    and_(
                        PermissionGrant.contributor_type == "User",
                        PermissionGrant.contributor_id == actor.id,
                    ),
                    and_(
                        PermissionGrant.contributor_type == "Project",
                        PermissionGrant.contributor_id.in_(sorted(actor.project_ids)),
                    ),
                ),
            )
        )
    )
    return or_(Investigation.contributor_id == actor.id, public, granted)


def list_investigations(
    db: DBSession,
    actor: Optional[User],
    *,
    project_id: Optional[str] = None,
    programme_id: Optional[str] = None,
) -> list[Investigation]:
    """Investigations visible to ``actor``, most recently updated first."""
    query = db.query(Investigation)
    visible = _visible_filter(actor)
    if visible is not None:
        query = query.filter(visible)
    if programme_id is not None:
        programme = db.query(Programme).filter(Programme.id == programme_id).first()
        if programme is None:
            raise NotFoundError("Programme not found")
        query = query.filter(
            Investigation.projects.any(Project.programme_id == programme.id)
        )
    if project_id is not None:
        query = query.filter(Investigation.projects.any(Project.id == project_id))

    rows = query.order_by(Investigation.updated_at.desc()).all()
    # can_perform stays the authority; the query only narrows the candidates.
    return [inv for inv in rows if can_perform(actor, inv, Permission.VIEW)]


def _require_text(errors: dict[str, list[str]], key: str, value: Optional[str]) -> None:
    if value is None or not value.strip():
        errors.setdefault(key, []).append("can't be blank")


def _resolve_projects(
    db: DBSession, actor: User, project_ids: Sequence[str], errors: dict[str, list[str]]
) -> list[Project]:
    if not project_ids:
        errors.setdefault("project_ids", []).append("must include at least one project")
        return []

    wanted = list(dict.fromkeys(project_ids))
    found = {p.id: p for p in db.query(Project).filter(Project.id.in_(wanted)).all()}
    missing = [pid for pid in wanted if pid not in found]
    if missing:
        errors.setdefault("project_ids", []).append(f"unknown projects: {', '.join(missing)}")
        return []

    if not actor.is_admin:
        foreign = [pid for pid in wanted if pid not in actor.project_ids]
        if foreign:
            errors.setdefault("project_ids", []).append(
                f"you are not a member of: {', '.join(foreign)}"
            )
            return []
    return [found[pid] for pid in wanted]


def _resolve_creators(
    db: DBSession, creator_ids: Sequence[str], errors: dict[str, list[str]]
) -> list[User]:
    if not creator_ids:
        return []
    found = {u.id: u for u in db.query(User).filter(User.id.in_(set(creator_ids))).all()}
    missing = [cid for cid in dict.fromkeys(creator_ids) if cid not in found]
    if missing:
        errors.setdefault("creators", []).append(f"unknown people: {', '.join(missing)}")
        return []
    # Order and repeats are kept as submitted.
    return [found[cid] for cid in creator_ids]


def _check_grants(db: DBSession, grants: Iterable[GrantSpec], errors: dict[str, list[str]]) -> None:
    for grant in grants:
        model = {"Project": Project, "User": User}.get(grant.contributor_type)
        if model is None:
            errors.setdefault("permissions", []).append(
                f"unknown contributor type: {grant.contributor_type}"
            )
        elif db.query(model).filter(model.id == grant.contributor_id).first() is None:
            errors.setdefault("permissions", []).append(
                f"unknown {grant.contributor_type.lower()}: {grant.contributor_id}"
            )


def _replace_grants(policy: Policy, grants: Sequence[GrantSpec]) -> None:
    merged: dict[tuple[str, str], GrantSpec] = {}
    for grant in grants:
        merged[(grant.contributor_type, grant.contributor_id)] = grant
    # Rows for contributors that stay are updated in place, keeping the
    # (policy, contributor) pair unique during the flush.
    existing = {(g.contributor_type, g.contributor_id): g for g in policy.permissions}
    rows = []
    for position, (key, grant) in enumerate(merged.items()):
        row = existing.get(key) or PermissionGrant(
            contributor_type=grant.contributor_type,
            contributor_id=grant.contributor_id,
        )
        row.access_type = int(grant.access_type)
        row.position = position
        rows.append(row)
    policy.permissions = rows


def _set_creators(investigation: Investigation, creators: Sequence[User]) -> None:
    investigation.creator_links = [
        AssetCreator(creator=creator, position=position) for position, creator in enumerate(creators)
    ]


def _commit(db: DBSession, investigation: Investigation) -> None:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.error("Investigation write failed", data={"investigation_id": investigation.id}, exc_info=True)
        raise
    db.refresh(investigation)


def create_investigation(
    db: DBSession,
    actor: User,
    changes: InvestigationChanges,
    policy_spec: Optional[PolicySpec] = None,
) -> WriteResult:
    """Validate and persist a new investigation with its policy."""
    policy_spec = policy_spec or PolicySpec()
    errors: dict[str, list[str]] = {}
    _require_text(errors, "title", changes.title)
    projects = _resolve_projects(db, actor, changes.project_ids or [], errors)
    creators = _resolve_creators(db, changes.creator_ids or [], errors)
    _check_grants(db, policy_spec.permissions or [], errors)
    if errors:
        raise ValidationFailedError(errors)

    policy = Policy(access_type=int(AccessTier.PRIVATE))
    _replace_grants(policy, policy_spec.permissions or [])
    investigation = Investigation(
        title=changes.title.strip(),
        description=changes.description,
        other_creators=changes.other_creators,
        contributor=actor,
        policy=policy,
        projects=projects,
    )
    _set_creators(investigation, creators)
    db.add(investigation)
    db.flush()

    access_change = None
    if policy_spec.access_type is not None:
        access_change = change_access_tier(
            db, investigation, actor, policy_spec.access_type, previous=AccessTier.PRIVATE
        )
    db.add(
        build_audit_entry(
            event_type="investigation.create",
            user_id=actor.id,
            data={"investigation_id": investigation.id},
        )
    )
    _commit(db, investigation)
    logger.info("Investigation created", data={"investigation_id": investigation.id})
    return _finish(db, investigation, access_change)


def update_investigation(
    db: DBSession,
    actor: User,
    investigation: Investigation,
    changes: InvestigationChanges,
    policy_spec: Optional[PolicySpec] = None,
) -> WriteResult:
    """Apply attribute, creator and sharing changes to an investigation.

    Sharing changes are only applied for actors who can manage the
    investigation; for other editors the policy block is ignored.
    """
    authorize(actor, investigation, Permission.EDIT)
    if policy_spec is not None and not can_perform(actor, investigation, Permission.MANAGE):
        logger.info(
            "Ignoring sharing changes from non-manager",
            data={"investigation_id": investigation.id, "user_id": actor.id},
        )
        policy_spec = None

    errors: dict[str, list[str]] = {}
    if changes.title is not None:
        _require_text(errors, "title", changes.title)
    projects = None
    if changes.project_ids is not None:
        projects = _resolve_projects(db, actor, changes.project_ids, errors)
    creators = None
    if changes.creator_ids is not None:
        creators = _resolve_creators(db, changes.creator_ids, errors)
    if policy_spec is not None and policy_spec.permissions is not None:
        _check_grants(db, policy_spec.permissions, errors)
    if errors:
        raise ValidationFailedError(errors)

    if changes.title is not None:
        investigation.title = changes.title.strip()
    if changes.description is not None:
        investigation.description = changes.description
    if changes.other_creators is not None:
        investigation.other_creators = changes.other_creators
    if projects is not None:
        investigation.projects = projects
    if creators is not None:
        _set_creators(investigation, creators)

    access_change = None
    if policy_spec is not None:
        if policy_spec.permissions is not None:
            _replace_grants(investigation.policy, policy_spec.permissions)
        if policy_spec.access_type is not None:
            access_change = change_access_tier(db, investigation, actor, policy_spec.access_type)

    _commit(db, investigation)
    return _finish(db, investigation, access_change)


def _finish(db: DBSession, investigation: Investigation, access_change: Optional[AccessChange]) -> WriteResult:
    notification_ids = [n.id for n in access_change.notifications] if access_change else []
    # Delivery happens after commit; its outcome never affects the write.
    deliver_queued(db, notification_ids)
    return WriteResult(
        investigation=investigation,
        access_change=access_change,
        notification_ids=notification_ids,
    )


def destroy_investigation(db: DBSession, actor: User, investigation: Investigation, request=None) -> None:
    """Delete a childless investigation together with its policy and creators."""
    authorize(actor, investigation, Permission.DELETE)
    if investigation.studies:
        raise ConflictError(
            "Unable to delete the investigation because it has studies associated with it"
        )

    investigation_id = investigation.id
    db.add(
        build_audit_entry(
            event_type="investigation.destroy",
            user_id=actor.id,
            request=request,
            data={"investigation_id": investigation_id, "title": investigation.title},
        )
    )
    db.delete(investigation)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.error("Investigation delete failed", data={"investigation_id": investigation_id}, exc_info=True)
        raise
    logger.info("Investigation deleted", data={"investigation_id": investigation_id})


def new_form_based_on(actor: Optional[User], investigation: Investigation) -> dict[str, Any]:
    """Prefilled creation form copied from an existing investigation."""
    authorize(actor, investigation, Permission.VIEW)
    if actor is None:
        raise AuthenticationError(
            "You need to log in to create an investigation",
            details={"login_required": True},
        )
    return {
        "title": investigation.title,
        "description": investigation.description,
        "other_creators": investigation.other_creators,
        "project_ids": [p.id for p in investigation.projects if p.id in actor.project_ids],
        "creators": [c.id for c in investigation.creators],
        "policy_attributes": {
            "access_type": AccessTier(investigation.policy.access_type).name,
            "permissions": [
                {
                    "contributor_type": g.contributor_type,
                    "contributor_id": g.contributor_id,
                    "access_type": AccessTier(g.access_type).name,
                }
                for g in investigation.policy.permissions
            ],
        },
    }
