"""Access tiers and permission evaluation.

Every handler decides access through :func:`can_perform`. The function only
reads attributes (``contributor_id``, ``policy.access_type``,
``policy.permissions``, ``projects``) so it stays free of database access
and can be evaluated on any object shaped like an Investigation.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any, Iterable, Optional


class AccessTier(IntEnum):
    """Access levels ordered by openness."""

    PRIVATE = 0
    VISIBLE = 1
    ACCESSIBLE = 2
    EDITING = 3
    MANAGING = 4

    @classmethod
    def parse(cls, value: Any) -> "AccessTier":
        """Accept a tier, its integer value or its (case-insensitive) name."""
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid access tier: {value!r}")
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, str):
            name = value.strip().upper()
            if name.isdigit():
                return cls(int(name))
            try:
                return cls[name]
            except KeyError:
                pass
        raise ValueError(f"Invalid access tier: {value!r}")


class Permission(str, Enum):
    """Actions checked against a resource."""

    VIEW = "view"
    DOWNLOAD = "download"
    EDIT = "edit"
    MANAGE = "manage"
    DELETE = "delete"


REQUIRED_TIER: dict[Permission, AccessTier] = {
    Permission.VIEW: AccessTier.VISIBLE,
    Permission.DOWNLOAD: AccessTier.ACCESSIBLE,
    Permission.EDIT: AccessTier.EDITING,
    Permission.MANAGE: AccessTier.MANAGING,
    Permission.DELETE: AccessTier.MANAGING,
}


def _grants_for(actor: Any, grants: Iterable[Any]) -> Iterable[int]:
    project_ids = {p.id for p in getattr(actor, "projects", None) or []}
    for grant in grants:
        if grant.contributor_type == "User" and grant.contributor_id == actor.id:
            yield grant.access_type
        elif grant.contributor_type == "Project" and grant.contributor_id in project_ids:
            yield grant.access_type


def effective_tier(actor: Optional[Any], resource: Any) -> AccessTier:
    """Highest tier ``actor`` holds on ``resource``.

    Contributors and admins manage their resources. Anonymous actors only
    see the public tier.
    """
    policy = resource.policy
    public = AccessTier(policy.access_type) if policy is not None else AccessTier.PRIVATE
    if actor is None:
        return public
    if getattr(actor, "is_admin", False):
        return AccessTier.MANAGING
    if resource.contributor_id is not None and resource.contributor_id == actor.id:
        return AccessTier.MANAGING

    tier = public
    if policy is not None:
        for granted in _grants_for(actor, policy.permissions):
            tier = max(tier, AccessTier(granted))
    return tier


def can_perform(actor: Optional[Any], resource: Any, action: Permission) -> bool:
    """Whether ``actor`` (None for anonymous) may perform ``action`` on ``resource``."""
    return effective_tier(actor, resource) >= REQUIRED_TIER[action]


def allowed_actions(actor: Optional[Any], resource: Any) -> list[str]:
    """Actions available to ``actor``, for clients deciding which controls to show."""
    tier = effective_tier(actor, resource)
    return [action.value for action, required in REQUIRED_TIER.items() if tier >= required]
