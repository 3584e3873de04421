"""Route guards for policy-protected resources.

A guard is a FastAPI dependency built per route, so the permission a
route needs is visible where the route is declared:

    @router.get("/{investigation_id}")
    async def show(investigation = Depends(investigation_guard(Permission.VIEW))): ...
"""

from typing import Callable, Optional

from fastapi import Depends
from sqlalchemy.orm import Session as DBSession

from isahub.auth.dependencies import get_optional_user
from isahub.auth.policy import Permission
from isahub.db import get_db
from isahub.db.models import Investigation, User
from isahub.services.investigation_service import authorize, get_investigation


def investigation_guard(action: Permission) -> Callable[..., Investigation]:
    """Dependency loading the path's investigation and enforcing ``action``."""

    async def guard(
        investigation_id: str,
        db: DBSession = Depends(get_db),
        current_user: Optional[User] = Depends(get_optional_user),
    ) -> Investigation:
        investigation = get_investigation(db, investigation_id)
        authorize(current_user, investigation, action)
        return investigation

    guard.__name__ = f"require_{action.value}_investigation"
    return guard
