"""OAuth session endpoints, scoped to the owning account."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session as DBSession

from isahub.auth.dependencies import get_current_user
from isahub.db import get_db
from isahub.db.models import User
from isahub.services.audit_service import audit_log_event
from isahub.services.oauth_session_service import (
    find_owned_account,
    list_oauth_sessions,
    revoke_oauth_session,
)

router = APIRouter(prefix="/api/users/{user_id}/oauth-sessions", tags=["oauth-sessions"])


class OAuthSessionModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    provider: str
    created_at: datetime
    expires_at: Optional[datetime]


@router.get("", response_model=List[OAuthSessionModel])
async def list_sessions(
    user_id: str,
    db: DBSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    account = find_owned_account(db, user_id, current_user)
    return [OAuthSessionModel.model_validate(s) for s in list_oauth_sessions(db, account)]


@router.delete("/{session_id}")
async def revoke_session(
    user_id: str,
    session_id: str,
    request: Request,
    db: DBSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Revoke one session; revoking an unknown session is a no-op."""
    account = find_owned_account(db, user_id, current_user)
    revoked = revoke_oauth_session(db, account, session_id)
    if revoked is not None:
        audit_log_event(
            db,
            event_type="oauth_session.revoke",
            user_id=account.id,
            request=request,
            data={"oauth_session_id": session_id, "provider": revoked.provider},
        )
    return {
        "message": "Session revoked",
        "redirect": f"/api/users/{account.id}/oauth-sessions",
    }
