"""FastAPI dependencies for authentication."""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session as DBSession

from isahub.config import get_settings
from isahub.db import get_db
from isahub.db.models import User
from isahub.auth.session import validate_session
from isahub.services.audit_service import audit_log_event


def _user_for_request(request: Request, db: DBSession) -> tuple[Optional[User], Optional[str]]:
    """Resolve the cookie session to an active user, with a failure reason."""
    session_token = request.cookies.get(get_settings().session_cookie_name)
    if not session_token:
        return None, "auth_missing_token"

    session = validate_session(db, session_token)
    if not session:
        return None, "auth_invalid_session"

    user = db.query(User).filter(User.id == session.user_id).first()
    if not user or not user.is_active:
        return None, "auth_inactive_user"

    return user, None


async def get_current_user(
    request: Request,
    db: DBSession = Depends(get_db),
) -> User:
    """Get the current authenticated user.

    Raises:
        HTTPException: 401 if not authenticated.
    """
    user, reason = _user_for_request(request, db)
    if user is None:
        audit_log_event(
            db,
            event_type=reason,
            user_id=None,
            request=request,
            data={"path": request.url.path},
        )
        messages = {
            "auth_missing_token": "Not authenticated",
            "auth_invalid_session": "Session expired or invalid",
            "auth_inactive_user": "User not found or inactive",
        }
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=messages[reason],
            headers={"WWW-Authenticate": "Cookie"},
        )
    return user


async def get_optional_user(
    request: Request,
    db: DBSession = Depends(get_db),
) -> Optional[User]:
    """Get the current user if authenticated, otherwise None."""
    user, _reason = _user_for_request(request, db)
    return user
