"""Login session management for authentication."""

import hashlib
import secrets
from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy.orm import Session as DBSession

from isahub.config import get_settings
from isahub.core.time import utcnow
from isahub.db.models import Session, User


def hash_session_token(token: str) -> str:
    """Hash a session token for storage and lookup."""
    return hashlib.sha256(token.encode()).hexdigest()


def create_session(db: DBSession, user: User) -> Tuple[str, str]:
    """Create a new session for a user.

    Returns:
        Tuple of (session_token, csrf_token)
    """
    settings = get_settings()

    session_token = secrets.token_urlsafe(32)
    csrf_token = secrets.token_urlsafe(32)

    db.add(
        Session(
            user_id=user.id,
            token_hash=hash_session_token(session_token),
            csrf_token=csrf_token,
            expires_at=utcnow() + timedelta(seconds=settings.session_ttl_seconds),
        )
    )
    db.commit()

    return session_token, csrf_token


def validate_session(db: DBSession, session_token: str) -> Optional[Session]:
    """Return the session for a token if it exists and has not expired."""
    if not session_token:
        return None

    return (
        db.query(Session)
        .filter(
            Session.token_hash == hash_session_token(session_token),
            Session.expires_at > utcnow(),
        )
        .first()
    )


def invalidate_session(db: DBSession, session_token: str) -> bool:
    """Delete the session for a token."""
    if not session_token:
        return False

    result = (
        db.query(Session)
        .filter(Session.token_hash == hash_session_token(session_token))
        .delete()
    )
    db.commit()
    return result > 0


def cleanup_expired_sessions(db: DBSession) -> int:
    """Remove expired sessions."""
    result = db.query(Session).filter(Session.expires_at <= utcnow()).delete()
    db.commit()
    return result
