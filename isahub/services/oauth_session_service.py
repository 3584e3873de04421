"""Account-scoped access to third-party login (OAuth) sessions."""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session as DBSession

from isahub.core.exceptions import NotFoundError, NotOwnerError
from isahub.db.models import OAuthSession, User


def find_owned_account(db: DBSession, account_id: str, requester: User) -> User:
    """Load the account and make sure the requester is its owner."""
    account = db.query(User).filter(User.id == account_id).first()
    if account is None:
        raise NotFoundError("User not found")
    if account.id != requester.id:
        raise NotOwnerError()
    return account


def list_oauth_sessions(db: DBSession, account: User) -> list[OAuthSession]:
    return (
        db.query(OAuthSession)
        .filter(OAuthSession.user_id == account.id)
        .order_by(OAuthSession.created_at.desc())
        .all()
    )


def revoke_oauth_session(db: DBSession, account: User, session_id: str) -> Optional[OAuthSession]:
    """Delete one of the account's OAuth sessions.

    Returns the deleted row, or None when the account has no such session.
    The account itself is never touched.
    """
    row = (
        db.query(OAuthSession)
        .filter(OAuthSession.id == session_id, OAuthSession.user_id == account.id)
        .first()
    )
    if row is None:
        return None
    db.delete(row)
    db.commit()
    return row
