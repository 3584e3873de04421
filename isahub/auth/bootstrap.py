"""Admin account bootstrapping (startup env vars and the create_admin script)."""

from typing import Optional

from sqlalchemy.orm import Session as DBSession

from isahub.auth.password import hash_password
from isahub.config import Settings
from isahub.core.logging import get_logger
from isahub.db.database import get_session_local
from isahub.db.models import User

logger = get_logger(__name__)


class BootstrapRefused(RuntimeError):
    """Bootstrap admin is enabled where it must not be."""


def create_admin_user(db: DBSession, *, username: str, email: str, password: str) -> Optional[User]:
    """Create the first admin. Returns None if an admin or a clashing user exists."""
    if db.query(User).filter(User.is_admin.is_(True)).first():
        return None

    conflict = db.query(User).filter((User.username == username) | (User.email == email)).first()
    if conflict:
        logger.warning(
            "Admin creation skipped; user with username/email already exists",
            data={"username": username, "email": email},
        )
        return None

    admin = User(
        email=email,
        username=username,
        hashed_password=hash_password(password),
        is_admin=True,
        is_active=True,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    return admin


def ensure_bootstrap_admin(settings: Settings) -> None:
    """Create an admin user from BOOTSTRAP_ADMIN_* settings if none exists."""
    if not settings.bootstrap_admin_enabled:
        return

    if settings.is_production:
        raise BootstrapRefused(
            "Bootstrap admin is enabled in production; disable it after initial setup"
        )

    username = (settings.bootstrap_admin_username or "").strip()
    email = (settings.bootstrap_admin_email or "").strip()
    password = settings.bootstrap_admin_password or ""
    if not username or not email or not password:
        logger.warning(
            "Bootstrap admin enabled but missing required env vars",
            data={
                "username_set": bool(username),
                "email_set": bool(email),
                "password_set": bool(password),
            },
        )
        return

    db = get_session_local()()
    try:
        if create_admin_user(db, username=username, email=email, password=password):
            logger.warning("Bootstrap admin created", data={"username": username})
    finally:
        db.close()
