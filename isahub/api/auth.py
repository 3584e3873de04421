"""Authentication API endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session as DBSession

from isahub.auth.dependencies import get_current_user
from isahub.auth.password import verify_password_with_upgrade
from isahub.auth.session import create_session, invalidate_session, validate_session
from isahub.config import get_settings
from isahub.core.logging import get_logger
from isahub.db import get_db
from isahub.db.models import User
from isahub.services.audit_service import audit_log_event

logger = get_logger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])

# Session data must not end up in browser caches or history.
_AUTH_CACHE_CONTROL = "no-store, no-cache, must-revalidate, private"
_AUTH_PRAGMA = "no-cache"


class LoginRequest(BaseModel):
    username: str
    password: str


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    username: str
    is_admin: bool
    project_ids: list[str]
    created_at: datetime


class AuthResponse(BaseModel):
    user: UserResponse
    csrf_token: str


def _no_store(response: Response) -> None:
    response.headers["Cache-Control"] = _AUTH_CACHE_CONTROL
    response.headers["Pragma"] = _AUTH_PRAGMA


def _set_auth_cookies(response: Response, session_token: str, csrf_token: str) -> None:
    settings = get_settings()
    for key, value, httponly in (
        (settings.session_cookie_name, session_token, True),
        (settings.csrf_cookie_name, csrf_token, False),
    ):
        response.set_cookie(
            key=key,
            value=value,
            httponly=httponly,
            secure=settings.cookie_secure,
            samesite=settings.cookie_samesite_header,
            domain=settings.cookie_domain or None,
            path="/",
            max_age=settings.session_ttl_seconds,
        )


@router.post("/login", response_model=AuthResponse)
async def login(
    payload: LoginRequest,
    response: Response,
    http_request: Request,
    db: DBSession = Depends(get_db),
):
    """Log in with username and password."""
    _no_store(response)

    user = db.query(User).filter(User.username == payload.username).first()
    verify = verify_password_with_upgrade(payload.password, user.hashed_password) if user else None

    if not user or not verify or not verify.ok:
        audit_log_event(
            db,
            event_type="auth.login_failed",
            user_id=user.id if user else None,
            request=http_request,
            data={"username": payload.username},
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is disabled",
        )

    # bcrypt -> argon2id, or an argon2 parameter rehash.
    if verify.upgraded_hash:
        user.hashed_password = verify.upgraded_hash
        db.commit()

    session_token, csrf_token = create_session(db, user)
    _set_auth_cookies(response, session_token, csrf_token)

    logger.info("User logged in", data={"user_id": user.id, "username": user.username})
    audit_log_event(
        db,
        event_type="auth.login",
        user_id=user.id,
        request=http_request,
        data={"username": user.username},
    )

    return AuthResponse(user=UserResponse.model_validate(user), csrf_token=csrf_token)


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    db: DBSession = Depends(get_db),
):
    """Log out and invalidate the session."""
    settings = get_settings()
    _no_store(response)

    session_token = request.cookies.get(settings.session_cookie_name)
    user_id = None
    if session_token:
        session = validate_session(db, session_token)
        if session:
            user_id = session.user_id
        invalidate_session(db, session_token)

    audit_log_event(db, event_type="auth.logout", user_id=user_id, request=request)

    for key in (settings.session_cookie_name, settings.csrf_cookie_name):
        response.delete_cookie(key, domain=settings.cookie_domain or None, path="/")

    return {"message": "Logged out"}


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """Get current user info."""
    return UserResponse.model_validate(current_user)
