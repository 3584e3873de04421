"""Password hashing.

New hashes are Argon2id. Accounts imported with bcrypt hashes still log in
and are rehashed to Argon2id on their next successful login.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import bcrypt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError
from argon2.low_level import Type

_argon2_hasher = PasswordHasher(type=Type.ID)

_PASSWORD_MIN_LENGTH = 8
_PASSWORD_MAX_LENGTH = 128

_COMPLEXITY_RULES = (
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"\d"), "Password must contain at least one digit"),
)


def validate_password_complexity(password: str) -> str | None:
    """Return None if the password is acceptable, else the first violated rule."""
    if len(password) < _PASSWORD_MIN_LENGTH:
        return f"Password must be at least {_PASSWORD_MIN_LENGTH} characters"
    if len(password) > _PASSWORD_MAX_LENGTH:
        return f"Password must be at most {_PASSWORD_MAX_LENGTH} characters"
    for pattern, message in _COMPLEXITY_RULES:
        if not pattern.search(password):
            return message
    return None


@dataclass(frozen=True)
class VerifyResult:
    ok: bool
    upgraded_hash: str | None = None


def hash_password(password: str) -> str:
    """Hash a password using Argon2id."""
    return _argon2_hasher.hash(password)


def verify_password_with_upgrade(plain_password: str, hashed_password: str) -> VerifyResult:
    """Verify a password; ``upgraded_hash`` is set when the stored hash should be replaced."""
    if not hashed_password:
        return VerifyResult(ok=False)

    if hashed_password.startswith("$argon2"):
        try:
            _argon2_hasher.verify(hashed_password, plain_password)
        except (VerifyMismatchError, InvalidHashError):
            return VerifyResult(ok=False)
        if _argon2_hasher.check_needs_rehash(hashed_password):
            return VerifyResult(ok=True, upgraded_hash=hash_password(plain_password))
        return VerifyResult(ok=True)

    # bcrypt: $2a$, $2b$, $2y$
    if hashed_password.startswith("$2"):
        if bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8")):
            return VerifyResult(ok=True, upgraded_hash=hash_password(plain_password))
        return VerifyResult(ok=False)

    # Unknown scheme: fail closed.
    return VerifyResult(ok=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password without upgrading."""
    return verify_password_with_upgrade(plain_password, hashed_password).ok
