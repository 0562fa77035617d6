"""
auth/tokens.py -- Password hashing, session JWTs, and the session cookie.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       only the user id and expiry. Roles are NOT baked into the token: the
       session is enriched from the database on every read, so a promotion
       takes effect on the next request. Verification returns None on any
       failure -- the dependency layer turns that into "signed out".

  Passwords: bcrypt used directly (no passlib wrapper). The _DUMMY_HASH
       constant lets the credential check run bcrypt even when the username
       does not exist, so response time does not reveal which usernames are
       registered.

  SECRET_KEY: sourced from core.config.get_settings().

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

logger = logging.getLogger("moeauth.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

SESSION_COOKIE = "session_token"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    The credential schema caps passwords at 72 bytes, bcrypt's input limit.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Computed once at module load so the first failed login is not measurably
# slower than later ones.
DUMMY_HASH: str = hash_password("moeauth_timing_dummy")


# ---------------------------------------------------------------------------
# Session JWT
# ---------------------------------------------------------------------------


def session_expiry(expire_seconds: int = 0) -> datetime:
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    return datetime.now(timezone.utc) + timedelta(seconds=duration)


def create_session_token(user_id: int, expire_seconds: int = 0) -> str:
    """Encode a signed JWT for a user session.

    Args:
        user_id:        Numeric user ID stored in the DB.
        expire_seconds: Session duration in seconds. If 0 (default), uses
                        Settings.token_expire_seconds.
    """
    payload = {
        "sub": str(user_id),
        "user_id": user_id,
        "exp": session_expiry(expire_seconds),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_session_token(token: str) -> dict | None:
    """Decode and verify a session JWT. Returns the payload or None on any failure."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if "user_id" not in payload:
        return None
    return payload


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the session JWT as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie.
    samesite="lax": not sent on cross-site POSTs.
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: matches the JWT expiry so both expire together.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE)
