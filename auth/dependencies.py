"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two ways to present a session, checked in order:
  1. The "session_token" cookie -- set by the web UI and the sign-in endpoints.
  2. Authorization: Bearer <token> header -- API clients.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.
require_permission(p) builds a dependency that also raises 403 when the
user's roles do not grant p.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

from fastapi import HTTPException, Request

from auth.models import Session, User
from auth.service import build_session, check_permission
from auth.tokens import SESSION_COOKIE, decode_session_token
from core.messages import t


def _session_payload(request: Request) -> dict | None:
    token: str | None = request.cookies.get(SESSION_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    if not token:
        return None
    return decode_session_token(token)


def try_get_current_user(request: Request) -> User | None:
    """Return the signed-in User, or None. Never raises."""
    payload = _session_payload(request)
    if payload is None:
        return None
    return request.app.state.user_store.get_by_id(payload["user_id"])


def try_get_current_session(request: Request) -> Session | None:
    """Return the enriched Session for the request, or None when signed out."""
    payload = _session_payload(request)
    if payload is None:
        return None
    store = request.app.state.user_store
    user = store.get_by_id(payload["user_id"])
    if user is None:
        return None
    expires = datetime.fromtimestamp(payload["exp"], tz=timezone.utc) if "exp" in payload else None
    return build_session(store, user, expires)


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated."""
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": t("unauthorized")},
        )
    return user


def require_permission(permission: str) -> Callable[[Request], User]:
    """Build a dependency that requires the current user to hold a permission.

    Use as:
        @router.post("/roles/promote")
        async def route(user: User = Depends(require_permission(Permission.PROMOTE_USER))): ...
    """

    def dependency(request: Request) -> User:
        user = get_current_user(request)
        if not check_permission(request.app.state.user_store, user.id, permission):
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": t("forbidden")},
            )
        return user

    return dependency
