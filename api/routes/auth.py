"""
api/routes/auth.py -- Registration, sign-in, sign-out and session endpoints.

Routes:
  POST /api/auth/register                   -- create a local account
  POST /api/auth/signin/credentials         -- username/password sign-in; sets session cookie
  GET  /api/auth/signin/github              -- redirect to GitHub
  GET  /api/auth/callback/github            -- GitHub callback; sets session cookie
  POST /api/auth/signout                    -- clear the session cookie
  GET  /api/auth/session                    -- enriched session or null
  GET  /api/auth/providers                  -- available sign-in methods
  GET  /api/auth/permissions/{permission}   -- does the current user hold it?

Error bodies are {"error": <localized message>, "code": <code>}. Domain
errors (auth.errors.AuthError) propagate to the handler in api/main.py.

Security:
  POST /register and POST /signin/credentials are rate-limited per IP. The
  limit strings are read from settings on every request.
  Unknown user and wrong password give the same invalid_credentials error.
  Cache-Control: no-store on responses that set the session cookie.
  callbackUrl is honoured only for relative paths.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Optional

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse
from httpx import HTTPError

from api.limiter import limiter
from api.models import (
    CredentialsSignInRequest,
    PermissionCheckResponse,
    ProviderInfo,
    RegisteredUser,
    RegisterRequest,
    RegisterResponse,
    SessionResponse,
    SignInResponse,
    SignOutRequest,
    SignOutResponse,
)
from auth.dependencies import try_get_current_session, try_get_current_user
from auth.errors import AuthError
from auth.oauth import get_enabled_providers, get_github_profile, is_oauth_provider_enabled
from auth.service import authorize_credentials, check_permission, on_sign_in, register, sign_in_with_oauth
from auth.store import UserStore
from auth.tokens import clear_session_cookie, create_session_token, set_session_cookie
from core.config import get_settings
from core.redirects import safe_callback_url

logger = logging.getLogger("moeauth.api.auth")

# Auth policy:
# - POST /api/auth/register:              public, rate-limited
# - POST /api/auth/signin/credentials:    public, rate-limited
# - GET  /api/auth/signin/github:         public
# - GET  /api/auth/callback/github:       public (authlib verifies OAuth state)
# - POST /api/auth/signout:               public -- clearing a cookie needs no prior auth
# - GET  /api/auth/session:               public -- returns null when signed out
# - GET  /api/auth/providers:             public
# - GET  /api/auth/permissions/{p}:       public -- false when signed out
router = APIRouter()

_OAUTH_CALLBACK_KEY = "oauth_callback_url"


def _signed_in_response(content: dict, user_id: int) -> JSONResponse:
    resp = JSONResponse(status_code=200, content=content)
    set_session_cookie(resp, create_session_token(user_id))
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=RegisterResponse)
@limiter.limit(lambda: get_settings().register_rate_limit)
def register_user(request: Request, body: RegisterRequest) -> RegisterResponse:
    """Create a local account. Does not sign in; the client calls sign-in next."""
    user_store: UserStore = request.app.state.user_store
    user = register(user_store, body.username, body.password)
    return RegisterResponse(user=RegisteredUser(id=user.id, username=user.username))


# ---------------------------------------------------------------------------
# Credentials sign-in
# ---------------------------------------------------------------------------


@router.post("/auth/signin/credentials", response_model=SignInResponse)
@limiter.limit(lambda: get_settings().login_rate_limit)
def signin_credentials(request: Request, body: CredentialsSignInRequest) -> JSONResponse:
    """Authorize a username/password pair and start a session."""
    user_store: UserStore = request.app.state.user_store
    user = authorize_credentials(user_store, body.username, body.password)
    on_sign_in(user_store, user)
    url = safe_callback_url(body.callback_url)
    return _signed_in_response(SignInResponse(url=url).model_dump(), user.id)


# ---------------------------------------------------------------------------
# GitHub sign-in
# ---------------------------------------------------------------------------


@router.get("/auth/signin/github")
async def signin_github(request: Request, callbackUrl: Optional[str] = None) -> RedirectResponse:  # noqa: N803
    """Redirect the browser to GitHub's authorization page."""
    if not is_oauth_provider_enabled("github"):
        return RedirectResponse("/?error=oauth_failed", status_code=302)

    request.session[_OAUTH_CALLBACK_KEY] = safe_callback_url(callbackUrl)
    client = request.app.state.oauth.create_client("github")
    redirect_uri = str(request.url_for("github_callback"))
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/auth/callback/github", name="github_callback")
async def callback_github(request: Request) -> RedirectResponse:
    """Handle the GitHub callback: resolve the user, run the sign-in event, set the cookie.

    Flow:
      1. Exchange the code for a token (authlib checks the state).
      2. Fetch the GitHub profile.
      3. Find the linked user or create one.
      4. Run on_sign_in (first-time role assignment).
      5. Issue the session cookie and redirect to the stored callback URL.
    """
    if not is_oauth_provider_enabled("github"):
        return RedirectResponse("/?error=oauth_failed", status_code=302)

    user_store: UserStore = request.app.state.user_store
    client = request.app.state.oauth.create_client("github")

    try:
        token = await client.authorize_access_token(request)
        profile = await get_github_profile(client, token)
    except (OAuthError, HTTPError):
        logger.exception("GitHub sign-in failed during token exchange or profile fetch")
        return RedirectResponse("/?error=oauth_failed", status_code=302)

    try:
        user = sign_in_with_oauth(user_store, "github", profile)
    except AuthError as exc:
        return RedirectResponse(f"/?error={exc.code}", status_code=302)

    on_sign_in(user_store, user)

    next_url = safe_callback_url(request.session.pop(_OAUTH_CALLBACK_KEY, None))
    resp = RedirectResponse(next_url, status_code=302)
    set_session_cookie(resp, create_session_token(user.id))
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Sign-out, session, providers, permissions
# ---------------------------------------------------------------------------


@router.post("/auth/signout", response_model=SignOutResponse)
async def signout(body: Optional[SignOutRequest] = None) -> JSONResponse:
    """Clear the session cookie and tell the client where to go next."""
    url = safe_callback_url(body.callback_url if body else None, default="/")
    resp = JSONResponse(content=SignOutResponse(url=url).model_dump())
    clear_session_cookie(resp)
    return resp


@router.get("/auth/session", response_model=Optional[SessionResponse])
def get_session(request: Request) -> Optional[SessionResponse]:
    """Return the signed-in user with role names, or null."""
    session = try_get_current_session(request)
    if session is None:
        return None
    return SessionResponse(
        user=asdict(session.user),
        expires=session.expires,
    )


@router.get("/auth/providers", response_model=list[ProviderInfo])
async def list_providers() -> list[ProviderInfo]:
    return [ProviderInfo(**p) for p in get_enabled_providers()]


@router.get("/auth/permissions/{permission}", response_model=PermissionCheckResponse)
def permission_check(request: Request, permission: str) -> PermissionCheckResponse:
    """Report whether the current user holds a permission. Signed out -> false."""
    user = try_get_current_user(request)
    granted = check_permission(request.app.state.user_store, user.id if user else None, permission)
    return PermissionCheckResponse(permission=permission, granted=granted)
