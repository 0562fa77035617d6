"""
web/routes.py -- Jinja2 template routes for the MoeMail sign-in UI.

These routes serve server-rendered HTML. They share app.state with the API
routes (same user store, same OAuth registry) but return HTML instead of
JSON. Errors are rendered as toast notifications; field validation errors
are rendered under the matching input.

Routes:
  GET  /          -- login/register card (signed-in users go to /moe)
  POST /login     -- credentials sign-in from the Login tab
  POST /register  -- registration from the Register tab, then sign-in
  GET  /moe       -- mailbox landing page with the user menu (auth required)
  GET  /profile   -- profile page: identity, roles, permissions (auth required)
  POST /logout    -- clear the session cookie, redirect to /

GitHub sign-in is a plain link to /api/auth/signin/github.
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.exc import SQLAlchemyError

from auth.dependencies import try_get_current_session, try_get_current_user
from auth.errors import AuthError, CredentialsValidationError
from auth.oauth import get_enabled_providers
from auth.service import authorize_credentials, on_sign_in, register
from auth.store import UserStore
from auth.tokens import clear_session_cookie, create_session_token, set_session_cookie
from auth.validation import validate_credentials
from core.config import get_settings
from core.messages import t
from core.permissions import ALL_PERMISSIONS, has_permission
from core.redirects import safe_callback_url

logger = logging.getLogger("moeauth.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
templates.env.globals["t"] = t
templates.env.globals["locale"] = get_settings().locale
router = APIRouter()

# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------

# Whitelist for ?error= on the login page. The raw query param is never
# rendered -- only a code from this set, looked up in core.messages.
_ERROR_CODES: set[str] = {"oauth_failed", "oauth_account_not_linked", "invalid_credentials"}


def _require_session(request: Request):
    """Return (session, None) when signed in, else (None, redirect to /)."""
    session = try_get_current_session(request)
    if session is None:
        return None, RedirectResponse(f"/?next={request.url.path}", status_code=302)
    return session, None


def _render_login(
    request: Request,
    tab: str = "login",
    username: str = "",
    field_errors: Optional[dict] = None,
    toast: Optional[dict] = None,
    next_url: Optional[str] = None,
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "login.html",
        {
            "tab": tab,
            "username": username,
            "errors": field_errors or {},
            "toast": toast,
            "next_url": safe_callback_url(next_url),
            "providers": [p["id"] for p in get_enabled_providers()],
        },
    )


def _toast(title_code: str, description: str) -> dict:
    return {"title": t(title_code), "description": description, "variant": "destructive"}


def _sign_in_redirect(user_id: int, next_url: Optional[str]) -> RedirectResponse:
    resp = RedirectResponse(safe_callback_url(next_url), status_code=302)
    set_session_cookie(resp, create_session_token(user_id))
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Login / register card
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def login_page(
    request: Request,
    tab: str = "login",
    error: Optional[str] = None,
    next: Optional[str] = None,
) -> HTMLResponse:
    if try_get_current_user(request) is not None:
        return RedirectResponse(safe_callback_url(next), status_code=302)

    toast = None
    if error in _ERROR_CODES:
        toast = _toast("login_failed", t(error))
    if tab not in ("login", "register"):
        tab = "login"
    return _render_login(request, tab, toast=toast, next_url=next)


@router.post("/login", response_class=HTMLResponse)
def login_post(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
    next: Optional[str] = Form(None),
) -> HTMLResponse:
    """Handle the Login tab. Field errors first, then the credential check."""
    try:
        validate_credentials(username, password)
    except CredentialsValidationError as exc:
        return _render_login(request, "login", username, field_errors=exc.localized(), next_url=next)

    user_store: UserStore = request.app.state.user_store
    try:
        user = authorize_credentials(user_store, username, password)
    except AuthError as exc:
        return _render_login(request, "login", username, toast=_toast("login_failed", exc.message), next_url=next)
    except SQLAlchemyError:
        logger.exception("Login failed on a database error")
        return _render_login(request, "login", username, toast=_toast("login_failed", t("retry_later")), next_url=next)

    on_sign_in(user_store, user)
    return _sign_in_redirect(user.id, next)


@router.post("/register", response_class=HTMLResponse)
def register_post(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
    next: Optional[str] = Form(None),
) -> HTMLResponse:
    """Handle the Register tab: create the account, then sign straight in."""
    try:
        validate_credentials(username, password)
    except CredentialsValidationError as exc:
        return _render_login(request, "register", username, field_errors=exc.localized(), next_url=next)

    user_store: UserStore = request.app.state.user_store
    try:
        register(user_store, username, password)
        user = authorize_credentials(user_store, username, password)
    except AuthError as exc:
        return _render_login(
            request, "register", username, toast=_toast("register_failed", exc.message), next_url=next
        )
    except SQLAlchemyError:
        logger.exception("Registration failed on a database error")
        return _render_login(
            request, "register", username, toast=_toast("register_failed", t("retry_later")), next_url=next
        )

    on_sign_in(user_store, user)
    return _sign_in_redirect(user.id, next)


# ---------------------------------------------------------------------------
# Signed-in pages (user menu)
# ---------------------------------------------------------------------------


@router.get("/moe", response_class=HTMLResponse)
def moe(request: Request) -> HTMLResponse:
    session, redirect = _require_session(request)
    if redirect:
        return redirect
    return templates.TemplateResponse(request, "moe.html", {"session": session})


@router.get("/profile", response_class=HTMLResponse)
def profile(request: Request) -> HTMLResponse:
    session, redirect = _require_session(request)
    if redirect:
        return redirect
    role_names = session.user.role_names
    permissions = [p for p in ALL_PERMISSIONS if has_permission(role_names, p)]
    accounts = request.app.state.user_store.get_accounts(session.user.id)
    return templates.TemplateResponse(
        request,
        "profile.html",
        {
            "session": session,
            "permissions": permissions,
            "providers": [a.provider for a in accounts],
        },
    )


@router.post("/logout")
def logout(request: Request) -> RedirectResponse:
    """Clear the session cookie and go back to the login card."""
    resp = RedirectResponse("/", status_code=302)
    clear_session_cookie(resp)
    return resp
