"""
tests/test_api_routes.py -- Integration tests for the /api auth and role routes.

These tests exercise the full stack: FastAPI routing -> middleware -> auth
dependencies -> auth.service -> UserStore -> response serialization.

Coverage:
  - POST /api/auth/register: 200, duplicate 409, invalid input 422
  - POST /api/auth/signin/credentials: cookie + {ok, url}; 401 on bad password
  - per-IP rate limits on sign-in and registration (429 + Retry-After)
  - GET  /api/auth/session: null when signed out, role names when signed in
  - POST /api/auth/signout: cookie cleared
  - GET  /api/auth/providers and /api/auth/permissions/{p}
  - POST /api/roles/promote and GET/POST /api/config permission checks
  - GitHub sign-in redirect and callback with a mocked authlib client

Fixtures used (from conftest.py):
  - client: TestClient over the full app, cookie jar cleared per test
  - user_store: the UserStore the app is wired to
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from authlib.integrations.starlette_client import OAuthError
from fastapi.responses import RedirectResponse
from fastapi.testclient import TestClient
from httpx import Request, Response

from api.limiter import limiter
from auth.service import grant_role, register
from auth.store import UserStore
from auth.tokens import SESSION_COOKIE, create_session_token
from conftest import unique_name
from core.config import get_settings

PASSWORD = "password123"


def _sign_in(client: TestClient, username: str, password: str = PASSWORD, **extra):
    return client.post(
        "/api/auth/signin/credentials",
        json={"username": username, "password": password, **extra},
    )


def _new_signed_in_user(client: TestClient, prefix: str = "user") -> tuple[str, int]:
    username = unique_name(prefix)
    resp = client.post("/api/auth/register", json={"username": username, "password": PASSWORD})
    assert resp.status_code == 200
    assert _sign_in(client, username).status_code == 200
    return username, resp.json()["user"]["id"]


def _new_emperor(client: TestClient, user_store: UserStore) -> int:
    username = unique_name("owner")
    user = register(user_store, username, PASSWORD)
    grant_role(user_store, user.id, "emperor")
    assert _sign_in(client, username).status_code == 200
    return user.id


class TestRegister:
    def test_register_returns_user(self, client: TestClient) -> None:
        username = unique_name("reg")
        resp = client.post("/api/auth/register", json={"username": username, "password": PASSWORD})
        assert resp.status_code == 200
        data = resp.json()
        assert data["user"]["username"] == username
        assert isinstance(data["user"]["id"], int)
        # Registration alone does not sign in.
        assert SESSION_COOKIE not in resp.cookies

    def test_duplicate_username_is_409(self, client: TestClient) -> None:
        username = unique_name("dup")
        client.post("/api/auth/register", json={"username": username, "password": PASSWORD})
        resp = client.post("/api/auth/register", json={"username": username, "password": "anotherpass"})
        assert resp.status_code == 409
        assert resp.json()["error"] == "Username already exists."
        assert resp.json()["code"] == "username_exists"

    def test_invalid_username_is_422_with_field_errors(self, client: TestClient) -> None:
        resp = client.post("/api/auth/register", json={"username": "me@example.com", "password": PASSWORD})
        assert resp.status_code == 422
        data = resp.json()
        assert data["code"] == "validation_error"
        assert data["error"] == "Username cannot be an email address."
        assert data["detail"]["fields"] == {"username": "Username cannot be an email address."}

    def test_short_password_is_422(self, client: TestClient) -> None:
        resp = client.post("/api/auth/register", json={"username": unique_name("short"), "password": "abc"})
        assert resp.status_code == 422
        assert resp.json()["error"] == "Password must be at least 8 characters."

    def test_registration_disabled(self, client: TestClient, monkeypatch) -> None:
        monkeypatch.setattr(get_settings(), "self_registration_enabled", False)
        resp = client.post("/api/auth/register", json={"username": unique_name("off"), "password": PASSWORD})
        assert resp.status_code == 403
        assert resp.json()["code"] == "registration_disabled"


class TestCredentialsSignIn:
    def test_sign_in_sets_cookie_and_returns_default_url(self, client: TestClient) -> None:
        username = unique_name("login")
        client.post("/api/auth/register", json={"username": username, "password": PASSWORD})
        resp = _sign_in(client, username)
        assert resp.status_code == 200
        assert resp.json() == {"ok": True, "url": "/moe"}
        assert resp.cookies.get(SESSION_COOKIE)
        assert resp.headers["Cache-Control"] == "no-store"

    def test_callback_url_is_honoured_when_relative(self, client: TestClient) -> None:
        username = unique_name("cb")
        client.post("/api/auth/register", json={"username": username, "password": PASSWORD})
        assert _sign_in(client, username, callbackUrl="/profile").json()["url"] == "/profile"
        assert _sign_in(client, username, callbackUrl="https://evil.example").json()["url"] == "/moe"

    def test_wrong_password_is_401(self, client: TestClient) -> None:
        username = unique_name("wrong")
        client.post("/api/auth/register", json={"username": username, "password": PASSWORD})
        resp = _sign_in(client, username, "notthepassword")
        assert resp.status_code == 401
        assert resp.json() == {"error": "Username or password incorrect.", "code": "invalid_credentials", "detail": None}
        assert SESSION_COOKIE not in resp.cookies

    def test_unknown_user_gets_same_error(self, client: TestClient) -> None:
        resp = _sign_in(client, unique_name("ghost"))
        assert resp.status_code == 401
        assert resp.json()["code"] == "invalid_credentials"


class TestRateLimits:
    @pytest.fixture(autouse=True)
    def _fresh_counters(self):
        limiter.reset()
        yield
        limiter.reset()

    def test_sign_in_is_throttled(self, client: TestClient, monkeypatch) -> None:
        username = unique_name("rl")
        client.post("/api/auth/register", json={"username": username, "password": PASSWORD})
        monkeypatch.setattr(get_settings(), "login_rate_limit", "2/minute")

        codes = [_sign_in(client, username).status_code for _ in range(4)]
        assert codes == [200, 200, 429, 429]

    def test_wrong_passwords_count_toward_the_limit(self, client: TestClient, monkeypatch) -> None:
        monkeypatch.setattr(get_settings(), "login_rate_limit", "2/minute")
        username = unique_name("brute")
        codes = [_sign_in(client, username, "wrongpassword").status_code for _ in range(3)]
        assert codes == [401, 401, 429]

    def test_throttled_body(self, client: TestClient, monkeypatch) -> None:
        monkeypatch.setattr(get_settings(), "register_rate_limit", "1/minute")
        client.post("/api/auth/register", json={"username": unique_name("rl"), "password": PASSWORD})
        resp = client.post("/api/auth/register", json={"username": unique_name("rl"), "password": PASSWORD})
        assert resp.status_code == 429
        assert resp.json()["code"] == "rate_limited"
        assert "Retry-After" in resp.headers


class TestSession:
    def test_signed_out_session_is_null(self, client: TestClient) -> None:
        resp = client.get("/api/auth/session")
        assert resp.status_code == 200
        assert resp.json() is None

    def test_garbage_token_is_signed_out(self, client: TestClient) -> None:
        resp = client.get("/api/auth/session", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.json() is None

    def test_session_has_default_role(self, client: TestClient) -> None:
        username, user_id = _new_signed_in_user(client, "sess")
        data = client.get("/api/auth/session").json()
        assert data["user"]["id"] == user_id
        assert data["user"]["username"] == username
        assert data["user"]["name"] == username
        assert data["user"]["roles"] == [{"name": "civilian"}]
        assert data["expires"]

    def test_bearer_token_is_accepted(self, client: TestClient, user_store: UserStore) -> None:
        user = register(user_store, unique_name("bearer"), PASSWORD)
        token = create_session_token(user.id)
        data = client.get("/api/auth/session", headers={"Authorization": f"Bearer {token}"}).json()
        assert data["user"]["id"] == user.id
        # Never signed in through a sign-in event: the role is assigned on read.
        assert data["user"]["roles"] == [{"name": "civilian"}]

    def test_repeated_sign_in_keeps_one_role(self, client: TestClient, user_store: UserStore) -> None:
        username, user_id = _new_signed_in_user(client, "again")
        _sign_in(client, username)
        _sign_in(client, username)
        assert len(user_store.get_user_role_links(user_id)) == 1


class TestSignOut:
    def test_sign_out_clears_cookie(self, client: TestClient) -> None:
        _new_signed_in_user(client, "bye")
        resp = client.post("/api/auth/signout")
        assert resp.status_code == 200
        assert resp.json() == {"url": "/"}
        assert SESSION_COOKIE not in client.cookies
        assert client.get("/api/auth/session").json() is None

    def test_sign_out_callback_url(self, client: TestClient) -> None:
        resp = client.post("/api/auth/signout", json={"callbackUrl": "/?tab=login"})
        assert resp.json() == {"url": "/?tab=login"}


class TestProvidersAndPermissions:
    def test_providers_without_github(self, client: TestClient) -> None:
        resp = client.get("/api/auth/providers")
        assert resp.status_code == 200
        assert resp.json() == [{"id": "credentials", "name": "Credentials"}]

    def test_permission_signed_out(self, client: TestClient) -> None:
        resp = client.get("/api/auth/permissions/manage_email")
        assert resp.json() == {"permission": "manage_email", "granted": False}

    def test_permission_civilian(self, client: TestClient) -> None:
        _new_signed_in_user(client, "civ")
        assert client.get("/api/auth/permissions/manage_email").json()["granted"] is False

    def test_permission_emperor(self, client: TestClient, user_store: UserStore) -> None:
        _new_emperor(client, user_store)
        assert client.get("/api/auth/permissions/manage_config").json()["granted"] is True


class TestRoleRoutes:
    def test_promote_requires_sign_in(self, client: TestClient) -> None:
        resp = client.post("/api/roles/promote", json={"userId": 1, "roleName": "knight"})
        assert resp.status_code == 401
        assert resp.json()["code"] == "unauthorized"

    def test_civilian_cannot_promote(self, client: TestClient) -> None:
        _username, user_id = _new_signed_in_user(client, "civ")
        resp = client.post("/api/roles/promote", json={"userId": user_id, "roleName": "knight"})
        assert resp.status_code == 403
        assert resp.json() == {"error": "You do not have permission to do that.", "code": "forbidden", "detail": None}

    def test_emperor_promotes_user(self, client: TestClient, user_store: UserStore) -> None:
        target = register(user_store, unique_name("target"), PASSWORD)
        _new_emperor(client, user_store)
        resp = client.post("/api/roles/promote", json={"userId": target.id, "roleName": "knight"})
        assert resp.status_code == 200
        assert resp.json() == {"userId": target.id, "roleName": "knight"}
        assert [r.name for r in user_store.get_roles_for_user(target.id)] == ["knight"]

    def test_emperor_role_is_not_assignable(self, client: TestClient, user_store: UserStore) -> None:
        target = register(user_store, unique_name("target"), PASSWORD)
        _new_emperor(client, user_store)
        resp = client.post("/api/roles/promote", json={"userId": target.id, "roleName": "emperor"})
        assert resp.status_code == 422

    def test_promote_unknown_user(self, client: TestClient, user_store: UserStore) -> None:
        _new_emperor(client, user_store)
        resp = client.post("/api/roles/promote", json={"userId": 999999, "roleName": "knight"})
        assert resp.status_code == 404
        assert resp.json()["code"] == "user_not_found"

    def test_config_read_and_update(self, client: TestClient, user_store: UserStore) -> None:
        _new_emperor(client, user_store)
        assert client.get("/api/config").json() == {"defaultRole": "civilian"}

        resp = client.post("/api/config", json={"defaultRole": "knight"})
        assert resp.status_code == 200
        assert resp.json() == {"defaultRole": "knight"}

        # New users now start as knights.
        client.cookies.clear()
        _new_signed_in_user(client, "newknight")
        assert client.get("/api/auth/session").json()["user"]["roles"] == [{"name": "knight"}]

        user_store.set_site_config("DEFAULT_ROLE", "civilian")

    def test_civilian_cannot_change_config(self, client: TestClient) -> None:
        _new_signed_in_user(client, "civ")
        assert client.get("/api/config").status_code == 200
        assert client.post("/api/config", json={"defaultRole": "knight"}).status_code == 403


# ---------------------------------------------------------------------------
# GitHub sign-in
# ---------------------------------------------------------------------------


def _json_response(payload) -> Response:
    return Response(200, json=payload, request=Request("GET", "https://api.github.com/user"))


@pytest.fixture
def github(client: TestClient, monkeypatch) -> MagicMock:
    """Enable GitHub in settings and return the mocked authlib client."""
    settings = get_settings()
    monkeypatch.setattr(settings, "github_client_id", "client-id")
    monkeypatch.setattr(settings, "github_client_secret", "client-secret")

    gh = MagicMock()
    gh.authorize_redirect = AsyncMock(
        return_value=RedirectResponse("https://github.com/login/oauth/authorize?state=x", status_code=302)
    )
    gh.authorize_access_token = AsyncMock(return_value={"access_token": "tok"})
    oauth = MagicMock()
    oauth.create_client.return_value = gh
    monkeypatch.setattr(client.app.state, "oauth", oauth)
    return gh


def _github_profile(gh: MagicMock, github_id: str, email: str) -> None:
    gh.get = AsyncMock(
        return_value=_json_response(
            {"id": github_id, "login": f"gh{github_id}", "name": "Octo Cat", "email": email, "avatar_url": None}
        )
    )


class TestGithubSignIn:
    def test_disabled_provider_redirects_with_error(self, client: TestClient) -> None:
        resp = client.get("/api/auth/signin/github", follow_redirects=False)
        assert resp.status_code == 302
        assert resp.headers["location"] == "/?error=oauth_failed"

    def test_providers_list_github(self, client: TestClient, github: MagicMock) -> None:
        ids = [p["id"] for p in client.get("/api/auth/providers").json()]
        assert ids == ["credentials", "github"]

    def test_sign_in_redirects_to_github(self, client: TestClient, github: MagicMock) -> None:
        resp = client.get("/api/auth/signin/github", follow_redirects=False)
        assert resp.status_code == 302
        assert resp.headers["location"].startswith("https://github.com/login/oauth/authorize")
        _request, redirect_uri = github.authorize_redirect.await_args.args
        assert redirect_uri.endswith("/api/auth/callback/github")

    def test_callback_creates_user_and_signs_in(self, client: TestClient, github: MagicMock, user_store: UserStore) -> None:
        github_id = unique_name("gh")
        _github_profile(github, github_id, f"{github_id}@example.com")

        resp = client.get("/api/auth/callback/github", follow_redirects=False)
        assert resp.status_code == 302
        assert resp.headers["location"] == "/moe"
        assert resp.cookies.get(SESSION_COOKIE)

        user = user_store.get_by_oauth("github", github_id)
        assert user is not None
        assert user.email == f"{github_id}@example.com"

        data = client.get("/api/auth/session").json()
        assert data["user"]["id"] == user.id
        assert data["user"]["name"] == "Octo Cat"
        assert data["user"]["roles"] == [{"name": "civilian"}]

    def test_callback_returns_to_stored_callback_url(self, client: TestClient, github: MagicMock) -> None:
        github_id = unique_name("gh")
        _github_profile(github, github_id, f"{github_id}@example.com")

        client.get("/api/auth/signin/github", params={"callbackUrl": "/profile"}, follow_redirects=False)
        resp = client.get("/api/auth/callback/github", follow_redirects=False)
        assert resp.headers["location"] == "/profile"

    def test_returning_github_user_is_not_duplicated(self, client: TestClient, github: MagicMock, user_store: UserStore) -> None:
        github_id = unique_name("gh")
        _github_profile(github, github_id, f"{github_id}@example.com")
        client.get("/api/auth/callback/github", follow_redirects=False)
        first = user_store.get_by_oauth("github", github_id)

        client.cookies.clear()
        client.get("/api/auth/callback/github", follow_redirects=False)
        assert user_store.get_by_oauth("github", github_id).id == first.id
        assert len(user_store.get_user_role_links(first.id)) == 1

    def test_email_taken_by_local_account(self, client: TestClient, github: MagicMock, user_store: UserStore) -> None:
        email = f"{unique_name('taken')}@example.com"
        local_id = register(user_store, unique_name("local"), PASSWORD).id
        user_store.update_profile(local_id, email=email)
        _github_profile(github, unique_name("gh"), email)

        resp = client.get("/api/auth/callback/github", follow_redirects=False)
        assert resp.headers["location"] == "/?error=oauth_account_not_linked"
        assert SESSION_COOKIE not in resp.cookies

    def test_token_exchange_failure(self, client: TestClient, github: MagicMock) -> None:
        github.authorize_access_token = AsyncMock(side_effect=OAuthError(error="mismatching_state"))
        resp = client.get("/api/auth/callback/github", follow_redirects=False)
        assert resp.status_code == 302
        assert resp.headers["location"] == "/?error=oauth_failed"
