"""
auth/oauth.py -- Authlib OAuth provider configuration (GitHub).

Reads configuration from core.config.get_settings() at module load. GitHub
is registered only when both client ID and secret are configured; the login
page renders the GitHub button based on get_enabled_providers().

OAuth state parameter (CSRF protection) is handled by authlib automatically
via Starlette SessionMiddleware. The session stores the state between the
authorization redirect and the callback.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuth

from core.config import get_settings

logger = logging.getLogger("moeauth.auth.oauth")

# ---------------------------------------------------------------------------
# Authlib OAuth registry
# ---------------------------------------------------------------------------

oauth = OAuth()

_cfg = get_settings()

# GitHub -- static endpoints (no OIDC discovery document)
if _cfg.github_enabled:
    oauth.register(
        name="github",
        client_id=_cfg.github_client_id,
        client_secret=_cfg.github_client_secret,
        access_token_url="https://github.com/login/oauth/access_token",  # noqa: S106 -- URL, not a password
        authorize_url="https://github.com/login/oauth/authorize",
        api_base_url="https://api.github.com/",
        client_kwargs={"scope": "read:user user:email"},
    )
    logger.info("GitHub OAuth provider registered")


# ---------------------------------------------------------------------------
# Provider metadata
# ---------------------------------------------------------------------------


def get_enabled_providers() -> list[dict]:
    """Return {"id", "name"} for every sign-in method currently available.

    The credentials provider is always available; GitHub only when its
    client ID and secret are configured.
    """
    providers = [{"id": "credentials", "name": "Credentials"}]
    if get_settings().github_enabled:
        providers.append({"id": "github", "name": "GitHub"})
    return providers


def is_oauth_provider_enabled(provider: str) -> bool:
    return provider != "credentials" and provider in {p["id"] for p in get_enabled_providers()}


# ---------------------------------------------------------------------------
# Profile extraction
# ---------------------------------------------------------------------------


async def get_github_profile(client, token: dict) -> dict:
    """Return a normalized GitHub profile: id, login, name, email, image.

    GitHub leaves the profile email empty when the user keeps it private.
    In that case the primary verified address from /user/emails is used;
    the profile is still returned (email None) when there is none, since
    a MoeMail account does not need an email.
    """
    resp = await client.get("user", token=token)
    resp.raise_for_status()
    profile = resp.json()

    email = profile.get("email")
    if not email:
        emails_resp = await client.get("user/emails", token=token)
        emails_resp.raise_for_status()
        for entry in emails_resp.json():
            if entry.get("primary") and entry.get("verified"):
                email = entry["email"]
                break

    return {
        "id": str(profile["id"]),
        "login": profile.get("login"),
        "name": profile.get("name") or profile.get("login"),
        "email": email,
        "image": profile.get("avatar_url"),
    }
