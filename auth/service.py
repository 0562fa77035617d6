"""
auth/service.py -- Registration, credential sign-in, role assignment and
session enrichment.

This module is the auth configuration of MoeMail: the API and web layers
call these functions and never sequence store operations themselves.

Role lifecycle:
  1. A user signs in (credentials or GitHub). on_sign_in() runs afterwards.
  2. If the user has no role link yet, the site default role is found (or
     created) and linked. Failures are logged and swallowed so sign-in is
     never blocked by role bookkeeping.
  3. Every session read goes through build_session(), which repeats step 2
     inline when a user still has no role (first sign-in raced or failed),
     so a session never reaches the client with an empty role list.

Each function is a plain sequence of store calls; there are no transactions
spanning statements. Two concurrent first sign-ins can both try to create
the default role; the UNIQUE(name) constraint rejects one of them and
find_or_create_role() re-reads the winner.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from auth.errors import (
    CredentialsValidationError,
    InvalidCredentialsError,
    InvalidRoleError,
    OAuthSignInError,
    RegistrationDisabledError,
    UsernameExistsError,
    UserNotFoundError,
)
from auth.models import Account, Role, Session, SessionUser, User
from auth.store import UserStore
from auth.tokens import DUMMY_HASH, hash_password, verify_password
from auth.validation import validate_credentials
from core.config import get_settings
from core.messages import t
from core.permissions import ALL_ROLES, ASSIGNABLE_ROLES, Role as RoleName, has_permission

logger = logging.getLogger("moeauth.auth.service")

DEFAULT_ROLE_KEY = "DEFAULT_ROLE"


# ---------------------------------------------------------------------------
# Registration and credential sign-in
# ---------------------------------------------------------------------------


def register(store: UserStore, username: str, password: str, self_service: bool = True) -> User:
    """Create a local account and return it.

    self_service is False for accounts created by an administrator (the
    CLI); those are allowed even when self-registration is closed.

    Raises:
        CredentialsValidationError: input fails the credential schema.
        RegistrationDisabledError: SELF_REGISTRATION_ENABLED is false.
        UsernameExistsError: the username is taken.
    """
    creds = validate_credentials(username, password)

    if self_service and not get_settings().self_registration_enabled:
        raise RegistrationDisabledError()

    if store.get_by_username(creds.username) is not None:
        raise UsernameExistsError()

    new_user = User(username=creds.username, hashed_password=hash_password(creds.password))
    try:
        user_id = store.create_user(new_user)
    except IntegrityError as exc:
        # Another request registered the same name between the check and the insert.
        raise UsernameExistsError() from exc

    logger.info("Registered user %r (id=%d)", creds.username, user_id)
    return replace(new_user, id=user_id)


def authorize_credentials(store: UserStore, username: str, password: str) -> User:
    """Check a username/password pair and return the user without its hash.

    Unknown username, OAuth-only account and wrong password all raise the
    same InvalidCredentialsError. bcrypt runs in every branch so timing does
    not reveal which usernames exist.
    """
    try:
        creds = validate_credentials(username, password)
    except CredentialsValidationError as exc:
        verify_password(password or "", DUMMY_HASH)
        raise InvalidCredentialsError() from exc

    user = store.get_by_username(creds.username)
    if user is None or not user.hashed_password:
        verify_password(creds.password, DUMMY_HASH)
        raise InvalidCredentialsError()
    if not verify_password(creds.password, user.hashed_password):
        raise InvalidCredentialsError()

    return replace(user, hashed_password=None)


def sign_in_with_oauth(store: UserStore, provider: str, profile: dict) -> User:
    """Resolve an OAuth profile to a local user, creating one on first sign-in.

    profile is the normalized dict from auth.oauth: id, name, email, image.
    A returning identity gets its name and avatar refreshed. A new identity
    whose email already belongs to another account is refused rather than
    silently merged into it.
    """
    subject = str(profile["id"])
    user = store.get_by_oauth(provider, subject)
    if user is not None:
        changes = {
            key: profile.get(key)
            for key in ("name", "image")
            if profile.get(key) and profile.get(key) != getattr(user, key)
        }
        if changes:
            store.update_profile(user.id, **changes)
            user = replace(user, **changes)
        return user

    email = profile.get("email")
    if email and store.get_by_email(email) is not None:
        logger.warning("OAuth sign-in refused: %s identity %s uses an email owned by another account", provider, subject)
        raise OAuthSignInError("oauth_account_not_linked")

    new_user = User(
        name=profile.get("name") or profile.get("login"),
        email=email,
        image=profile.get("image"),
    )
    user_id = store.create_user(new_user)
    try:
        store.link_account(Account(user_id=user_id, provider=provider, provider_account_id=subject))
    except IntegrityError:
        # Concurrent callback for the same identity linked it first.
        linked = store.get_by_oauth(provider, subject)
        if linked is None:
            raise
        return linked

    logger.info("Created user id=%d from %s identity %s", user_id, provider, subject)
    return replace(new_user, id=user_id)


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


def get_default_role(store: UserStore) -> str:
    """Return the role new users receive: knight if configured so, else civilian."""
    configured = store.get_site_config(DEFAULT_ROLE_KEY) or get_settings().default_role
    return RoleName.KNIGHT if configured == RoleName.KNIGHT else RoleName.CIVILIAN


def set_default_role(store: UserStore, role_name: str) -> None:
    if role_name not in ASSIGNABLE_ROLES:
        raise InvalidRoleError()
    store.set_site_config(DEFAULT_ROLE_KEY, role_name)


def find_or_create_role(store: UserStore, role_name: str) -> Role:
    role = store.get_role_by_name(role_name)
    if role is not None:
        return role
    try:
        return store.create_role(Role(name=role_name, description=t(f"role_{role_name}")))
    except IntegrityError:
        existing = store.get_role_by_name(role_name)
        if existing is None:
            raise
        return existing


def assign_role_to_user(store: UserStore, user_id: int, role_id: int) -> None:
    """Make role_id the user's only role."""
    store.delete_user_roles(user_id)
    store.insert_user_role(user_id, role_id)


def _assign_default_role(store: UserStore, user_id: int) -> Role:
    role = find_or_create_role(store, get_default_role(store))
    assign_role_to_user(store, user_id, role.id)
    logger.info("Assigned default role %r to user id=%d", role.name, user_id)
    return role


def on_sign_in(store: UserStore, user: User) -> None:
    """Sign-in event: give a first-time user the default role.

    Does nothing for users that already hold a role, so repeated sign-ins
    never duplicate role links. Errors are logged and swallowed.
    """
    if not user.id:
        return
    try:
        if store.get_user_role_links(user.id):
            return
        _assign_default_role(store, user.id)
    except Exception:
        logger.exception("Error assigning role to user id=%s", user.id)


def promote_user(store: UserStore, user_id: int, role_name: str) -> Role:
    """Replace a user's role with knight or civilian.

    The site owner's role cannot be changed this way.
    """
    if role_name not in ASSIGNABLE_ROLES:
        raise InvalidRoleError()
    if store.get_by_id(user_id) is None:
        raise UserNotFoundError()
    if RoleName.EMPEROR in get_user_role_names(store, user_id):
        raise InvalidRoleError()
    role = find_or_create_role(store, role_name)
    assign_role_to_user(store, user_id, role.id)
    logger.info("User id=%d is now %r", user_id, role_name)
    return role


def grant_role(store: UserStore, user_id: int, role_name: str) -> Role:
    """Assign any known role, including emperor. Used by the admin CLI only."""
    if role_name not in ALL_ROLES:
        raise InvalidRoleError()
    role = find_or_create_role(store, role_name)
    assign_role_to_user(store, user_id, role.id)
    return role


# ---------------------------------------------------------------------------
# Sessions and permissions
# ---------------------------------------------------------------------------


def build_session(store: UserStore, user: User, expires: datetime | None = None) -> Session:
    """Return the client-facing session for a signed-in user, with role names.

    If the user still has no role (the sign-in event failed or raced), the
    default role is assigned here before the session is returned.
    """
    roles = store.get_roles_for_user(user.id)
    if not roles:
        roles = [_assign_default_role(store, user.id)]

    return Session(
        user=SessionUser(
            id=user.id,
            username=user.username,
            name=user.name or user.username,
            email=user.email,
            image=user.image,
            roles=[{"name": r.name} for r in roles],
        ),
        expires=expires.isoformat() if expires else None,
    )


def get_user_role_names(store: UserStore, user_id: int) -> list[str]:
    return [r.name for r in store.get_roles_for_user(user_id)]


def check_permission(store: UserStore, user_id: int | None, permission: str) -> bool:
    """Return True if the user's roles grant the permission. No user -> False."""
    if not user_id:
        return False
    return has_permission(get_user_role_names(store, user_id), permission)
