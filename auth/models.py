"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services
do the work; these only own the shape.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class User:
    """A MoeMail account.

    username is None for accounts created by a GitHub sign-in; those users
    are identified by their linked Account row instead.

    hashed_password is None for OAuth-only users (they have no local password)
    and is also cleared on the copy returned by a successful credential check.
    """

    username: str | None = None
    id: int | None = None
    hashed_password: str | None = None  # None = OAuth-only user
    email: str | None = None
    name: str | None = None
    image: str | None = None
    created_at: str | None = None


@dataclass
class Account:
    """An OAuth identity linked to a user (one row per provider identity)."""

    user_id: int
    provider: str  # "github"
    provider_account_id: str  # provider's stable user ID
    id: int | None = None


@dataclass
class Role:
    name: str  # "emperor", "knight", "civilian"
    description: str | None = None
    id: int | None = None
    created_at: str | None = None


@dataclass
class UserRole:
    """Join row between a user and a role. At most one per user."""

    user_id: int
    role_id: int
    created_at: str | None = None


@dataclass
class SessionUser:
    id: int
    username: str | None = None
    name: str | None = None
    email: str | None = None
    image: str | None = None
    roles: list[dict] = field(default_factory=list)  # [{"name": "civilian"}]

    @property
    def role_names(self) -> list[str]:
        return [r["name"] for r in self.roles]


@dataclass
class Session:
    """What the client sees after sign-in: the user plus their role names."""

    user: SessionUser
    expires: str | None = None
