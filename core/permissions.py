"""
core/permissions.py -- Role names and the role x permission table.

Pure data plus one pure function. No I/O, no framework imports: the auth
service loads a user's role names from the store and hands them here.

Layer rule: core/ is the kernel. No imports from api/, web/, or auth/.
"""

from __future__ import annotations

from collections.abc import Iterable


class Role:
    EMPEROR = "emperor"
    KNIGHT = "knight"
    CIVILIAN = "civilian"


class Permission:
    MANAGE_EMAIL = "manage_email"
    MANAGE_WEBHOOK = "manage_webhook"
    PROMOTE_USER = "promote_user"
    MANAGE_CONFIG = "manage_config"


ALL_ROLES: tuple[str, ...] = (Role.EMPEROR, Role.KNIGHT, Role.CIVILIAN)
ALL_PERMISSIONS: tuple[str, ...] = (
    Permission.MANAGE_EMAIL,
    Permission.MANAGE_WEBHOOK,
    Permission.PROMOTE_USER,
    Permission.MANAGE_CONFIG,
)

# Roles that can be handed out through the promote endpoint or used as the
# site default. The owner role is only granted from the CLI.
ASSIGNABLE_ROLES: tuple[str, ...] = (Role.KNIGHT, Role.CIVILIAN)

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    Role.EMPEROR: frozenset(ALL_PERMISSIONS),
    Role.KNIGHT: frozenset({Permission.MANAGE_EMAIL, Permission.MANAGE_WEBHOOK}),
    Role.CIVILIAN: frozenset(),
}


def has_permission(roles: Iterable[str], permission: str) -> bool:
    """Return True if any of the given role names grants the permission.

    Unknown role names grant nothing.
    """
    return any(permission in ROLE_PERMISSIONS.get(role, frozenset()) for role in roles)
