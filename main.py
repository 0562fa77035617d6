#!/usr/bin/env python3
"""
MoeAuth admin CLI -- account and role maintenance without the web UI.

Usage:
  python main.py create-user alice s3cretpass
  python main.py create-user owner s3cretpass --role emperor
  python main.py set-default-role knight
  python main.py promote alice knight
  python main.py roles alice
  python main.py users

Reads DATABASE_URL / SECRET_KEY from the environment or .env like the server.
The emperor (site owner) role can only be granted from here.
"""

import argparse
import sys

from auth.errors import AuthError
from auth.service import get_default_role, get_user_role_names, grant_role, on_sign_in, register, set_default_role
from auth.store import UserStore
from core.config import get_settings
from core.messages import t
from core.permissions import ALL_ROLES, ASSIGNABLE_ROLES


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="moeauth", description="MoeAuth account administration.")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Register a local account")
    create.add_argument("username")
    create.add_argument("password")
    create.add_argument("--role", choices=ALL_ROLES, default=None, help="Role to assign (default: site default)")

    default = sub.add_parser("set-default-role", help="Role given to new users on first sign-in")
    default.add_argument("role", choices=ASSIGNABLE_ROLES)

    promote = sub.add_parser("promote", help="Set a user's role")
    promote.add_argument("username")
    promote.add_argument("role", choices=ALL_ROLES)

    roles = sub.add_parser("roles", help="Show a user's roles")
    roles.add_argument("username")

    sub.add_parser("users", help="List accounts with their roles")

    return parser


def _run(args: argparse.Namespace, store: UserStore) -> int:
    if args.command == "create-user":
        user = register(store, args.username, args.password, self_service=False)
        if args.role:
            grant_role(store, user.id, args.role)
        else:
            on_sign_in(store, user)
        print(f"Created user '{user.username}' (id={user.id}) with roles {get_user_role_names(store, user.id)}.")
        return 0

    if args.command == "set-default-role":
        set_default_role(store, args.role)
        print(f"Default role is now '{get_default_role(store)}'.")
        return 0

    if args.command == "users":
        for user in store.list_users():
            label = user.username or f"{user.name or '?'} (oauth)"
            roles = ", ".join(get_user_role_names(store, user.id)) or "-"
            print(f"{user.id:>5}  {label:<30} {roles}")
        return 0

    user = store.get_by_username(args.username)
    if user is None:
        print(t("user_not_found"), file=sys.stderr)
        return 1

    if args.command == "promote":
        grant_role(store, user.id, args.role)
        print(f"User '{user.username}' is now '{args.role}'.")
        return 0

    print(", ".join(get_user_role_names(store, user.id)) or "(none)")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    store = UserStore(get_settings().database_url)
    try:
        return _run(args, store)
    except AuthError as exc:
        print(exc.message, file=sys.stderr)
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
