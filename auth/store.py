"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user / _row_to_role are the mappers.
Route and service code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Tables:
  users       -- accounts; username is UNIQUE but nullable (GitHub-only users)
  accounts    -- OAuth identities, UNIQUE(provider, provider_account_id)
  roles       -- UNIQUE(name); rows are created lazily by the auth service
  user_roles  -- user <-> role join; the service keeps at most one row per user
  site_config -- key/value site settings (DEFAULT_ROLE)

DB path: auth/moeauth.db unless DATABASE_URL is set.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    select,
)
from sqlalchemy.engine import Engine

from auth.models import Account, Role, User, UserRole

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'moeauth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), unique=True),  # NULL for GitHub-only users
    Column("hashed_password", Text),  # NULL for OAuth-only users
    Column("email", String(255)),
    Column("name", String(255)),
    Column("image", Text),
    Column("created_at", String(32), nullable=False),
)

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("provider", String(30), nullable=False),
    Column("provider_account_id", String(255), nullable=False),
    UniqueConstraint("provider", "provider_account_id", name="uq_account_provider"),
)

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(30), nullable=False, unique=True),
    Column("description", Text),
    Column("created_at", String(32), nullable=False),
)

_user_roles = Table(
    "user_roles",
    _metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
    Column("created_at", String(32), nullable=False),
    PrimaryKeyConstraint("user_id", "role_id"),
)

_site_config = Table(
    "site_config",
    _metadata,
    Column("key", String(64), primary_key=True),
    Column("value", Text, nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for users, OAuth accounts, roles and site config.

    Usage:
        store = UserStore()
        uid = store.create_user(User(username="alice", hashed_password=hash_password("secret123")))
        role = store.get_role_by_name("civilian")
        store.close()
    """

    def __init__(self, db_url: str = "") -> None:
        db_url = db_url or _DEFAULT_DB_URL
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username already exists.
        The auth service checks first and treats IntegrityError as the
        concurrent-registration case.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    hashed_password=user.hashed_password,
                    email=user.email,
                    name=user.name,
                    image=user.image,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_oauth(self, provider: str, provider_account_id: str) -> User | None:
        """Return the user linked to an OAuth identity, or None if unlinked."""
        query = (
            select(_users)
            .select_from(_users.join(_accounts, _accounts.c.user_id == _users.c.id))
            .where((_accounts.c.provider == provider) & (_accounts.c.provider_account_id == provider_account_id))
        )
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        return _row_to_user(row) if row is not None else None

    def link_account(self, account: Account) -> int:
        """Link an OAuth identity to a user. Raises IntegrityError if already linked."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.insert().values(
                    user_id=account.user_id,
                    provider=account.provider,
                    provider_account_id=account.provider_account_id,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_accounts(self, user_id: int) -> list[Account]:
        with self.engine.connect() as conn:
            rows = conn.execute(_accounts.select().where(_accounts.c.user_id == user_id)).fetchall()
        return [
            Account(id=r.id, user_id=r.user_id, provider=r.provider, provider_account_id=r.provider_account_id)
            for r in rows
        ]

    def update_profile(self, user_id: int, **fields) -> bool:
        """Update name / email / image. Returns True if a row was updated."""
        allowed = {k: v for k, v in fields.items() if k in ("name", "email", "image")}
        if not allowed:
            return False
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**allowed))
            conn.commit()
        return result.rowcount > 0

    def list_users(self) -> list[User]:
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def get_role_by_name(self, name: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.name == name)).fetchone()
        return _row_to_role(row) if row is not None else None

    def create_role(self, role: Role) -> Role:
        """Insert a role row and return it with id and created_at filled in.

        Raises IntegrityError if a role with the same name already exists.
        """
        created_at = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _roles.insert().values(name=role.name, description=role.description, created_at=created_at)
            )
            conn.commit()
            role_id = result.inserted_primary_key[0]
        return Role(id=role_id, name=role.name, description=role.description, created_at=created_at)

    def get_user_role_links(self, user_id: int) -> list[UserRole]:
        with self.engine.connect() as conn:
            rows = conn.execute(_user_roles.select().where(_user_roles.c.user_id == user_id)).fetchall()
        return [UserRole(user_id=r.user_id, role_id=r.role_id, created_at=r.created_at) for r in rows]

    def get_roles_for_user(self, user_id: int) -> list[Role]:
        """Return the role rows linked to a user (through user_roles)."""
        query = (
            select(_roles)
            .select_from(_roles.join(_user_roles, _user_roles.c.role_id == _roles.c.id))
            .where(_user_roles.c.user_id == user_id)
            .order_by(_roles.c.id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_role(r) for r in rows]

    def delete_user_roles(self, user_id: int) -> int:
        """Remove every role link for a user. Returns the number of rows deleted."""
        with self.engine.connect() as conn:
            result = conn.execute(_user_roles.delete().where(_user_roles.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def insert_user_role(self, user_id: int, role_id: int) -> None:
        with self.engine.connect() as conn:
            conn.execute(_user_roles.insert().values(user_id=user_id, role_id=role_id, created_at=_now_iso()))
            conn.commit()

    # ------------------------------------------------------------------
    # Site config
    # ------------------------------------------------------------------

    def get_site_config(self, key: str) -> str | None:
        with self.engine.connect() as conn:
            row = conn.execute(select(_site_config.c.value).where(_site_config.c.key == key)).fetchone()
        return row[0] if row is not None else None

    def set_site_config(self, key: str, value: str) -> None:
        """Upsert a site config value (update first, insert when no row matched)."""
        with self.engine.connect() as conn:
            result = conn.execute(_site_config.update().where(_site_config.c.key == key).values(value=value))
            if result.rowcount == 0:
                conn.execute(_site_config.insert().values(key=key, value=value))
            conn.commit()

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        hashed_password=row.hashed_password,
        email=row.email,
        name=row.name,
        image=row.image,
        created_at=row.created_at,
    )


def _row_to_role(row) -> Role:
    return Role(
        id=row.id,
        name=row.name,
        description=row.description,
        created_at=row.created_at,
    )
