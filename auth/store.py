"""
auth/store.py -- Credential stores: lookup-by-username, exists-by-username.

Pattern: Repository + Data Mapper. CredentialStore is the capability the
authentication core depends on; InMemoryCredentialStore and
SqlCredentialStore are interchangeable implementations of it. The core does
not know which one backs it.

Security:
  All SQL queries use bound parameters. No f-strings in SQL.
  Password hashes are never logged; User.__repr__ omits them.

Failure model:
  SqlCredentialStore wraps every SQLAlchemyError in StoreUnavailableError so
  callers see one infrastructure failure type. A duplicate username on insert
  is a caller error, not an outage, and raises DuplicateUsernameError.

DB path: auth/gatekeeper_auth.db by default (override with GATEKEEPER_DATABASE_URL).

Layer rule: no imports from core/ or main.py.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from sqlalchemy import Boolean, Column, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import DuplicateUsernameError, StoreUnavailableError
from auth.hierarchy import normalize_role
from auth.models import AccountStatus, User

if TYPE_CHECKING:
    from auth.passwords import PasswordHasher

logger = logging.getLogger("gatekeeper.store")

DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'gatekeeper_auth.db'}"

# ---------------------------------------------------------------------------
# Capability
# ---------------------------------------------------------------------------


class CredentialStore(Protocol):
    def get_by_username(self, username: str) -> User | None: ...

    def exists_by_username(self, username: str) -> bool: ...

    def create_user(self, user: User) -> int: ...


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


class InMemoryCredentialStore:
    """A fixed set of users held in a dict. Lives and dies with the process.

    Usage:
        store = InMemoryCredentialStore(demo_users(hasher))
        store.get_by_username("user1")
    """

    def __init__(self, users: Iterable[User] = ()) -> None:
        self._users: dict[str, User] = {}
        self._lock = threading.Lock()
        for user in users:
            self.create_user(user)

    def get_by_username(self, username: str) -> User | None:
        user = self._users.get(username)
        return replace(user) if user is not None else None

    def exists_by_username(self, username: str) -> bool:
        return username in self._users

    def create_user(self, user: User) -> int:
        """Insert user and return its assigned ID. Raises DuplicateUsernameError."""
        with self._lock:
            if user.username in self._users:
                raise DuplicateUsernameError(user.username)
            # Store a copy; the caller's object is left untouched.
            stored = replace(
                user,
                id=len(self._users) + 1,
                role=normalize_role(user.role),
                created_at=user.created_at or _now_iso(),
            )
            self._users[user.username] = stored
            return stored.id

    def set_status(self, username: str, status: AccountStatus) -> bool:
        """Replace a user's account flags. Returns False if the user does not exist."""
        with self._lock:
            user = self._users.get(username)
            if user is None:
                return False
            self._users[username] = replace(user, status=status)
            return True

    def list_users(self) -> list[User]:
        return [replace(u) for u in sorted(self._users.values(), key=lambda u: u.username)]


def demo_users(hasher: PasswordHasher) -> list[User]:
    """The stock demo accounts: user1 (ADMIN) and user2 (USER), password 1234."""
    return [
        User(username="user1", password_hash=hasher.hash("1234"), role="ADMIN"),
        User(username="user2", password_hash=hasher.hash("1234"), role="USER"),
    ]


# ---------------------------------------------------------------------------
# SQL store
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("role", String(50), nullable=False, server_default="USER"),
    Column("enabled", Boolean, nullable=False, server_default="1"),
    Column("account_expired", Boolean, nullable=False, server_default="0"),
    Column("account_locked", Boolean, nullable=False, server_default="0"),
    Column("credentials_expired", Boolean, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block behind a writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


class SqlCredentialStore:
    """Repository for User records in a SQL database (SQLite by default).

    Usage:
        store = SqlCredentialStore("sqlite:///users.db")
        store.create_user(User(username="admin", password_hash=hasher.hash("secret"), role="ADMIN"))
        user = store.get_by_username("admin")
        store.close()
    """

    def __init__(self, db_url: str = DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        engine_kwargs: dict = {}
        in_memory = db_url.startswith("sqlite") and (":memory:" in db_url or db_url.rstrip("/") == "sqlite:")
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        if in_memory:
            # A plain :memory: DB exists per connection. StaticPool hands every
            # thread the same connection so all callers see one schema.
            engine_kwargs["poolclass"] = StaticPool
        try:
            self.engine: Engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
            if db_url.startswith("sqlite") and not in_memory:
                event.listen(self.engine, "connect", _set_wal_mode)
            _metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            logger.error("Credential store initialization failed: %s", type(e).__name__)
            raise StoreUnavailableError("credential store unavailable") from e

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        try:
            with self.engine.connect() as conn:
                row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        except SQLAlchemyError as e:
            logger.error("User lookup failed: %s", type(e).__name__)
            raise StoreUnavailableError("credential store unavailable") from e
        return _row_to_user(row) if row is not None else None

    def exists_by_username(self, username: str) -> bool:
        try:
            with self.engine.connect() as conn:
                found = conn.execute(select(_users.c.id).where(_users.c.username == username)).first()
        except SQLAlchemyError as e:
            logger.error("User existence check failed: %s", type(e).__name__)
            raise StoreUnavailableError("credential store unavailable") from e
        return found is not None

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises DuplicateUsernameError if the username is taken. The UNIQUE
        constraint settles races between concurrent registrations.
        """
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _users.insert().values(
                        username=user.username,
                        password_hash=user.password_hash,
                        role=normalize_role(user.role),
                        enabled=user.status.enabled,
                        account_expired=user.status.account_expired,
                        account_locked=user.status.account_locked,
                        credentials_expired=user.status.credentials_expired,
                        created_at=user.created_at or _now_iso(),
                    )
                )
                conn.commit()
        except IntegrityError as e:
            raise DuplicateUsernameError(user.username) from e
        except SQLAlchemyError as e:
            logger.error("User insert failed: %s", type(e).__name__)
            raise StoreUnavailableError("credential store unavailable") from e
        return result.inserted_primary_key[0]

    def set_status(self, username: str, status: AccountStatus) -> bool:
        """Replace a user's account flags. Returns False if the user does not exist."""
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _users.update()
                    .where(_users.c.username == username)
                    .values(
                        enabled=status.enabled,
                        account_expired=status.account_expired,
                        account_locked=status.account_locked,
                        credentials_expired=status.credentials_expired,
                    )
                )
                conn.commit()
        except SQLAlchemyError as e:
            logger.error("User status update failed: %s", type(e).__name__)
            raise StoreUnavailableError("credential store unavailable") from e
        return result.rowcount > 0

    def list_users(self) -> list[User]:
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(_users.select().order_by(_users.c.username)).fetchall()
        except SQLAlchemyError as e:
            logger.error("User listing failed: %s", type(e).__name__)
            raise StoreUnavailableError("credential store unavailable") from e
        return [_row_to_user(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        password_hash=row.password_hash,
        role=row.role,
        status=AccountStatus(
            enabled=bool(row.enabled),
            account_expired=bool(row.account_expired),
            account_locked=bool(row.account_locked),
            credentials_expired=bool(row.credentials_expired),
        ),
        created_at=row.created_at,
    )
