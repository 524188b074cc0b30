"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_account is the mapper. Service and route code never touches SQL.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(username) is enforced by the schema as a backstop to the
  application-level uniqueness check in AuthService.sign_up(). Two concurrent
  sign-ups for the same name can both pass the check; only one insert wins
  and the loser surfaces as DuplicateAccountError.

Availability:
  Every call is time-bounded. SQLite gets a busy timeout, network databases a
  driver connect timeout, and the pool a checkout timeout. Connectivity
  failures and timeouts surface as DependencyUnavailableError so the
  orchestrator fails hard instead of silently bypassing the account check.

Layer rule: no imports from api/ or throttle/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.pool import SingletonThreadPool

from auth.models import Account
from core.errors import DependencyUnavailableError, DuplicateAccountError

logger = logging.getLogger("gatehouse.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(100), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine helpers
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _connect_args(db_url: str, timeout: float) -> dict:
    if db_url.startswith("sqlite"):
        # check_same_thread: FastAPI runs sync handlers on a thread pool.
        return {"check_same_thread": False, "timeout": timeout}
    if db_url.startswith(("postgresql", "mysql")):
        return {"connect_timeout": max(1, int(timeout))}
    return {}


def _is_sqlite_memory(db_url: str) -> bool:
    return db_url.startswith("sqlite") and (
        db_url in ("sqlite://", "sqlite:///") or ":memory:" in db_url or "mode=memory" in db_url
    )


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account entities.

    Usage:
        store = AccountStore("sqlite:///accounts.db")
        account = store.insert("alice", hasher.hash("hunter22"))
        store.find_by_username("alice")
        store.close()
    """

    def __init__(self, db_url: str, timeout: float = 5.0) -> None:
        engine_kwargs: dict = {"connect_args": _connect_args(db_url, timeout)}
        if _is_sqlite_memory(db_url):
            # One connection per thread keeps a named shared-cache database alive.
            engine_kwargs["poolclass"] = SingletonThreadPool
        elif not db_url.startswith("sqlite"):
            engine_kwargs["pool_timeout"] = timeout
            engine_kwargs["pool_pre_ping"] = True
        self.engine: Engine = create_engine(db_url, **engine_kwargs)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    @contextmanager
    def _unavailable_on_failure(self, operation: str) -> Iterator[None]:
        """Translate connectivity failures into DependencyUnavailableError."""
        try:
            yield
        except (OperationalError, InterfaceError, PoolTimeoutError) as exc:
            logger.error("Account store %s failed: %s", operation, exc.__class__.__name__)
            raise DependencyUnavailableError(cause=f"account store {operation}: {exc}") from exc

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_username(self, username: str) -> Account | None:
        """Look up an account by exact username (case-sensitive). Returns None if not found."""
        with self._unavailable_on_failure("find_by_username"):
            with self.engine.connect() as conn:
                row = conn.execute(_accounts.select().where(_accounts.c.username == username)).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_id(self, account_id: int) -> Account | None:
        """Look up an account by primary key. Returns None if not found."""
        with self._unavailable_on_failure("find_by_id"):
            with self.engine.connect() as conn:
                row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def insert(self, username: str, password_hash: str) -> Account:
        """Insert a new account and return it with its assigned ID.

        Raises DuplicateAccountError if the username already exists -- the
        UNIQUE constraint is the race-safe backstop to the caller's check.
        """
        now = _now_iso()
        with self._unavailable_on_failure("insert"):
            try:
                with self.engine.begin() as conn:
                    result = conn.execute(
                        _accounts.insert().values(
                            username=username,
                            password_hash=password_hash,
                            created_at=now,
                            updated_at=now,
                        )
                    )
                    account_id = result.inserted_primary_key[0]
            except IntegrityError as exc:
                raise DuplicateAccountError(cause=f"unique constraint on username {username!r}") from exc
        return Account(
            id=account_id,
            username=username,
            password_hash=password_hash,
            created_at=now,
            updated_at=now,
        )

    def count(self) -> int:
        with self._unavailable_on_failure("count"):
            with self.engine.connect() as conn:
                result = conn.execute(text("SELECT COUNT(*) FROM accounts")).scalar()
        return result or 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except (OperationalError, InterfaceError, PoolTimeoutError):
            logger.warning("Account store health check failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        username=row.username,
        password_hash=row.password_hash,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
