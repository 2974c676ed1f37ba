"""
auth/store.py -- SQLAlchemy Core persistence layer for local accounts.

Pattern: Repository + Data Mapper.
AccountStore is the repository; _row_to_account is the mapper. Service and
route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Invariants enforced in SQL:
  accounts.username  UNIQUE
  accounts.email     UNIQUE (NULL allowed; SQLite treats NULLs as distinct)
  accounts.member_id UNIQUE (NULL for local-only accounts)

  The reconciler checks email_in_use() before changing an email so the
  common conflict is skipped with a warning instead of failing the save.
  The UNIQUE constraint remains the backstop for the read-then-write race.

Roles live in account_roles (one row per role). save_account() writes the
account row and its full role set in a single transaction, so a failed save
leaves neither half behind.

DB path: auth/oasisbridge_auth.db by default.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Connection, Engine

from auth.models import LocalAccount

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'oasisbridge_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(255), unique=True),
    Column("hashed_password", Text),
    Column("first_name", String(255), nullable=False, server_default=""),
    Column("last_name", String(255), nullable=False, server_default=""),
    Column("member_id", String(64), unique=True),  # registry MemberID, NULL for local accounts
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("last_login", Text),
)

_account_roles = Table(
    "account_roles",
    _metadata,
    Column("account_id", Integer, ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True),
    Column("role", String(64), primary_key=True),
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


class AccountStore:
    """Repository for LocalAccount entities.

    Usage:
        store = AccountStore()
        account_id = store.create_account(LocalAccount(username="admin", email="admin@example.com"))
        account = store.get_by_email("admin@example.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        """Return True if at least one account exists."""
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_accounts)).scalar()
        return (result or 0) > 0

    def get_by_id(self, account_id: int) -> LocalAccount | None:
        return self._get_one(_accounts.c.id == account_id)

    def get_by_username(self, username: str) -> LocalAccount | None:
        """Look up an account by exact username (case-sensitive)."""
        return self._get_one(_accounts.c.username == username)

    def get_by_email(self, email: str) -> LocalAccount | None:
        """Look up an account by exact email address."""
        return self._get_one(_accounts.c.email == email)

    def get_by_member_id(self, member_id: str) -> LocalAccount | None:
        """Look up the account linked to a registry MemberID (exact match)."""
        if not member_id:
            return None
        return self._get_one(_accounts.c.member_id == member_id)

    def email_in_use(self, email: str, exclude_id: int | None = None) -> bool:
        """Return True if another account (not exclude_id) already owns email."""
        query = select(_accounts.c.id).where(_accounts.c.email == email)
        if exclude_id is not None:
            query = query.where(_accounts.c.id != exclude_id)
        with self.engine.connect() as conn:
            row = conn.execute(query.limit(1)).first()
        return row is not None

    def _get_one(self, condition) -> LocalAccount | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(condition)).fetchone()
            if row is None:
                return None
            roles = self._load_roles(conn, row.id)
        return _row_to_account(row, roles)

    @staticmethod
    def _load_roles(conn: Connection, account_id: int) -> set[str]:
        rows = conn.execute(select(_account_roles.c.role).where(_account_roles.c.account_id == account_id))
        return {r.role for r in rows}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_account(self, account: LocalAccount) -> int:
        """Insert a new account and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError on a duplicate username, email or
        member_id.
        """
        return self.save_account(account)

    def save_account(self, account: LocalAccount) -> int:
        """Insert (id is None) or update an account together with its roles.

        One transaction: the account row and the role rows commit together or
        not at all. On insert, account.id and account.created_at are filled in.
        Roles are written as the full set held by the dataclass.

        Raises sqlalchemy.exc.SQLAlchemyError on any storage failure.
        """
        values = {
            "username": account.username,
            "email": account.email or None,
            "hashed_password": account.hashed_password,
            "first_name": account.first_name,
            "last_name": account.last_name,
            "member_id": account.member_id or None,
            "is_active": 1 if account.is_active else 0,
        }
        with self.engine.begin() as conn:
            if account.id is None:
                created_at = _now_iso()
                result = conn.execute(_accounts.insert().values(created_at=created_at, **values))
                account_id = result.inserted_primary_key[0]
            else:
                account_id = account.id
                conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(**values))
                conn.execute(_account_roles.delete().where(_account_roles.c.account_id == account_id))
                created_at = account.created_at
            if account.roles:
                conn.execute(
                    _account_roles.insert(),
                    [{"account_id": account_id, "role": role} for role in sorted(account.roles)],
                )
        account.id = account_id
        account.created_at = created_at
        return account_id

    def update_last_login(self, account_id: int) -> None:
        """Stamp the current UTC timestamp as last_login."""
        with self.engine.begin() as conn:
            conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(last_login=_now_iso()))

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row, roles: set[str]) -> LocalAccount:
    return LocalAccount(
        id=row.id,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        first_name=row.first_name or "",
        last_name=row.last_name or "",
        member_id=row.member_id,
        is_active=bool(row.is_active),
        roles=roles,
        created_at=row.created_at,
        last_login=row.last_login,
    )
