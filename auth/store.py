"""
auth/store.py -- SQLAlchemy Core persistence layer for credentials.

Pattern: Repository + Data Mapper. SqlCredentialStore is the repository;
_row_to_account is the mapper. Service code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Only sha256 hashes of verification tokens are stored.

Transactions (unit of work):
  Every multi-step operation runs inside _transaction(), which wraps
  engine.begin(): commit on normal exit, rollback on any exception.
  OperationalError and pool TimeoutError are re-raised as
  TransientStorageError once the rollback has happened, so a timeout never
  leaves a partial commit behind.

Isolation level (sweep vs. consume):
  SQLite -- pysqlite's own BEGIN handling is disabled and every transaction
      starts with BEGIN IMMEDIATE, which takes the database write lock up
      front. Transactions are therefore fully serialized: a sweep either sees
      an account before its consume commits (and the consume then finds no
      token row) or after (and the account is verified with no token row).
  Other engines -- created with isolation_level="SERIALIZABLE". consume and
      sweep additionally lock the token row with SELECT ... FOR UPDATE. The
      token DELETE repeats the expiry predicate and the account DELETE
      repeats verified_email = false and requires that no token is left.
  A serialization failure surfaces as OperationalError and is reported as
  TransientStorageError; retry policy belongs to the caller.

Constraints:
  accounts.email UNIQUE is the authoritative backstop against two concurrent
  registrations both passing the existence check. verification_tokens has a
  UNIQUE account_id (one usable token per account) and ON DELETE CASCADE.

DB path: auth/agbilling_auth.db unless a URL is supplied.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    MetaData,
    String,
    Table,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from auth.errors import TransientStorageError
from auth.models import Account, PendingToken

logger = logging.getLogger("agbilling.auth.store")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'agbilling_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("uuid", String(36), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", LargeBinary, nullable=False),
    Column("password_salt", LargeBinary, nullable=False),
    Column("password_algorithm", String(50), nullable=False),
    Column("verified_email", Boolean, nullable=False, default=False),
    Column("active", Boolean, nullable=False, default=True),
    Column("created_at", DateTime, nullable=False),
)

_tokens = Table(
    "verification_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "account_id",
        Integer,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    ),
    Column("token_hash", String(64), nullable=False),  # sha256 hex
    Column("expires_at", DateTime, nullable=False),
)


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Per-connection SQLite setup.

    isolation_level = None stops pysqlite from emitting its own deferred
    BEGIN; _begin_immediate() takes over. WAL lets readers proceed during a
    write. foreign_keys enables ON DELETE CASCADE. PRAGMAs are not inherited
    by new pool connections, hence per-connection.
    """
    dbapi_conn.isolation_level = None
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _begin_immediate(conn: Connection) -> None:
    conn.exec_driver_sql("BEGIN IMMEDIATE")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_db(value: datetime) -> datetime:
    """Store naive UTC -- SQLite drops tzinfo, so be explicit everywhere."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SqlCredentialStore:
    """SQL implementation of auth.interfaces.CredentialStore.

    Usage:
        store = SqlCredentialStore()                                 # SQLite default
        store = SqlCredentialStore("postgresql+psycopg://u:pw@host/db")
        account = store.create_account_with_verification_token(...)
        store.close()

    clock is injectable so tests can move time past token expiry.
    """

    def __init__(
        self,
        db_url: str = _DEFAULT_DB_URL,
        timeout: float = 10.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._clock = clock
        self.is_sqlite = db_url.startswith("sqlite")
        if self.is_sqlite:
            self.engine: Engine = create_engine(
                db_url,
                connect_args={"check_same_thread": False, "timeout": timeout},
            )
            event.listen(self.engine, "connect", _configure_sqlite)
            event.listen(self.engine, "begin", _begin_immediate)
        else:
            self.engine = create_engine(
                db_url,
                isolation_level="SERIALIZABLE",
                pool_timeout=timeout,
                pool_pre_ping=True,
            )
        _metadata.create_all(self.engine)

    @contextmanager
    def _transaction(self) -> Iterator[Connection]:
        """One unit of work: begin, commit on success, roll back on any exception."""
        try:
            with self.engine.begin() as conn:
                yield conn
        except (OperationalError, PoolTimeoutError) as exc:
            logger.warning("Credential store unavailable, transaction rolled back: %s", exc)
            raise TransientStorageError("Credential store is temporarily unavailable.") from exc

    def _now(self) -> datetime:
        return _to_db(self._clock())

    # ------------------------------------------------------------------
    # Account queries
    # ------------------------------------------------------------------

    def email_exists(self, email: str) -> bool:
        with self._transaction() as conn:
            count = conn.execute(select(func.count()).select_from(_accounts).where(_accounts.c.email == email)).scalar()
        return (count or 0) > 0

    def create_account_with_verification_token(
        self,
        email: str,
        password_hash: bytes,
        password_salt: bytes,
        algorithm_id: str,
        token_hash: str,
        expires_at: datetime,
    ) -> Account | None:
        """Check, insert account, insert token -- one transaction.

        The existence check is a fast path. Two registrations racing past it
        are stopped by the UNIQUE(email) constraint; the IntegrityError is
        caught outside the transaction block, after engine.begin() has rolled
        everything back, so no orphan token row can survive.
        """
        account_uuid = str(uuid.uuid4())
        created_at = self._now()
        try:
            with self._transaction() as conn:
                existing = conn.execute(select(_accounts.c.id).where(_accounts.c.email == email)).first()
                if existing is not None:
                    return None
                result = conn.execute(
                    _accounts.insert().values(
                        uuid=account_uuid,
                        email=email,
                        password_hash=password_hash,
                        password_salt=password_salt,
                        password_algorithm=algorithm_id,
                        verified_email=False,
                        active=True,
                        created_at=created_at,
                    )
                )
                account_id = result.inserted_primary_key[0]
                conn.execute(
                    _tokens.insert().values(
                        account_id=account_id,
                        token_hash=token_hash,
                        expires_at=_to_db(expires_at),
                    )
                )
        except IntegrityError:
            logger.info("Concurrent registration lost the email uniqueness race")
            return None
        return Account(
            id=account_id,
            uuid=account_uuid,
            email=email,
            password_hash=password_hash,
            password_salt=password_salt,
            password_algorithm=algorithm_id,
            verified_email=False,
            active=True,
            created_at=_from_db(created_at),
        )

    def get_credentials_by_email(self, email: str) -> Account | None:
        with self._transaction() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == email)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_account_by_uuid(self, account_uuid: str) -> Account | None:
        with self._transaction() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.uuid == account_uuid)).fetchone()
        return _row_to_account(row) if row is not None else None

    # ------------------------------------------------------------------
    # Verification tokens
    # ------------------------------------------------------------------

    def consume_verification_token(self, account_uuid: str, token_hash: str) -> bool:
        now = self._now()
        with self._transaction() as conn:
            row = conn.execute(
                select(_accounts.c.id)
                .select_from(_accounts.join(_tokens, _tokens.c.account_id == _accounts.c.id))
                .where(
                    (_accounts.c.uuid == account_uuid)
                    & (_tokens.c.token_hash == token_hash)
                    & (_tokens.c.expires_at > now)
                )
                .with_for_update()
            ).first()
            if row is None:
                return False
            conn.execute(_accounts.update().where(_accounts.c.id == row.id).values(verified_email=True))
            conn.execute(_tokens.delete().where(_tokens.c.account_id == row.id))
        return True

    def get_pending_token_for_resend(self, email: str) -> PendingToken | None:
        with self._transaction() as conn:
            row = conn.execute(
                select(_accounts.c.id, _accounts.c.uuid, _accounts.c.email, _tokens.c.expires_at)
                .select_from(_accounts.join(_tokens, _tokens.c.account_id == _accounts.c.id))
                .where((_accounts.c.email == email) & (_accounts.c.verified_email.is_(False)))
            ).first()
        if row is None:
            return None
        return PendingToken(
            account_id=row.id,
            account_uuid=row.uuid,
            email=row.email,
            expires_at=_from_db(row.expires_at),
        )

    def replace_verification_token(self, email: str, token_hash: str, expires_at: datetime) -> bool:
        """Portable upsert: delete the account's token row, insert the new one."""
        with self._transaction() as conn:
            row = conn.execute(
                select(_accounts.c.id)
                .where((_accounts.c.email == email) & (_accounts.c.verified_email.is_(False)))
                .with_for_update()
            ).first()
            if row is None:
                return False
            conn.execute(_tokens.delete().where(_tokens.c.account_id == row.id))
            conn.execute(
                _tokens.insert().values(
                    account_id=row.id,
                    token_hash=token_hash,
                    expires_at=_to_db(expires_at),
                )
            )
        return True

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    def sweep_expired_unverified(self) -> int:
        """Delete unverified accounts with an expired token, tokens first.

        Both DELETEs repeat the selection predicate, so an account verified
        or reissued between the SELECT and the DELETE (only possible on
        engines without BEGIN IMMEDIATE) keeps its row.
        """
        now = self._now()
        with self._transaction() as conn:
            ids = (
                conn.execute(
                    select(_accounts.c.id)
                    .select_from(_accounts.join(_tokens, _tokens.c.account_id == _accounts.c.id))
                    .where((_accounts.c.verified_email.is_(False)) & (_tokens.c.expires_at < now))
                    .with_for_update()
                )
                .scalars()
                .all()
            )
            if not ids:
                return 0
            conn.execute(_tokens.delete().where(_tokens.c.account_id.in_(ids) & (_tokens.c.expires_at < now)))
            # A token still present at this point was reissued after the
            # SELECT; that account is no longer stale.
            live_token = select(_tokens.c.id).where(_tokens.c.account_id == _accounts.c.id).exists()
            result = conn.execute(
                _accounts.delete().where(
                    _accounts.c.id.in_(ids) & (_accounts.c.verified_email.is_(False)) & ~live_token
                )
            )
        return result.rowcount

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Liveness check for the health endpoint.

        Runs on the raw DB-API connection, outside any SQLAlchemy
        transaction, so the BEGIN IMMEDIATE listener never fires. On SQLite
        (autocommit, WAL) a writer holding the lock does not stall it.
        """
        try:
            raw = self.engine.raw_connection()
        except (OperationalError, PoolTimeoutError):
            return False
        try:
            cursor = raw.cursor()
            try:
                cursor.execute("SELECT 1")
                cursor.fetchone()
            finally:
                cursor.close()
            return True
        except self.engine.dialect.loaded_dbapi.Error:
            return False
        finally:
            raw.close()

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        uuid=row.uuid,
        email=row.email,
        password_hash=bytes(row.password_hash),
        password_salt=bytes(row.password_salt),
        password_algorithm=row.password_algorithm,
        verified_email=bool(row.verified_email),
        active=bool(row.active),
        created_at=_from_db(row.created_at),
    )
