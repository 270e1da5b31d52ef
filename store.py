"""SQLite-backed credential store.

Durable storage for users and sessions in a single embedded database
file, accessed through aiosqlite so that storage I/O never blocks the
event loop.  The connection runs in autocommit mode: every write is one
atomic statement, persisted before the coroutine returns.  Uniqueness of
emails, usernames and session tokens is enforced by the schema, and every
record is checked against the contract rules before it is written.
"""
from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from contract import ValidationReport, validate_session, validate_user
from errors import (
    DuplicateEmailError,
    DuplicateUsernameError,
    RecordValidationError,
    StorageConflictError,
    StorageError,
)
from logger import logger
from models import Session, User, UserPublic, _utcnow

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT UNIQUE NOT NULL,
    email TEXT UNIQUE NOT NULL,
    password_hash TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    session_token TEXT UNIQUE NOT NULL,
    created_at TEXT NOT NULL,
    expires_at TEXT NOT NULL,
    FOREIGN KEY (user_id) REFERENCES users(id)
);

CREATE INDEX IF NOT EXISTS idx_sessions_expires_at ON sessions(expires_at);
"""

_MEMORY = ":memory:"
_UNBINDABLE = "unsupported parameter value"


# ---------------------------------------------------------------------------
# Timestamp encoding
# ---------------------------------------------------------------------------

def _to_db(value: datetime) -> str:
    # Fixed-width UTC text so that SQL string comparison orders correctly.
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_db(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _cause(exc: Exception) -> str:
    text = str(exc).splitlines()[0] if str(exc) else type(exc).__name__
    return text[:120]


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    """Translate driver errors into ``StorageError``."""
    try:
        yield
    except aiosqlite.IntegrityError as exc:
        logger.warning(f"store.{operation}: constraint violated ({exc})")
        raise StorageConflictError(operation, _cause(exc)) from exc
    except aiosqlite.Error as exc:
        logger.opt(exception=exc).error(f"store.{operation}: database error")
        raise StorageError(operation, _cause(exc)) from exc
    except (OverflowError, UnicodeEncodeError) as exc:
        # Values sqlite3 cannot bind: oversized ints, lone surrogates
        logger.warning(f"store.{operation}: unbindable parameter ({type(exc).__name__})")
        raise StorageError(operation, _UNBINDABLE) from exc


def _duplicate_from(exc: aiosqlite.IntegrityError, username: str, email: str) -> Exception:
    text = str(exc)
    if "users.email" in text:
        return DuplicateEmailError(email)
    if "users.username" in text:
        return DuplicateUsernameError(username)
    return StorageConflictError("create_user", _cause(exc))


# ---------------------------------------------------------------------------
# Credential store
# ---------------------------------------------------------------------------

class CredentialStore:
    """Users and sessions in one SQLite database.

    Construct with a file path (or ``":memory:"``), then ``await init()``
    before use and ``await close()`` on shutdown.  Also usable as an async
    context manager.
    """

    def __init__(self, db_path: str = _MEMORY) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._db is not None

    # -- lifecycle ----------------------------------------------------------

    async def init(self) -> None:
        """Open the connection and ensure the schema exists."""
        if self._db is not None:
            return
        if self._db_path != _MEMORY:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        with _storage_errors("init"):
            db = await aiosqlite.connect(self._db_path, isolation_level=None)
            try:
                db.row_factory = aiosqlite.Row
                await db.execute("PRAGMA foreign_keys = ON")
                await db.executescript(_SCHEMA)
            except aiosqlite.Error:
                await db.close()
                raise
        self._db = db
        logger.info(f"store.init: schema ensured at {self._db_path}")

    async def close(self) -> None:
        if self._db is None:
            return
        db, self._db = self._db, None
        await db.close()
        logger.info("store.close: connection closed")

    async def __aenter__(self) -> "CredentialStore":
        await self.init()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # -- helpers ------------------------------------------------------------

    def _conn(self, operation: str) -> aiosqlite.Connection:
        if self._db is None:
            raise StorageError(operation, "store is not initialized")
        return self._db

    def _validate_or_raise(self, report: ValidationReport) -> None:
        if not report.passed:
            raise RecordValidationError(report)

    async def _fetch_one(
        self, operation: str, sql: str, params: tuple
    ) -> aiosqlite.Row | None:
        db = self._conn(operation)
        with _storage_errors(operation):
            async with db.execute(sql, params) as cursor:
                return await cursor.fetchone()

    async def _count(self, operation: str, sql: str) -> int:
        row = await self._fetch_one(operation, sql, ())
        return int(row[0]) if row else 0

    # -- users --------------------------------------------------------------

    async def create_user(
        self, username: str, email: str, password_hash: str
    ) -> int:
        """Insert a user and return its id.

        Duplicates are detected before the insert for a precise error; a
        concurrent insert that slips past the check is caught by the
        UNIQUE constraints and mapped to the same errors.
        """
        user = User(
            username=username,
            email=email,
            password_hash=password_hash,
            created_at=_utcnow(),
        )
        self._validate_or_raise(validate_user(user))

        if await self._fetch_one(
            "create_user", "SELECT id FROM users WHERE email = ?", (email,)
        ):
            raise DuplicateEmailError(email)
        if await self._fetch_one(
            "create_user", "SELECT id FROM users WHERE username = ?", (username,)
        ):
            raise DuplicateUsernameError(username)

        db = self._conn("create_user")
        try:
            cursor = await db.execute(
                "INSERT INTO users (username, email, password_hash, created_at) "
                "VALUES (?, ?, ?, ?)",
                (user.username, user.email, user.password_hash, _to_db(user.created_at)),
            )
        except aiosqlite.IntegrityError as exc:
            logger.warning(f"store.create_user: insert lost a uniqueness race ({exc})")
            raise _duplicate_from(exc, username, email) from exc
        except aiosqlite.Error as exc:
            logger.opt(exception=exc).error("store.create_user: database error")
            raise StorageError("create_user", _cause(exc)) from exc
        except (OverflowError, UnicodeEncodeError) as exc:
            raise StorageError("create_user", _UNBINDABLE) from exc

        user_id = cursor.lastrowid
        await cursor.close()
        return int(user_id)

    async def find_user_by_email(self, email: str) -> User | None:
        """Full record including the password hash.  Internal use only."""
        row = await self._fetch_one(
            "find_user_by_email",
            "SELECT id, username, email, password_hash, created_at "
            "FROM users WHERE email = ?",
            (email,),
        )
        if row is None:
            return None
        return User(
            id=row["id"],
            username=row["username"],
            email=row["email"],
            password_hash=row["password_hash"],
            created_at=_from_db(row["created_at"]),
        )

    async def find_user_by_id(self, user_id: int) -> UserPublic | None:
        """Public record; the password hash is never selected."""
        row = await self._fetch_one(
            "find_user_by_id",
            "SELECT id, username, email, created_at FROM users WHERE id = ?",
            (user_id,),
        )
        if row is None:
            return None
        return UserPublic(
            id=row["id"],
            username=row["username"],
            email=row["email"],
            created_at=_from_db(row["created_at"]),
        )

    async def count_users(self) -> int:
        return await self._count("count_users", "SELECT COUNT(*) FROM users")

    # -- sessions -----------------------------------------------------------

    async def create_session(
        self,
        user_id: int,
        token: str,
        expires_at: datetime,
        *,
        created_at: datetime | None = None,
    ) -> Session:
        session = Session(
            session_token=token,
            user_id=user_id,
            created_at=created_at or _utcnow(),
            expires_at=expires_at,
        )
        self._validate_or_raise(validate_session(session))

        db = self._conn("create_session")
        with _storage_errors("create_session"):
            await db.execute(
                "INSERT INTO sessions (user_id, session_token, created_at, expires_at) "
                "VALUES (?, ?, ?, ?)",
                (
                    session.user_id,
                    session.session_token,
                    _to_db(session.created_at),
                    _to_db(session.expires_at),
                ),
            )
        return session

    async def find_valid_session(self, token: str, now: datetime) -> Session | None:
        """Return the session for *token* unless unknown or expired."""
        row = await self._fetch_one(
            "find_valid_session",
            "SELECT user_id, session_token, created_at, expires_at FROM sessions "
            "WHERE session_token = ? AND expires_at > ?",
            (token, _to_db(now)),
        )
        if row is None:
            return None
        return Session(
            session_token=row["session_token"],
            user_id=row["user_id"],
            created_at=_from_db(row["created_at"]),
            expires_at=_from_db(row["expires_at"]),
        )

    async def delete_session(self, token: str) -> None:
        """Delete the session for *token*; absent tokens are not an error."""
        db = self._conn("delete_session")
        with _storage_errors("delete_session"):
            await db.execute(
                "DELETE FROM sessions WHERE session_token = ?", (token,)
            )

    async def delete_expired_sessions(self, now: datetime) -> int:
        """Delete every session with ``expires_at <= now``; return the count."""
        db = self._conn("delete_expired_sessions")
        with _storage_errors("delete_expired_sessions"):
            cursor = await db.execute(
                "DELETE FROM sessions WHERE expires_at <= ?", (_to_db(now),)
            )
            removed = cursor.rowcount
            await cursor.close()
        return max(removed, 0)

    async def count_sessions(self) -> int:
        return await self._count("count_sessions", "SELECT COUNT(*) FROM sessions")
