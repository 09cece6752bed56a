"""SQLite database connection and schema management."""

from __future__ import annotations

import contextlib
import os
import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from mudauth.auth.errors import StorageError

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

logger = structlog.get_logger()

_DB_FILE_PERMISSIONS = 0o600

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS ssh_keys (
    id TEXT PRIMARY KEY,
    player_id TEXT NOT NULL,
    name TEXT NOT NULL,
    key_type TEXT NOT NULL,
    public_key TEXT NOT NULL,
    fingerprint TEXT NOT NULL,
    last_used REAL,
    created_at REAL NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_ssh_keys_fingerprint
    ON ssh_keys (fingerprint);

CREATE INDEX IF NOT EXISTS idx_ssh_keys_player
    ON ssh_keys (player_id);

CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    player_id TEXT NOT NULL,
    token TEXT NOT NULL,
    player_username TEXT NOT NULL,
    realm_id TEXT,
    character_id TEXT,
    character_name TEXT,
    device_info TEXT,
    expires_at REAL NOT NULL,
    created_at REAL NOT NULL,
    last_activity REAL NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_sessions_token
    ON sessions (token);

CREATE INDEX IF NOT EXISTS idx_sessions_player
    ON sessions (player_id);

CREATE INDEX IF NOT EXISTS idx_sessions_expires
    ON sessions (expires_at);
"""


@contextlib.contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Translate sqlite3 failures into StorageError for the given operation."""
    try:
        yield
    except sqlite3.Error as exc:
        logger.warning("storage operation failed", operation=operation, error=str(exc))
        raise StorageError(f"Storage failure during {operation}") from exc


class Database:
    """SQLite database wrapper with schema management."""

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        """Return the active connection or raise if disconnected."""
        if self._conn is None:
            raise RuntimeError("Database is not connected")
        return self._conn

    def connect(self) -> None:
        """Open the database, apply pragmas, create schema, and harden file permissions."""
        if self._path != ":memory:":
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)

        with storage_errors("connect"):
            self._conn = sqlite3.connect(self._path, check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA busy_timeout=5000")
            self._conn.executescript(_SCHEMA_SQL)

        self._harden_permissions()

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def execute_write(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run one write statement in its own transaction. Return the affected row count.

        Rolls back and re-raises the sqlite3 error on failure; callers map it.
        """
        conn = self.connection
        try:
            cursor = conn.execute(sql, params)
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise
        return cursor.rowcount

    def _harden_permissions(self) -> None:
        """Set restrictive file permissions on POSIX systems (best effort).

        Hardens the main DB file and WAL/SHM sibling files created by WAL mode,
        since they also contain session tokens.
        """
        if os.name != "posix" or self._path == ":memory:":  # pragma: no cover
            return
        for suffix in ("", "-wal", "-shm"):
            p = Path(self._path + suffix)
            if p.exists():
                try:
                    p.chmod(_DB_FILE_PERMISSIONS)
                except OSError:
                    logger.warning("could not set file permissions", permissions=oct(_DB_FILE_PERMISSIONS), path=str(p))
