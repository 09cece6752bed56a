"""SQLite database layer: connection management and repository implementations."""

from mudauth.db.connection import Database
from mudauth.db.session_repository import SqliteSessionRepository
from mudauth.db.ssh_key_repository import SqliteSshKeyRepository

__all__ = [
    "Database",
    "SqliteSessionRepository",
    "SqliteSshKeyRepository",
]
