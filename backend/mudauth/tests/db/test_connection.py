"""Tests for Database connection and schema."""

from __future__ import annotations

import sqlite3
import sys
from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest

from mudauth.auth.errors import StorageError
from mudauth.db.connection import Database, storage_errors

if TYPE_CHECKING:
    from pathlib import Path


class TestDatabase:
    def test_creates_schema_and_connects(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "test.db")
        db.connect()

        tables = {
            row[0] for row in db.connection.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
        }
        indexes = {
            row[0] for row in db.connection.execute("SELECT name FROM sqlite_master WHERE type = 'index'").fetchall()
        }
        db.close()

        assert {"ssh_keys", "sessions"} <= tables
        assert {"idx_ssh_keys_fingerprint", "idx_sessions_token", "idx_sessions_expires"} <= indexes

    def test_reconnect_keeps_data(self, tmp_path: Path) -> None:
        path = tmp_path / "test.db"
        db = Database(path)
        db.connect()
        db.execute_write(
            "INSERT INTO ssh_keys (id, player_id, name, key_type, public_key, fingerprint, created_at) "
            "VALUES ('k1', 'p1', 'laptop', 'ssh-ed25519', 'ssh-ed25519 AAAA', 'SHA256:x', 0)",
        )
        db.close()

        db.connect()
        count = db.connection.execute("SELECT COUNT(*) FROM ssh_keys").fetchone()[0]
        db.close()

        assert count == 1

    def test_connection_raises_when_disconnected(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "test.db")
        with pytest.raises(RuntimeError, match="not connected"):
            _ = db.connection

    def test_connection_raises_after_close(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "test.db")
        db.connect()
        db.close()
        with pytest.raises(RuntimeError, match="not connected"):
            _ = db.connection

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "nested" / "dir" / "test.db")
        db.connect()
        db.close()

        assert (tmp_path / "nested" / "dir" / "test.db").exists()

    def test_in_memory_database(self) -> None:
        db = Database(":memory:")
        db.connect()

        assert db.connection.execute("SELECT COUNT(*) FROM sessions").fetchone()[0] == 0
        db.close()

    def test_execute_write_returns_rowcount(self, db: Database) -> None:
        assert db.execute_write("DELETE FROM sessions") == 0

    def test_execute_write_rolls_back_and_reraises(self, db: Database) -> None:
        sql = (
            "INSERT INTO ssh_keys (id, player_id, name, key_type, public_key, fingerprint, created_at) "
            "VALUES (?, 'p1', 'laptop', 'ssh-ed25519', 'ssh-ed25519 AAAA', 'SHA256:x', 0)"
        )
        db.execute_write(sql, ("k1",))

        with pytest.raises(sqlite3.IntegrityError):
            db.execute_write(sql, ("k2",))

        assert not db.connection.in_transaction

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions only")
    def test_db_file_has_restricted_permissions(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "test.db")
        db.connect()
        mode = (tmp_path / "test.db").stat().st_mode & 0o777
        db.close()

        assert mode == 0o600

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions only")
    def test_harden_permissions_warns_on_failure(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "test.db")
        with (
            patch("mudauth.db.connection.Path.chmod", side_effect=OSError("denied")),
            patch("mudauth.db.connection.logger") as mock_logger,
        ):
            db.connect()
        db.close()

        mock_logger.warning.assert_called()


class TestStorageErrors:
    def test_translates_sqlite_errors(self) -> None:
        with pytest.raises(StorageError, match="during lookup"), storage_errors("lookup"):
            raise sqlite3.OperationalError("database is locked")

    def test_other_errors_pass_through(self) -> None:
        with pytest.raises(KeyError), storage_errors("lookup"):
            raise KeyError("k")
