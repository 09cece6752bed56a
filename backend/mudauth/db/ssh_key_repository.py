"""SQLite-backed SSH key repository."""

from __future__ import annotations

import asyncio
import sqlite3
from typing import TYPE_CHECKING

from mudauth.auth.errors import AuthError, AuthErrorKind
from mudauth.auth.models import RegisteredKey
from mudauth.dal.ssh_key_repository import SshKeyRepository
from mudauth.db.connection import storage_errors

if TYPE_CHECKING:
    from mudauth.db.connection import Database

_COLUMNS = "id, player_id, name, key_type, public_key, fingerprint, last_used, created_at"


def _row_to_key(row: tuple) -> RegisteredKey:
    key_id, player_id, name, key_type, public_key, fingerprint, last_used, created_at = row
    _, key_data, *comment = public_key.split(maxsplit=2)
    return RegisteredKey(
        key_id=key_id,
        player_id=player_id,
        name=name,
        key_type=key_type,
        key_data=key_data,
        comment=comment[0] if comment else "",
        fingerprint=fingerprint,
        created_at=created_at,
        last_used_at=last_used,
    )


class SqliteSshKeyRepository(SshKeyRepository):
    """SQLite implementation of SshKeyRepository.

    Fingerprint uniqueness comes from the idx_ssh_keys_fingerprint unique
    index; a single INSERT either wins or raises IntegrityError, which maps to
    DUPLICATE_KEY. There is no check-then-insert window.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    async def create_key(self, key: RegisteredKey) -> None:
        async with self._lock:
            with storage_errors("create_key"):
                try:
                    self._db.execute_write(
                        f"INSERT INTO ssh_keys ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",  # noqa: S608
                        (
                            key.key_id,
                            key.player_id,
                            key.name,
                            key.key_type,
                            key.public_key,
                            key.fingerprint,
                            key.last_used_at,
                            key.created_at,
                        ),
                    )
                except sqlite3.IntegrityError as exc:
                    error_msg = str(exc).lower()
                    if "fingerprint" in error_msg:
                        raise AuthError(AuthErrorKind.DUPLICATE_KEY, "SSH key already registered") from exc
                    raise

    async def get_by_fingerprint(self, fingerprint: str) -> RegisteredKey | None:
        with storage_errors("get_by_fingerprint"):
            row = self._db.connection.execute(
                f"SELECT {_COLUMNS} FROM ssh_keys WHERE fingerprint = ?",  # noqa: S608
                (fingerprint,),
            ).fetchone()
        if row is None:
            return None
        return _row_to_key(row)

    async def list_by_player(self, player_id: str) -> list[RegisteredKey]:
        with storage_errors("list_by_player"):
            rows = self._db.connection.execute(
                f"SELECT {_COLUMNS} FROM ssh_keys WHERE player_id = ? ORDER BY created_at, id",  # noqa: S608
                (player_id,),
            ).fetchall()
        return [_row_to_key(row) for row in rows]

    async def delete_owned_key(self, player_id: str, key_id: str) -> bool:
        async with self._lock:
            with storage_errors("delete_owned_key"):
                removed = self._db.execute_write(
                    "DELETE FROM ssh_keys WHERE id = ? AND player_id = ?",
                    (key_id, player_id),
                )
        return removed > 0

    async def update_last_used(self, key_id: str, used_at: float) -> None:
        async with self._lock:
            with storage_errors("update_last_used"):
                self._db.execute_write(
                    "UPDATE ssh_keys SET last_used = ? WHERE id = ?",
                    (used_at, key_id),
                )
