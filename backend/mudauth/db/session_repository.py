"""SQLite-backed session repository."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from mudauth.auth.models import UNBOUND, Bound, DeviceInfo, Session
from mudauth.dal.session_repository import SessionRepository
from mudauth.db.connection import storage_errors

if TYPE_CHECKING:
    from mudauth.auth.models import CharacterBinding
    from mudauth.db.connection import Database

_COLUMNS = (
    "id, player_id, token, player_username, realm_id, character_id, character_name, "
    "device_info, expires_at, created_at, last_activity"
)


def _row_to_session(row: tuple) -> Session:
    (
        session_id,
        player_id,
        token,
        player_username,
        realm_id,
        character_id,
        character_name,
        device_info,
        expires_at,
        created_at,
        last_activity,
    ) = row
    # The three character columns are written together, so one non-null id means a full binding.
    character = (
        Bound(character_id=character_id, character_name=character_name, realm_id=realm_id)
        if character_id is not None
        else UNBOUND
    )
    return Session(
        session_id=session_id,
        player_id=player_id,
        token=token,
        player_username=player_username,
        character=character,
        device_info=DeviceInfo.model_validate_json(device_info) if device_info else None,
        expires_at=expires_at,
        created_at=created_at,
        last_activity_at=last_activity,
    )


def _character_columns(character: CharacterBinding) -> tuple[str | None, str | None, str | None]:
    """Flatten a binding into (realm_id, character_id, character_name)."""
    match character:
        case Bound(realm_id=realm_id, character_id=character_id, character_name=character_name):
            return realm_id, character_id, character_name
        case _:
            return None, None, None


class SqliteSessionRepository(SessionRepository):
    """SQLite implementation of SessionRepository.

    Each mutation is a single statement keyed by id or token, so a concurrent
    delete simply turns an update into a zero-row no-op.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    async def create_session(self, session: Session) -> None:
        realm_id, character_id, character_name = _character_columns(session.character)
        device_info = session.device_info.model_dump_json() if session.device_info is not None else None
        async with self._lock:
            with storage_errors("create_session"):
                self._db.execute_write(
                    f"INSERT INTO sessions ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",  # noqa: S608
                    (
                        session.session_id,
                        session.player_id,
                        session.token,
                        session.player_username,
                        realm_id,
                        character_id,
                        character_name,
                        device_info,
                        session.expires_at,
                        session.created_at,
                        session.last_activity_at,
                    ),
                )

    async def get_by_token(self, token: str) -> Session | None:
        return self._fetch_one("get_by_token", "token", token)

    async def get_by_id(self, session_id: str) -> Session | None:
        return self._fetch_one("get_by_id", "id", session_id)

    async def list_active_by_player(self, player_id: str, now: float) -> list[Session]:
        with storage_errors("list_active_by_player"):
            rows = self._db.connection.execute(
                f"SELECT {_COLUMNS} FROM sessions WHERE player_id = ? AND expires_at > ? "  # noqa: S608
                "ORDER BY created_at, id",
                (player_id, now),
            ).fetchall()
        return [_row_to_session(row) for row in rows]

    async def set_character(self, session_id: str, character: CharacterBinding) -> bool:
        realm_id, character_id, character_name = _character_columns(character)
        return await self._update(
            "set_character",
            "UPDATE sessions SET realm_id = ?, character_id = ?, character_name = ? WHERE id = ?",
            (realm_id, character_id, character_name, session_id),
        )

    async def set_expires_at(self, session_id: str, expires_at: float) -> bool:
        return await self._update(
            "set_expires_at",
            "UPDATE sessions SET expires_at = ? WHERE id = ?",
            (expires_at, session_id),
        )

    async def touch_activity(self, session_id: str, at: float) -> None:
        await self._update(
            "touch_activity",
            "UPDATE sessions SET last_activity = ? WHERE id = ?",
            (at, session_id),
        )

    async def delete_by_token(self, token: str) -> bool:
        return await self._update("delete_by_token", "DELETE FROM sessions WHERE token = ?", (token,))

    async def delete_expired(self, now: float) -> int:
        async with self._lock:
            with storage_errors("delete_expired"):
                return self._db.execute_write("DELETE FROM sessions WHERE expires_at <= ?", (now,))

    # -- private helpers --

    def _fetch_one(self, operation: str, column: str, value: str) -> Session | None:
        with storage_errors(operation):
            row = self._db.connection.execute(
                f"SELECT {_COLUMNS} FROM sessions WHERE {column} = ?",  # noqa: S608
                (value,),
            ).fetchone()
        if row is None:
            return None
        return _row_to_session(row)

    async def _update(self, operation: str, sql: str, params: tuple) -> bool:
        async with self._lock:
            with storage_errors(operation):
                changed = self._db.execute_write(sql, params)
        return changed > 0
