"""Session lifecycle: issue, validate, extend, invalidate, and bind characters."""

from __future__ import annotations

import asyncio
import contextlib
import secrets
import time
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog

from mudauth.auth.errors import AuthError, AuthErrorKind, StorageError
from mudauth.auth.models import UNBOUND, Bound, Session, SessionInfo
from mudauth.auth.periodic import PeriodicTask

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from mudauth.auth.models import CharacterBinding, DeviceInfo
    from mudauth.dal.session_repository import SessionRepository

CLEANUP_INTERVAL_SECONDS = 300  # 5 minutes
DEFAULT_SESSION_TTL_SECONDS = 86400  # 24 hours
SESSION_TOKEN_PREFIX = "sess_"
SESSION_TOKEN_BYTES = 32  # 256 bits before base64url encoding

logger = structlog.get_logger()


def generate_session_token() -> str:
    return SESSION_TOKEN_PREFIX + secrets.token_urlsafe(SESSION_TOKEN_BYTES)


class SessionManager:
    """Persisted sessions with explicit renewal and expiry cleanup.

    validate_session() records activity but never moves expires_at; only
    extend_session() does. Call start_cleanup() on app startup and
    stop_cleanup() on shutdown.
    """

    def __init__(
        self,
        session_repo: SessionRepository,
        *,
        ttl_seconds: float = DEFAULT_SESSION_TTL_SECONDS,
        cleanup_interval_seconds: float = CLEANUP_INTERVAL_SECONDS,
    ) -> None:
        self._repo = session_repo
        self._ttl = ttl_seconds
        self._binding_locks: dict[str, asyncio.Lock] = {}  # session_id -> Lock
        self._binding_lock_users: dict[str, int] = {}  # session_id -> holders + waiters
        self._cleanup = PeriodicTask("session-cleanup", cleanup_interval_seconds, self.cleanup_expired_sessions)

    async def create_session(
        self,
        player_id: str,
        username: str,
        device_info: DeviceInfo | None = None,
    ) -> Session:
        """Create an unbound session for an authenticated player."""
        now = time.time()
        session = Session(
            session_id=str(uuid4()),
            player_id=player_id,
            token=generate_session_token(),
            player_username=username,
            character=UNBOUND,
            device_info=device_info,
            created_at=now,
            expires_at=now + self._ttl,
            last_activity_at=now,
        )
        await self._repo.create_session(session)
        logger.info("session created", session_id=session.session_id, player_id=player_id)
        return session

    async def validate_session(self, token: str) -> SessionInfo:
        """Return session info for a live token.

        An expired session is deleted on sight and reported as SESSION_EXPIRED.
        """
        session = await self._repo.get_by_token(token)
        if session is None:
            raise AuthError(AuthErrorKind.SESSION_NOT_FOUND, "Invalid session token")

        now = time.time()
        if session.is_expired(now):
            await self._repo.delete_by_token(token)
            logger.info("session expired", session_id=session.session_id, player_id=session.player_id)
            raise AuthError(AuthErrorKind.SESSION_EXPIRED, "Session expired")

        try:
            await self._repo.touch_activity(session.session_id, now)
        except StorageError:
            # advisory bookkeeping; a lost update does not affect validity
            logger.warning("could not record session activity", session_id=session.session_id)
        else:
            session = session.model_copy(update={"last_activity_at": now})

        character = session.character if isinstance(session.character, Bound) else None
        return SessionInfo(
            session=session,
            player_id=session.player_id,
            username=session.player_username,
            character=character,
        )

    async def get_session(self, session_id: str) -> Session | None:
        return await self._repo.get_by_id(session_id)

    async def attach_character(
        self,
        session_id: str,
        character_id: str,
        character_name: str,
        realm_id: str,
    ) -> None:
        """Bind a character to the session, replacing any previous binding."""
        binding = Bound(character_id=character_id, character_name=character_name, realm_id=realm_id)
        await self._set_character(session_id, binding)
        logger.info("character attached", session_id=session_id, character_id=character_id, realm_id=realm_id)

    async def detach_character(self, session_id: str) -> None:
        await self._set_character(session_id, UNBOUND)
        logger.info("character detached", session_id=session_id)

    async def invalidate_session(self, token: str) -> None:
        """Delete a session (logout)."""
        if not await self._repo.delete_by_token(token):
            raise AuthError(AuthErrorKind.SESSION_NOT_FOUND, "Session not found")
        logger.info("session invalidated")

    async def extend_session(self, session_id: str) -> None:
        """Renew the session so it expires one full TTL from now.

        An already-expired session stays expired: it is deleted and reported
        as SESSION_EXPIRED instead of being revived.
        """
        session = await self._repo.get_by_id(session_id)
        if session is None:
            raise AuthError(AuthErrorKind.SESSION_NOT_FOUND, "Session not found")

        now = time.time()
        if session.is_expired(now):
            await self._repo.delete_by_token(session.token)
            raise AuthError(AuthErrorKind.SESSION_EXPIRED, "Session expired")

        if not await self._repo.set_expires_at(session_id, now + self._ttl):
            raise AuthError(AuthErrorKind.SESSION_NOT_FOUND, "Session not found")

    async def get_player_sessions(self, player_id: str) -> list[Session]:
        """Return the player's unexpired sessions. Expired rows are left for cleanup."""
        return await self._repo.list_active_by_player(player_id, time.time())

    async def cleanup_expired_sessions(self) -> int:
        """Remove all expired sessions. Return count of removed sessions."""
        removed = await self._repo.delete_expired(time.time())
        if removed:
            logger.info("cleaned up expired sessions", count=removed)
        return removed

    def start_cleanup(self) -> None:
        """Start the periodic cleanup background task."""
        self._cleanup.start()

    async def stop_cleanup(self) -> None:
        """Stop the periodic cleanup background task."""
        await self._cleanup.stop()

    # -- private helpers --

    async def _set_character(self, session_id: str, binding: CharacterBinding) -> None:
        async with self._binding_lock(session_id):
            if not await self._repo.set_character(session_id, binding):
                raise AuthError(AuthErrorKind.SESSION_NOT_FOUND, "Session not found")

    @contextlib.asynccontextmanager
    async def _binding_lock(self, session_id: str) -> AsyncIterator[None]:
        """Serialize binding changes for one session; other sessions proceed in parallel.

        The lock entry is dropped once no coroutine holds or awaits it.
        """
        lock = self._binding_locks.setdefault(session_id, asyncio.Lock())
        self._binding_lock_users[session_id] = self._binding_lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._binding_lock_users[session_id] - 1
            if remaining:
                self._binding_lock_users[session_id] = remaining
            else:
                del self._binding_lock_users[session_id]
                del self._binding_locks[session_id]
