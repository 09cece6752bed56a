"""Auth service coordinating key registration, challenges, and sessions.

This is the boundary the network layer talks to. Every method returns an
Ok or Failure result instead of raising. Failure.kind is for server-side logs
and metrics; clients should only ever see Failure.client_message.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, TypeVar

import structlog

from mudauth.auth.errors import AuthError, AuthErrorKind
from mudauth.auth.result import Failure, Ok

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from mudauth.auth.challenges import ChallengeService
    from mudauth.auth.keys import KeyRegistry
    from mudauth.auth.models import Challenge, DeviceInfo, RegisteredKey, Session, SessionInfo
    from mudauth.auth.result import AuthResult
    from mudauth.auth.session_manager import SessionManager

logger = structlog.get_logger()

T = TypeVar("T")


class PlayerDirectory(Protocol):
    """Read access to player accounts, owned by the account service."""

    async def get_username(self, player_id: str) -> str | None: ...


class AuthService:
    """Register keys, run the challenge-response login, and manage sessions."""

    def __init__(
        self,
        key_registry: KeyRegistry,
        challenge_service: ChallengeService,
        session_manager: SessionManager,
        player_directory: PlayerDirectory,
    ) -> None:
        self._keys = key_registry
        self._challenges = challenge_service
        self._sessions = session_manager
        self._players = player_directory

    @property
    def keys(self) -> KeyRegistry:
        return self._keys

    @property
    def challenges(self) -> ChallengeService:
        return self._challenges

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    # -- keys --

    async def register_key(self, player_id: str, raw_key: str, label: str) -> AuthResult[RegisteredKey]:
        return await self._run(
            "register_key",
            self._keys.register_public_key(player_id, raw_key, label),
            player_id=player_id,
        )

    async def list_keys(self, player_id: str) -> AuthResult[list[RegisteredKey]]:
        return await self._run("list_keys", self._keys.list_keys(player_id), player_id=player_id)

    async def remove_key(self, player_id: str, key_id: str) -> AuthResult[None]:
        return await self._run(
            "remove_key",
            self._keys.remove_key(player_id, key_id),
            player_id=player_id,
            key_id=key_id,
        )

    # -- challenge-response login --

    async def start_challenge(self, fingerprint: str) -> AuthResult[Challenge]:
        return await self._run(
            "start_challenge",
            self._challenges.create_challenge(fingerprint),
            fingerprint=fingerprint,
        )

    async def complete_challenge(
        self,
        challenge_id: str,
        signature: bytes | str,
        device_info: DeviceInfo | None = None,
    ) -> AuthResult[Session]:
        """Verify the signed challenge and open a session for the key's owner."""
        return await self._run(
            "complete_challenge",
            self._login(challenge_id, signature, device_info),
            challenge_id=challenge_id,
        )

    # -- sessions --

    async def validate_session(self, token: str) -> AuthResult[SessionInfo]:
        return await self._run("validate_session", self._sessions.validate_session(token))

    async def attach_character(
        self,
        session_id: str,
        character_id: str,
        character_name: str,
        realm_id: str,
    ) -> AuthResult[None]:
        return await self._run(
            "attach_character",
            self._sessions.attach_character(session_id, character_id, character_name, realm_id),
            session_id=session_id,
        )

    async def detach_character(self, session_id: str) -> AuthResult[None]:
        return await self._run(
            "detach_character",
            self._sessions.detach_character(session_id),
            session_id=session_id,
        )

    async def extend_session(self, session_id: str) -> AuthResult[None]:
        return await self._run("extend_session", self._sessions.extend_session(session_id), session_id=session_id)

    async def logout(self, token: str) -> AuthResult[None]:
        return await self._run("logout", self._sessions.invalidate_session(token))

    async def list_sessions(self, player_id: str) -> AuthResult[list[Session]]:
        return await self._run("list_sessions", self._sessions.get_player_sessions(player_id), player_id=player_id)

    # -- private helpers --

    async def _login(self, challenge_id: str, signature: bytes | str, device_info: DeviceInfo | None) -> Session:
        player_id = await self._challenges.verify_challenge(challenge_id, signature)
        username = await self._players.get_username(player_id)
        if username is None:
            raise AuthError(AuthErrorKind.AUTHENTICATION_FAILED, f"No player account for '{player_id}'")
        return await self._sessions.create_session(player_id, username, device_info)

    @staticmethod
    async def _run(operation: str, call: Awaitable[T], **context: str) -> AuthResult[T]:
        """Await a component call and fold any error into a Failure, logging the precise kind.

        Errors other than AuthError (a failing player directory, a closed
        database, a corrupt row) are logged with traceback and reported as
        STORAGE_ERROR.
        """
        try:
            value = await call
        except AuthError as exc:
            log = logger.warning if exc.kind == AuthErrorKind.STORAGE_ERROR else logger.info
            log("auth operation failed", operation=operation, kind=exc.kind, reason=exc.message, **context)
            return Failure.from_error(exc)
        except Exception:
            logger.exception("unexpected auth failure", operation=operation, **context)
            return Failure(AuthErrorKind.STORAGE_ERROR, f"Internal failure during {operation}")
        return Ok(value)
