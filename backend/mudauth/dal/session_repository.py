"""Abstract interface for session persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mudauth.auth.models import CharacterBinding, Session


class SessionRepository(ABC):
    """Abstract interface for session persistence.

    Mutating methods return False when no row matched, so callers can report
    SESSION_NOT_FOUND without a separate existence check.
    """

    @abstractmethod
    async def create_session(self, session: Session) -> None: ...

    @abstractmethod
    async def get_by_token(self, token: str) -> Session | None: ...

    @abstractmethod
    async def get_by_id(self, session_id: str) -> Session | None: ...

    @abstractmethod
    async def list_active_by_player(self, player_id: str, now: float) -> list[Session]:
        """Return the player's sessions with expires_at > now."""

    @abstractmethod
    async def set_character(self, session_id: str, character: CharacterBinding) -> bool: ...

    @abstractmethod
    async def set_expires_at(self, session_id: str, expires_at: float) -> bool: ...

    @abstractmethod
    async def touch_activity(self, session_id: str, at: float) -> None: ...

    @abstractmethod
    async def delete_by_token(self, token: str) -> bool: ...

    @abstractmethod
    async def delete_expired(self, now: float) -> int:
        """Delete every session with expires_at <= now. Return the count."""
