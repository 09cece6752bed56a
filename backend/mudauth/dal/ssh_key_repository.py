"""Abstract interface for SSH key persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mudauth.auth.models import RegisteredKey


class SshKeyRepository(ABC):
    """Abstract interface for SSH key persistence.

    Implementations must enforce fingerprint uniqueness in storage (a unique
    index), not with a lookup before insert.
    """

    @abstractmethod
    async def create_key(self, key: RegisteredKey) -> None:
        """Insert a key. Raises AuthError(DUPLICATE_KEY) when the fingerprint exists."""

    @abstractmethod
    async def get_by_fingerprint(self, fingerprint: str) -> RegisteredKey | None: ...

    @abstractmethod
    async def list_by_player(self, player_id: str) -> list[RegisteredKey]: ...

    @abstractmethod
    async def delete_owned_key(self, player_id: str, key_id: str) -> bool:
        """Delete a key only if player_id owns it. Return whether a row was removed."""

    @abstractmethod
    async def update_last_used(self, key_id: str, used_at: float) -> None: ...
