"""SSH public key parsing, fingerprinting, and the per-player key registry."""

from __future__ import annotations

import base64
import binascii
import hashlib
import time
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog

from mudauth.auth.errors import AuthError, AuthErrorKind
from mudauth.auth.models import ParsedKey, RegisteredKey

if TYPE_CHECKING:
    from mudauth.dal.ssh_key_repository import SshKeyRepository

logger = structlog.get_logger()

SUPPORTED_KEY_TYPES = (
    "ssh-rsa",
    "ssh-ed25519",
    "ecdsa-sha2-nistp256",
    "ecdsa-sha2-nistp384",
    "ecdsa-sha2-nistp521",
)

MIN_KEY_BYTES = 20
KEY_LABEL_MAX_LENGTH = 100
_MIN_KEY_FIELDS = 2  # "<type> <base64> [comment...]"


def fingerprint_key_bytes(key_bytes: bytes) -> str:
    """OpenSSH-style fingerprint: SHA256 digest, base64 without padding."""
    digest = base64.b64encode(hashlib.sha256(key_bytes).digest()).decode("ascii")
    return f"SHA256:{digest.rstrip('=')}"


def parse_public_key(raw: str) -> ParsedKey:
    """Parse an OpenSSH public key line into its parts and fingerprint.

    Raises AuthError with INVALID_KEY_FORMAT, UNSUPPORTED_KEY_TYPE or
    INVALID_KEY_DATA. Only the envelope is validated here; the key blob is
    loaded as a real key object at verification time.
    """
    parts = raw.split()
    if len(parts) < _MIN_KEY_FIELDS:
        raise AuthError(AuthErrorKind.INVALID_KEY_FORMAT, "Invalid SSH key format")

    key_type, key_data, *comment_parts = parts
    if key_type not in SUPPORTED_KEY_TYPES:
        raise AuthError(
            AuthErrorKind.UNSUPPORTED_KEY_TYPE,
            f"Unsupported SSH key type: {key_type}. Supported types: {', '.join(SUPPORTED_KEY_TYPES)}",
        )

    try:
        key_bytes = base64.b64decode(key_data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise AuthError(AuthErrorKind.INVALID_KEY_DATA, "Invalid SSH key data") from exc
    if len(key_bytes) < MIN_KEY_BYTES:
        raise AuthError(AuthErrorKind.INVALID_KEY_DATA, "Invalid SSH key data")

    return ParsedKey(
        key_type=key_type,
        key_data=key_data,
        key_bytes=key_bytes,
        comment=" ".join(comment_parts),
        fingerprint=fingerprint_key_bytes(key_bytes),
    )


class KeyRegistry:
    """Register, list, look up, and remove the SSH keys a player authenticates with."""

    def __init__(self, key_repo: SshKeyRepository) -> None:
        self._key_repo = key_repo

    async def register_public_key(self, player_id: str, raw_key: str, label: str) -> RegisteredKey:
        """Parse and store a key for player_id.

        Fails DUPLICATE_KEY if the fingerprint is registered to anyone,
        including player_id itself. The repository's unique index is the
        authority; the lookup below only gives the common case a clean error.
        """
        label = label.strip()
        if not label or len(label) > KEY_LABEL_MAX_LENGTH:
            raise AuthError(
                AuthErrorKind.INVALID_KEY_FORMAT,
                f"Key name must be between 1 and {KEY_LABEL_MAX_LENGTH} characters",
            )

        parsed = parse_public_key(raw_key)
        if await self._key_repo.get_by_fingerprint(parsed.fingerprint) is not None:
            raise AuthError(AuthErrorKind.DUPLICATE_KEY, "SSH key already registered")

        key = RegisteredKey(
            key_id=str(uuid4()),
            player_id=player_id,
            name=label,
            key_type=parsed.key_type,
            key_data=parsed.key_data,
            comment=parsed.comment,
            fingerprint=parsed.fingerprint,
            created_at=time.time(),
        )
        await self._key_repo.create_key(key)
        logger.info("ssh key registered", player_id=player_id, key_id=key.key_id, fingerprint=key.fingerprint)
        return key

    async def list_keys(self, player_id: str) -> list[RegisteredKey]:
        return await self._key_repo.list_by_player(player_id)

    async def get_by_fingerprint(self, fingerprint: str) -> RegisteredKey | None:
        return await self._key_repo.get_by_fingerprint(fingerprint)

    async def remove_key(self, player_id: str, key_id: str) -> None:
        """Delete a key owned by player_id.

        A key that does not exist and a key owned by another player produce
        the same KEY_NOT_FOUND error.
        """
        if not await self._key_repo.delete_owned_key(player_id, key_id):
            raise AuthError(AuthErrorKind.KEY_NOT_FOUND, "SSH key not found")
        logger.info("ssh key removed", player_id=player_id, key_id=key_id)

    async def touch_last_used(self, key_id: str) -> None:
        await self._key_repo.update_last_used(key_id, time.time())
