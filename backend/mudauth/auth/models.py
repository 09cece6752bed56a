"""Key, challenge, and session models for public-key authentication."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Annotated, Literal

from pydantic import BaseModel, Field


class RegisteredKey(BaseModel, frozen=True):
    """SSH public key bound to a player, as stored in the key registry."""

    key_id: str
    player_id: str
    name: str  # human label, e.g. "laptop"
    key_type: str  # one of SUPPORTED_KEY_TYPES
    key_data: str  # base64 key blob exactly as submitted
    comment: str = ""
    fingerprint: str  # "SHA256:..." of the decoded blob, globally unique
    created_at: float  # time.time()
    last_used_at: float | None = None  # set on successful authentication

    @property
    def key_bytes(self) -> bytes:
        return base64.b64decode(self.key_data)

    @property
    def public_key(self) -> str:
        """Reassembled OpenSSH public key line."""
        line = f"{self.key_type} {self.key_data}"
        return f"{line} {self.comment}" if self.comment else line


@dataclass(frozen=True, slots=True)
class ParsedKey:
    key_type: str
    key_data: str
    key_bytes: bytes
    comment: str
    fingerprint: str


@dataclass(frozen=True, slots=True)
class Challenge:
    """Single-use authentication challenge. Lives in memory only."""

    challenge_id: str  # 128-bit hex handle
    nonce: bytes  # 256 random bits the client must sign
    fingerprint: str  # key this challenge was issued for
    expires_at: float

    @property
    def nonce_b64(self) -> str:
        """Nonce in the text form relayed to the client."""
        return base64.b64encode(self.nonce).decode("ascii")

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class DeviceInfo(BaseModel, frozen=True):
    """Client-reported device metadata. Opaque to authentication."""

    os: str | None = None
    version: str | None = None
    client: str | None = None


class Unbound(BaseModel, frozen=True):
    kind: Literal["unbound"] = "unbound"


class Bound(BaseModel, frozen=True):
    kind: Literal["bound"] = "bound"
    character_id: str
    character_name: str
    realm_id: str


CharacterBinding = Annotated[Unbound | Bound, Field(discriminator="kind")]

UNBOUND = Unbound()


class Session(BaseModel, frozen=True):
    """Server-side session issued after a successful challenge."""

    session_id: str
    player_id: str
    token: str  # opaque bearer credential
    player_username: str  # denormalized for display
    character: CharacterBinding = UNBOUND
    device_info: DeviceInfo | None = None
    created_at: float
    expires_at: float  # only advanced by extend_session
    last_activity_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True, slots=True)
class SessionInfo:
    """Result of a successful session validation."""

    session: Session
    player_id: str
    username: str
    character: Bound | None
