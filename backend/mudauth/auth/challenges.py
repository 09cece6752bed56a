"""Single-use authentication challenges: storage interface and issue/verify service.

A challenge is consumed by the first verification attempt regardless of the
outcome. Consumption is an atomic get-and-delete, so two callers racing on
the same challenge_id cannot both reach the signature check.
"""

from __future__ import annotations

import secrets
import threading
import time
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import structlog
from anyio import to_thread

from mudauth.auth.errors import AuthError, AuthErrorKind
from mudauth.auth.models import Challenge
from mudauth.auth.periodic import PeriodicTask

if TYPE_CHECKING:
    from mudauth.auth.keys import KeyRegistry
    from mudauth.auth.signature import SignatureVerifier

CHALLENGE_TTL_SECONDS = 300  # 5 minutes
SWEEP_INTERVAL_SECONDS = 60
CHALLENGE_ID_BYTES = 16  # 128 bits
NONCE_BYTES = 32  # 256 bits

logger = structlog.get_logger()


@runtime_checkable
class ChallengeStore(Protocol):
    """Storage for outstanding challenges.

    get_and_delete must be atomic: for a given challenge_id at most one caller
    ever receives the Challenge. A shared store (for several service
    instances) has to provide the same guarantee, e.g. with GETDEL.
    """

    async def put(self, challenge: Challenge) -> None: ...

    async def get_and_delete(self, challenge_id: str) -> Challenge | None: ...

    async def sweep_expired(self, now: float) -> int: ...

    def __len__(self) -> int: ...


class InMemoryChallengeStore:
    """Process-local challenge store for a single service instance.

    Challenges are ephemeral: a restart drops them and clients request a new one.
    """

    def __init__(self) -> None:
        self._challenges: dict[str, Challenge] = {}
        # Guards against callers on worker threads; event-loop callers never contend.
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._challenges)

    async def put(self, challenge: Challenge) -> None:
        with self._lock:
            self._challenges[challenge.challenge_id] = challenge

    async def get_and_delete(self, challenge_id: str) -> Challenge | None:
        with self._lock:
            return self._challenges.pop(challenge_id, None)

    async def sweep_expired(self, now: float) -> int:
        with self._lock:
            expired = [cid for cid, c in self._challenges.items() if c.is_expired(now)]
            for cid in expired:
                del self._challenges[cid]
        return len(expired)


class ChallengeService:
    """Issue challenges for registered keys and verify signed responses."""

    def __init__(
        self,
        key_registry: KeyRegistry,
        store: ChallengeStore,
        verifier: SignatureVerifier,
        *,
        ttl_seconds: float = CHALLENGE_TTL_SECONDS,
        sweep_interval_seconds: float = SWEEP_INTERVAL_SECONDS,
    ) -> None:
        self._keys = key_registry
        self._store = store
        self._verifier = verifier
        self._ttl = ttl_seconds
        self._sweeper = PeriodicTask("challenge-sweep", sweep_interval_seconds, self.sweep_expired)

    async def create_challenge(self, fingerprint: str) -> Challenge:
        """Issue a challenge for a registered key. Fails KEY_NOT_FOUND otherwise."""
        if await self._keys.get_by_fingerprint(fingerprint) is None:
            raise AuthError(AuthErrorKind.KEY_NOT_FOUND, "SSH key not found")

        now = time.time()
        await self._sweep(now)
        challenge = Challenge(
            challenge_id=secrets.token_hex(CHALLENGE_ID_BYTES),
            nonce=secrets.token_bytes(NONCE_BYTES),
            fingerprint=fingerprint,
            expires_at=now + self._ttl,
        )
        await self._store.put(challenge)
        logger.debug("challenge issued", challenge_id=challenge.challenge_id, fingerprint=fingerprint)
        return challenge

    async def verify_challenge(self, challenge_id: str, signature: bytes | str) -> str:
        """Consume the challenge and check the signature. Return the key owner's player_id."""
        challenge = await self._store.get_and_delete(challenge_id)
        if challenge is None:
            raise AuthError(AuthErrorKind.INVALID_CHALLENGE, "Invalid or expired challenge")

        if challenge.is_expired(time.time()):
            raise AuthError(AuthErrorKind.CHALLENGE_EXPIRED, "Challenge expired")

        key = await self._keys.get_by_fingerprint(challenge.fingerprint)
        if key is None:
            # removed between issue and verification
            raise AuthError(AuthErrorKind.KEY_NOT_FOUND, "SSH key not found")

        verified = await to_thread.run_sync(
            self._verifier.verify,
            key.key_type,
            key.key_bytes,
            challenge.nonce,
            signature,
        )
        if not verified:
            raise AuthError(AuthErrorKind.AUTHENTICATION_FAILED, "Signature verification failed")

        await self._keys.touch_last_used(key.key_id)
        return key.player_id

    async def sweep_expired(self) -> int:
        """Remove every expired challenge. Return the count removed."""
        return await self._sweep(time.time())

    def start_sweep(self) -> None:
        """Start the periodic expiry sweep background task."""
        self._sweeper.start()

    async def stop_sweep(self) -> None:
        """Stop the periodic expiry sweep background task."""
        await self._sweeper.stop()

    async def _sweep(self, now: float) -> int:
        removed = await self._store.sweep_expired(now)
        if removed:
            logger.info("swept expired challenges", count=removed)
        return removed
