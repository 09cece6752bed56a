"""Wire the auth components together and manage their background tasks."""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import structlog

from mudauth.auth.challenges import ChallengeService, InMemoryChallengeStore
from mudauth.auth.keys import KeyRegistry
from mudauth.auth.service import AuthService
from mudauth.auth.session_manager import SessionManager
from mudauth.auth.settings import AuthSettings
from mudauth.auth.signature import SshSignatureVerifier
from mudauth.db import Database, SqliteSessionRepository, SqliteSshKeyRepository
from mudauth.logging import setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from mudauth.auth.service import PlayerDirectory

logger = structlog.get_logger()


def build_auth_service(db: Database, settings: AuthSettings, player_directory: PlayerDirectory) -> AuthService:
    """Build the service graph over an already-connected database."""
    key_registry = KeyRegistry(SqliteSshKeyRepository(db))
    challenges = ChallengeService(
        key_registry,
        InMemoryChallengeStore(),
        SshSignatureVerifier(),
        ttl_seconds=settings.challenge_ttl_seconds,
        sweep_interval_seconds=settings.challenge_sweep_interval_seconds,
    )
    sessions = SessionManager(
        SqliteSessionRepository(db),
        ttl_seconds=settings.session_ttl_seconds,
        cleanup_interval_seconds=settings.session_cleanup_interval_seconds,
    )
    return AuthService(key_registry, challenges, sessions, player_directory)


@contextlib.asynccontextmanager
async def auth_runtime(
    player_directory: PlayerDirectory,
    settings: AuthSettings | None = None,
) -> AsyncIterator[AuthService]:
    """Run the auth service for the lifetime of the context.

    Configures logging, connects the database, starts the challenge sweep and
    session cleanup, and on exit stops both and closes the database. The
    database is closed even when startup fails part way.
    """
    settings = settings or AuthSettings()
    setup_logging(log_dir=settings.log_dir)
    db = Database(settings.database_path)
    db.connect()
    try:
        service = build_auth_service(db, settings, player_directory)
        try:
            service.challenges.start_sweep()
            service.sessions.start_cleanup()
            logger.info("auth service ready", database_path=settings.database_path)
            yield service
        finally:
            await service.challenges.stop_sweep()
            await service.sessions.stop_cleanup()
    finally:
        db.close()
        logger.info("auth service stopped")
