"""Root conftest: configure structlog for tests and share auth fixtures."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
import structlog

from mudauth.auth.challenges import ChallengeService, InMemoryChallengeStore
from mudauth.auth.keys import KeyRegistry
from mudauth.auth.session_manager import SessionManager
from mudauth.auth.signature import SshSignatureVerifier
from mudauth.db import Database, SqliteSessionRepository, SqliteSshKeyRepository

if TYPE_CHECKING:
    from pathlib import Path

# Configure structlog to route through stdlib logging so caplog works in tests.
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=False,
)


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Prevent context leaking between tests."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def db(tmp_path: Path):
    database = Database(tmp_path / "test.db")
    database.connect()
    yield database
    database.close()


@pytest.fixture
def key_repo(db):
    return SqliteSshKeyRepository(db)


@pytest.fixture
def session_repo(db):
    return SqliteSessionRepository(db)


@pytest.fixture
def key_registry(key_repo):
    return KeyRegistry(key_repo)


@pytest.fixture
def challenge_store():
    return InMemoryChallengeStore()


@pytest.fixture
def challenge_service(key_registry, challenge_store):
    return ChallengeService(key_registry, challenge_store, SshSignatureVerifier())


@pytest.fixture
def session_manager(session_repo):
    return SessionManager(session_repo)
