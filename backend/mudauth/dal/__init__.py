"""Data access layer: repository interfaces for keys and sessions."""

from mudauth.dal.session_repository import SessionRepository
from mudauth.dal.ssh_key_repository import SshKeyRepository

__all__ = [
    "SessionRepository",
    "SshKeyRepository",
]
