"""Passwordless SSH-key authentication and session management."""

from mudauth.auth.challenges import ChallengeService, ChallengeStore, InMemoryChallengeStore
from mudauth.auth.errors import AUTHENTICATION_PATH_KINDS, AuthError, AuthErrorKind, StorageError
from mudauth.auth.keys import SUPPORTED_KEY_TYPES, KeyRegistry, fingerprint_key_bytes, parse_public_key
from mudauth.auth.models import UNBOUND, Bound, Challenge, DeviceInfo, RegisteredKey, Session, SessionInfo, Unbound
from mudauth.auth.result import AuthResult, Failure, Ok
from mudauth.auth.service import AuthService, PlayerDirectory
from mudauth.auth.session_manager import SessionManager
from mudauth.auth.settings import AuthSettings
from mudauth.auth.signature import SignatureVerifier, SshSignatureVerifier

__all__ = [
    "AUTHENTICATION_PATH_KINDS",
    "SUPPORTED_KEY_TYPES",
    "UNBOUND",
    "AuthError",
    "AuthErrorKind",
    "AuthResult",
    "AuthService",
    "AuthSettings",
    "Bound",
    "Challenge",
    "ChallengeService",
    "ChallengeStore",
    "DeviceInfo",
    "Failure",
    "InMemoryChallengeStore",
    "KeyRegistry",
    "Ok",
    "PlayerDirectory",
    "RegisteredKey",
    "Session",
    "SessionInfo",
    "SessionManager",
    "SignatureVerifier",
    "SshSignatureVerifier",
    "StorageError",
    "Unbound",
    "fingerprint_key_bytes",
    "parse_public_key",
]
