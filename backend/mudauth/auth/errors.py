"""Machine-readable failure kinds and the exceptions that carry them."""

from enum import StrEnum


class AuthErrorKind(StrEnum):
    # key registry
    INVALID_KEY_FORMAT = "invalid_key_format"
    UNSUPPORTED_KEY_TYPE = "unsupported_key_type"
    INVALID_KEY_DATA = "invalid_key_data"
    DUPLICATE_KEY = "duplicate_key"
    KEY_NOT_FOUND = "key_not_found"
    # challenge / verification
    INVALID_CHALLENGE = "invalid_challenge"
    CHALLENGE_EXPIRED = "challenge_expired"
    AUTHENTICATION_FAILED = "authentication_failed"
    # sessions
    SESSION_NOT_FOUND = "session_not_found"
    SESSION_EXPIRED = "session_expired"
    # persistence
    STORAGE_ERROR = "storage_error"


# Kinds reachable while a client is proving key ownership. The network layer
# reports all of them to the client as one generic message.
AUTHENTICATION_PATH_KINDS = frozenset(
    {
        AuthErrorKind.KEY_NOT_FOUND,
        AuthErrorKind.INVALID_CHALLENGE,
        AuthErrorKind.CHALLENGE_EXPIRED,
        AuthErrorKind.AUTHENTICATION_FAILED,
        AuthErrorKind.SESSION_NOT_FOUND,
        AuthErrorKind.SESSION_EXPIRED,
    },
)


class AuthError(Exception):
    """Authentication or session failure with a machine-readable kind."""

    def __init__(self, kind: AuthErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.value!r}, {self.message!r})"


class StorageError(AuthError):
    """Persistence failure. Not retried here; callers apply their own retry policy."""

    def __init__(self, message: str) -> None:
        super().__init__(AuthErrorKind.STORAGE_ERROR, message)
