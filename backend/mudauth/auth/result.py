"""Discriminated success/failure results returned across the service boundary."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Literal, TypeVar

from mudauth.auth.errors import AUTHENTICATION_PATH_KINDS, AuthError, AuthErrorKind

GENERIC_AUTH_FAILURE_MESSAGE = "Authentication failed"

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T
    ok: Literal[True] = True


@dataclass(frozen=True, slots=True)
class Failure:
    kind: AuthErrorKind
    message: str
    ok: Literal[False] = False

    @property
    def client_message(self) -> str:
        """Message safe to show a remote client.

        Authentication-path kinds collapse into one generic message so a
        hostile client cannot tell an unknown key from a bad signature.
        """
        if self.kind in AUTHENTICATION_PATH_KINDS:
            return GENERIC_AUTH_FAILURE_MESSAGE
        return self.message

    @classmethod
    def from_error(cls, error: AuthError) -> Failure:
        return cls(kind=error.kind, message=error.message)


AuthResult = Ok[T] | Failure
