"""Authentication type definitions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import NamedTuple


class AccessToken(NamedTuple):
    """Represents an OAuth access token.

    Compatible with azure.core.credentials.AccessToken so it can be handed to
    Azure SDK pipelines unchanged.
    """

    token: str
    """The token string."""

    expires_on: int
    """The token's expiration time in Unix time."""


class TokenKind(StrEnum):
    """Token types understood by the Service Bus claims-based security node."""

    JWT = "jwt"


class AuthenticationState(StrEnum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    IN_PROGRESS = "in_progress"


@dataclass(frozen=True, slots=True)
class TokenDescriptor:
    """Token handed to a long-lived messaging connection.

    ``seconds_until_expiry`` is relative to the moment the descriptor was
    built and is not clamped; an already expired token yields a negative value.
    """

    token_kind: TokenKind
    token: str
    seconds_until_expiry: float


__all__ = ["AccessToken", "AuthenticationState", "TokenDescriptor", "TokenKind"]
