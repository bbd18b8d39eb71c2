"""Authentication session and the credential adapters built on it."""

from .auth_manager import AuthManager, AuthenticatedUser
from .credentials import (
    MANAGEMENT_SCOPE,
    SERVICEBUS_SCOPE,
    ManagementRequestCredential,
    RenewingTokenProvider,
    TokenSource,
)
from .token_cache import TokenCacheManager
from .types import AccessToken, AuthenticationState, TokenDescriptor, TokenKind

__all__ = [
    "AccessToken",
    "AuthManager",
    "AuthenticatedUser",
    "AuthenticationState",
    "MANAGEMENT_SCOPE",
    "SERVICEBUS_SCOPE",
    "ManagementRequestCredential",
    "RenewingTokenProvider",
    "TokenCacheManager",
    "TokenDescriptor",
    "TokenKind",
    "TokenSource",
]
