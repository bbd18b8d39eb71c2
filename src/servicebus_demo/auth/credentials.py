"""Adapters that feed one authentication session into the Azure SDK clients.

The management client signs each outgoing request through
:class:`ManagementRequestCredential`; the messaging client keeps a persistent
AMQP connection alive through :class:`RenewingTokenProvider`. Both pull a fresh
token from the same :class:`TokenSource` on every call and keep no cache of
their own, so token lifetime is owned entirely by the source (MSAL) and the
calling SDK.
"""

from __future__ import annotations

import time
from typing import Any, Callable, MutableMapping, Protocol, Sequence, TypeVar

from azure.core.credentials import AccessToken as AzureAccessToken
from azure.core.pipeline import PipelineRequest, PipelineResponse
from azure.core.pipeline.policies import AsyncHTTPPolicy

from servicebus_demo.auth.types import AccessToken, TokenDescriptor, TokenKind
from servicebus_demo.utils import get_logger


logger = get_logger(__name__)

MANAGEMENT_SCOPE = "https://management.azure.com/user_impersonation"
SERVICEBUS_SCOPE = "https://servicebus.azure.net/user_impersonation"

DEFAULT_TOKEN_RENEWAL_MARGIN_SECONDS = 900
DEFAULT_TOKEN_VALID_TIME_SECONDS = 3600


class TokenSource(Protocol):
    """Anything able to mint an access token for a list of scopes."""

    async def acquire_token(self, scopes: Sequence[str] | None = None) -> AccessToken:
        ...


class SignableRequest(Protocol):
    headers: MutableMapping[str, str]


RequestT = TypeVar("RequestT", bound=SignableRequest)


class ManagementRequestCredential(AsyncHTTPPolicy):
    """Bearer-token signer for management-plane requests.

    Installed as the management client's authentication policy. Every signed
    request triggers a token fetch; failures propagate to the pipeline.
    """

    scopes: tuple[str, ...] = (MANAGEMENT_SCOPE,)

    def __init__(self, source: TokenSource) -> None:
        super().__init__()
        self._source = source

    async def sign(self, request: RequestT) -> RequestT:
        token = await self._source.acquire_token(list(self.scopes))
        request.headers["Authorization"] = f"Bearer {token.token}"
        return request

    async def send(self, request: PipelineRequest) -> PipelineResponse:
        await self.sign(request.http_request)
        return await self.next.send(request)


class RenewingTokenProvider:
    """Token provider for the messaging client's persistent connection.

    The Service Bus SDK calls :meth:`get_token` whenever its claims-based
    security link needs a token and schedules renewal from the returned
    expiry. ``token_renewal_margin_seconds`` and ``token_valid_time_seconds``
    describe that contract and are not enforced here.
    """

    token_kind = TokenKind.JWT
    scopes: tuple[str, ...] = (SERVICEBUS_SCOPE,)

    def __init__(
        self,
        source: TokenSource,
        *,
        token_renewal_margin_seconds: int = DEFAULT_TOKEN_RENEWAL_MARGIN_SECONDS,
        token_valid_time_seconds: int = DEFAULT_TOKEN_VALID_TIME_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._source = source
        self._clock = clock
        self.token_renewal_margin_seconds = token_renewal_margin_seconds
        self.token_valid_time_seconds = token_valid_time_seconds

    async def describe_token(self, audience: str | None = None) -> TokenDescriptor:
        """Fetch a token and report how many seconds it remains valid.

        ``audience`` is accepted for interface parity; the messaging scope is
        fixed.
        """
        token = await self._source.acquire_token(list(self.scopes))
        seconds_until_expiry = float(token.expires_on) - self._clock()
        logger.debug(
            "Issued messaging token",
            audience=audience,
            seconds_until_expiry=seconds_until_expiry,
        )
        return TokenDescriptor(
            token_kind=self.token_kind,
            token=token.token,
            seconds_until_expiry=seconds_until_expiry,
        )

    async def get_token(self, *scopes: str, **kwargs: Any) -> AzureAccessToken:
        token = await self._source.acquire_token(list(self.scopes))
        return AzureAccessToken(token.token, int(token.expires_on))

    async def close(self) -> None:
        # The token source is shared with the rest of the application.
        return None

    async def __aenter__(self) -> "RenewingTokenProvider":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


__all__ = [
    "DEFAULT_TOKEN_RENEWAL_MARGIN_SECONDS",
    "DEFAULT_TOKEN_VALID_TIME_SECONDS",
    "MANAGEMENT_SCOPE",
    "SERVICEBUS_SCOPE",
    "ManagementRequestCredential",
    "RenewingTokenProvider",
    "SignableRequest",
    "TokenSource",
]
