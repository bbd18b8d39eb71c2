"""Factories that build the vendor SDK clients from the credential adapters.

:class:`~servicebus_demo.bus.session.BusSession` only relies on the small
surface described by the protocols below, which keeps it testable against
in-memory fakes.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Callable, Protocol

from azure.mgmt.servicebus.aio import ServiceBusManagementClient
from azure.servicebus.aio import ServiceBusClient

from servicebus_demo.auth.credentials import (
    ManagementRequestCredential,
    RenewingTokenProvider,
)
from servicebus_demo.config.settings import Settings


class SubscriptionOperations(Protocol):
    async def create_or_update(
        self,
        resource_group_name: str,
        namespace_name: str,
        topic_name: str,
        subscription_name: str,
        parameters: Any,
        **kwargs: Any,
    ) -> Any: ...

    def list_by_topic(
        self,
        resource_group_name: str,
        namespace_name: str,
        topic_name: str,
        **kwargs: Any,
    ) -> AsyncIterator[Any]: ...


class ManagementClient(Protocol):
    subscriptions: SubscriptionOperations

    async def close(self) -> None: ...


class MessageSender(Protocol):
    async def send_messages(self, message: Any, **kwargs: Any) -> None: ...


class MessageReceiver(Protocol):
    def __aiter__(self) -> AsyncIterator[Any]: ...

    async def complete_message(self, message: Any) -> None: ...


class MessagingClient(Protocol):
    def get_topic_sender(self, topic_name: str, **kwargs: Any) -> MessageSender: ...

    def get_subscription_receiver(
        self, topic_name: str, subscription_name: str, **kwargs: Any
    ) -> MessageReceiver: ...

    async def close(self) -> None: ...


ManagementClientFactory = Callable[
    [ManagementRequestCredential, Settings], ManagementClient
]
MessagingClientFactory = Callable[[RenewingTokenProvider, Settings], MessagingClient]


def create_management_client(
    credential: ManagementRequestCredential, settings: Settings
) -> ManagementClient:
    # Replaces the default ARM bearer policy.
    return ServiceBusManagementClient(
        credential,
        settings.subscription_id,
        authentication_policy=credential,
    )


def create_messaging_client(
    token_provider: RenewingTokenProvider, settings: Settings
) -> MessagingClient:
    return ServiceBusClient(
        fully_qualified_namespace=settings.fully_qualified_namespace,
        credential=token_provider,
    )


__all__ = [
    "ManagementClient",
    "ManagementClientFactory",
    "MessageReceiver",
    "MessageSender",
    "MessagingClient",
    "MessagingClientFactory",
    "create_management_client",
    "create_messaging_client",
]
