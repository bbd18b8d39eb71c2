"""Service Bus session orchestration."""

from .clients import create_management_client, create_messaging_client
from .models import SubscriptionDescriptor, dump_subscriptions
from .session import (
    AUTO_DELETE_ON_IDLE,
    NO_MANAGEMENT_CLIENT_MESSAGE,
    NO_SENDER_MESSAGE,
    BusSession,
    SessionState,
    format_timestamp,
    parse_timestamp,
)

__all__ = [
    "AUTO_DELETE_ON_IDLE",
    "NO_MANAGEMENT_CLIENT_MESSAGE",
    "NO_SENDER_MESSAGE",
    "BusSession",
    "SessionState",
    "SubscriptionDescriptor",
    "create_management_client",
    "create_messaging_client",
    "dump_subscriptions",
    "format_timestamp",
    "parse_timestamp",
]
