from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class BusErrorCategory(str, Enum):
    AUTHENTICATION = "authentication"
    MANAGEMENT = "management"
    MESSAGING = "messaging"
    PRECONDITION = "precondition"
    UNKNOWN = "unknown"


@dataclass(slots=True)
class BusError(Exception):
    message: str
    category: BusErrorCategory = BusErrorCategory.UNKNOWN
    inner_error: Exception | None = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.message

    @property
    def recovery_suggestion(self) -> str | None:
        if self.category is BusErrorCategory.AUTHENTICATION:
            return "Sign out and sign back in with an account that has access."
        if self.category is BusErrorCategory.MANAGEMENT:
            return "Verify the subscription, resource group and namespace settings and your Azure RBAC role."
        if self.category is BusErrorCategory.MESSAGING:
            return "Check that the topic exists and you hold a Service Bus data role."
        if self.category is BusErrorCategory.PRECONDITION:
            return "Sign in and wait for the session to finish initializing."
        return None


class AuthenticationError(BusError):
    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message=message, category=BusErrorCategory.AUTHENTICATION)


class ManagementError(BusError):
    def __init__(
        self,
        message: str = "Management request failed",
        inner_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message=message,
            category=BusErrorCategory.MANAGEMENT,
            inner_error=inner_error,
        )


class MessagingError(BusError):
    def __init__(
        self,
        message: str = "Messaging operation failed",
        inner_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message=message,
            category=BusErrorCategory.MESSAGING,
            inner_error=inner_error,
        )


class PreconditionError(BusError):
    def __init__(self, message: str = "Session is not ready") -> None:
        super().__init__(message=message, category=BusErrorCategory.PRECONDITION)


__all__ = [
    "BusError",
    "BusErrorCategory",
    "AuthenticationError",
    "ManagementError",
    "MessagingError",
    "PreconditionError",
]
