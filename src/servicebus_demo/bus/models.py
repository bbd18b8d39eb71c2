from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Iterable, Self

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter


def _alias(snake: str, camel: str) -> Any:
    return Field(default=None, validation_alias=AliasChoices(snake, camel))


class SubscriptionDescriptor(BaseModel):
    """Service Bus topic subscription as reported by the management plane.

    Accepts both the SDK's ``as_dict()`` (snake_case) and raw REST
    (camelCase, nested under ``properties``) shapes.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str | None = None
    name: str | None = None
    type: str | None = None
    status: str | None = None
    message_count: int | None = _alias("message_count", "messageCount")
    auto_delete_on_idle: timedelta | None = _alias("auto_delete_on_idle", "autoDeleteOnIdle")
    lock_duration: timedelta | None = _alias("lock_duration", "lockDuration")
    max_delivery_count: int | None = _alias("max_delivery_count", "maxDeliveryCount")
    requires_session: bool | None = _alias("requires_session", "requiresSession")
    created_at: datetime | None = _alias("created_at", "createdAt")
    updated_at: datetime | None = _alias("updated_at", "updatedAt")
    accessed_at: datetime | None = _alias("accessed_at", "accessedAt")

    @classmethod
    def from_sdk(cls, resource: Any) -> Self:
        """Hydrate from an SDK model (anything with ``as_dict``) or a mapping."""
        payload = resource.as_dict() if hasattr(resource, "as_dict") else dict(resource)
        properties = payload.pop("properties", None)
        if isinstance(properties, dict):
            payload = {**properties, **payload}
        return cls.model_validate(payload)

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)


_DESCRIPTOR_LIST = TypeAdapter(list[SubscriptionDescriptor])


def dump_subscriptions(descriptors: Iterable[SubscriptionDescriptor]) -> str:
    return _DESCRIPTOR_LIST.dump_json(list(descriptors), exclude_none=True).decode(
        "utf-8"
    )


__all__ = ["SubscriptionDescriptor", "dump_subscriptions"]
