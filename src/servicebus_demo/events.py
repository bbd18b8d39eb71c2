from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from servicebus_demo.utils import get_logger


logger = get_logger(__name__)

T_co = TypeVar("T_co", covariant=True)


class EventHook(Generic[T_co]):
    """Observer helper: every subscriber receives every payload in emit order.

    Payloads are not buffered, so a callback subscribed after an emit never
    sees it.
    """

    def __init__(self) -> None:
        self._subscribers: list[Callable[[T_co], None]] = []

    def subscribe(self, callback: Callable[[T_co], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:  # pragma: no cover - best effort cleanup
                pass

        return unsubscribe

    def emit(self, payload: T_co) -> None:
        for callback in list(self._subscribers):
            try:
                callback(payload)
            except Exception:  # noqa: BLE001 - one listener must not starve the rest
                logger.exception("Event callback failed")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


@dataclass(frozen=True, slots=True)
class ResultEvent:
    message: str


__all__ = ["EventHook", "ResultEvent"]
