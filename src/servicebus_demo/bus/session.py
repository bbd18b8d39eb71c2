from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import Any, Callable, Coroutine

from azure.mgmt.servicebus.models import SBSubscription
from azure.servicebus import ServiceBusMessage, ServiceBusReceiveMode

from servicebus_demo.auth.credentials import (
    ManagementRequestCredential,
    RenewingTokenProvider,
    TokenSource,
)
from servicebus_demo.bus.clients import (
    ManagementClient,
    ManagementClientFactory,
    MessageReceiver,
    MessageSender,
    MessagingClient,
    MessagingClientFactory,
    create_management_client,
    create_messaging_client,
)
from servicebus_demo.bus.models import SubscriptionDescriptor, dump_subscriptions
from servicebus_demo.config.settings import Settings
from servicebus_demo.errors import ManagementError, MessagingError, PreconditionError
from servicebus_demo.events import EventHook, ResultEvent
from servicebus_demo.utils import get_logger


logger = get_logger(__name__)

AUTO_DELETE_ON_IDLE = timedelta(minutes=5)
RECEIVE_MODE = ServiceBusReceiveMode.PEEK_LOCK
DEFAULT_RECEIVE_RETRY_DELAY = 1.0

NO_SENDER_MESSAGE = "No sender available"
NO_MANAGEMENT_CLIENT_MESSAGE = "No management client available"


class SessionState(StrEnum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    CLOSED = "closed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """Render ``moment`` as ISO-8601 UTC with millisecond precision and ``Z``."""
    utc = moment.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(body: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(body.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class BusSession:
    """Drives one Service Bus topic/subscription on behalf of the UI.

    The session moves through ``UNINITIALIZED -> INITIALIZING -> READY ->
    CLOSED`` and never leaves ``CLOSED``; build a new session to reconnect.
    Outcomes of user actions are never raised: they are published as
    :class:`ResultEvent` instances to listeners registered with
    :meth:`subscribe`, in the order the operations complete.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        management_client_factory: ManagementClientFactory = create_management_client,
        messaging_client_factory: MessagingClientFactory = create_messaging_client,
        clock: Callable[[], datetime] = _utcnow,
        receive_retry_delay: float = DEFAULT_RECEIVE_RETRY_DELAY,
    ) -> None:
        self._settings = settings
        self._management_client_factory = management_client_factory
        self._messaging_client_factory = messaging_client_factory
        self._clock = clock
        self._receive_retry_delay = receive_retry_delay
        self._results: EventHook[ResultEvent] = EventHook()
        self._state = SessionState.UNINITIALIZED
        self._management_client: ManagementClient | None = None
        self._messaging_client: MessagingClient | None = None
        self._sender: MessageSender | None = None
        self._receiver: MessageReceiver | None = None
        self._receive_task: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> SessionState:
        return self._state

    def subscribe(self, callback: Callable[[ResultEvent], None]) -> Callable[[], None]:
        return self._results.subscribe(callback)

    async def initialize(self, source: TokenSource) -> None:
        """Connect both clients, bootstrap the subscription and start receiving.

        Either the session ends up ``READY`` or every client built so far is
        closed and the session is back to ``UNINITIALIZED`` before the error
        is re-raised. An :meth:`uninitialize` that lands while the
        subscription bootstrap is pending wins: initialization stops and the
        session stays ``CLOSED``.
        """
        if self._state is not SessionState.UNINITIALIZED:
            raise PreconditionError(
                f"Cannot initialize a session in state '{self._state.value}'"
            )
        settings = self._settings
        self._state = SessionState.INITIALIZING
        logger.info(
            "Initializing bus session",
            namespace=settings.fully_qualified_namespace,
            topic=settings.topic_name,
            subscription=settings.subscription_name,
        )
        try:
            self._management_client = self._management_client_factory(
                ManagementRequestCredential(source), settings
            )
            self._messaging_client = self._messaging_client_factory(
                RenewingTokenProvider(source), settings
            )
            self._sender = self._messaging_client.get_topic_sender(
                topic_name=settings.topic_name
            )
            await self.create_subscription()
            if self._state is not SessionState.INITIALIZING:
                logger.info("Bus session closed during initialization")
                await self._release()
                return
            self._receiver = self._messaging_client.get_subscription_receiver(
                topic_name=settings.topic_name,
                subscription_name=settings.subscription_name,
                receive_mode=RECEIVE_MODE,
            )
            self._receive_task = asyncio.create_task(
                self._receive_loop(self._receiver),
                name=f"receive:{settings.topic_name}/{settings.subscription_name}",
            )
        except BaseException:
            logger.exception("Bus session initialization failed; rolling back")
            await self._release()
            if self._state is SessionState.INITIALIZING:
                self._state = SessionState.UNINITIALIZED
            raise
        self._state = SessionState.READY
        logger.info("Bus session ready")

    async def uninitialize(self) -> None:
        if self._messaging_client is None:
            return
        logger.info("Closing bus session", state=self._state.value)
        await self._release()
        self._state = SessionState.CLOSED

    async def send(self) -> None:
        sender = self._sender
        if sender is None or self._state is not SessionState.READY:
            self._emit(NO_SENDER_MESSAGE)
            return
        body = format_timestamp(self._clock())
        try:
            await sender.send_messages(ServiceBusMessage(body))
        except Exception as exc:  # noqa: BLE001 - surfaced as a result event
            error = MessagingError(str(exc), inner_error=exc)
            logger.warning(
                "Failed to send message",
                topic=self._settings.topic_name,
                error=str(error),
            )
            self._emit(str(error))
            return
        logger.info("Sent message", topic=self._settings.topic_name, body=body)

    def create_subscription(self) -> asyncio.Task[None]:
        """Schedule create-or-update of the configured subscription.

        The returned task never raises; its outcome is published as a result
        event.
        """
        return self._spawn(self._create_subscription(), name="create-subscription")

    def get_subscriptions(self) -> asyncio.Task[None]:
        """Schedule a listing of the topic's subscriptions (see create_subscription)."""
        return self._spawn(self._get_subscriptions(), name="list-subscriptions")

    # Internal --------------------------------------------------------

    async def _create_subscription(self) -> None:
        client = self._management_client
        if client is None:
            self._emit(NO_MANAGEMENT_CLIENT_MESSAGE)
            return
        settings = self._settings
        parameters = SBSubscription(auto_delete_on_idle=AUTO_DELETE_ON_IDLE)
        try:
            result = await client.subscriptions.create_or_update(
                settings.resource_group_name,
                settings.namespace_name,
                settings.topic_name,
                settings.subscription_name,
                parameters,
            )
            payload = SubscriptionDescriptor.from_sdk(result).to_json()
        except Exception as exc:  # noqa: BLE001 - surfaced as a result event
            self._report_management_failure("create_subscription", exc)
            return
        logger.info(
            "Created or updated subscription",
            subscription=settings.subscription_name,
        )
        self._emit(payload)

    async def _get_subscriptions(self) -> None:
        client = self._management_client
        if client is None:
            self._emit(NO_MANAGEMENT_CLIENT_MESSAGE)
            return
        settings = self._settings
        try:
            descriptors = [
                SubscriptionDescriptor.from_sdk(item)
                async for item in client.subscriptions.list_by_topic(
                    settings.resource_group_name,
                    settings.namespace_name,
                    settings.topic_name,
                )
            ]
        except Exception as exc:  # noqa: BLE001 - surfaced as a result event
            self._report_management_failure("get_subscriptions", exc)
            return
        logger.info(
            "Listed subscriptions", topic=settings.topic_name, count=len(descriptors)
        )
        self._emit(dump_subscriptions(descriptors))

    async def _receive_loop(self, receiver: MessageReceiver) -> None:
        while True:
            try:
                async for message in receiver:
                    await self._handle_message(receiver, message)
                return
            except Exception as exc:  # noqa: BLE001 - the loop outlives delivery errors
                error = MessagingError(str(exc), inner_error=exc)
                logger.warning("Receive loop error", error=str(error))
                self._emit(f"Error occurred: {error}")
                await asyncio.sleep(self._receive_retry_delay)

    async def _handle_message(self, receiver: MessageReceiver, message: Any) -> None:
        body = str(message)
        sent_at = parse_timestamp(body)
        if sent_at is None:
            logger.debug("Received message without timestamp body")
            self._emit(
                f"Received message with body: {body} (no timestamp to compute delay)"
            )
        else:
            delay_ms = int((self._clock() - sent_at).total_seconds() * 1000)
            logger.debug("Received message", delay_ms=delay_ms)
            self._emit(f"Received message with body: {body} with delay: {delay_ms}ms")
        await receiver.complete_message(message)

    async def _release(self) -> None:
        receive_task, self._receive_task = self._receive_task, None
        if receive_task is not None:
            receive_task.cancel()
            await asyncio.gather(receive_task, return_exceptions=True)

        clients = (self._messaging_client, self._management_client)
        self._messaging_client = None
        self._management_client = None
        self._sender = None
        self._receiver = None
        for client in clients:
            if client is None:
                continue
            try:
                await client.close()
            except Exception as exc:  # noqa: BLE001 - closing is best effort
                logger.warning(
                    "Failed to close client",
                    client=type(client).__name__,
                    error=str(exc),
                )

    def _spawn(
        self, coro: Coroutine[Any, Any, None], *, name: str
    ) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def _report_management_failure(self, operation: str, exc: Exception) -> None:
        error = ManagementError(str(exc), inner_error=exc)
        logger.warning(
            "Management operation failed",
            operation=operation,
            error=str(error),
            suggestion=error.recovery_suggestion,
        )
        self._emit(str(error))

    def _emit(self, message: str) -> None:
        self._results.emit(ResultEvent(message))


__all__ = [
    "AUTO_DELETE_ON_IDLE",
    "BusSession",
    "NO_MANAGEMENT_CLIENT_MESSAGE",
    "NO_SENDER_MESSAGE",
    "SessionState",
    "format_timestamp",
    "parse_timestamp",
]
