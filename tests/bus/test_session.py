from __future__ import annotations

import asyncio
import json
from datetime import timedelta

import pytest

from servicebus_demo.auth import ManagementRequestCredential, RenewingTokenProvider
from servicebus_demo.bus import (
    AUTO_DELETE_ON_IDLE,
    NO_MANAGEMENT_CLIENT_MESSAGE,
    NO_SENDER_MESSAGE,
    SessionState,
    format_timestamp,
    parse_timestamp,
)
from servicebus_demo.errors import PreconditionError

from tests.factories import FIXED_NOW, make_session, wait_until
from tests.stubs import FakeReceivedMessage, FakeTokenSource


def test_format_timestamp_uses_milliseconds_and_zulu() -> None:
    assert format_timestamp(FIXED_NOW) == "2024-05-01T12:00:00.000Z"


def test_parse_timestamp_rejects_free_text() -> None:
    assert parse_timestamp("hello there") is None
    assert parse_timestamp("2024-05-01T12:00:00.000Z") == FIXED_NOW


@pytest.mark.asyncio
async def test_initialize_wires_clients_and_bootstraps_subscription(
    token_source: FakeTokenSource,
) -> None:
    harness = make_session()

    await harness.session.initialize(token_source)

    assert harness.session.state is SessionState.READY
    assert isinstance(harness.credentials[0], ManagementRequestCredential)
    assert isinstance(harness.token_providers[0], RenewingTokenProvider)
    assert harness.messaging.sender_topics == ["events"]
    topic, subscription, options = harness.messaging.receiver_requests[0]
    assert (topic, subscription) == ("events", "browser")
    assert options["receive_mode"].name == "PEEK_LOCK"

    create_call = harness.management.subscriptions.create_calls[0]
    assert create_call[:4] == ("rg-demo", "sb-demo", "events", "browser")
    assert create_call[4].auto_delete_on_idle == AUTO_DELETE_ON_IDLE
    assert len(harness.events) == 1
    assert json.loads(harness.events[0])["name"] == "browser"

    await harness.session.uninitialize()


@pytest.mark.asyncio
async def test_initialize_twice_is_rejected(token_source: FakeTokenSource) -> None:
    harness = make_session()
    await harness.session.initialize(token_source)

    with pytest.raises(PreconditionError):
        await harness.session.initialize(token_source)

    assert harness.messaging_factory_calls == 1
    await harness.session.uninitialize()


@pytest.mark.asyncio
async def test_failed_initialize_rolls_back_and_can_be_retried(
    token_source: FakeTokenSource,
) -> None:
    harness = make_session()
    harness.messaging.receiver_error = RuntimeError("entity not found")

    with pytest.raises(RuntimeError, match="entity not found"):
        await harness.session.initialize(token_source)

    assert harness.session.state is SessionState.UNINITIALIZED
    assert harness.messaging.close_calls == 1
    assert harness.management.close_calls == 1

    await harness.session.send()
    assert harness.events[-1] == NO_SENDER_MESSAGE
    assert harness.messaging.sender.sent == []

    harness.messaging.receiver_error = None
    await harness.session.initialize(token_source)

    assert harness.session.state is SessionState.READY
    assert harness.messaging_factory_calls == 2
    await harness.session.uninitialize()


@pytest.mark.asyncio
async def test_uninitialize_during_bootstrap_leaves_session_closed(
    token_source: FakeTokenSource,
) -> None:
    harness = make_session()
    gate = asyncio.Event()
    harness.management.subscriptions.create_gate = gate

    initializing = asyncio.create_task(harness.session.initialize(token_source))
    await wait_until(lambda: len(harness.management.subscriptions.create_calls) == 1)
    assert harness.session.state is SessionState.INITIALIZING

    await harness.session.uninitialize()
    assert harness.session.state is SessionState.CLOSED

    gate.set()
    await initializing

    assert harness.session.state is SessionState.CLOSED
    assert harness.messaging.receiver_requests == []
    assert harness.messaging.close_calls == 1
    assert harness.management.close_calls == 1
    assert not any(event.startswith("Error occurred") for event in harness.events)

    with pytest.raises(PreconditionError):
        await harness.session.initialize(token_source)


@pytest.mark.asyncio
async def test_initialize_survives_subscription_bootstrap_failure(
    token_source: FakeTokenSource,
) -> None:
    harness = make_session()
    harness.management.subscriptions.create_error = RuntimeError("AuthorizationFailed")

    await harness.session.initialize(token_source)

    assert harness.session.state is SessionState.READY
    assert harness.events == ["AuthorizationFailed"]
    await harness.session.uninitialize()


@pytest.mark.asyncio
async def test_send_before_initialize_emits_once_without_network_call() -> None:
    harness = make_session()

    await harness.session.send()

    assert harness.events == [NO_SENDER_MESSAGE]
    assert harness.messaging.sender.sent == []
    assert harness.messaging_factory_calls == 0


@pytest.mark.asyncio
async def test_send_publishes_current_timestamp(token_source: FakeTokenSource) -> None:
    harness = make_session()
    await harness.session.initialize(token_source)
    harness.events.clear()

    await harness.session.send()

    assert [str(message) for message in harness.messaging.sender.sent] == [
        "2024-05-01T12:00:00.000Z"
    ]
    assert harness.events == []
    await harness.session.uninitialize()


@pytest.mark.asyncio
async def test_send_failure_is_reported_as_event(token_source: FakeTokenSource) -> None:
    harness = make_session()
    await harness.session.initialize(token_source)
    harness.events.clear()
    harness.messaging.sender.error = RuntimeError("quota exceeded")

    await harness.session.send()

    assert harness.events == ["quota exceeded"]
    await harness.session.uninitialize()


@pytest.mark.asyncio
async def test_create_subscription_twice_reports_two_successes(
    token_source: FakeTokenSource,
) -> None:
    harness = make_session()
    await harness.session.initialize(token_source)
    harness.events.clear()

    await harness.session.create_subscription()
    await harness.session.create_subscription()

    assert len(harness.events) == 2
    first, second = (json.loads(event) for event in harness.events)
    assert first == second
    assert first["auto_delete_on_idle"] == "PT5M"
    assert len(harness.management.subscriptions.resources) == 1
    await harness.session.uninitialize()


@pytest.mark.asyncio
async def test_management_calls_before_initialize_report_missing_client() -> None:
    harness = make_session()

    await harness.session.create_subscription()
    await harness.session.get_subscriptions()

    assert harness.events == [NO_MANAGEMENT_CLIENT_MESSAGE, NO_MANAGEMENT_CLIENT_MESSAGE]


@pytest.mark.asyncio
async def test_get_subscriptions_lists_topic_subscriptions(
    token_source: FakeTokenSource,
) -> None:
    harness = make_session()
    await harness.session.initialize(token_source)
    harness.events.clear()

    await harness.session.get_subscriptions()

    listed = json.loads(harness.events[0])
    assert [item["name"] for item in listed] == ["browser"]
    assert harness.management.subscriptions.list_calls == [
        ("rg-demo", "sb-demo", "events")
    ]
    await harness.session.uninitialize()


@pytest.mark.asyncio
async def test_get_subscriptions_failure_is_reported(
    token_source: FakeTokenSource,
) -> None:
    harness = make_session()
    await harness.session.initialize(token_source)
    harness.events.clear()
    harness.management.subscriptions.list_error = RuntimeError("ResourceGroupNotFound")

    task = harness.session.get_subscriptions()
    await task

    assert task.exception() is None
    assert harness.events == ["ResourceGroupNotFound"]
    await harness.session.uninitialize()


@pytest.mark.asyncio
async def test_received_messages_report_delay_and_are_completed(
    token_source: FakeTokenSource,
) -> None:
    harness = make_session()
    await harness.session.initialize(token_source)
    harness.events.clear()
    sent_bodies = ["2024-05-01T11:59:59.750Z", "2024-05-01T11:59:58.000Z"]
    messages = [FakeReceivedMessage(body) for body in sent_bodies]

    harness.messaging.receiver.deliver(*messages)
    await wait_until(lambda: len(harness.messaging.receiver.completed) == 2)

    assert harness.events == [
        "Received message with body: 2024-05-01T11:59:59.750Z with delay: 250ms",
        "Received message with body: 2024-05-01T11:59:58.000Z with delay: 2000ms",
    ]
    for body, event in zip(sent_bodies, harness.events):
        expected = int((FIXED_NOW - parse_timestamp(body)).total_seconds() * 1000)
        assert event.endswith(f"{expected}ms")
    assert harness.messaging.receiver.completed == messages
    await harness.session.uninitialize()


@pytest.mark.asyncio
async def test_non_timestamp_body_is_still_completed(
    token_source: FakeTokenSource,
) -> None:
    harness = make_session()
    await harness.session.initialize(token_source)
    harness.events.clear()
    message = FakeReceivedMessage("hello")

    harness.messaging.receiver.deliver(message)
    await wait_until(lambda: harness.messaging.receiver.completed == [message])

    assert harness.events == [
        "Received message with body: hello (no timestamp to compute delay)"
    ]
    await harness.session.uninitialize()


@pytest.mark.asyncio
async def test_receive_errors_are_reported_and_receiving_continues(
    token_source: FakeTokenSource,
) -> None:
    harness = make_session()
    await harness.session.initialize(token_source)
    harness.events.clear()
    message = FakeReceivedMessage("2024-05-01T12:00:00.000Z")

    harness.messaging.receiver.deliver(RuntimeError("link detached"), message)
    await wait_until(lambda: harness.messaging.receiver.completed == [message])

    assert harness.events == [
        "Error occurred: link detached",
        "Received message with body: 2024-05-01T12:00:00.000Z with delay: 0ms",
    ]
    await harness.session.uninitialize()


@pytest.mark.asyncio
async def test_uninitialize_twice_is_a_noop(token_source: FakeTokenSource) -> None:
    harness = make_session()
    await harness.session.initialize(token_source)

    await harness.session.uninitialize()
    await harness.session.uninitialize()

    assert harness.session.state is SessionState.CLOSED
    assert harness.messaging.close_calls == 1
    assert harness.management.close_calls == 1


@pytest.mark.asyncio
async def test_uninitialize_before_initialize_keeps_state() -> None:
    harness = make_session()

    await harness.session.uninitialize()

    assert harness.session.state is SessionState.UNINITIALIZED
    assert harness.messaging.close_calls == 0


@pytest.mark.asyncio
async def test_uninitialize_stops_receiving(token_source: FakeTokenSource) -> None:
    harness = make_session()
    await harness.session.initialize(token_source)
    harness.events.clear()

    await harness.session.uninitialize()
    harness.messaging.receiver.deliver(FakeReceivedMessage("late"))
    await asyncio.sleep(0.01)

    assert harness.events == []
    assert harness.messaging.receiver.completed == []

    await harness.session.send()
    assert harness.events == [NO_SENDER_MESSAGE]


@pytest.mark.asyncio
async def test_close_errors_do_not_block_teardown(token_source: FakeTokenSource) -> None:
    harness = make_session()
    await harness.session.initialize(token_source)
    harness.messaging.close_error = RuntimeError("connection reset")

    await harness.session.uninitialize()

    assert harness.session.state is SessionState.CLOSED
    assert harness.management.close_calls == 1


@pytest.mark.asyncio
async def test_closed_session_cannot_be_reinitialized(
    token_source: FakeTokenSource,
) -> None:
    harness = make_session()
    await harness.session.initialize(token_source)
    await harness.session.uninitialize()

    with pytest.raises(PreconditionError):
        await harness.session.initialize(token_source)


@pytest.mark.asyncio
async def test_delay_tracks_the_injected_clock(token_source: FakeTokenSource) -> None:
    now = [FIXED_NOW]
    harness = make_session(clock=lambda: now[0])
    await harness.session.initialize(token_source)
    harness.events.clear()
    now[0] = FIXED_NOW + timedelta(seconds=3)
    message = FakeReceivedMessage(format_timestamp(FIXED_NOW))

    harness.messaging.receiver.deliver(message)
    await wait_until(lambda: harness.messaging.receiver.completed == [message])

    assert harness.events[-1].endswith("with delay: 3000ms")
    await harness.session.uninitialize()
