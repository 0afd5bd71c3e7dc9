from __future__ import annotations

import itertools
import logging
import time

import pytest

from graphql_testkit.exceptions import GraphQLTestFailure, TransportError
from graphql_testkit.subscription.driver import GraphQLTestSubscription
from tests.utils.fake_transport import FakeTransportFactory

RESOURCES = {
    "subscriptions/countdown.graphql": "subscription { countdown(start: 3) }",
}


def make_subscription(
    factory: FakeTransportFactory, **options: object
) -> GraphQLTestSubscription:
    options.setdefault("poll_interval_ms", 5)
    options.setdefault("acknowledgement_timeout_ms", 200)
    return GraphQLTestSubscription(
        "subscriptions",
        host="localhost",
        port=8000,
        transport_factory=factory,
        resource_loader=RESOURCES.__getitem__,
        **options,  # type: ignore[arg-type]
    )


def countdown_frame(value: int) -> dict[str, object]:
    return {"type": "data", "id": 1, "payload": {"data": {"countdown": value}}}


def values(responses) -> list[int]:
    return [response.get("$.data.countdown") for response in responses]


# ---------------------------------------------------------------- construction


def test_uri_is_built_from_host_port_and_path(transport_factory) -> None:
    subscription = make_subscription(transport_factory)
    assert subscription.uri == "ws://localhost:8000/subscriptions"

    without_port = GraphQLTestSubscription(
        "/graphql/ws", host="example.org", transport_factory=transport_factory
    )
    assert without_port.uri == "ws://example.org/graphql/ws"


def test_defaults_come_from_settings() -> None:
    subscription = GraphQLTestSubscription()

    assert subscription.uri == "ws://localhost/subscriptions"
    assert subscription.poll_interval_ms == 100
    assert subscription.acknowledgement_timeout_ms == 10000
    assert subscription.transport is None


# ------------------------------------------------------------------------ init


def test_init_connects_with_graphql_ws_and_sends_payload(transport_factory) -> None:
    subscription = make_subscription(transport_factory)

    assert subscription.init({"authToken": "secret"}) is subscription

    transport = transport_factory.last
    assert transport.uri == "ws://localhost:8000/subscriptions"
    assert transport.subprotocols == ["graphql-ws"]
    assert transport.sent == [{"type": "connection_init", "payload": {"authToken": "secret"}}]
    assert subscription.is_initialized
    assert subscription.is_acknowledged
    assert subscription.transport is transport


def test_init_twice_fails_without_sending_again(transport_factory) -> None:
    subscription = make_subscription(transport_factory).init()

    with pytest.raises(GraphQLTestFailure, match="Subscription already initialized."):
        subscription.init()

    assert transport_factory.last.sent_types == ["connection_init"]
    assert len(transport_factory.transports) == 1


def test_init_times_out_without_acknowledgement() -> None:
    factory = FakeTransportFactory(auto_ack=False)
    subscription = make_subscription(factory, acknowledgement_timeout_ms=30)

    with pytest.raises(
        GraphQLTestFailure,
        match="Timeout: Connection was not acknowledged by the GraphQL server.",
    ):
        subscription.init()

    assert subscription.is_initialized
    assert not subscription.is_acknowledged


def test_init_fails_when_connection_is_refused() -> None:
    subscription = make_subscription(FakeTransportFactory(refuse_connection=True))

    with pytest.raises(GraphQLTestFailure) as excinfo:
        subscription.init()

    assert excinfo.value.message == (
        "Could not initialize test subscription client. No subscription defined?"
    )
    assert isinstance(excinfo.value.__cause__, TransportError)
    assert not subscription.is_initialized


def test_init_fails_when_message_cannot_be_sent() -> None:
    subscription = make_subscription(FakeTransportFactory(fail_send=True))

    with pytest.raises(
        GraphQLTestFailure, match="Test setup failure - cannot send subscription message."
    ):
        subscription.init()


# ----------------------------------------------------------------------- start


def test_start_initializes_exactly_once(transport_factory) -> None:
    subscription = make_subscription(transport_factory)

    subscription.start("subscriptions/countdown.graphql")

    transport = transport_factory.last
    assert len(transport_factory.transports) == 1
    assert transport.sent == [
        {"type": "connection_init", "payload": {}},
        {
            "type": "start",
            "id": subscription.subscription_id,
            "payload": {
                "query": "subscription { countdown(start: 3) }",
                "variables": {},
            },
        },
    ]
    assert subscription.is_started


def test_start_after_explicit_init_does_not_init_again(transport_factory) -> None:
    subscription = make_subscription(transport_factory).init()

    subscription.start("subscriptions/countdown.graphql", {"start": 5})

    assert transport_factory.last.sent_types == ["connection_init", "start"]
    assert transport_factory.last.sent[1]["payload"]["variables"] == {"start": 5}


def test_start_twice_fails(transport_factory) -> None:
    subscription = make_subscription(transport_factory)
    subscription.start("subscriptions/countdown.graphql")

    with pytest.raises(
        GraphQLTestFailure,
        match="Start message already sent. To start a new subscription, please call reset first.",
    ):
        subscription.start("subscriptions/countdown.graphql")


def test_start_fails_for_unserializable_variables(transport_factory) -> None:
    subscription = make_subscription(transport_factory)

    with pytest.raises(
        GraphQLTestFailure,
        match="Test setup failure - cannot serialize subscription payload.",
    ):
        subscription.start("subscriptions/countdown.graphql", {"start": object()})


# ------------------------------------------------------------------------ stop


def test_stop_before_init_fails(transport_factory) -> None:
    with pytest.raises(GraphQLTestFailure, match="Subscription not yet initialized."):
        make_subscription(transport_factory).stop()


def test_stop_without_session_fails_before_sending(transport_factory) -> None:
    subscription = make_subscription(transport_factory)
    subscription.start("subscriptions/countdown.graphql")
    subscription._transport = None

    with pytest.raises(
        GraphQLTestFailure, match="Test setup failure - no web socket session to stop."
    ):
        subscription.stop()

    assert transport_factory.last.sent_types == ["connection_init", "start"]
    assert transport_factory.last.close_calls == 0


def test_stop_sends_stop_and_closes(transport_factory) -> None:
    subscription = make_subscription(transport_factory)
    subscription.start("subscriptions/countdown.graphql")

    assert subscription.stop() is subscription

    transport = transport_factory.last
    assert transport.sent[-1] == {"type": "stop", "id": subscription.subscription_id}
    assert transport.close_calls == 1
    assert subscription.is_stopped

    with pytest.raises(GraphQLTestFailure, match="Subscription already stopped."):
        subscription.stop()


def test_stop_waits_for_close_confirmation() -> None:
    factory = FakeTransportFactory(close_on_close=False)
    subscription = make_subscription(factory)
    subscription.start("subscriptions/countdown.graphql")
    factory.last.server_close_later(0.03)

    subscription.stop()

    assert subscription.is_stopped
    factory.last.join_timers()


def test_stop_times_out_without_close_confirmation() -> None:
    factory = FakeTransportFactory(close_on_close=False)
    subscription = make_subscription(factory, acknowledgement_timeout_ms=30)
    subscription.start("subscriptions/countdown.graphql")

    with pytest.raises(
        GraphQLTestFailure, match="Timeout: Connection was not stopped in time."
    ):
        subscription.stop()


def test_stop_is_not_blocked_by_recorded_delivery_failure(transport_factory) -> None:
    subscription = make_subscription(transport_factory)
    subscription.start("subscriptions/countdown.graphql")
    transport_factory.last.deliver("not json")

    subscription.stop()

    assert subscription.is_stopped
    with pytest.raises(GraphQLTestFailure, match="Exception while parsing server response."):
        subscription.get_remaining_responses()


# ---------------------------------------------------------------------- awaits


def test_await_before_start_fails(transport_factory) -> None:
    subscription = make_subscription(transport_factory).init()

    with pytest.raises(
        GraphQLTestFailure,
        match="Start message not sent. Please send start message first.",
    ):
        subscription.await_and_get_next_response(10)


def test_await_after_stop_fails(transport_factory) -> None:
    subscription = make_subscription(transport_factory)
    subscription.start("subscriptions/countdown.graphql").stop()

    with pytest.raises(
        GraphQLTestFailure,
        match="Subscription already stopped. Forgot to call reset after test case?",
    ):
        subscription.await_and_get_all_responses(10)


def test_next_responses_drain_in_order_and_keep_the_rest(transport_factory) -> None:
    subscription = make_subscription(transport_factory)
    subscription.start("subscriptions/countdown.graphql")
    for value in (3, 2, 1):
        transport_factory.last.deliver(countdown_frame(value))

    responses = subscription.await_and_get_next_responses(100, 2)

    assert values(responses) == [3, 2]
    assert subscription.is_stopped
    assert values(subscription.get_remaining_responses()) == [1]
    assert subscription.get_remaining_responses() == []


def test_next_response_returns_as_soon_as_it_arrives(transport_factory) -> None:
    subscription = make_subscription(transport_factory)
    subscription.start("subscriptions/countdown.graphql")
    transport_factory.last.deliver_later(0.02, countdown_frame(3))

    started = time.monotonic()
    response = subscription.await_and_get_next_response(5000, stop_after=False)

    assert time.monotonic() - started < 2
    assert response.get("$.data.countdown") == 3
    assert not subscription.is_stopped


def test_next_responses_fail_when_too_few_arrive(transport_factory) -> None:
    subscription = make_subscription(transport_factory)
    subscription.start("subscriptions/countdown.graphql")
    transport_factory.last.deliver(countdown_frame(3))

    with pytest.raises(GraphQLTestFailure) as excinfo:
        subscription.await_and_get_next_responses(30, 2)

    assert str(excinfo.value) == "Expected at least 2 message(s) in 30 MS, but 1 received."
    assert subscription.is_stopped


def test_all_responses_wait_the_full_timeout(transport_factory) -> None:
    subscription = make_subscription(transport_factory)
    subscription.start("subscriptions/countdown.graphql")
    transport_factory.last.deliver(countdown_frame(3))

    started = time.monotonic()
    responses = subscription.await_and_get_all_responses(100, stop_after=False)

    assert time.monotonic() - started >= 0.09
    assert values(responses) == [3]


def test_all_responses_may_be_empty(transport_factory) -> None:
    subscription = make_subscription(transport_factory)
    subscription.start("subscriptions/countdown.graphql")

    assert subscription.await_and_get_all_responses(20) == []
    assert subscription.is_stopped


def test_expect_no_response_passes_when_silent(transport_factory) -> None:
    subscription = make_subscription(transport_factory)
    subscription.start("subscriptions/countdown.graphql")

    assert subscription.wait_and_expect_no_response(20) is subscription
    assert subscription.is_stopped


def test_expect_no_response_fails_when_something_arrives(transport_factory) -> None:
    subscription = make_subscription(transport_factory)
    subscription.start("subscriptions/countdown.graphql")
    transport_factory.last.deliver(countdown_frame(3))

    with pytest.raises(GraphQLTestFailure) as excinfo:
        subscription.wait_and_expect_no_response(30)

    assert str(excinfo.value) == "Expected no responses in 30 MS, but received 1"


def test_frames_after_complete_are_not_returned(transport_factory) -> None:
    subscription = make_subscription(transport_factory)
    subscription.start("subscriptions/countdown.graphql")
    transport = transport_factory.last
    transport.deliver(countdown_frame(3))
    transport.deliver({"type": "complete", "id": 1})
    transport.deliver(countdown_frame(2))

    responses = subscription.await_and_get_all_responses(20)

    assert values(responses) == [3]
    assert subscription.is_completed


def test_delivery_failure_is_raised_on_the_test_thread(
    transport_factory, caplog: pytest.LogCaptureFixture
) -> None:
    subscription = make_subscription(transport_factory)
    subscription.start("subscriptions/countdown.graphql")

    with caplog.at_level(logging.ERROR, logger="graphql_testkit.subscription.driver"):
        transport_factory.last.deliver({"payload": {}})

    with pytest.raises(GraphQLTestFailure, match="GraphQL messages should have a type field."):
        subscription.await_and_get_next_response(50, stop_after=False)
    assert caplog.records[0].message == "invalid message received from graphql server"
    assert caplog.records[0].context["subscription_id"] == subscription.subscription_id


def test_remaining_responses_require_stop(transport_factory) -> None:
    subscription = make_subscription(transport_factory)
    subscription.start("subscriptions/countdown.graphql")

    with pytest.raises(
        GraphQLTestFailure,
        match="get_remaining_responses should only be called after the subscription was stopped.",
    ):
        subscription.get_remaining_responses()


# ----------------------------------------------------------------------- reset


def test_reset_stops_running_subscription_and_renews_id(transport_factory) -> None:
    subscription = make_subscription(transport_factory)
    subscription.start("subscriptions/countdown.graphql")
    transport = transport_factory.last
    previous_id = subscription.subscription_id

    subscription.reset()

    assert transport.sent_types == ["connection_init", "start", "stop"]
    assert transport.close_calls >= 1
    assert subscription.subscription_id > previous_id
    assert subscription.transport is None
    assert not any(
        (
            subscription.is_initialized,
            subscription.is_acknowledged,
            subscription.is_started,
            subscription.is_stopped,
            subscription.is_completed,
        )
    )

    subscription.start("subscriptions/countdown.graphql")
    assert len(transport_factory.transports) == 2
    assert transport_factory.last.sent[1]["id"] == subscription.subscription_id


def test_reset_before_init_only_renews_state(transport_factory) -> None:
    subscription = make_subscription(transport_factory, id_sequence=itertools.count(100).__next__)

    assert subscription.subscription_id == 100
    subscription.reset()

    assert subscription.subscription_id == 101
    assert transport_factory.transports == []


def test_reset_after_stop_does_not_send_again(transport_factory) -> None:
    subscription = make_subscription(transport_factory)
    subscription.start("subscriptions/countdown.graphql").stop()

    subscription.reset()

    assert transport_factory.last.sent_types == ["connection_init", "start", "stop"]


def test_context_manager_resets_on_exit(transport_factory) -> None:
    with make_subscription(transport_factory) as subscription:
        subscription.start("subscriptions/countdown.graphql")
        transport = transport_factory.last

    assert transport.sent_types[-1] == "stop"
    assert not subscription.is_initialized
    assert "ws://localhost:8000/subscriptions" in repr(subscription)
