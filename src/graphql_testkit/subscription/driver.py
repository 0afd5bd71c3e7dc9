"""Blocking test client for GraphQL subscriptions over ``graphql-ws``."""

from __future__ import annotations

import json
import time
from types import TracebackType
from typing import Any, Callable

from graphql_testkit.conf import get_setting
from graphql_testkit.exceptions import GraphQLTestFailure, TransportError, fail
from graphql_testkit.logging import get_logger
from graphql_testkit.resources import load_resource
from graphql_testkit.response import GraphQLResponse
from graphql_testkit.subscription.handler import SubscriptionMessageHandler
from graphql_testkit.subscription.protocol import (
    GQL_CONNECTION_INIT,
    GQL_START,
    GQL_STOP,
    GRAPHQL_WS,
)
from graphql_testkit.subscription.state import IdSequence, SubscriptionState
from graphql_testkit.subscription.transport import (
    SubscriptionTransport,
    TransportFactory,
    WebSocketClientTransport,
)

logger = get_logger("subscription.driver")


class GraphQLTestSubscription:
    """
    Helper object to test GraphQL subscriptions.

    A subscription goes through ``init`` (``connection_init`` and wait for
    ``connection_ack``), ``start`` (send the query), any number of await calls
    draining received ``data``/``error`` payloads, and ``stop`` (send ``stop``
    and wait for the socket to close). Call ``reset`` between tests to reuse the
    instance. Every contract violation fails the test with ``GraphQLTestFailure``.

    Example:
        subscription = GraphQLTestSubscription("subscriptions", port=8000)
        response = subscription.start("subscriptions/countdown.graphql", {"start": 3}) \\
            .await_and_get_next_response(1000)
        assert response.get("$.data.countdown") == 3
    """

    def __init__(
        self,
        subscription_path: str | None = None,
        *,
        host: str | None = None,
        port: int | None = None,
        transport_factory: TransportFactory | None = None,
        resource_loader: Callable[[str], str] | None = None,
        id_sequence: IdSequence | None = None,
        poll_interval_ms: int | None = None,
        acknowledgement_timeout_ms: int | None = None,
    ) -> None:
        self.subscription_path: str = (
            subscription_path
            if subscription_path is not None
            else get_setting("SUBSCRIPTION_PATH")
        )
        self.host: str = host if host is not None else get_setting("HOST")
        self.port: int | None = port if port is not None else get_setting("PORT")
        self.poll_interval_ms: int = (
            poll_interval_ms
            if poll_interval_ms is not None
            else int(get_setting("POLL_INTERVAL_MS"))
        )
        self.acknowledgement_timeout_ms: int = (
            acknowledgement_timeout_ms
            if acknowledgement_timeout_ms is not None
            else int(get_setting("ACKNOWLEDGEMENT_TIMEOUT_MS"))
        )
        self._transport_factory: TransportFactory = (
            transport_factory or self._default_transport_factory
        )
        self._load_resource = resource_loader or load_resource
        self._id_sequence = id_sequence
        self._transport: SubscriptionTransport | None = None
        self._state = SubscriptionState(id_sequence)

    # ------------------------------------------------------------------ state

    @property
    def transport(self) -> SubscriptionTransport | None:
        return self._transport

    @property
    def subscription_id(self) -> int:
        return self._state.id

    @property
    def is_initialized(self) -> bool:
        return self._state.initialized

    @property
    def is_acknowledged(self) -> bool:
        return self._state.acknowledged

    @property
    def is_started(self) -> bool:
        return self._state.started

    @property
    def is_stopped(self) -> bool:
        return self._state.stopped

    @property
    def is_completed(self) -> bool:
        return self._state.completed

    @property
    def uri(self) -> str:
        path = self.subscription_path.lstrip("/")
        authority = self.host if self.port is None else f"{self.host}:{self.port}"
        return f"ws://{authority}/{path}"

    # -------------------------------------------------------------- lifecycle

    def init(self, payload: Any | None = None) -> "GraphQLTestSubscription":
        """
        Send ``connection_init`` and wait for the server's acknowledgement.

        Parameters:
            payload (Any | None): ``connection_init`` payload; an empty object when omitted.

        Returns:
            GraphQLTestSubscription: ``self``.
        """
        self._raise_delivery_failure()
        if self.is_initialized:
            fail("Subscription already initialized.")
        try:
            self._init_client()
        except (TransportError, OSError) as error:
            fail(
                "Could not initialize test subscription client. No subscription defined?",
                error,
            )
        self._send_message(
            {"type": GQL_CONNECTION_INIT, "payload": self._final_payload(payload)}
        )
        self._state.mark_initialized()
        self._await(
            lambda: self._state.acknowledged,
            "Connection was not acknowledged by the GraphQL server.",
        )
        logger.debug(
            "subscription successfully initialized",
            context={"subscription_id": self._state.id, "uri": self.uri},
        )
        return self

    def start(
        self, graphql_resource: str, variables: Any | None = None
    ) -> "GraphQLTestSubscription":
        """
        Send the ``start`` message, initializing the connection first if needed.

        Parameters:
            graphql_resource (str): Resource containing the subscription document.
            variables (Any | None): Query variables; an empty object when omitted.

        Returns:
            GraphQLTestSubscription: ``self``.
        """
        self._raise_delivery_failure()
        if not self.is_initialized:
            self.init()
        if self.is_started:
            fail(
                "Start message already sent. To start a new subscription, please call reset first."
            )
        query = self._load_resource(graphql_resource)
        self._state.mark_started()
        logger.debug(
            "sending start message",
            context={"subscription_id": self._state.id, "resource": graphql_resource},
        )
        self._send_message(
            {
                "type": GQL_START,
                "id": self._state.id,
                "payload": {
                    "query": query,
                    "variables": self._final_payload(variables),
                },
            }
        )
        return self

    def stop(self) -> "GraphQLTestSubscription":
        """
        Send ``stop``, close the socket and wait until the close is confirmed.

        Returns:
            GraphQLTestSubscription: ``self``.
        """
        if not self.is_initialized:
            fail("Subscription not yet initialized.")
        if self.is_stopped:
            fail("Subscription already stopped.")
        transport = self._transport
        if transport is None:
            fail("Test setup failure - no web socket session to stop.")
        logger.debug("sending stop message", context={"subscription_id": self._state.id})
        self._send_message({"type": GQL_STOP, "id": self._state.id})
        try:
            logger.debug("closing web socket session", context={"uri": self.uri})
            transport.close()
        except (TransportError, OSError) as error:
            fail("Could not close web socket session", error)
        self._await(
            lambda: self._state.stopped,
            "Connection was not stopped in time.",
            surface_failures=False,
        )
        logger.debug("web socket session closed", context={"uri": self.uri})
        return self

    def reset(self) -> None:
        """
        Stop the subscription if it is still running and start over with a fresh state.

        Call this after each test to make the instance reusable.
        """
        if self.is_initialized and not self.is_stopped:
            self.stop()
        if self._transport is not None:
            try:
                self._transport.close()
            except (TransportError, OSError) as error:
                fail("Could not close web socket session", error)
        previous_id = self._state.id
        self._state = SubscriptionState(self._id_sequence)
        self._transport = None
        logger.debug(
            "test subscription client reset",
            context={"previous_id": previous_id, "subscription_id": self._state.id},
        )

    # -------------------------------------------------------------- responses

    def await_and_get_next_response(
        self, timeout_ms: int, stop_after: bool = True
    ) -> GraphQLResponse:
        """
        Wait for the next response.

        Parameters:
            timeout_ms (int): Time to wait in milliseconds; the test fails if nothing arrives.
            stop_after (bool): Stop the subscription afterwards.
        """
        return self.await_and_get_next_responses(timeout_ms, 1, stop_after)[0]

    def await_and_get_all_responses(
        self, timeout_ms: int, stop_after: bool = True
    ) -> list[GraphQLResponse]:
        """Wait the full ``timeout_ms`` and return everything received, possibly nothing."""
        return self.await_and_get_next_responses(timeout_ms, -1, stop_after)

    def wait_and_expect_no_response(
        self, timeout_ms: int, stop_after: bool = True
    ) -> "GraphQLTestSubscription":
        """Wait the full ``timeout_ms`` and fail if any response arrived."""
        self.await_and_get_next_responses(timeout_ms, 0, stop_after)
        return self

    def await_and_get_next_responses(
        self,
        timeout_ms: int,
        expected_count: int,
        stop_after: bool = True,
    ) -> list[GraphQLResponse]:
        """
        Wait for responses and drain them from the buffer.

        Parameters:
            timeout_ms (int): Time to wait in milliseconds.
            expected_count (int): Number of responses to wait for. When positive,
                returns as soon as that many arrived and fails if fewer did.
                ``0`` waits the full time and fails if anything arrived. A
                negative value waits the full time and returns whatever arrived.
            stop_after (bool): Stop the subscription after waiting.

        Returns:
            list[GraphQLResponse]: Drained responses in the order they were received.
            Extra responses stay buffered for later calls or ``get_remaining_responses``.
        """
        self._raise_delivery_failure()
        if not self.is_started:
            fail("Start message not sent. Please send start message first.")
        if self.is_stopped:
            fail("Subscription already stopped. Forgot to call reset after test case?")

        elapsed = 0
        while (
            expected_count <= 0 or self._state.buffered_count() < expected_count
        ) and elapsed < timeout_ms:
            self._raise_delivery_failure()
            time.sleep(self.poll_interval_ms / 1000)
            elapsed += self.poll_interval_ms

        if stop_after:
            self.stop()
        self._raise_delivery_failure()

        state = self._state
        with state.lock:
            received = len(state.responses)
            if expected_count == 0 and received:
                fail(
                    f"Expected no responses in {timeout_ms} MS, but received {received}"
                )
            if expected_count > 0 and received < expected_count:
                fail(
                    f"Expected at least {expected_count} message(s) in {timeout_ms} MS, "
                    f"but {received} received."
                )
            responses = state.take_locked(expected_count if expected_count > 0 else None)
        logger.debug(
            "returning responses",
            context={"subscription_id": state.id, "count": len(responses)},
        )
        return responses

    def get_remaining_responses(self) -> list[GraphQLResponse]:
        """Return and clear everything still buffered; only valid once stopped."""
        self._raise_delivery_failure()
        if not self.is_stopped:
            fail(
                "get_remaining_responses should only be called after the subscription was stopped."
            )
        return self._state.drain()

    # ---------------------------------------------------------------- helpers

    def _default_transport_factory(
        self, uri: str, subprotocols: list[str]
    ) -> SubscriptionTransport:
        return WebSocketClientTransport(
            uri,
            subprotocols,
            connect_timeout=self.acknowledgement_timeout_ms / 1000,
        )

    def _init_client(self) -> None:
        state = self._state
        handler = SubscriptionMessageHandler(state)
        logger.debug("connecting to client", context={"uri": self.uri})
        transport = self._transport_factory(self.uri, [GRAPHQL_WS])
        transport.connect(
            on_message=lambda message: self._dispatch(state, handler, message),
            on_close=state.mark_stopped,
        )
        self._transport = transport

    @staticmethod
    def _dispatch(
        state: SubscriptionState,
        handler: SubscriptionMessageHandler,
        message: str,
    ) -> None:
        try:
            handler(message)
        except GraphQLTestFailure as failure:
            state.record_failure(failure)
            logger.error(
                "invalid message received from graphql server",
                context={"subscription_id": state.id, "error": str(failure)},
            )

    def _raise_delivery_failure(self) -> None:
        failure = self._state.failure
        if failure is not None:
            raise failure

    @staticmethod
    def _final_payload(value: Any | None) -> Any:
        return {} if value is None else value

    def _send_message(self, message: dict[str, Any]) -> None:
        try:
            text = json.dumps(message)
        except (TypeError, ValueError) as error:
            fail("Test setup failure - cannot serialize subscription payload.", error)
        if self._transport is None:
            fail("Test setup failure - no web socket session to send the message on.")
        try:
            self._transport.send(text)
        except (TransportError, OSError) as error:
            fail("Test setup failure - cannot send subscription message.", error)

    def _await(
        self,
        condition: Callable[[], bool],
        timeout_description: str,
        *,
        surface_failures: bool = True,
    ) -> None:
        elapsed = 0
        while not condition() and elapsed < self.acknowledgement_timeout_ms:
            if surface_failures:
                self._raise_delivery_failure()
            time.sleep(self.poll_interval_ms / 1000)
            elapsed += self.poll_interval_ms
        if not condition():
            if surface_failures:
                self._raise_delivery_failure()
            fail(f"Timeout: {timeout_description}")

    # ------------------------------------------------------- context manager

    def __enter__(self) -> "GraphQLTestSubscription":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.reset()

    def __repr__(self) -> str:
        return f"GraphQLTestSubscription(uri={self.uri!r}, state={self._state!r})"
