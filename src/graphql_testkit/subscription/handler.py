"""Interpretation of inbound ``graphql-ws`` frames."""

from __future__ import annotations

import json
from typing import Any

from graphql_testkit.exceptions import fail
from graphql_testkit.logging import get_logger
from graphql_testkit.response import GraphQLResponse
from graphql_testkit.subscription.protocol import (
    GQL_COMPLETE,
    GQL_CONNECTION_ACK,
    GQL_DATA,
    GQL_ERROR,
)
from graphql_testkit.subscription.state import SubscriptionState

logger = get_logger("subscription.handler")


class SubscriptionMessageHandler:
    """
    Apply server frames to a ``SubscriptionState``.

    Runs on the transport thread. Protocol violations raise
    ``GraphQLTestFailure``; the driver records them for the test thread.
    """

    def __init__(self, state: SubscriptionState) -> None:
        self.state = state

    def __call__(self, message: str) -> None:
        self.on_message(message)

    def on_message(self, message: str) -> None:
        logger.debug(
            "received message from web socket",
            context={"subscription_id": self.state.id, "message": message},
        )
        envelope = self._decode(message)
        message_type = envelope.get("type")
        if "type" not in envelope:
            fail("GraphQL messages should have a type field.")
        if message_type is None:
            fail("GraphQL messages type should not be null.")

        if message_type == GQL_COMPLETE:
            self.state.mark_completed()
            logger.debug(
                "subscription completed", context={"subscription_id": self.state.id}
            )
        elif message_type == GQL_CONNECTION_ACK:
            self.state.mark_acknowledged()
            logger.debug(
                "web socket connection acknowledged by the graphql server",
                context={"subscription_id": self.state.id},
            )
        elif message_type in (GQL_DATA, GQL_ERROR):
            self._record_response(envelope)

    def _record_response(self, envelope: dict[str, Any]) -> None:
        payload = envelope.get("payload")
        if payload is None:
            fail("Data/error messages must have a payload.")
        if not isinstance(payload, dict):
            # Legacy servers send bare error objects or lists for "error" frames.
            payload = {"errors": payload if isinstance(payload, list) else [payload]}
        response = GraphQLResponse(payload)
        if self.state.append_response(response):
            logger.debug(
                "new response recorded", context={"subscription_id": self.state.id}
            )
        else:
            logger.debug(
                "response discarded because subscription was stopped or completed",
                context={"subscription_id": self.state.id},
            )

    @staticmethod
    def _decode(message: str) -> dict[str, Any]:
        try:
            envelope = json.loads(message)
        except (TypeError, ValueError) as error:
            fail(
                "Exception while parsing server response. Response is not a valid GraphQL response.",
                error,
            )
        if not isinstance(envelope, dict):
            fail("GraphQL messages should have a type field.")
        return envelope
