from __future__ import annotations

import asyncio
import contextlib
from types import SimpleNamespace
from typing import Any, cast

from channels.generic.websocket import AsyncJsonWebsocketConsumer  # type: ignore[import-untyped]
from graphene_django.settings import graphene_settings
from graphql import (
    ExecutionResult,
    GraphQLError,
    GraphQLSchema,
    parse,
    subscribe,
)

from graphql_testkit.subscription.protocol import (
    GQL_COMPLETE,
    GQL_CONNECTION_ACK,
    GQL_CONNECTION_ERROR,
    GQL_CONNECTION_INIT,
    GQL_CONNECTION_TERMINATE,
    GQL_DATA,
    GQL_ERROR,
    GQL_START,
    GQL_STOP,
    GRAPHQL_WS,
)

OperationId = str | int


class GraphQLWSConsumer(AsyncJsonWebsocketConsumer):
    """
    Websocket consumer implementing the legacy ``graphql-ws`` protocol for GraphQL subscriptions.

    Streams results of the graphene schema configured in ``GRAPHENE["SCHEMA"]``.
    """

    connection_acknowledged: bool
    connection_params: dict[str, Any]

    async def connect(self) -> None:
        self.connection_acknowledged = False
        self.connection_params = {}
        self.active_subscriptions: dict[OperationId, asyncio.Task[None]] = {}
        subprotocols = self.scope.get("subprotocols", [])
        selected_subprotocol = GRAPHQL_WS if GRAPHQL_WS in subprotocols else None
        await self.accept(subprotocol=selected_subprotocol)

    async def disconnect(self, code: int) -> None:
        tasks = list(self.active_subscriptions.values())
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self.active_subscriptions.clear()

    async def receive_json(self, content: dict[str, Any], **_: Any) -> None:
        message_type = content.get("type")
        if message_type == GQL_CONNECTION_INIT:
            await self._handle_connection_init(content)
        elif message_type == GQL_START:
            await self._handle_start(content)
        elif message_type == GQL_STOP:
            await self._handle_stop(content)
        elif message_type == GQL_CONNECTION_TERMINATE:
            await self.close()
        else:
            await self._send_protocol_message(
                {
                    "type": GQL_ERROR,
                    "id": content.get("id"),
                    "payload": {"message": f"Unsupported message type: {message_type!r}"},
                }
            )

    async def _handle_connection_init(self, content: dict[str, Any]) -> None:
        if self.connection_acknowledged:
            await self._send_protocol_message(
                {
                    "type": GQL_CONNECTION_ERROR,
                    "payload": {"message": "Too many initialisation requests."},
                }
            )
            await self.close(code=4429)
            return
        payload = content.get("payload")
        if isinstance(payload, dict):
            self.connection_params = payload
        else:
            self.connection_params = {}
        self.connection_acknowledged = True
        await self._send_protocol_message({"type": GQL_CONNECTION_ACK})

    async def _handle_start(self, content: dict[str, Any]) -> None:
        if not self.connection_acknowledged:
            await self.close(code=4401)
            return

        operation_id = content.get("id")
        payload = content.get("payload", {})
        if (
            not isinstance(operation_id, (str, int))
            or isinstance(operation_id, bool)
            or not isinstance(payload, dict)
        ):
            await self.close(code=4403)
            return

        schema = graphene_settings.SCHEMA
        if schema is None or self._schema_has_no_subscription(schema.graphql_schema):
            await self._reject(operation_id, "GraphQL subscriptions are not configured.")
            return

        query = payload.get("query")
        if not isinstance(query, str):
            await self._reject(operation_id, "A GraphQL query string is required.")
            return

        variables = payload.get("variables")
        if variables is not None and not isinstance(variables, dict):
            await self._reject(operation_id, "Variables must be provided as an object.")
            return

        operation_name = payload.get("operationName")
        if operation_name is not None and not isinstance(operation_name, str):
            await self._reject(
                operation_id, "The operation name must be a string when provided."
            )
            return

        try:
            document = parse(query)
        except GraphQLError as error:
            await self._reject(operation_id, error.formatted)
            return

        try:
            subscription = await subscribe(
                schema.graphql_schema,
                document,
                variable_values=variables,
                operation_name=operation_name,
                context_value=self._build_context(),
            )
        except GraphQLError as error:
            await self._reject(operation_id, error.formatted)
            return

        if isinstance(subscription, ExecutionResult):
            if subscription.errors and subscription.data is None:
                await self._reject(
                    operation_id, self._format_error(subscription.errors[0])
                )
                return
            await self._send_execution_result(operation_id, subscription)
            await self._send_protocol_message({"type": GQL_COMPLETE, "id": operation_id})
            return

        if operation_id in self.active_subscriptions:
            await self._stop_subscription(operation_id)

        self.active_subscriptions[operation_id] = asyncio.create_task(
            self._stream_subscription(operation_id, subscription)
        )

    async def _handle_stop(self, content: dict[str, Any]) -> None:
        operation_id = content.get("id")
        if isinstance(operation_id, (str, int)):
            await self._stop_subscription(operation_id)

    async def _reject(self, operation_id: OperationId, error: Any) -> None:
        payload = error if isinstance(error, dict) else {"message": str(error)}
        await self._send_protocol_message(
            {"type": GQL_ERROR, "id": operation_id, "payload": payload}
        )
        await self._send_protocol_message({"type": GQL_COMPLETE, "id": operation_id})

    async def _stream_subscription(
        self, operation_id: OperationId, async_iterator: Any
    ) -> None:
        try:
            async for result in async_iterator:
                await self._send_execution_result(operation_id, result)
        except asyncio.CancelledError:
            raise
        except Exception as error:
            await self._send_protocol_message(
                {
                    "type": GQL_ERROR,
                    "id": operation_id,
                    "payload": {"message": str(error)},
                }
            )
        finally:
            await self._close_iterator(async_iterator)
            await self._send_protocol_message({"type": GQL_COMPLETE, "id": operation_id})
            self.active_subscriptions.pop(operation_id, None)

    async def _stop_subscription(self, operation_id: OperationId) -> None:
        task = self.active_subscriptions.pop(operation_id, None)
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _send_execution_result(
        self, operation_id: OperationId, result: ExecutionResult
    ) -> None:
        payload: dict[str, Any] = {"data": result.data}
        if result.errors:
            payload["errors"] = [self._format_error(error) for error in result.errors]
        await self._send_protocol_message(
            {"type": GQL_DATA, "id": operation_id, "payload": payload}
        )

    async def _send_protocol_message(self, message: dict[str, Any]) -> None:
        try:
            await self.send_json(message)
        except RuntimeError:
            # The connection has already been closed. There is nothing else to send.
            pass

    def _build_context(self) -> Any:
        raw_headers = self.scope.get("headers") or []
        headers = {
            (key.decode("latin1") if isinstance(key, (bytes, bytearray)) else key): (
                value.decode("latin1") if isinstance(value, (bytes, bytearray)) else value
            )
            for key, value in raw_headers
        }
        return SimpleNamespace(
            user=self.scope.get("user"),
            headers=headers,
            scope=self.scope,
            connection_params=self.connection_params,
        )

    @staticmethod
    def _schema_has_no_subscription(schema: GraphQLSchema) -> bool:
        return schema.subscription_type is None

    @staticmethod
    def _format_error(error: Exception) -> dict[str, Any]:
        if isinstance(error, GraphQLError):
            return cast(dict[str, Any], error.formatted)
        return {"message": str(error)}

    @staticmethod
    async def _close_iterator(async_iterator: Any) -> None:
        close = getattr(async_iterator, "aclose", None)
        if close is None:
            return
        await close()
