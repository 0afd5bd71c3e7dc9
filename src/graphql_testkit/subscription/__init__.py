"""Client-side ``graphql-ws`` subscription lifecycle."""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "GraphQLTestSubscription",
    "SubscriptionMessageHandler",
    "SubscriptionState",
    "SubscriptionTransport",
    "WebSocketClientTransport",
    "ASGIWebSocketTransport",
    "asgi_transport_factory",
    "websocket_client_transport_factory",
    "next_subscription_id",
]

_MODULE_MAP = {
    "GraphQLTestSubscription": ("graphql_testkit.subscription.driver", "GraphQLTestSubscription"),
    "SubscriptionMessageHandler": ("graphql_testkit.subscription.handler", "SubscriptionMessageHandler"),
    "SubscriptionState": ("graphql_testkit.subscription.state", "SubscriptionState"),
    "SubscriptionTransport": ("graphql_testkit.subscription.transport", "SubscriptionTransport"),
    "WebSocketClientTransport": ("graphql_testkit.subscription.transport", "WebSocketClientTransport"),
    "ASGIWebSocketTransport": ("graphql_testkit.subscription.transport", "ASGIWebSocketTransport"),
    "asgi_transport_factory": ("graphql_testkit.subscription.transport", "asgi_transport_factory"),
    "websocket_client_transport_factory": (
        "graphql_testkit.subscription.transport",
        "websocket_client_transport_factory",
    ),
    "next_subscription_id": ("graphql_testkit.subscription.state", "next_subscription_id"),
}


def __getattr__(name: str) -> Any:
    if name not in __all__:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module_path, attr = _MODULE_MAP[name]
    module = import_module(module_path)
    value = getattr(module, attr)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(list(globals().keys()) + __all__)
