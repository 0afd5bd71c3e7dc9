"""Test helpers for GraphQL queries and ``graphql-ws`` subscriptions."""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "GraphQLTestSubscription",
    "GraphQLTestTemplate",
    "GraphQLResponse",
    "GraphQLTestFailure",
    "GraphQLSubscriptionTestCase",
    "GraphQLLiveServerTestCase",
    "asgi_transport_factory",
    "load_resource",
    "fail",
]

_MODULE_MAP = {
    "GraphQLTestSubscription": ("graphql_testkit.subscription.driver", "GraphQLTestSubscription"),
    "GraphQLTestTemplate": ("graphql_testkit.template", "GraphQLTestTemplate"),
    "GraphQLResponse": ("graphql_testkit.response", "GraphQLResponse"),
    "GraphQLTestFailure": ("graphql_testkit.exceptions", "GraphQLTestFailure"),
    "GraphQLSubscriptionTestCase": ("graphql_testkit.testing", "GraphQLSubscriptionTestCase"),
    "GraphQLLiveServerTestCase": ("graphql_testkit.testing", "GraphQLLiveServerTestCase"),
    "asgi_transport_factory": ("graphql_testkit.subscription.transport", "asgi_transport_factory"),
    "load_resource": ("graphql_testkit.resources", "load_resource"),
    "fail": ("graphql_testkit.exceptions", "fail"),
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
