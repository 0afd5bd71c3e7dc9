from __future__ import annotations

from typing import Any
from urllib.parse import urlsplit

from channels.routing import get_default_application  # type: ignore[import-untyped]
from channels.testing import ChannelsLiveServerTestCase  # type: ignore[import-untyped]
from django.test import SimpleTestCase
from django.utils.module_loading import import_string

from graphql_testkit.subscription.driver import GraphQLTestSubscription
from graphql_testkit.subscription.transport import asgi_transport_factory
from graphql_testkit.template import GraphQLTestTemplate


class GraphQLSubscriptionTestMixin:
    """
    Provide ``self.subscription`` and ``self.graphql_template`` to each test.

    The subscription is reset after every test so a failing test cannot leak an
    open socket into the next one.
    """

    subscription_path: str | None = None
    graphql_url: str | None = None

    subscription: GraphQLTestSubscription
    graphql_template: GraphQLTestTemplate

    def create_subscription(self) -> GraphQLTestSubscription:
        return GraphQLTestSubscription(self.subscription_path)

    def create_template(self) -> GraphQLTestTemplate:
        return GraphQLTestTemplate(self.graphql_url)

    def setUp(self) -> None:
        super().setUp()  # type: ignore[misc]
        self.subscription = self.create_subscription()
        self.graphql_template = self.create_template()

    def tearDown(self) -> None:
        try:
            self.subscription.reset()
        finally:
            super().tearDown()  # type: ignore[misc]


class GraphQLSubscriptionTestCase(GraphQLSubscriptionTestMixin, SimpleTestCase):
    """
    Run subscriptions against the project's ASGI application in-process.

    Set ``asgi_application`` to an application object or its dotted path;
    ``settings.ASGI_APPLICATION`` is used when it is left unset.
    """

    asgi_application: Any = None

    def get_asgi_application(self) -> Any:
        application = self.asgi_application
        if application is None:
            return get_default_application()
        if isinstance(application, str):
            return import_string(application)
        return application

    def create_subscription(self) -> GraphQLTestSubscription:
        return GraphQLTestSubscription(
            self.subscription_path,
            transport_factory=asgi_transport_factory(self.get_asgi_application()),
        )


class GraphQLLiveServerTestCase(GraphQLSubscriptionTestMixin, ChannelsLiveServerTestCase):
    """Run subscriptions over a real socket against a live daphne server."""

    def create_subscription(self) -> GraphQLTestSubscription:
        address = urlsplit(self.live_server_ws_url)
        return GraphQLTestSubscription(
            self.subscription_path,
            host=address.hostname,
            port=address.port,
        )
