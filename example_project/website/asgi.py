"""
ASGI config for the example project.

It exposes the ASGI callable as a module-level variable named ``application``.

For more information on this file, see
https://docs.djangoproject.com/en/5.1/howto/deployment/asgi/
"""

import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "example_project.website.settings")

from channels.routing import ProtocolTypeRouter, URLRouter  # type: ignore[import-untyped]  # noqa: E402
from django.core.asgi import get_asgi_application  # noqa: E402
from django.urls import re_path  # noqa: E402

django_asgi_app = get_asgi_application()

from example_project.website.consumers import GraphQLWSConsumer  # noqa: E402
from graphql_testkit.conf import get_setting  # noqa: E402

subscription_route = get_setting("SUBSCRIPTION_PATH")
normalized_route = subscription_route.strip("/")
pattern = rf"^{normalized_route}/?$" if normalized_route else r"^$"

websocket_urlpatterns = [
    re_path(pattern, GraphQLWSConsumer.as_asgi()),  # type: ignore[arg-type]
]

application = ProtocolTypeRouter(
    {
        "http": django_asgi_app,
        "websocket": URLRouter(websocket_urlpatterns),
    }
)
