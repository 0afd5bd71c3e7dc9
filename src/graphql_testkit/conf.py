"""Testkit configuration read from Django settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from django.conf import settings

_SETTINGS_KEY = "GRAPHQL_TESTKIT"

DEFAULTS: dict[str, Any] = {
    "SUBSCRIPTION_PATH": "subscriptions",
    "HOST": "localhost",
    "PORT": None,
    "GRAPHQL_URL": "/graphql/",
    "RESOURCE_DIRS": [],
    "POLL_INTERVAL_MS": 100,
    "ACKNOWLEDGEMENT_TIMEOUT_MS": 60000,
}


def get_setting(name: str) -> Any:
    """
    Return a single testkit setting.

    Looks up ``GRAPHQL_TESTKIT[name]`` first, then a top-level Django setting
    named ``name``, then the built-in default.

    Raises:
        KeyError: If ``name`` is not a known testkit setting.
    """
    if name not in DEFAULTS:
        raise KeyError(f"Unknown graphql_testkit setting '{name}'.")
    if not settings.configured:
        return DEFAULTS[name]
    config: Mapping[str, Any] | None = getattr(settings, _SETTINGS_KEY, None)
    if isinstance(config, Mapping) and name in config:
        return config[name]
    return getattr(settings, name, DEFAULTS[name])


@dataclass(frozen=True)
class GraphQLTestkitSettings:
    """Snapshot of all testkit settings."""

    subscription_path: str
    host: str
    port: int | None
    graphql_url: str
    resource_dirs: tuple[str, ...] = field(default_factory=tuple)
    poll_interval_ms: int = 100
    acknowledgement_timeout_ms: int = 60000

    @classmethod
    def load(cls) -> "GraphQLTestkitSettings":
        port = get_setting("PORT")
        return cls(
            subscription_path=str(get_setting("SUBSCRIPTION_PATH")),
            host=str(get_setting("HOST")),
            port=int(port) if port is not None else None,
            graphql_url=str(get_setting("GRAPHQL_URL")),
            resource_dirs=tuple(str(d) for d in get_setting("RESOURCE_DIRS") or ()),
            poll_interval_ms=int(get_setting("POLL_INTERVAL_MS")),
            acknowledgement_timeout_ms=int(get_setting("ACKNOWLEDGEMENT_TIMEOUT_MS")),
        )
